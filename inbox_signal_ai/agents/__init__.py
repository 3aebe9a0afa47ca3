"""Agent exports."""

from .sync_agent import SyncOutcome, run_sync_agent, stream_sync_agent

__all__ = ["SyncOutcome", "run_sync_agent", "stream_sync_agent"]
