"""Typed events for incremental delivery over text/event-stream."""

import json
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

EventKind = Literal["data", "error", "heartbeat", "complete"]

NO_EMAILS_CODE = "no_emails"


class StreamEvent(BaseModel):
    """One server-sent event. Build with the classmethods, render with to_sse()."""

    kind: EventKind
    payload: Optional[Dict[str, Any]] = Field(default=None)

    @classmethod
    def data(cls, payload: Dict[str, Any]) -> "StreamEvent":
        return cls(kind="data", payload=payload)

    @classmethod
    def error(cls, code: str, message: str) -> "StreamEvent":
        return cls(kind="error", payload={"error": code, "message": message})

    @classmethod
    def heartbeat(cls) -> "StreamEvent":
        return cls(kind="heartbeat")

    @classmethod
    def complete(cls) -> "StreamEvent":
        return cls(kind="complete", payload={"status": "done"})

    def to_sse(self) -> str:
        if self.kind == "heartbeat":
            return ": heartbeat\n\n"
        body = json.dumps(self.payload or {}, ensure_ascii=False)
        if self.kind == "data":
            return f"data: {body}\n\n"
        return f"event: {self.kind}\ndata: {body}\n\n"
