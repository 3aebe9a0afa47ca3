"""
Inbox Signal AI – Streamlit frontend.
No business logic in layout; orchestration lives in agents, analysis in services.
"""

import asyncio
import csv
import io
from collections import Counter
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

import streamlit as st
from openai import AsyncOpenAI

from inbox_signal_ai.agents.sync_agent import run_sync_agent, stream_sync_agent
from inbox_signal_ai.config import (
    DEFAULT_EMAIL_QUERY,
    DEFAULT_USER_ID,
    GMAIL_PAGE_SIZE,
    GMAIL_REFRESH_TOKEN,
    OPENAI_API_KEY,
)
from inbox_signal_ai.pipeline.dispatcher import JobDispatcher
from inbox_signal_ai.schemas.enrichment_result import EnrichmentResult
from inbox_signal_ai.services.enrichment_engine import OpenAIEnrichmentEngine
from inbox_signal_ai.services.gmail_service import GmailService
from inbox_signal_ai.services.result_store import SqlResultStore
from inbox_signal_ai.utils.ttl_cache import TTLCache

T = TypeVar("T")

MODE_SYNC = "Sync (wait for all)"
MODE_LIVE = "Live (show as analyzed)"

PRIORITY_BADGE = {"high": "🔴 high", "medium": "🟠 medium", "low": "🟢 low"}

CSV_HEADERS = [
    "messageId", "category", "priority", "company", "role", "deadline", "summary",
    "tags", "applyLink", "salary", "location", "eligibility",
]


@st.cache_resource
def _store() -> SqlResultStore:
    """One result store per Streamlit process."""
    return SqlResultStore()


@st.cache_resource
def _analysis_cache() -> TTLCache:
    """Analysis cache shared by every run in this Streamlit process."""
    return TTLCache()


def _pipeline(store: SqlResultStore, cache: TTLCache) -> Tuple[GmailService, JobDispatcher]:
    """
    Build the Gmail client and dispatcher for a single run.

    Each click runs on its own event loop, so the HTTP client and locks must be
    created inside that loop. Only the store and the analysis cache outlive a run.
    """
    gmail = GmailService()
    engine = OpenAIEnrichmentEngine(client=AsyncOpenAI(api_key=OPENAI_API_KEY), cache=cache)
    dispatcher = JobDispatcher(fetcher=gmail, engine=engine, store=store, user_id=DEFAULT_USER_ID)
    return gmail, dispatcher


def _run_in_new_loop(coro: Awaitable[T]) -> T:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _run_batch(query: str, max_results: int) -> List[EnrichmentResult]:
    """Batch mode: list, analyze all, return results once the run finished."""
    store, cache = _store(), _analysis_cache()

    async def batch() -> List[EnrichmentResult]:
        gmail, dispatcher = _pipeline(store, cache)
        outcome = await run_sync_agent(gmail, dispatcher, query=query, max_results=max_results)
        return outcome.emails

    return _run_in_new_loop(batch())


def _run_live(
    query: str,
    max_results: int,
    on_result: Callable[[EnrichmentResult], None],
) -> Optional[str]:
    """Live mode: call on_result per analyzed email; returns an error message, if any."""
    store, cache = _store(), _analysis_cache()

    async def consume() -> Optional[str]:
        gmail, dispatcher = _pipeline(store, cache)
        error = None
        async for event in stream_sync_agent(
            gmail,
            dispatcher,
            store=store,
            user_id=DEFAULT_USER_ID,
            query=query,
            max_results=max_results,
        ):
            if event.kind == "data":
                on_result(EnrichmentResult.model_validate(event.payload))
            elif event.kind == "error":
                error = (event.payload or {}).get("message")
        return error

    return _run_in_new_loop(consume())


def _category_counts(results: List[EnrichmentResult]) -> List[tuple]:
    return Counter(r.category.lower() for r in results if r.category).most_common()


def _export_csv(results: List[EnrichmentResult]) -> bytes:
    """Export results to CSV bytes."""
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(CSV_HEADERS)
    for r in results:
        writer.writerow([
            r.message_id or "",
            r.category,
            r.priority,
            r.company or "",
            r.role or "",
            r.deadline or "",
            r.summary[:500],
            "; ".join(r.tags),
            r.apply_link or "",
            r.salary or "",
            r.location or "",
            r.eligibility or "",
        ])
    return out.getvalue().encode("utf-8")


def _render_card(r: EnrichmentResult) -> None:
    with st.container():
        st.markdown("---")
        col_a, col_b = st.columns([3, 1])
        with col_a:
            title = r.role or r.category.title() or "Email"
            st.markdown(f"### {title}")
            st.caption(f"**Company:** {r.company or '—'} · **Category:** {r.category or '—'}")
            st.markdown(r.summary)
            if r.tags:
                st.markdown(" ".join(f"`{t}`" for t in r.tags[:12]))
            if r.deadline:
                st.caption(f"Deadline: {r.deadline}")
        with col_b:
            st.caption(PRIORITY_BADGE.get(r.priority, r.priority))
            if r.apply_link:
                st.link_button("Apply", url=r.apply_link, type="secondary")
        details = [
            ("Eligibility", r.eligibility),
            ("Timings", r.timings),
            ("Salary", r.salary),
            ("Location", r.location),
            ("Event details", r.event_details),
            ("Requirements", r.requirements),
        ]
        details = [(label, text) for label, text in details if text]
        if details:
            with st.expander("Details"):
                for label, text in details:
                    st.markdown(f"**{label}**")
                    st.markdown(text)


def render_layout() -> None:
    """Streamlit page layout; analysis and storage live in the services layer."""
    st.set_page_config(page_title="Inbox Signal AI", layout="wide")
    st.title("Inbox Signal AI")
    st.markdown("*Turn placement emails into structured, searchable signals.*")
    st.divider()

    with st.container():
        col1, col2 = st.columns([3, 1])
        with col1:
            query = st.text_input("Gmail query", value=DEFAULT_EMAIL_QUERY, key="query")
        with col2:
            max_results = st.slider("Max emails", min_value=1, max_value=50, value=GMAIL_PAGE_SIZE, key="max_results")
        mode = st.radio("Mode", options=[MODE_SYNC, MODE_LIVE], horizontal=True, key="mode")
        sync_clicked = st.button("Sync", type="primary", key="sync_btn")

    if "results" not in st.session_state:
        st.session_state["results"] = []
    if "error" not in st.session_state:
        st.session_state["error"] = None

    if sync_clicked:
        if not GMAIL_REFRESH_TOKEN:
            st.session_state["error"] = "GMAIL_REFRESH_TOKEN is not set. Add it to your .env file."
            st.session_state["results"] = []
        elif not OPENAI_API_KEY:
            st.session_state["error"] = "OPENAI_API_KEY is not set. Add it to your .env file."
            st.session_state["results"] = []
        elif mode == MODE_SYNC:
            st.session_state["error"] = None
            with st.spinner("Fetching and analyzing emails…"):
                try:
                    st.session_state["results"] = _run_batch(query.strip(), max_results)
                except Exception as e:
                    st.session_state["error"] = f"Sync failed: {str(e)}"
                    st.session_state["results"] = []
        else:
            st.session_state["error"] = None
            live: List[EnrichmentResult] = []
            status = st.empty()
            feed = st.empty()

            def on_result(r: EnrichmentResult) -> None:
                live.append(r)
                status.info(f"Received {len(live)} emails…")
                with feed.container():
                    for seen in live:
                        _render_card(seen)

            try:
                error = _run_live(query.strip(), max_results, on_result)
                if error and not live:
                    st.session_state["error"] = error
            except Exception as e:
                st.session_state["error"] = f"Live sync failed: {str(e)}"
            status.empty()
            feed.empty()
            st.session_state["results"] = live

    if st.session_state.get("error"):
        st.error(st.session_state["error"])

    results: List[EnrichmentResult] = st.session_state.get("results") or []

    st.subheader("Results")
    if not results:
        if not sync_clicked:
            st.info("Enter a Gmail query, pick a mode, then click **Sync**.")
        elif not st.session_state.get("error"):
            st.warning("No emails were analyzed. Try a broader query.")
        return

    st.markdown(f"**Total:** {len(results)}")
    counts = _category_counts(results)
    if counts:
        cols = st.columns(min(len(counts), 6))
        for i, (category, count) in enumerate(counts[:6]):
            cols[i].metric(category.title(), count)

    st.download_button(
        "Export to CSV",
        data=_export_csv(results),
        file_name="inbox_signals.csv",
        mime="text/csv",
        key="export_csv",
    )

    for r in results:
        _render_card(r)


if __name__ == "__main__":
    render_layout()
