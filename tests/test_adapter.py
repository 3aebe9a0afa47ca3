import asyncio
import json

import pytest

from inbox_signal_ai.agents.sync_agent import run_sync_agent, stream_sync_agent
from inbox_signal_ai.errors import ListingError
from inbox_signal_ai.pipeline.adapter import collect_results, stream_events
from inbox_signal_ai.pipeline.dispatcher import JobDispatcher
from inbox_signal_ai.pipeline.stream import ResultStream
from inbox_signal_ai.schemas.stream_event import StreamEvent

from .conftest import FakeEngine, FakeFetcher, FakeLister, MemoryStore, make_result


def make_dispatcher(fetcher, engine, store, user_id="u1"):
    return JobDispatcher(fetcher, engine, store, initial_delay=0.001, user_id=user_id)


async def drain(agen):
    return [event async for event in agen]


@pytest.mark.asyncio
async def test_batch_mode_returns_every_result_and_count(lister, fetcher, engine, store):
    outcome = await run_sync_agent(lister, make_dispatcher(fetcher, engine, store), query="from:placements")

    assert outcome.processed == 10
    assert len(outcome.emails) == 10
    assert lister.queries == ["from:placements"]


@pytest.mark.asyncio
async def test_batch_mode_blank_query_uses_default(fetcher, engine, store):
    lister = FakeLister([])
    outcome = await run_sync_agent(lister, make_dispatcher(fetcher, engine, store), query="  ")

    assert outcome.processed == 0
    assert outcome.emails == []
    assert lister.queries and lister.queries[0].strip()


@pytest.mark.asyncio
async def test_batch_mode_listing_failure_propagates(fetcher, engine, store):
    lister = FakeLister(error=ListingError("GMAIL_API_ERROR", "Failed to fetch emails from Gmail"))
    with pytest.raises(ListingError):
        await run_sync_agent(lister, make_dispatcher(fetcher, engine, store))


@pytest.mark.asyncio
async def test_collect_results_preserves_arrival_order():
    stream = ResultStream(maxsize=0)
    for name in ("a", "b", "c"):
        await stream.send(make_result(name, message_id=name))
    stream.close()

    results, count = await collect_results(stream)
    assert [r.message_id for r in results] == ["a", "b", "c"]
    assert count == 3


@pytest.mark.asyncio
async def test_live_mode_no_items_yields_no_emails_then_complete(fetcher, engine, store):
    events = await drain(stream_sync_agent(FakeLister([]), make_dispatcher(fetcher, engine, store)))

    assert [e.kind for e in events] == ["error", "complete"]
    assert events[0].payload["error"] == "no_emails"


@pytest.mark.asyncio
async def test_live_mode_listing_failure_yields_error_only(fetcher, engine, store):
    lister = FakeLister(error=ListingError("GMAIL_API_ERROR", "Failed to fetch emails from Gmail: boom"))
    events = await drain(stream_sync_agent(lister, make_dispatcher(fetcher, engine, store)))

    assert len(events) == 1
    assert events[0].kind == "error"
    assert events[0].payload == {"error": "GMAIL_API_ERROR", "message": "Failed to fetch emails from Gmail: boom"}


@pytest.mark.asyncio
async def test_live_mode_streams_each_result_then_complete(lister, fetcher, engine, store):
    events = await drain(stream_sync_agent(lister, make_dispatcher(fetcher, engine, store)))

    kinds = [e.kind for e in events]
    assert kinds.count("data") == 10
    assert kinds[-1] == "complete"
    assert "error" not in kinds


@pytest.mark.asyncio
async def test_live_mode_replays_history_first(lister, fetcher, engine):
    store = MemoryStore()
    await store.put("old1", make_result("old", company="Old Co"), user_id="u1")
    await store.put("other", make_result("other", company="Other Co"), user_id="u2")

    events = await drain(
        stream_sync_agent(lister, make_dispatcher(fetcher, engine, store), store=store, user_id="u1")
    )

    assert events[0].kind == "data"
    assert events[0].payload["company"] == "Old Co"
    assert all(e.payload.get("company") != "Other Co" for e in events if e.kind == "data")


@pytest.mark.asyncio
async def test_heartbeat_emitted_while_waiting():
    stream = ResultStream()
    events = stream_events(stream, heartbeat_interval=0.02)

    first = await asyncio.wait_for(events.__anext__(), timeout=1.0)
    assert first.kind == "heartbeat"

    await stream.send(make_result("late", message_id="late"))
    stream.close()
    rest = await drain(events)
    assert [e.kind for e in rest if e.kind != "heartbeat"] == ["data", "complete"]


@pytest.mark.asyncio
async def test_stream_events_stops_on_cancel():
    stream = ResultStream()
    cancel = asyncio.Event()
    events = stream_events(stream, cancel_event=cancel, heartbeat_interval=5.0)

    pending = asyncio.create_task(events.__anext__())
    await asyncio.sleep(0.01)
    cancel.set()
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(pending, timeout=1.0)


@pytest.mark.asyncio
async def test_closing_live_generator_cancels_the_run(lister, store):
    fetcher = FakeFetcher()
    engine = FakeEngine(delay=0.3)
    cancel = asyncio.Event()
    agen = stream_sync_agent(
        lister,
        make_dispatcher(fetcher, engine, store),
        cancel_event=cancel,
        heartbeat_interval=0.01,
    )

    first = await agen.__anext__()
    assert first.kind == "heartbeat"
    await agen.aclose()

    assert cancel.is_set()
    await asyncio.sleep(0.4)
    assert store.puts == []


def test_sse_rendering():
    data = make_result("x", message_id="x").to_payload()

    rendered = StreamEvent.data(data).to_sse()
    assert rendered.startswith("data: ") and rendered.endswith("\n\n")
    assert json.loads(rendered[len("data: "):])["messageId"] == "x"
    assert StreamEvent.heartbeat().to_sse() == ": heartbeat\n\n"
    assert StreamEvent.complete().to_sse() == 'event: complete\ndata: {"status": "done"}\n\n'
    assert StreamEvent.error("no_emails", "none").to_sse() == (
        'event: error\ndata: {"error": "no_emails", "message": "none"}\n\n'
    )


@pytest.mark.asyncio
async def test_stream_events_replays_given_history_before_live_results():
    stream = ResultStream(maxsize=0)
    await stream.send(make_result("live", message_id="live"))
    stream.close()

    events = await drain(stream_events(stream, history=[make_result("past", message_id="past")]))

    assert [(e.kind, (e.payload or {}).get("messageId")) for e in events] == [
        ("data", "past"),
        ("data", "live"),
        ("complete", None),
    ]
