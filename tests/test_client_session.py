"""BoardSession against the real app, served in-process over httpx."""

import asyncio

import httpx
import pytest

from taskboard.client.api import ApiError, BoardApi
from taskboard.client.cache import BoardCache, MemoryStorage
from taskboard.client.drag import DragGesture, ItemKind
from taskboard.client.events import SaveStatus, SaveStatusBus, SaveStatusTracker
from taskboard.client.session import BoardSession, ReconciliationError
from taskboard.client.store import BoardStore

BASE_URL = "http://testserver/v1"


class FlakyTransport(httpx.AsyncBaseTransport):
    """Delegates to the app, failing PATCH and/or GET on demand."""

    def __init__(self, inner):
        self.inner = inner
        self.fail_patch = False
        self.fail_get = False

    async def handle_async_request(self, request):
        if request.method == "PATCH" and self.fail_patch:
            return httpx.Response(500, json={"error": {"code": "internal", "message": "Database unavailable"}})
        if request.method == "GET" and self.fail_get:
            raise httpx.ConnectError("offline", request=request)
        return await self.inner.handle_async_request(request)


class GatedTransport(httpx.AsyncBaseTransport):
    """Holds the first PATCH until ``release`` is set."""

    def __init__(self, inner):
        self.inner = inner
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self._gated = False

    async def handle_async_request(self, request):
        if request.method == "PATCH" and not self._gated:
            self._gated = True
            self.entered.set()
            await self.release.wait()
        return await self.inner.handle_async_request(request)


def _session(transport, board_id, cache=None):
    bus = SaveStatusBus()
    tracker = SaveStatusTracker()
    bus.subscribe(tracker)
    api = BoardApi("alice", base_url=BASE_URL, transport=transport)
    return BoardSession(board_id, api, cache=cache, events=bus), tracker


def _card_drag(card_id, source, source_index, dest, dest_index):
    return DragGesture(card_id, ItemKind.CARD, source, source_index, dest, dest_index)


def _shape(store):
    return {
        "lists": store.list_ids(),
        "cards": {lid: store.card_ids(lid) for lid in store.list_ids()},
        "positions": {cid: (card.list_id, card.position) for cid, card in store.cards.items()},
    }


async def _fresh(asgi_transport, board_id):
    api = BoardApi("alice", base_url=BASE_URL, transport=asgi_transport)
    try:
        return BoardStore.hydrate(await api.fetch_board(board_id))
    finally:
        await api.aclose()


@pytest.mark.asyncio
async def test_load_hydrates_from_server(asgi_transport, seeded):
    session, _ = _session(asgi_transport, seeded["board"])
    store = await session.load()
    assert store.list_ids() == (seeded["todo"], seeded["doing"], seeded["done"])
    assert store.card_ids(seeded["todo"]) == (seeded["c1"], seeded["c2"], seeded["c3"])
    assert store.board.name == "Roadmap"
    await session.close()


@pytest.mark.asyncio
async def test_move_card_is_saved_and_matches_server(asgi_transport, seeded):
    session, tracker = _session(asgi_transport, seeded["board"])
    await session.load()

    outcome = await session.handle_drag(_card_drag(seeded["c2"], seeded["todo"], 1, seeded["doing"], 0))

    assert outcome.status == "saved"
    assert tracker.history == [SaveStatus.SAVING, SaveStatus.SAVED]
    assert session.store.card_ids(seeded["todo"]) == (seeded["c1"], seeded["c3"])
    assert session.store.card_ids(seeded["doing"]) == (seeded["c2"], seeded["c4"])
    assert session.store.cards[seeded["c2"]].list_id == seeded["doing"]
    assert _shape(session.store) == _shape(await _fresh(asgi_transport, seeded["board"]))
    await session.close()


@pytest.mark.asyncio
async def test_reorder_lists_is_saved(asgi_transport, seeded):
    session, tracker = _session(asgi_transport, seeded["board"])
    await session.load()
    gesture = DragGesture(seeded["done"], ItemKind.LIST, seeded["board"], 2, seeded["board"], 0)

    outcome = await session.handle_drag(gesture)

    assert outcome.status == "saved"
    assert session.store.list_ids() == (seeded["done"], seeded["todo"], seeded["doing"])
    assert _shape(session.store) == _shape(await _fresh(asgi_transport, seeded["board"]))
    await session.close()


@pytest.mark.asyncio
async def test_noop_gesture_leaves_store_alone(asgi_transport, seeded):
    session, tracker = _session(asgi_transport, seeded["board"])
    before = await session.load()

    outcome = await session.handle_drag(_card_drag(seeded["c1"], seeded["todo"], 0, None, 0))
    assert outcome.status == "noop"
    outcome = await session.handle_drag(_card_drag(seeded["c1"], seeded["todo"], 0, seeded["todo"], 0))
    assert outcome.status == "noop"

    assert session.store is before
    assert tracker.history == []
    await session.close()


@pytest.mark.asyncio
async def test_failed_save_rolls_back_to_server_state(asgi_transport, seeded):
    transport = FlakyTransport(asgi_transport)
    session, tracker = _session(transport, seeded["board"])
    before = _shape(await session.load())
    transport.fail_patch = True

    outcome = await session.handle_drag(_card_drag(seeded["c2"], seeded["todo"], 1, seeded["doing"], 0))

    assert outcome.status == "reconciled"
    assert isinstance(outcome.error, ApiError)
    assert outcome.error.status_code == 500
    assert tracker.history == [SaveStatus.SAVING, SaveStatus.ERROR]
    assert tracker.message == "Database unavailable"
    assert _shape(session.store) == before
    await session.close()


@pytest.mark.asyncio
async def test_rejected_save_adopts_newer_server_state(client, auth, asgi_transport, seeded):
    session, tracker = _session(asgi_transport, seeded["board"])
    await session.load()
    # someone else deletes a card the local store still shows
    client.delete(f"/v1/cards/{seeded['c3']}", headers=auth("alice"))

    outcome = await session.handle_drag(_card_drag(seeded["c1"], seeded["todo"], 0, seeded["todo"], 2))

    assert outcome.status == "reconciled"
    assert outcome.error.status_code == 404
    assert session.store.card_ids(seeded["todo"]) == (seeded["c1"], seeded["c2"])
    assert _shape(session.store) == _shape(await _fresh(asgi_transport, seeded["board"]))
    await session.close()


@pytest.mark.asyncio
async def test_failed_refetch_raises_and_keeps_optimistic_state(asgi_transport, seeded):
    transport = FlakyTransport(asgi_transport)
    session, tracker = _session(transport, seeded["board"])
    await session.load()
    transport.fail_patch = True
    transport.fail_get = True

    with pytest.raises(ReconciliationError):
        await session.handle_drag(_card_drag(seeded["c2"], seeded["todo"], 1, seeded["doing"], 0))

    assert tracker.status is SaveStatus.ERROR
    assert session.store.card_ids(seeded["doing"]) == (seeded["c2"], seeded["c4"])
    session.store.check_invariants()
    await session.close()


@pytest.mark.asyncio
async def test_superseded_confirmation_is_not_merged(asgi_transport, seeded):
    transport = GatedTransport(asgi_transport)
    session, tracker = _session(transport, seeded["board"])
    await session.load()

    first = asyncio.create_task(
        session.handle_drag(_card_drag(seeded["c1"], seeded["todo"], 0, seeded["todo"], 2))
    )
    await transport.entered.wait()
    second = await session.handle_drag(_card_drag(seeded["c4"], seeded["doing"], 0, seeded["done"], 0))
    transport.release.set()
    first = await first

    assert second.status == "saved"
    assert first.status == "superseded"
    assert session.store.card_ids(seeded["todo"]) == (seeded["c2"], seeded["c3"], seeded["c1"])
    assert session.store.card_ids(seeded["done"]) == (seeded["c4"],)
    assert _shape(session.store) == _shape(await _fresh(asgi_transport, seeded["board"]))
    await session.close()


@pytest.mark.asyncio
async def test_close_flushes_cache_and_warm_start_reads_it(asgi_transport, seeded):
    storage = MemoryStorage()
    cache = BoardCache(storage, debounce=10)
    session, _ = _session(asgi_transport, seeded["board"], cache=cache)
    await session.load()
    await session.handle_drag(_card_drag(seeded["c2"], seeded["todo"], 1, seeded["doing"], 0))
    saved = _shape(session.store)

    await session.close()
    assert storage.writes == 1
    assert session.store == BoardStore.empty()

    # server unreachable: the cached copy is what the view gets to show
    transport = FlakyTransport(asgi_transport)
    transport.fail_get = True
    warm, _ = _session(transport, seeded["board"], cache=BoardCache(storage, debounce=10))
    with pytest.raises(httpx.ConnectError):
        await warm.load(warm_start=True)
    assert _shape(warm.store) == saved
    await warm.close()


@pytest.mark.asyncio
async def test_load_without_warm_start_ignores_cache(asgi_transport, seeded, make_snapshot):
    storage = MemoryStorage()
    cache = BoardCache(storage, debounce=10)
    cache.write(seeded["board"], BoardStore.hydrate(make_snapshot({"x": ["y"]}, board_id=seeded["board"])))
    transport = FlakyTransport(asgi_transport)
    transport.fail_get = True
    session, _ = _session(transport, seeded["board"], cache=cache)
    with pytest.raises(httpx.ConnectError):
        await session.load()
    assert session.store == BoardStore.empty()
    cache.cancel()
    await session.api.aclose()


class LaggingSnapshotTransport(httpx.AsyncBaseTransport):
    """Fails the next PATCH, then holds the next GET response until ``release`` is set.

    The held response is produced by the app before waiting, so it reflects
    the server as it was when the fetch was sent.
    """

    def __init__(self, inner):
        self.inner = inner
        self.armed = False
        self.fetched = asyncio.Event()
        self.release = asyncio.Event()
        self._failed_patch = False
        self._held_get = False

    async def handle_async_request(self, request):
        if self.armed and request.method == "PATCH" and not self._failed_patch:
            self._failed_patch = True
            return httpx.Response(503, json={"error": {"code": "unavailable", "message": "Try again"}})
        response = await self.inner.handle_async_request(request)
        if self.armed and request.method == "GET" and not self._held_get:
            self._held_get = True
            await response.aread()
            self.fetched.set()
            await self.release.wait()
        return response


@pytest.mark.asyncio
async def test_rollback_snapshot_older_than_a_confirmed_save_is_refetched(asgi_transport, seeded):
    transport = LaggingSnapshotTransport(asgi_transport)
    session, tracker = _session(transport, seeded["board"])
    await session.load()
    transport.armed = True

    failing = asyncio.create_task(
        session.handle_drag(_card_drag(seeded["c1"], seeded["todo"], 0, seeded["todo"], 2))
    )
    await transport.fetched.wait()
    saved = await session.handle_drag(_card_drag(seeded["c4"], seeded["doing"], 0, seeded["done"], 0))
    transport.release.set()
    failed = await failing

    assert saved.status == "saved"
    assert failed.status == "reconciled"
    assert session.store.card_ids(seeded["done"]) == (seeded["c4"],)
    assert session.store.card_ids(seeded["todo"]) == (seeded["c1"], seeded["c2"], seeded["c3"])
    assert _shape(session.store) == _shape(await _fresh(asgi_transport, seeded["board"]))
    await session.close()


@pytest.mark.asyncio
async def test_warm_start_with_corrupt_cache_still_loads(asgi_transport, seeded):
    storage = MemoryStorage()
    storage.set(f"board_{seeded['board']}", '{"timestamp": 9999999999999, "cards": ["x"], "lists": []}')
    session, _ = _session(asgi_transport, seeded["board"], cache=BoardCache(storage, debounce=10))
    store = await session.load(warm_start=True)
    assert store.card_ids(seeded["todo"]) == (seeded["c1"], seeded["c2"], seeded["c3"])
    await session.close()
