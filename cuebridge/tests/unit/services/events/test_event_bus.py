"""Unit tests for Event and PlatformEventBus."""

import asyncio

import pytest

from cuebridge.src.services.events.bus import PlatformEventBus, WILDCARD
from cuebridge.src.services.events.event import Event, EventPayloadError


# =============================================================================
# Event
# =============================================================================


class TestEventPayload:
    """Tests for building events from the adapter wire shape."""

    def test_from_payload(self):
        event = Event.from_payload("tiktok", {"eventName": "chat", "data": {"comment": "hi"}})

        assert event.name == "chat"
        assert event.platform == "tiktok"
        assert event.data == {"comment": "hi"}
        assert event.timestamp > 0

    def test_missing_data_becomes_empty_dict(self):
        event = Event.from_payload("twitch", {"eventName": "follow"})

        assert event.data == {}

    def test_missing_event_name_raises(self):
        with pytest.raises(EventPayloadError, match="eventName"):
            Event.from_payload("tiktok", {"data": {}})

    def test_non_dict_data_raises(self):
        with pytest.raises(EventPayloadError):
            Event.from_payload("tiktok", {"eventName": "chat", "data": ["a"]})

    def test_non_dict_payload_raises(self):
        with pytest.raises(EventPayloadError):
            Event.from_payload("tiktok", "chat")

    def test_to_payload_round_trip_shape(self):
        event = Event(name="gift", data={"coins": 5}, platform="tiktok")

        assert event.to_payload() == {"eventName": "gift", "data": {"coins": 5}}


# =============================================================================
# PlatformEventBus
# =============================================================================


@pytest.fixture
def bus() -> PlatformEventBus:
    return PlatformEventBus()


class TestPlatformEventBus:
    """Tests for subscription, delivery and handler isolation."""

    @pytest.mark.asyncio
    async def test_delivers_only_to_matching_platform(self, bus):
        tiktok, twitch = [], []
        bus.on("tiktok", tiktok.append)
        bus.on("twitch", twitch.append)

        delivered = await bus.emit(Event(name="chat", platform="tiktok"))

        assert delivered == 1
        assert [e.name for e in tiktok] == ["chat"]
        assert twitch == []

    @pytest.mark.asyncio
    async def test_wildcard_receives_everything(self, bus):
        received = []
        bus.subscribe_all(received.append)

        await bus.emit(Event(name="a", platform="tiktok"))
        await bus.emit(Event(name="b", platform="kick"))

        assert [e.name for e in received] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited_in_order(self, bus):
        order = []

        async def slow(event):
            await asyncio.sleep(0.01)
            order.append("slow")

        bus.on("tiktok", slow)
        bus.on("tiktok", lambda event: order.append("fast"))

        await bus.emit(Event(name="chat", platform="tiktok"))

        assert order == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, bus, caplog):
        received = []

        def broken(event):
            raise RuntimeError("handler failed")

        bus.on("tiktok", broken)
        bus.on("tiktok", received.append)

        delivered = await bus.emit(Event(name="chat", platform="tiktok"))

        assert delivered == 1
        assert len(received) == 1
        assert "handler failed" in caplog.text

    @pytest.mark.asyncio
    async def test_off_removes_handler(self, bus):
        received = []
        bus.on("tiktok", received.append)

        assert bus.off("tiktok", received.append) is True
        assert bus.off("tiktok", received.append) is False

        await bus.emit(Event(name="chat", platform="tiktok"))
        assert received == []

    @pytest.mark.asyncio
    async def test_emit_nowait_and_drain(self, bus):
        received = []
        bus.on("tiktok", received.append)

        bus.emit_nowait(Event(name="chat", platform="tiktok"))
        assert received == []

        await bus.drain()
        assert len(received) == 1

    def test_handler_count_and_clear(self, bus):
        bus.on("tiktok", lambda e: None)
        bus.on(WILDCARD, lambda e: None)

        assert bus.handler_count == 2
        bus.clear()
        assert bus.handler_count == 0
