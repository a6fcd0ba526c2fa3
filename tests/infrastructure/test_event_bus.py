"""Tests for the in-memory event bus."""

from unittest.mock import AsyncMock

import pytest

from strata.domain.events.event_base import (
    DomainEvent,
    ResourceTransitioned,
    StackRunCompleted,
    StackRunStarted,
)
from strata.infrastructure.event_bus import EventBus


class TestEventBus:
    @pytest.mark.asyncio
    async def test_publish_to_subscriber(self):
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(StackRunStarted, handler)

        event = StackRunStarted(aggregate_id="web", operation="apply", change_count=3)
        await bus.publish([event])

        handler.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_only_matching_type(self):
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(StackRunCompleted, handler)

        await bus.publish([StackRunStarted(aggregate_id="web")])

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_base_type_receives_everything(self):
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(DomainEvent, handler)

        await bus.publish([
            StackRunStarted(aggregate_id="web"),
            ResourceTransitioned(aggregate_id="web", logical_id="network", status="Creating"),
            StackRunCompleted(aggregate_id="web", status="StackSucceeded"),
        ])

        assert handler.await_count == 3

    @pytest.mark.asyncio
    async def test_handlers_called_in_order(self):
        bus = EventBus()
        calls = []

        async def first(event):
            calls.append("first")

        async def second(event):
            calls.append("second")

        bus.subscribe(StackRunStarted, first)
        bus.subscribe(StackRunStarted, second)
        await bus.publish([StackRunStarted(aggregate_id="web")])

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_no_subscribers(self):
        await EventBus().publish([StackRunStarted(aggregate_id="web")])
