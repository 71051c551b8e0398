"""Tests for FlowCounter and IntervalTrigger."""

from __future__ import annotations

import pytest

from ferry.framework.context import Registry
from ferry.framework.flow import FlowCounter, IntervalEntry, IntervalTrigger


class TestFlowCounter:
    def test_defaults(self):
        counter = FlowCounter()
        assert counter.to_dict() == {"reads": 0, "writes": 0, "errors": 0}
        assert counter.settled is True
        assert counter.throughput() is None

    def test_parity(self):
        counter = FlowCounter()
        counter.record_read()
        counter.record_read()
        assert counter.in_flight == 2
        assert counter.settled is False
        counter.record_write()
        counter.record_error()
        assert counter.settled is True

    def test_first_read_is_timestamped_once(self):
        counter = FlowCounter()
        counter.record_read()
        first = counter.first_read_at
        counter.record_read()
        assert counter.first_read_at == first

    def test_throughput(self):
        counter = FlowCounter()
        counter.record_read()
        counter.record_write()
        counter.record_write()
        assert counter.throughput(now=counter.first_read_at + 4.0) == pytest.approx(0.5)


class TestIntervalEntry:
    @pytest.mark.parametrize(
        ("writes", "due"), [(0, False), (99, False), (100, True), (150, False), (300, True)]
    )
    def test_due(self, writes, due):
        assert IntervalEntry(100).due(writes) is due

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            IntervalEntry(0)


class TestIntervalTrigger:
    def test_empty_trigger_is_falsy(self):
        assert not IntervalTrigger()
        assert IntervalTrigger.from_mapping({10: {}})

    def test_due_in_declaration_order(self):
        trigger = IntervalTrigger.from_mapping({100: {}, 10: {}, 7: {}})
        assert [e.size for e in trigger.due(700)] == [100, 10, 7]
        assert [e.size for e in trigger.due(70)] == [10, 7]

    @pytest.mark.asyncio
    async def test_fires_exactly_at_multiples(self):
        fired: list[int] = []

        def checkpoint(store, registry):
            fired.append(registry["writes"])

        trigger = IntervalTrigger.from_mapping({100: {"dst": [checkpoint]}})
        registry = Registry("test")
        for writes in range(1, 351):
            registry["writes"] = writes
            await trigger.fire(writes, {"dst": object()}, registry)

        assert fired == [100, 200, 300]
        assert trigger.fired == {100: 3}

    @pytest.mark.asyncio
    async def test_actions_run_in_series_with_store(self):
        calls: list[tuple[str, object]] = []
        store = object()

        async def first(s, registry):
            calls.append(("first", s))

        def second(s, registry):
            calls.append(("second", s))

        trigger = IntervalTrigger.from_mapping({2: {"dst": [first, second]}})
        ran = await trigger.fire(2, {"dst": store}, Registry())
        assert ran == 2
        assert calls == [("first", store), ("second", store)]

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        def broken(store, registry):
            raise RuntimeError("checkpoint failed")

        trigger = IntervalTrigger.from_mapping({1: {"dst": [broken]}})
        with pytest.raises(RuntimeError, match="checkpoint failed"):
            await trigger.fire(1, {"dst": object()}, Registry())


class TestRegistry:
    def test_fresh_per_run(self):
        a, b = Registry("users"), Registry("users")
        assert a.run_id != b.run_id
        assert a.operation == "users"
        assert a.started_at.tzinfo is not None

    def test_mapping_behaviour(self):
        registry = Registry("users", watermark=5)
        registry["seen"] = 1
        assert dict(registry) == {"watermark": 5, "seen": 1}
        assert "users" in repr(registry)
