"""
Tests for the per-event idempotency gate
"""
import pytest

from app.core.exceptions import IdempotencyAbortError
from app.db.keyed_store import event_key
from app.domain.services.idempotency_gate import (
    STATUS_DONE,
    STATUS_PROCESSING,
    GateDecision,
    IdempotencyGate,
)


@pytest.fixture
def gate(keyed_store, test_settings) -> IdempotencyGate:
    return IdempotencyGate(keyed_store, test_settings)


class TestIdempotencyGate:

    @pytest.mark.unit
    async def test_first_delivery_proceeds(self, gate, fake_redis, test_settings):
        decision = await gate.begin("evt_1")

        assert decision == GateDecision.PROCEED
        assert fake_redis.data[event_key("evt_1")] == STATUS_PROCESSING
        assert fake_redis.ttls[event_key("evt_1")] == test_settings.EVENT_PROCESSING_TTL_SECONDS

    @pytest.mark.unit
    async def test_concurrent_delivery_sees_processing(self, gate):
        await gate.begin("evt_1")

        assert await gate.begin("evt_1") == GateDecision.ALREADY_PROCESSING

    @pytest.mark.unit
    async def test_commit_marks_done_with_long_ttl(self, gate, fake_redis, test_settings):
        await gate.begin("evt_1")
        await gate.commit("evt_1")

        assert fake_redis.data[event_key("evt_1")] == STATUS_DONE
        assert fake_redis.ttls[event_key("evt_1")] == test_settings.EVENT_DONE_TTL_SECONDS
        assert await gate.begin("evt_1") == GateDecision.ALREADY_DONE

    @pytest.mark.unit
    async def test_abort_releases_for_redelivery(self, gate, fake_redis):
        await gate.begin("evt_1")
        await gate.abort("evt_1")

        assert event_key("evt_1") not in fake_redis.data
        assert await gate.begin("evt_1") == GateDecision.PROCEED

    @pytest.mark.unit
    async def test_abort_failure_is_raised(self, gate, fake_redis):
        await gate.begin("evt_1")
        fake_redis.fail_on.add("delete")

        with pytest.raises(IdempotencyAbortError) as exc_info:
            await gate.abort("evt_1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.details["event_id"] == "evt_1"

    @pytest.mark.unit
    async def test_lock_vanishing_between_set_and_get_is_reclaimed(self, gate, fake_redis):
        """SET NX lost, then the key expired before GET: claim again"""
        original_set = fake_redis.set
        calls = {"n": 0}

        async def flaky_set(key, value, ex=None, nx=False):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await original_set(key, value, ex=ex, nx=nx)

        fake_redis.set = flaky_set

        assert await gate.begin("evt_9") == GateDecision.PROCEED
        assert fake_redis.data[event_key("evt_9")] == STATUS_PROCESSING

    @pytest.mark.unit
    async def test_events_are_independent(self, gate):
        await gate.begin("evt_1")

        assert await gate.begin("evt_2") == GateDecision.PROCEED
