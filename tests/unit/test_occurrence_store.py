"""
Unit tests for the in-memory Occurrence Store.
"""

import pytest

from error_issues.models.record import LifecycleRecord
from error_issues.services.occurrence_store import InMemoryOccurrenceStore


@pytest.fixture
def store(clock) -> InMemoryOccurrenceStore:
    return InMemoryOccurrenceStore(clock=clock, sweep_interval=0)


def make_record(issue_id: int = 7, count: int = 1) -> LifecycleRecord:
    return LifecycleRecord(fingerprint="fp", tracker_issue_id=issue_id, occurrence_count=count)


class TestGetAndPut:
    """Test basic lookups and upserts."""

    @pytest.mark.asyncio
    async def test_get_unseen_returns_none(self, store):
        """Unseen fingerprints are a miss, not an error."""
        assert await store.get("never-seen") is None

    @pytest.mark.asyncio
    async def test_put_assigns_expiry(self, store, clock):
        """put sets expires_at to now + ttl."""
        stored = await store.put("fp", make_record(), ttl=60)

        assert stored.expires_at == clock.now + 60
        assert stored.fingerprint == "fp"

    @pytest.mark.asyncio
    async def test_put_then_get(self, store):
        """A stored record is returned while live."""
        await store.put("fp", make_record(issue_id=9, count=3), ttl=60)

        record = await store.get("fp")

        assert record is not None
        assert record.tracker_issue_id == 9
        assert record.occurrence_count == 3

    @pytest.mark.asyncio
    async def test_put_overwrites_unconditionally(self, store):
        """Last writer wins."""
        await store.put("fp", make_record(issue_id=1, count=5), ttl=60)
        await store.put("fp", make_record(issue_id=2, count=1), ttl=60)

        record = await store.get("fp")

        assert record.tracker_issue_id == 2
        assert record.occurrence_count == 1


class TestExpiry:
    """Test TTL behaviour."""

    @pytest.mark.asyncio
    async def test_expired_record_is_a_miss(self, store, clock):
        """Records past expires_at are absent even though still stored."""
        await store.put("fp", make_record(), ttl=60)
        clock.advance(60)

        assert await store.get("fp") is None
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_put_resets_expiry(self, store, clock):
        """Each put restarts the window."""
        await store.put("fp", make_record(count=1), ttl=60)
        clock.advance(50)
        await store.put("fp", make_record(count=2), ttl=60)
        clock.advance(50)

        record = await store.get("fp")

        assert record is not None
        assert record.occurrence_count == 2

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(self, store, clock):
        """sweep drops expired records and keeps live ones."""
        await store.put("old", make_record(), ttl=10)
        await store.put("new", make_record(), ttl=100)
        clock.advance(20)

        removed = store.sweep()

        assert removed == 1
        assert len(store) == 1
        assert await store.get("new") is not None

    @pytest.mark.asyncio
    async def test_periodic_sweep_on_writes(self, clock):
        """Every sweep_interval writes triggers a sweep."""
        store = InMemoryOccurrenceStore(clock=clock, sweep_interval=2)
        await store.put("old", make_record(), ttl=10)
        clock.advance(20)

        await store.put("new", make_record(), ttl=10)

        assert len(store) == 1
