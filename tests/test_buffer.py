import pytest

from callguard.core.buffer import StreamBuffer
from callguard.errors import BufferLimitExceeded
from callguard.protocol import Direction


def test_append_assigns_offsets_from_shared_clock(clock):
    buf = StreamBuffer("s1", clock=clock)
    first = buf.append(Direction.INBOUND, "a")
    clock.advance(20)
    second = buf.append(Direction.OUTBOUND, "b")
    clock.advance(5)
    third = buf.append(Direction.INBOUND, "c")

    assert (first.offset_ms, second.offset_ms, third.offset_ms) == (0, 20, 25)
    assert [c.payload for c in buf.chunks(Direction.INBOUND)] == ["a", "c"]
    assert [c.payload for c in buf.chunks(Direction.OUTBOUND)] == ["b"]


def test_snapshot_orders_by_offset_with_inbound_first_on_ties(clock):
    buf = StreamBuffer(clock=clock)
    buf.append(Direction.OUTBOUND, "agent-0")
    buf.append(Direction.INBOUND, "caller-0")
    clock.advance(10)
    buf.append(Direction.INBOUND, "caller-10")

    assert [c.payload for c in buf.snapshot()] == ["caller-0", "agent-0", "caller-10"]


def test_stats_counts_both_directions(clock):
    buf = StreamBuffer(clock=clock)
    for _ in range(3):
        buf.append(Direction.INBOUND, "x")
    buf.append(Direction.OUTBOUND, "y")
    clock.advance(1500)

    assert buf.stats() == {
        "inbound_count": 3,
        "outbound_count": 1,
        "total_count": 4,
        "elapsed_ms": 1500,
    }
    assert len(buf) == 4


def test_chunk_limit_rejects_without_mutating(clock):
    buf = StreamBuffer("s1", max_chunks=2, clock=clock)
    buf.append(Direction.INBOUND, "a")
    buf.append(Direction.OUTBOUND, "b")

    with pytest.raises(BufferLimitExceeded) as exc_info:
        buf.append(Direction.INBOUND, "c")

    assert exc_info.value.session_id == "s1"
    assert len(buf) == 2
    assert [c.payload for c in buf.snapshot()] == ["a", "b"]


def test_duration_limit(clock):
    buf = StreamBuffer(max_duration_ms=1000, clock=clock)
    buf.append(Direction.INBOUND, "a")
    clock.advance(1001)

    with pytest.raises(BufferLimitExceeded):
        buf.append(Direction.INBOUND, "late")
    assert len(buf) == 1


def test_clear_releases_chunks(clock):
    buf = StreamBuffer(clock=clock)
    buf.append(Direction.INBOUND, "a")
    buf.clear()

    assert buf.snapshot() == []
    assert buf.stats()["total_count"] == 0
