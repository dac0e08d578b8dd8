"""Per-session audio buffer, one append-only sequence per direction."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..errors import BufferLimitExceeded
from ..protocol import AudioChunk, Direction

logger = logging.getLogger(__name__)

_DIRECTION_RANK = {Direction.INBOUND: 0, Direction.OUTBOUND: 1}


def merge_key(chunk: AudioChunk) -> tuple[int, int, int]:
    """Sort key for the merged view: offset, then inbound first, then insertion order."""
    return (chunk.offset_ms, _DIRECTION_RANK[chunk.direction], chunk.seq)


class StreamBuffer:
    """Accumulates timestamped audio chunks for one call session.

    Offsets are milliseconds since the buffer was created, taken from a
    monotonic clock shared by both directions. The buffer is owned by a single
    session and never shared across calls.
    """

    def __init__(
        self,
        session_id: str = "",
        *,
        max_chunks: int = 50_000,
        max_duration_ms: int = 3_600_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_id = session_id
        self._max_chunks = max_chunks
        self._max_duration_ms = max_duration_ms
        self._clock = clock
        self._start = clock()
        self._inbound: list[AudioChunk] = []
        self._outbound: list[AudioChunk] = []
        self._seq = 0

    @property
    def session_id(self) -> str:
        return self._session_id

    def __len__(self) -> int:
        return len(self._inbound) + len(self._outbound)

    def elapsed_ms(self) -> int:
        return int((self._clock() - self._start) * 1000)

    def append(self, direction: Direction, payload: str) -> AudioChunk:
        """Record one chunk. Either the chunk is stored whole or nothing changes."""
        direction = Direction(direction)
        offset = self.elapsed_ms()
        if len(self) >= self._max_chunks:
            raise BufferLimitExceeded(
                f"chunk limit {self._max_chunks} reached", session_id=self._session_id
            )
        if offset > self._max_duration_ms:
            raise BufferLimitExceeded(
                f"duration limit {self._max_duration_ms}ms reached", session_id=self._session_id
            )

        chunk = AudioChunk(direction=direction, payload=payload, offset_ms=offset, seq=self._seq)
        target = self._inbound if direction == Direction.INBOUND else self._outbound
        # Wall clock is monotonic, but guard per-direction ordering regardless.
        if target and target[-1].offset_ms > offset:
            chunk = AudioChunk(direction=direction, payload=payload, offset_ms=target[-1].offset_ms, seq=self._seq)
        target.append(chunk)
        self._seq += 1

        if len(self) % 100 == 0:
            logger.debug(
                "%s: %d inbound, %d outbound chunks (total: %d)",
                self._session_id, len(self._inbound), len(self._outbound), len(self),
            )
        return chunk

    def chunks(self, direction: Direction) -> tuple[AudioChunk, ...]:
        if Direction(direction) == Direction.INBOUND:
            return tuple(self._inbound)
        return tuple(self._outbound)

    def snapshot(self) -> list[AudioChunk]:
        """Both directions as one sequence ordered by offset (stable, inbound first on ties)."""
        return sorted([*self._inbound, *self._outbound], key=merge_key)

    def stats(self) -> dict[str, int]:
        return {
            "inbound_count": len(self._inbound),
            "outbound_count": len(self._outbound),
            "total_count": len(self),
            "elapsed_ms": self.elapsed_ms(),
        }

    def clear(self) -> None:
        self._inbound.clear()
        self._outbound.clear()
