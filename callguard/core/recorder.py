"""Merged call recording and post-call JSONL export."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ..protocol import AudioChunk, Direction
from .buffer import StreamBuffer, merge_key

logger = logging.getLogger(__name__)


class SessionRecorder:
    """Read-only view over a session's stream buffer.

    Every query is derived from buffer snapshots, so it is safe to call
    repeatedly and from several callers.
    """

    def __init__(self, buffer: StreamBuffer):
        self._buffer = buffer

    def merge(self) -> list[AudioChunk]:
        inbound = self._buffer.chunks(Direction.INBOUND)
        outbound = self._buffer.chunks(Direction.OUTBOUND)
        return sorted([*inbound, *outbound], key=merge_key)

    def duration_ms(self) -> int:
        merged = self.merge()
        return merged[-1].offset_ms - merged[0].offset_ms if merged else 0

    def stats(self) -> dict[str, int]:
        stats = self._buffer.stats()
        stats["duration_ms"] = self.duration_ms()
        return stats

    def export(self, output_path: str | Path) -> Path | None:
        """Write the merged sequence as JSONL. Returns None when there is no audio."""
        merged = self.merge()
        if not merged:
            logger.info("No audio chunks to save for %s", self._buffer.session_id)
            return None

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(json.dumps({"type": "session", "session_id": self._buffer.session_id, **self.stats()}) + "\n")
            for chunk in merged:
                f.write(json.dumps({
                    "type": "chunk",
                    "t": chunk.offset_ms,
                    "direction": chunk.direction.value,
                    "seq": chunk.seq,
                    "audio": chunk.payload,
                }) + "\n")
        logger.info("Recording saved to %s (%d chunks)", path, len(merged))
        return path


def load_recording(path: str | Path) -> list[AudioChunk]:
    """Load the chunks of an exported recording, in merged order."""
    chunks = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            record = json.loads(line)
            if record.get("type") != "chunk":
                continue
            chunks.append(AudioChunk(
                direction=Direction(record["direction"]),
                payload=record["audio"],
                offset_ms=record["t"],
                seq=record.get("seq", 0),
            ))
    return chunks
