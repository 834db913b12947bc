"""Decode a chunked newline-delimited JSON response into frames."""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import Iterable, Iterator

from pydantic import ValidationError

from .models import Frame

logger = logging.getLogger(__name__)

DELIMITER = "\n"


class FrameDecoder:
    """Incremental NDJSON decoder.

    Chunks may split a frame, or a multi-byte character, anywhere. Only
    newline-terminated segments are parsed; the tail waits for the next chunk.
    Segments that are blank or do not parse are skipped.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self.skipped = 0

    @property
    def buffered(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes) -> list[Frame]:
        if not chunk:
            return []
        self._buffer += self._decoder.decode(chunk)
        *segments, self._buffer = self._buffer.split(DELIMITER)
        return self._parse_all(segments)

    def flush(self) -> list[Frame]:
        """Parse whatever remains once the transport has finished."""
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return self._parse_all([tail])

    def _parse_all(self, segments: list[str]) -> list[Frame]:
        frames = []
        for segment in segments:
            frame = self._parse(segment)
            if frame is not None:
                frames.append(frame)
        return frames

    def _parse(self, segment: str) -> Frame | None:
        line = segment.strip()
        if not line:
            return None
        try:
            return Frame.model_validate(json.loads(line))
        except (json.JSONDecodeError, ValidationError) as exc:
            self.skipped += 1
            logger.warning("Skipping malformed frame %r: %s", line[:80], exc)
            return None


def iter_frames(chunks: Iterable[bytes], decoder: FrameDecoder | None = None) -> Iterator[Frame]:
    """Lazily yield frames from ``chunks`` in arrival order."""
    decoder = decoder or FrameDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.flush()
