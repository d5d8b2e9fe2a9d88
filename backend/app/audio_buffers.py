"""Scoped storage for playback audio held on behalf of a practice session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional
from uuid import uuid4


@dataclass(frozen=True)
class AudioBuffer:
    buffer_id: str
    data: bytes
    media_type: str


class AudioBufferRegistry:
    """Buffers live until released explicitly; nothing is collected automatically."""

    def __init__(self) -> None:
        self._buffers: Dict[str, AudioBuffer] = {}

    def register(self, data: bytes, media_type: str) -> AudioBuffer:
        buffer = AudioBuffer(buffer_id=uuid4().hex, data=bytes(data), media_type=media_type)
        self._buffers[buffer.buffer_id] = buffer
        return buffer

    def get(self, buffer_id: Optional[str]) -> Optional[AudioBuffer]:
        if buffer_id is None:
            return None
        return self._buffers.get(buffer_id)

    def release(self, buffer_id: Optional[str]) -> bool:
        if buffer_id is None:
            return False
        return self._buffers.pop(buffer_id, None) is not None

    def release_all(self) -> int:
        released = len(self._buffers)
        self._buffers.clear()
        return released

    def __len__(self) -> int:
        return len(self._buffers)


__all__ = ["AudioBuffer", "AudioBufferRegistry"]
