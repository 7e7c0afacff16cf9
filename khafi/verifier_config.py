"""Configuration for the proof verification service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable

IMAGE_ID_WORDS = 8
DEFAULT_REDIS_URL = "redis://localhost:6379"


def image_id_to_bytes(words: Iterable[int]) -> bytes:
    """Convert an image id of eight 32-bit words to 32 little-endian bytes."""
    words = list(words)
    if len(words) != IMAGE_ID_WORDS:
        raise ValueError(f"Image ID must have {IMAGE_ID_WORDS} words, got {len(words)}")
    for word in words:
        if isinstance(word, bool) or not isinstance(word, int) or not 0 <= word < 1 << 32:
            raise ValueError(f"Image ID word out of range: {word!r}")
    return b"".join(word.to_bytes(4, "little") for word in words)


@dataclass(frozen=True)
class VerifierConfig:
    """Settings of the verification service."""

    redis_url: str
    image_id: bytes

    @classmethod
    def from_env(cls, image_id: Iterable[int]) -> "VerifierConfig":
        """Read REDIS_URL from the environment; take the expected image id as words."""
        return cls(
            redis_url=os.environ.get("REDIS_URL", DEFAULT_REDIS_URL),
            image_id=image_id_to_bytes(image_id),
        )