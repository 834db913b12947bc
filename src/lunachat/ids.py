"""Opaque identifiers for messages and exported files."""

from __future__ import annotations

import random
import string
import time

_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 7


def new_id(prefix: str = "convo") -> str:
    """Return ``{prefix}_{epoch_ms}_{random}``.

    Millisecond timestamp plus a 7-char base-36 suffix. No shared counter,
    so callers never need to coordinate.
    """
    suffix = "".join(random.choices(_ALPHABET, k=_SUFFIX_LENGTH))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"
