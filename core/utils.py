"""
Core utility functions.

Job ids, nonces, file hashing and the monotonic deadline used by every
bounded wait (IP assignment, health polling, fleet join, image recreation).
"""

import hashlib
import time
import uuid
from typing import Callable, Optional


def generate_job_id() -> str:
    """Opaque unique job id (uuid4 string)."""
    return str(uuid.uuid4())


def generate_nonce() -> str:
    """
    Per-run token written into runner manifests.

    Instances echo it back in their status file; reports carrying any other
    value came from an earlier run and are ignored.
    """
    return str(uuid.uuid4())


def sha256_file(path: str, chunk_size: int = 1024 * 1024) -> str:
    """Hex SHA256 of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(chunk_size), b''):
            digest.update(chunk)
    return digest.hexdigest()


class Deadline:
    """
    Absolute point in monotonic time.

    Example:
        deadline = Deadline(600)
        while not deadline.expired:
            ...
            deadline.sleep(10)
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def earliest(self, other: Optional["Deadline"]) -> "Deadline":
        """The sooner of this deadline and ``other``."""
        if other is None or self.expires_at <= other.expires_at:
            return self
        return other

    def sleep(self, interval: float) -> None:
        """Sleep ``interval`` seconds, but never past the deadline."""
        time.sleep(min(interval, self.remaining))
