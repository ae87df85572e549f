"""Bounded retries for idempotent store reads."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from .exceptions import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ReadRetryPolicy:
    """Retry reads that failed with StorageError.

    Writes must never go through this policy: a retried write that is not
    provably idempotent could record a verdict twice.
    """

    attempts: int = 3
    delay_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")

    def call(self, operation: Callable[[], T], *, description: str = "read") -> T:
        attempt = 1
        while True:
            try:
                return operation()
            except StorageError:
                if attempt >= self.attempts:
                    raise
                logger.debug(
                    "Retrying %s after storage failure (attempt %d of %d)",
                    description,
                    attempt,
                    self.attempts,
                )
                if self.delay_seconds:
                    time.sleep(self.delay_seconds)
                attempt += 1
