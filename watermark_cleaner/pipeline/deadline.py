"""
Job deadlines for long-running rasterization work.
"""

import time
from typing import Optional

from .errors import ProcessingTimeout


class Deadline:
    """Wall-clock budget for one job, checked between pages."""

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds if seconds and seconds > 0 else None
        self._started = time.monotonic()

    @classmethod
    def none(cls) -> "Deadline":
        return cls(None)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started

    @property
    def expired(self) -> bool:
        return self.seconds is not None and self.elapsed > self.seconds

    def check(self, page_index: Optional[int] = None, state: Optional[str] = None):
        """Raise ProcessingTimeout once the budget is spent."""
        if self.expired:
            raise ProcessingTimeout(
                f"Job exceeded its {self.seconds:g}s deadline",
                page_index=page_index,
                state=state,
            )
