from __future__ import annotations

from dataclasses import dataclass

from llmsforge.models.base import FrozenWireModel


class RateLimitResult(FrozenWireModel):
    allowed: bool
    remaining: int
    reset_at: int  # Unix seconds
    limit: int


@dataclass
class WindowEntry:
    """Request count for one client identity within its current window."""

    count: int
    window_start: float
