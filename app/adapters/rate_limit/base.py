"""Rate limiter interfaces and the shared fixed-window decision policy.

Both storage strategies (shared store and in-process memory) only differ in
how they obtain the post-increment count and the window reset time. The
allow/deny decision is computed in one place so the two backends cannot
drift apart.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitPolicy:
    """Limit applied to a single identifier.

    Attributes:
        max_requests: Requests allowed per window.
        window_seconds: Fixed window length in seconds.
        identifier: Key scoping the counter (e.g. ``forgot-password:<email>``).
            Normalization (case, whitespace) is the caller's job.

    Raises:
        ValueError: If any field is out of range.
    """

    max_requests: int
    window_seconds: int
    identifier: str

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if not self.identifier:
            raise ValueError("identifier must be a non-empty string")

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        limit: Max requests per window.
    """

    allowed: bool
    remaining: int
    reset_at: int
    limit: int


def decide(count: int, policy: RateLimitPolicy, reset_at: float) -> RateLimitResult:
    """Build the result for a post-increment ``count``.

    The ``max_requests``-th hit is still allowed; the next one is not.
    """

    return RateLimitResult(
        allowed=count <= policy.max_requests,
        remaining=max(0, policy.max_requests - count),
        reset_at=int(math.floor(reset_at)),
        limit=policy.max_requests,
    )


class AbstractRateLimitBackend(ABC):
    """Counter storage strategy."""

    @abstractmethod
    async def hit(self, policy: RateLimitPolicy) -> RateLimitResult:
        """Count one request for ``policy.identifier`` and return the decision.

        Implementations may raise on storage failures; the caller decides how
        to recover.
        """
        raise NotImplementedError
