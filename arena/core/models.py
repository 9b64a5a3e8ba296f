"""Shared records for orchestration and vote persistence.

Architectural role:
    Defines the data passed between adapters, the orchestrator, the Redis
    stores and the HTTP layer.

Mutability:
    - `BackendStatus` is the only mutable record. It is mutated exclusively by
      the orchestrator while holding its write lock.
    - Requests, images, pairs and votes are frozen once built.

Serialization:
    Pairs and votes round-trip through JSON strings stored in Redis under
    stable wire keys (`timestamp`, `winner`, `left_url`). Timestamps are
    RFC 3339; a trailing `Z` and fractions of any precision (nanosecond
    timestamps included) are accepted on load.
"""

import re
import uuid
from dataclasses import dataclass, field, replace, asdict
from datetime import datetime, timezone
from typing import Any

LEFT = "left"
RIGHT = "right"
SIDES = (LEFT, RIGHT)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def opposite_side(side: str) -> str:
    return RIGHT if side == LEFT else LEFT


_FRACTION = re.compile(r"\.(\d+)")


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return utcnow()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # fromisoformat only takes microsecond precision.
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    return datetime.fromisoformat(value)


@dataclass
class ProviderQuota:
    """Quota snapshot reported by a vendor.

    Attributes:
        remaining: Tokens/credits left in the current period.
        total: Tokens/credits available in total (subscription + paid).
        renewal_at: When the allowance renews, if known.
        supported: False for vendors without a quota endpoint.
        last_updated: When this snapshot was taken.
    """

    remaining: int | None = None
    total: int | None = None
    renewal_at: datetime | None = None
    supported: bool = False
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "remaining": self.remaining,
            "total": self.total,
            "renewal_at": self.renewal_at.isoformat() if self.renewal_at else None,
            "supported": self.supported,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass
class BackendStatus:
    """Live health of one registered provider.

    Invariant: `available` is False whenever `quota_exhausted` or
    `rate_limited` is True.
    """

    name: str
    available: bool = True
    last_error: str = ""
    last_success_at: datetime | None = None
    consecutive_error_count: int = 0
    quota_exhausted: bool = False
    rate_limited: bool = False
    quota: ProviderQuota | None = None

    def record_failure(self, message: str, quota_exhausted: bool, rate_limited: bool) -> None:
        self.last_error = message
        self.consecutive_error_count += 1
        self.quota_exhausted = quota_exhausted
        self.rate_limited = rate_limited
        self.available = not (quota_exhausted or rate_limited)

    def record_success(self) -> None:
        self.available = True
        self.last_error = ""
        self.last_success_at = utcnow()
        # Reduced, not reset: a flapping provider keeps some history.
        if self.consecutive_error_count > 0:
            self.consecutive_error_count -= 1
        self.quota_exhausted = False
        self.rate_limited = False

    def apply_quota(self, quota: ProviderQuota | None) -> None:
        """Apply a quota refresh.

        A refresh always lifts a rate limit. A supported quota snapshot also
        decides `quota_exhausted` from the remaining allowance.
        """
        self.rate_limited = False
        if quota is not None:
            self.quota = quota
            if quota.supported and quota.remaining is not None:
                self.quota_exhausted = quota.remaining <= 0
        self.available = not (self.quota_exhausted or self.rate_limited)

    def copy(self) -> "BackendStatus":
        return replace(self, quota=replace(self.quota) if self.quota else None)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "available": self.available,
            "last_error": self.last_error,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "consecutive_error_count": self.consecutive_error_count,
            "quota_exhausted": self.quota_exhausted,
            "rate_limited": self.rate_limited,
            "quota": self.quota.to_dict() if self.quota else None,
        }


@dataclass(frozen=True)
class GenerationRequest:
    """One validated generation request. Built by `GenerationRequest.create`."""

    prompt: str
    request_id: str
    pair_id: str
    submitted_at: datetime
    image_count: int = 2

    @classmethod
    def create(cls, prompt: str, image_count: int = 2, pair_id: str | None = None) -> "GenerationRequest":
        return cls(
            prompt=prompt,
            request_id=str(uuid.uuid4()),
            pair_id=pair_id or str(uuid.uuid4()),
            submitted_at=utcnow(),
            image_count=image_count,
        )


@dataclass(frozen=True)
class GeneratedImage:
    """Handle to one stored image."""

    id: str
    storage_location: str
    byte_size: int
    filename: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GenerationResult:
    """Successful adapter output."""

    images: list[GeneratedImage]
    provider: str
    request_id: str
    duration: float = 0.0
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ImagePair:
    """Two images generated together from the same prompt and provider."""

    pair_id: str
    prompt: str
    provider: str
    left_url: str
    right_url: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "pair_id": self.pair_id,
            "prompt": self.prompt,
            "provider": self.provider,
            "left_url": self.left_url,
            "right_url": self.right_url,
            "timestamp": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImagePair":
        return cls(
            pair_id=data["pair_id"],
            prompt=data.get("prompt", ""),
            provider=data.get("provider", ""),
            left_url=data.get("left_url", ""),
            right_url=data.get("right_url", ""),
            created_at=_parse_timestamp(data.get("timestamp")),
        )


@dataclass(frozen=True)
class Vote:
    """One rating submission for a pair."""

    pair_id: str
    winner: str
    provider: str
    prompt: str
    cast_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "pair_id": self.pair_id,
            "winner": self.winner,
            "provider": self.provider,
            "prompt": self.prompt,
            "timestamp": self.cast_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Vote":
        return cls(
            pair_id=data["pair_id"],
            winner=data["winner"],
            provider=data.get("provider", ""),
            prompt=data.get("prompt", ""),
            cast_at=_parse_timestamp(data.get("timestamp")),
        )


@dataclass
class ProviderStats:
    """Aggregated leaderboard numbers for one provider."""

    provider: str
    wins: int = 0
    losses: int = 0
    total_votes: int = 0
    win_rate: float = 0.0
    left_wins: int = 0
    right_wins: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
