"""Application facade used by the HTTP and CLI layers.

Architectural role:
    Wraps the orchestrator and the Redis-backed stores behind one object so
    entrypoints never touch vendor adapters or Redis keys directly.

Control-flow model (`generate_pair`):
    1. Validate the prompt and clamp the image count.
    2. Run the orchestrator select/attempt/fallback loop.
    3. Build an `ImagePair` from the first two images and store it.

Error handling strategy:
    - Validation failures raise `ValidationError` before any provider call.
    - Orchestrator outcomes (`NoProvidersAvailable`, `AllProvidersExhausted`,
      `GenerationCancelled`) propagate unchanged.
    - Persisting a generated pair and recording a vote are best effort: store
      failures are logged with `logger.exception` and swallowed so the caller
      still gets the images or the vote acknowledgement.
    - Store-backed reads raise `StoreUnavailable` when the process runs
      without a reachable store.

Side effects:
    - Vendor HTTP calls and image uploads through the adapters.
    - Redis writes for pairs, viewed sets and votes.
"""

import logging
import threading
from dataclasses import dataclass

import redis

from arena.config import DEFAULT_IMAGES_PER_REQUEST, MAX_IMAGES_PER_REQUEST
from arena.core.errors import StoreError, StoreUnavailable, ValidationError
from arena.core.models import SIDES, GenerationRequest, GenerationResult, ImagePair, ProviderStats, Vote
from arena.core.orchestrator import Orchestrator
from arena.core.selection import RandomSelection
from arena.image.service import build_providers
from arena.storage.generation_lock import GenerationLock
from arena.storage.image_storage import build_image_storage
from arena.storage.pair_store import PairStore
from arena.storage.redis_client import get_redis_client
from arena.storage.vote_ledger import VoteLedger


logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"


def clamp_image_count(count: int | None) -> int:
    """Missing or non-positive -> default; anything above the cap -> cap."""
    if count is None or count <= 0:
        return DEFAULT_IMAGES_PER_REQUEST
    return min(count, MAX_IMAGES_PER_REQUEST)


@dataclass
class HealthReport:
    status: str
    providers_available: int
    providers_total: int
    store: str

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "providers": {
                "available": self.providers_available,
                "total": self.providers_total,
            },
            "store": self.store,
        }


class ArenaEngine:
    """Generation plus voting operations over one orchestrator and store.

    Args:
        orchestrator: Configured provider orchestrator.
        pair_store: Pair persistence, or `None` without a store.
        vote_ledger: Vote persistence, or `None` without a store.
        generation_lock: Cross-instance lock used by the auto-generator.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        pair_store: PairStore | None = None,
        vote_ledger: VoteLedger | None = None,
        generation_lock: GenerationLock | None = None,
    ):
        self.orchestrator = orchestrator
        self.pair_store = pair_store
        self.vote_ledger = vote_ledger
        self.generation_lock = generation_lock

    # ============================================================
    # Generation
    # ============================================================

    def generate_pair(
        self,
        prompt: str,
        count: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> tuple[GenerationResult, ImagePair | None]:
        """Generate images for `prompt` and store them as a pair.

        Returns:
            The orchestrator result and the stored pair. The pair is `None`
            when the provider returned fewer than two images.
        """
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationError("prompt is required", code="MISSING_PROMPT")

        request = GenerationRequest.create(prompt, image_count=clamp_image_count(count))
        result = self.orchestrator.execute(request, cancel_event)

        if len(result.images) < 2:
            logger.warning(
                "Provider %s returned %d image(s), no pair stored", result.provider, len(result.images)
            )
            return result, None

        pair = ImagePair(
            pair_id=request.pair_id,
            prompt=prompt,
            provider=result.provider,
            left_url=result.images[0].storage_location,
            right_url=result.images[1].storage_location,
        )

        if self.pair_store is None:
            logger.warning("No store configured, pair %s not persisted", pair.pair_id)
        else:
            try:
                self.pair_store.store(pair)
            except StoreError:
                logger.exception("Failed to store pair %s", pair.pair_id)

        return result, pair

    # ============================================================
    # Pairs and votes
    # ============================================================

    def _require_pairs(self) -> PairStore:
        if self.pair_store is None:
            raise StoreUnavailable()
        return self.pair_store

    def _require_votes(self) -> VoteLedger:
        if self.vote_ledger is None:
            raise StoreUnavailable()
        return self.vote_ledger

    def next_pair(self, exclude=(), session_id: str | None = None) -> ImagePair:
        return self._require_pairs().get_random_unseen(exclude, session_id or None)

    def submit_rating(self, pair_id: str, winner: str) -> Vote:
        """Record a vote for `winner` on `pair_id`.

        Raises:
            ValidationError: Missing pair id or winner not `left`/`right`.
            PairNotFound: `pair_id` is not stored.
        """
        if not pair_id:
            raise ValidationError("pair_id is required")
        if winner not in SIDES:
            raise ValidationError("winner must be 'left' or 'right'", code="INVALID_WINNER")

        ledger = self._require_votes()
        pair = self._require_pairs().get_by_id(pair_id)
        vote = Vote(pair_id=pair.pair_id, winner=winner, provider=pair.provider, prompt=pair.prompt)

        try:
            ledger.record(vote)
        except StoreError:
            logger.exception("Failed to record vote for pair %s", pair_id)
        return vote

    def statistics(self) -> dict:
        ledger = self._require_votes()
        return {
            "total_votes": ledger.total_votes(),
            "side_wins": ledger.side_win_counts(),
        }

    def leaderboard(self) -> list[ProviderStats]:
        """Provider stats, best win rate first (ties broken by vote count)."""
        stats = self._require_votes().provider_stats().values()
        return sorted(stats, key=lambda s: (s.win_rate, s.total_votes), reverse=True)

    def recent_votes(self, limit: int = 50) -> list[Vote]:
        return self._require_votes().recent_votes(limit)

    def winning_pairs(self, side: str) -> list[tuple[ImagePair, int]]:
        return self._require_pairs().get_winning_pairs(side)

    # ============================================================
    # Status
    # ============================================================

    def provider_status(self, refresh_quota: bool = False) -> dict:
        """Per-provider status; optionally refreshes vendor quotas first."""
        if refresh_quota:
            self.orchestrator.refresh_quotas()
        return {name: status.to_dict() for name, status in self.orchestrator.provider_status().items()}

    def store_state(self) -> str:
        if self.pair_store is None:
            return "not_configured"
        try:
            self.pair_store.client.ping()
        except redis.exceptions.RedisError:
            logger.warning("Store ping failed")
            return "error"
        return "connected"

    def health(self) -> HealthReport:
        """Unhealthy without any available provider; degraded when the store
        or some provider is down."""
        statuses = self.orchestrator.provider_status()
        available = len(self.orchestrator.available_providers())
        store = self.store_state()

        if available == 0:
            state = UNHEALTHY
        elif store != "connected" or available < len(statuses):
            state = DEGRADED
        else:
            state = HEALTHY
        return HealthReport(state, available, len(statuses), store)


def build_engine(redis_client: redis.Redis | None = None, storage=None, connect: bool = True) -> ArenaEngine:
    """Wire storage, providers, orchestrator and stores from configuration.

    Args:
        redis_client: Pre-built client; when omitted and `connect` is True the
            configured store is connected through `get_redis_client`.
        storage: Image storage; defaults to `build_image_storage()`.
        connect: Set False to run without a store.
    """
    storage = storage or build_image_storage()
    orchestrator = Orchestrator(strategy=RandomSelection())
    for provider in build_providers(storage):
        orchestrator.register(provider)
        if provider.is_available():
            logger.info("Registered provider %s (available)", provider.name)
        else:
            logger.warning("Registered provider %s (unavailable: %s)", provider.name, provider.status.last_error)

    if redis_client is None and connect:
        redis_client = get_redis_client()

    if redis_client is None:
        logger.warning("Running without a store; pair and vote endpoints are disabled")
        return ArenaEngine(orchestrator)

    ledger = VoteLedger(redis_client)
    return ArenaEngine(
        orchestrator,
        pair_store=PairStore(redis_client, ledger=ledger),
        vote_ledger=ledger,
        generation_lock=GenerationLock(redis_client),
    )
