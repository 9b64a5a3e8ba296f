"""Provider selection and fallback for one generation request.

Control-flow model (per request):
    1. Select: snapshot available providers under the read lock and order
       them with the selection strategy. Nothing available ->
       `NoProvidersAvailable` before any network call.
    2. Attempt: call the current candidate with no lock held.
    3. Success: record success under the write lock and return.
    4. Failure: classify through the adapter, record it under the write lock,
       continue with the next candidate. After the last candidate ->
       `AllProvidersExhausted` carrying the last classified error.

Ordering guarantees:
    - Attempts within one request are sequential and follow one fixed order,
      so a provider is attempted at most once per request even if it recovers
      while later candidates run.
    - Candidates that became unavailable after selection (another request hit
      their quota) are skipped without a call.
    - Concurrent requests may pick the same provider; selection reserves
      nothing.

Locking:
    A single `ReadWriteLock` guards the registry and every provider's
    `BackendStatus`. It is held only while reading or mutating that in-memory
    state, never across vendor I/O.
"""

import logging
import threading
from dataclasses import dataclass, field

from arena.core.errors import (
    AllProvidersExhausted,
    GenerationCancelled,
    NoProvidersAvailable,
    ProviderError,
)
from arena.core.models import BackendStatus, GenerationRequest, GenerationResult
from arena.core.rwlock import ReadWriteLock
from arena.core.selection import RandomSelection, SelectionStrategy
from arena.image.base import ImageProvider, classify_failure


logger = logging.getLogger(__name__)


@dataclass
class SelectionDecision:
    """Ordered candidates for one request plus the reason they were chosen."""

    fallback_order: list[str]
    reasoning: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def selected_provider(self) -> str:
        return self.fallback_order[0]


class Orchestrator:
    """Owns the provider registry and drives the fallback loop.

    Built once at process start (`arena.core.engine.build_engine`) and shared
    by all request threads.
    """

    def __init__(self, strategy: SelectionStrategy | None = None):
        self._providers: dict[str, ImageProvider] = {}
        self._lock = ReadWriteLock()
        self.strategy = strategy or RandomSelection()

    # ============================================================
    # Registry
    # ============================================================

    def register(self, provider: ImageProvider) -> None:
        with self._lock.write():
            self._providers[provider.name] = provider

    def get_provider(self, name: str) -> ImageProvider | None:
        with self._lock.read():
            return self._providers.get(name)

    def provider_names(self) -> list[str]:
        with self._lock.read():
            return list(self._providers)

    def provider_status(self) -> dict[str, BackendStatus]:
        """Return copies of every provider's status."""
        with self._lock.read():
            return {name: provider.status.copy() for name, provider in self._providers.items()}

    def available_providers(self) -> list[str]:
        with self._lock.read():
            return [name for name, provider in self._providers.items() if provider.is_available()]

    def error_count(self, name: str) -> int:
        """Current error count for `name`.

        Does not lock: strategies call it from inside `select`, which already
        holds the read lock.
        """
        provider = self._providers.get(name)
        return provider.status.consecutive_error_count if provider else 0

    # ============================================================
    # Selection
    # ============================================================

    def select(self, exclude=()) -> SelectionDecision:
        """Order the currently available providers, minus `exclude`."""
        excluded = set(exclude)
        with self._lock.read():
            available = [
                name for name, provider in self._providers.items()
                if name not in excluded and provider.is_available()
            ]
            if not available:
                raise NoProvidersAvailable()
            order = self.strategy.select_candidates(available)

        logger.info("Selecting providers: %s", ", ".join(order))
        return SelectionDecision(
            fallback_order=order,
            reasoning="Random selection from available providers",
            metadata={
                "selection_method": getattr(self.strategy, "name", type(self.strategy).__name__),
                "total_available": str(len(order)),
            },
        )

    def select_fallback(
        self,
        failed_provider: str,
        error: BaseException | None = None,
        exclude=(),
    ) -> SelectionDecision:
        """Re-select after `failed_provider` failed.

        Records `error` against the failed provider (when given), then
        re-shuffles the remaining available providers. The failed provider
        and everything in `exclude` are left out regardless of their current
        status.

        Raises:
            NoProvidersAvailable: No other provider is available.
        """
        reason = ""
        if error is not None:
            reason = self._record_failure(failed_provider, error).message

        try:
            decision = self.select(exclude={failed_provider, *exclude})
        except NoProvidersAvailable:
            raise NoProvidersAvailable("no fallback providers available") from None

        decision.reasoning = f"Fallback due to {failed_provider} failure"
        if reason:
            decision.reasoning += f": {reason}"
        decision.metadata.update({
            "failed_provider": failed_provider,
            "failure_reason": reason,
            "selection_method": "fallback_" + decision.metadata["selection_method"],
        })
        return decision

    # ============================================================
    # Execution
    # ============================================================

    def execute(
        self,
        request: GenerationRequest,
        cancel_event: threading.Event | None = None,
    ) -> GenerationResult:
        """Run one request through the select/attempt/fallback state machine.

        Raises:
            NoProvidersAvailable: Nothing was available to attempt.
            AllProvidersExhausted: Every attempted provider failed.
            GenerationCancelled: `cancel_event` was set; no fallback follows.
        """
        logger.info("Starting image generation for request: %s", request.request_id)
        decision = self.select()
        order = decision.fallback_order

        last_error: ProviderError | None = None
        last_provider = ""

        for position, name in enumerate(order, 1):
            if cancel_event is not None and cancel_event.is_set():
                raise GenerationCancelled(f"request {request.request_id} cancelled")

            with self._lock.read():
                provider = self._providers.get(name)
                usable = provider is not None and provider.is_available()
            if not usable:
                logger.info("Provider %s not available, skipping", name)
                continue

            logger.info("Trying provider %d/%d: %s", position, len(order), name)
            try:
                result = provider.generate(request, cancel_event)
            except GenerationCancelled:
                raise
            except Exception as exc:
                provider_error = self._record_failure(name, exc)
                logger.warning(
                    "Provider %s failed (%s, retryable=%s): %s",
                    name, provider_error.code, provider_error.retryable, provider_error.message,
                )
                last_error, last_provider = provider_error, name
                continue

            self._record_success(name)
            logger.info("Provider %s succeeded, generated %d images", name, len(result.images))
            return result

        if last_error is not None:
            logger.error("All providers exhausted, last error from %s", last_provider)
            raise AllProvidersExhausted(last_provider, last_error)
        raise NoProvidersAvailable()

    # ============================================================
    # Quota refresh
    # ============================================================

    def refresh_quotas(self, cancel_event: threading.Event | None = None) -> dict[str, str | None]:
        """Refresh quota for every configured provider.

        Vendor calls run without the lock; results are applied under it.

        Returns:
            Provider name -> error text, or `None` when the refresh succeeded.
        """
        with self._lock.read():
            providers = [p for p in self._providers.values() if p.is_configured()]

        outcome: dict[str, str | None] = {}
        for provider in providers:
            try:
                quota = provider.refresh_quota(cancel_event)
            except GenerationCancelled:
                raise
            except Exception as exc:
                logger.warning("Failed to refresh quota for %s: %s", provider.name, exc)
                outcome[provider.name] = str(exc)
                continue

            with self._lock.write():
                provider.status.apply_quota(quota)
            outcome[provider.name] = None
            logger.info("Refreshed quota for %s", provider.name)
        return outcome

    # ============================================================
    # Status mutation
    # ============================================================

    def _record_failure(self, name: str, error: BaseException) -> ProviderError:
        with self._lock.write():
            provider = self._providers.get(name)
            if provider is None:
                return classify_failure(name, error)
            return provider.handle_error(error)

    def _record_success(self, name: str) -> None:
        with self._lock.write():
            provider = self._providers.get(name)
            if provider is not None:
                provider.status.record_success()
