"""Exception taxonomy shared by adapters, orchestrator, stores and API.

Propagation policy:
    - `ProviderError` subclasses are recovered by the orchestrator and only
      reach callers wrapped in `AllProvidersExhausted`.
    - `NoPairsYet` and `AllPairsViewed` are kept distinct because the HTTP
      layer answers them with different messages.
    - Lock contention is not an error; `GenerationLock.try_acquire` returns
      False instead.
"""


class ArenaError(Exception):
    """Base class for all application errors."""

    code = "ARENA_ERROR"


class ValidationError(ArenaError):
    code = "INVALID_REQUEST"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code


# ============================================================
# Provider failures
# ============================================================

class ProviderError(ArenaError):
    """Classified failure raised by one provider."""

    code = "UNKNOWN_ERROR"
    retryable = True
    quota_exhausted = False
    rate_limited = False

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider
        self.message = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider!r}, message={self.message!r})"


class QuotaExceeded(ProviderError):
    code = "QUOTA_EXCEEDED"
    retryable = False
    quota_exhausted = True


class RateLimited(ProviderError):
    code = "RATE_LIMITED"
    rate_limited = True


class Unauthorized(ProviderError):
    code = "UNAUTHORIZED"
    retryable = False


class UnknownProviderError(ProviderError):
    code = "UNKNOWN_ERROR"


class GenerationTimeout(ArenaError):
    code = "GENERATION_TIMEOUT"


class GenerationCancelled(ArenaError):
    code = "GENERATION_CANCELLED"


# ============================================================
# Orchestrator outcomes
# ============================================================

class NoProvidersAvailable(ArenaError):
    code = "NO_PROVIDERS"

    def __init__(self, message: str = "no available providers"):
        super().__init__(message)


class AllProvidersExhausted(ArenaError):
    code = "GENERATION_FAILED"

    def __init__(self, provider: str, last_error: Exception):
        super().__init__(f"all providers failed, last error from {provider}: {last_error}")
        self.provider = provider
        self.last_error = last_error


# ============================================================
# Store outcomes
# ============================================================

class StoreError(ArenaError):
    code = "STORE_ERROR"


class StoreUnavailable(StoreError):
    code = "STORE_UNAVAILABLE"

    def __init__(self, message: str = "vote storage is not configured"):
        super().__init__(message)


class PairNotFound(ArenaError):
    code = "PAIR_NOT_FOUND"

    def __init__(self, pair_id: str):
        super().__init__(f"pair not found: {pair_id}")
        self.pair_id = pair_id


class NoPairsYet(ArenaError):
    code = "NO_PAIRS_YET"

    def __init__(self, message: str = "no pairs available"):
        super().__init__(message)


class AllPairsViewed(ArenaError):
    code = "ALL_PAIRS_VIEWED"

    def __init__(self, message: str = "no unviewed pairs available"):
        super().__init__(message)
