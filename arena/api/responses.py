"""JSON error envelope shared by every HTTP error path.

Shape: `{"error": <message>, "code": <CODE>, "details": {...}}`. `details` is
omitted when empty.
"""

from fastapi.responses import JSONResponse

from arena.core.errors import (
    AllPairsViewed,
    AllProvidersExhausted,
    ArenaError,
    GenerationCancelled,
    GenerationTimeout,
    NoPairsYet,
    NoProvidersAvailable,
    PairNotFound,
    StoreError,
    StoreUnavailable,
    ValidationError,
)


# Checked in order; subclasses before their bases.
STATUS_BY_ERROR = (
    (ValidationError, 400),
    (PairNotFound, 404),
    (NoPairsYet, 404),
    (AllPairsViewed, 404),
    (StoreUnavailable, 503),
    (StoreError, 500),
    (NoProvidersAvailable, 503),
    (AllProvidersExhausted, 502),
    (GenerationTimeout, 504),
    (GenerationCancelled, 503),
)

ERROR_MESSAGES = {
    NoPairsYet: "No image pairs have been generated yet",
    AllPairsViewed: "You have viewed all available image pairs",
    NoProvidersAvailable: "No image providers are currently available",
    AllProvidersExhausted: "Image generation failed",
    StoreUnavailable: "Vote storage is not available",
}


def error_response(status_code: int, message: str, code: str, details: dict | None = None) -> JSONResponse:
    content = {"error": message, "code": code}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def status_for(error: ArenaError) -> int:
    for error_cls, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_cls):
            return status_code
    return 500


def arena_error_response(error: ArenaError) -> JSONResponse:
    """Render an `ArenaError` with its mapped status code."""
    message = ERROR_MESSAGES.get(type(error), str(error))
    details = {}

    if isinstance(error, AllProvidersExhausted):
        details = {
            "provider": error.provider,
            "error": str(error.last_error),
            "error_code": getattr(error.last_error, "code", ""),
        }
    elif isinstance(error, PairNotFound):
        details = {"pair_id": error.pair_id}
    elif type(error) in ERROR_MESSAGES:
        details = {"error": str(error)}

    return error_response(status_for(error), message, error.code, details)
