"""Shared adapter behaviour: status, failure classification, persistence.

Processing flow (per `generate` call, implemented by subclasses):
    1. Refuse early when the provider is not available.
    2. Build and submit the vendor request via `_post_json` / `_get_json`.
    3. Optionally poll an async job until done (see `leonardo_client`).
    4. Decode or download image bytes and hand them to the image storage
       collaborator through `save_image`.
    5. Return a `GenerationResult`.

Failure classification:
    `classify_failure` inspects the lowercase failure text for quota,
    rate-limit and authorization markers. Non-200 responses are raised with
    the status code in the message (`API request failed with status 429: ...`)
    so the classifier sees it.

Status ownership:
    Each adapter owns one `BackendStatus`. `handle_error` mutates it; the
    orchestrator calls `handle_error` and `status.record_success` while
    holding its write lock, so adapters never lock on their own.

Cancellation:
    `cancel_event` is a `threading.Event`. Adapters call `_check_cancelled`
    before each outbound call and wait on the event instead of sleeping.
"""

import base64
import binascii
import logging
import threading
import time
import uuid
from typing import Protocol

import requests

from arena.config import PROVIDER_HTTP_TIMEOUT
from arena.core.errors import (
    GenerationCancelled,
    ProviderError,
    QuotaExceeded,
    RateLimited,
    Unauthorized,
    UnknownProviderError,
)
from arena.core.models import (
    LEFT,
    RIGHT,
    BackendStatus,
    GeneratedImage,
    GenerationRequest,
    GenerationResult,
    ProviderQuota,
)
from arena.storage.image_storage import ImageStorage


logger = logging.getLogger(__name__)

QUOTA_MARKERS = ("quota", "limit exceeded", "insufficient", "usage limit")
RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "429")
UNAUTHORIZED_MARKERS = ("unauthorized", "403", "invalid key")


def classify_failure(provider: str, error: BaseException | str) -> ProviderError:
    """Map a raw failure to a typed `ProviderError`.

    Args:
        provider: Name of the provider that failed.
        error: Exception or message text.

    Returns:
        `QuotaExceeded`, `RateLimited`, `Unauthorized` or `UnknownProviderError`.

    Edge cases:
        - Already-classified errors are returned unchanged.
        - Quota markers win over rate-limit markers ("rate limit exceeded"
          matches "limit exceeded" first).
    """
    if isinstance(error, ProviderError):
        return error

    message = str(error)
    lowered = message.lower()

    if any(marker in lowered for marker in QUOTA_MARKERS):
        return QuotaExceeded(provider, message)
    if any(marker in lowered for marker in RATE_LIMIT_MARKERS):
        return RateLimited(provider, message)
    if any(marker in lowered for marker in UNAUTHORIZED_MARKERS):
        return Unauthorized(provider, message)
    return UnknownProviderError(provider, message)


class ImageProvider(Protocol):
    """Capability interface the orchestrator dispatches through."""

    name: str
    status: BackendStatus

    def generate(
        self,
        request: GenerationRequest,
        cancel_event: threading.Event | None = None,
    ) -> GenerationResult:
        ...

    def is_available(self) -> bool:
        ...

    def is_configured(self) -> bool:
        ...

    def handle_error(self, error: BaseException) -> ProviderError:
        ...

    def refresh_quota(self, cancel_event: threading.Event | None = None) -> ProviderQuota | None:
        ...


def image_key(provider: str, pair_id: str, index: int) -> str:
    """Object key for one image: `images/<provider>/<pair_id>/<side>.png`."""
    side = (LEFT, RIGHT)[index] if index < 2 else str(index)
    return f"images/{provider}/{pair_id}/{side}.png"


def decode_base64_image(data: str) -> bytes:
    """Decode base64 image payloads, tolerating `data:image/png;base64,` prefixes."""
    if not data:
        raise ValueError("empty base64 data received")
    if "," in data:
        data = data.split(",", 1)[1]
    try:
        decoded = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"failed to decode base64 image (length: {len(data)}): {exc}") from exc
    if not decoded:
        raise ValueError("decoded image data is empty")
    return decoded


class BaseProvider:
    """Common adapter plumbing. Subclasses implement `_generate`.

    Args:
        name: Registry name (for example `freepik`).
        api_key: Vendor credential; a missing key leaves the provider
            permanently unavailable.
        key_env: Environment variable name reported when the key is missing.
        storage: Image storage collaborator.
        session: Optional `requests.Session` (tests inject a mock).
        timeout: Per-call HTTP timeout in seconds.
    """

    def __init__(
        self,
        name: str,
        api_key: str | None,
        key_env: str,
        storage: ImageStorage,
        session: requests.Session | None = None,
        timeout: float = PROVIDER_HTTP_TIMEOUT,
    ):
        self.name = name
        self.api_key = api_key
        self.storage = storage
        self.session = session or requests.Session()
        self.timeout = timeout
        self.status = BackendStatus(name=name)

        if not api_key:
            self.status.available = False
            self.status.last_error = f"{key_env} environment variable not set"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"

    # ------------------------------------------------------------
    # Status
    # ------------------------------------------------------------

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def is_available(self) -> bool:
        status = self.status
        return (
            self.is_configured()
            and status.available
            and not status.quota_exhausted
            and not status.rate_limited
        )

    def handle_error(self, error: BaseException) -> ProviderError:
        """Classify `error` and record it on this provider's status."""
        provider_error = classify_failure(self.name, error)
        self.status.record_failure(
            provider_error.message,
            quota_exhausted=provider_error.quota_exhausted,
            rate_limited=provider_error.rate_limited,
        )
        return provider_error

    def refresh_quota(self, cancel_event: threading.Event | None = None) -> ProviderQuota | None:
        """Default: the vendor exposes no quota endpoint."""
        return None

    # ------------------------------------------------------------
    # Generation template
    # ------------------------------------------------------------

    def generate(
        self,
        request: GenerationRequest,
        cancel_event: threading.Event | None = None,
    ) -> GenerationResult:
        if not self.is_available():
            raise UnknownProviderError(
                self.name, f"{self.name} provider is not available: {self.status.last_error}"
            )

        logger.info(
            "[%s] Starting generation request_id=%s count=%d",
            self.name, request.request_id, request.image_count,
        )
        started = time.monotonic()
        images, metadata = self._generate(request, cancel_event)
        return GenerationResult(
            images=images,
            provider=self.name,
            request_id=request.request_id,
            duration=time.monotonic() - started,
            metadata=metadata,
        )

    def _generate(
        self,
        request: GenerationRequest,
        cancel_event: threading.Event | None,
    ) -> tuple[list[GeneratedImage], dict[str, str]]:
        raise NotImplementedError

    # ------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------

    def _check_cancelled(self, cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelled(f"{self.name} generation cancelled")

    def _parse_json(self, response: requests.Response) -> dict:
        if response.status_code != 200:
            raise RuntimeError(
                f"API request failed with status {response.status_code}: {response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RuntimeError(f"failed to parse JSON response: {exc}") from exc

    def _post_json(self, url: str, payload: dict, headers: dict[str, str]) -> dict:
        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise RuntimeError(f"request failed: {exc}") from exc
        return self._parse_json(response)

    def _get_json(self, url: str, headers: dict[str, str]) -> dict:
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise RuntimeError(f"request failed: {exc}") from exc
        return self._parse_json(response)

    def _download(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise RuntimeError(f"failed to download image: {exc}") from exc
        if response.status_code != 200:
            raise RuntimeError(f"failed to download image: HTTP {response.status_code}")
        return response.content

    def save_image(self, data: bytes, pair_id: str, index: int, content_type: str = "image/png") -> GeneratedImage:
        """Persist image bytes and return the handle."""
        key = image_key(self.name, pair_id, index)
        location = self.storage.put(data, key, content_type)
        return GeneratedImage(
            id=str(uuid.uuid4()),
            storage_location=location,
            byte_size=len(data),
            filename=key.rsplit("/", 1)[-1],
        )
