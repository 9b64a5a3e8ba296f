"""Tests for failure classification and shared adapter behaviour."""

import threading

import pytest

from arena.core.errors import (
    GenerationCancelled,
    QuotaExceeded,
    RateLimited,
    Unauthorized,
    UnknownProviderError,
)
from arena.core.models import GenerationRequest
from arena.image.base import classify_failure, decode_base64_image, image_key
from tests.fakes import FakeProvider, MemoryImageStorage


class TestClassifyFailure:
    """Test marker-based failure classification."""

    @pytest.mark.parametrize("message", [
        "API request failed with status 402: quota exceeded",
        "monthly usage limit reached",
        "insufficient credits",
        "Rate limit exceeded",
    ])
    def test_quota_markers(self, message):
        error = classify_failure("freepik", RuntimeError(message))
        assert isinstance(error, QuotaExceeded)
        assert error.quota_exhausted is True
        assert error.retryable is False

    @pytest.mark.parametrize("message", [
        "API request failed with status 429: slow down",
        "Too Many Requests",
        "rate limit hit",
    ])
    def test_rate_limit_markers(self, message):
        error = classify_failure("freepik", message)
        assert isinstance(error, RateLimited)
        assert error.rate_limited is True
        assert error.retryable is True

    @pytest.mark.parametrize("message", [
        "API request failed with status 403: forbidden",
        "Unauthorized",
        "invalid key supplied",
    ])
    def test_unauthorized_markers(self, message):
        assert isinstance(classify_failure("freepik", message), Unauthorized)

    def test_unmatched_message_is_unknown(self):
        error = classify_failure("freepik", RuntimeError("connection reset by peer"))
        assert isinstance(error, UnknownProviderError)
        assert error.provider == "freepik"
        assert error.message == "connection reset by peer"

    def test_classified_error_is_returned_unchanged(self):
        classified = RateLimited("freepik", "slow down")
        assert classify_failure("other", classified) is classified


class TestBaseProvider:
    """Test BaseProvider status handling."""

    def test_missing_key_is_unavailable(self):
        provider = FakeProvider("freepik", api_key=None)
        assert provider.is_configured() is False
        assert provider.is_available() is False
        assert provider.status.last_error == "FREEPIK_API_KEY environment variable not set"

    def test_handle_error_rate_limit_marks_unavailable(self):
        provider = FakeProvider("p1")
        error = provider.handle_error(RuntimeError("429 too many requests"))

        assert isinstance(error, RateLimited)
        assert provider.status.rate_limited is True
        assert provider.status.available is False
        assert provider.status.consecutive_error_count == 1
        assert provider.is_available() is False

    def test_handle_error_unknown_keeps_available(self):
        provider = FakeProvider("p1")
        provider.handle_error(RuntimeError("boom"))

        assert provider.is_available() is True
        assert provider.status.last_error == "boom"
        assert provider.status.consecutive_error_count == 1

    def test_success_decrements_error_count(self):
        provider = FakeProvider("p1")
        provider.handle_error(RuntimeError("boom"))
        provider.handle_error(RuntimeError("boom"))
        provider.status.record_success()

        assert provider.status.consecutive_error_count == 1
        assert provider.status.last_error == ""
        assert provider.status.last_success_at is not None

    def test_generate_refuses_when_unavailable(self):
        provider = FakeProvider("p1")
        provider.handle_error(RuntimeError("quota exceeded"))

        with pytest.raises(UnknownProviderError):
            provider.generate(GenerationRequest.create("a cat"))
        assert provider.calls == []

    def test_generate_stores_images(self):
        storage = MemoryImageStorage()
        provider = FakeProvider("p1", storage=storage)
        request = GenerationRequest.create("a cat")

        result = provider.generate(request)

        assert result.provider == "p1"
        assert result.request_id == request.request_id
        assert len(result.images) == 2
        assert f"images/p1/{request.pair_id}/left.png" in storage.objects
        assert result.images[1].storage_location.endswith(f"{request.pair_id}/right.png")

    def test_check_cancelled_raises(self):
        provider = FakeProvider("p1")
        event = threading.Event()
        event.set()
        with pytest.raises(GenerationCancelled):
            provider._check_cancelled(event)


class TestImageHelpers:
    """Test key naming and base64 decoding."""

    def test_image_key_sides(self):
        assert image_key("freepik", "abc", 0) == "images/freepik/abc/left.png"
        assert image_key("freepik", "abc", 1) == "images/freepik/abc/right.png"
        assert image_key("freepik", "abc", 3) == "images/freepik/abc/3.png"

    def test_decode_strips_data_url_prefix(self):
        assert decode_base64_image("data:image/png;base64,aGVsbG8=") == b"hello"

    def test_decode_empty_raises(self):
        with pytest.raises(ValueError):
            decode_base64_image("")
