"""Tests for provider selection, fallback and quota refresh."""

import threading

import pytest

from arena.core.errors import (
    AllProvidersExhausted,
    GenerationCancelled,
    NoProvidersAvailable,
    QuotaExceeded,
    UnknownProviderError,
)
from arena.core.models import ProviderQuota
from arena.core.selection import LeastErrorsSelection
from tests.fakes import FakeProvider


class FixedOrder:
    """Strategy that tries providers alphabetically."""

    name = "fixed"

    def select_candidates(self, available):
        return sorted(available)


class QuotaProvider(FakeProvider):
    def __init__(self, name, quota=None, quota_error=None, **kwargs):
        super().__init__(name, **kwargs)
        self.quota = quota
        self.quota_error = quota_error
        self.quota_calls = 0

    def refresh_quota(self, cancel_event=None):
        self.quota_calls += 1
        if self.quota_error is not None:
            raise self.quota_error
        return self.quota


class TestSelection:
    """Test Orchestrator.select and select_fallback."""

    def test_select_only_available(self, make_orchestrator):
        p1, p2 = FakeProvider("p1"), FakeProvider("p2", api_key=None)
        orchestrator = make_orchestrator(p1, p2)

        decision = orchestrator.select()

        assert decision.fallback_order == ["p1"]
        assert decision.selected_provider == "p1"
        assert decision.metadata["total_available"] == "1"

    def test_select_raises_when_none_available(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeProvider("p1", api_key=None))
        with pytest.raises(NoProvidersAvailable):
            orchestrator.select()

    def test_select_fallback_records_failure_and_excludes(self, make_orchestrator):
        p1, p2 = FakeProvider("p1"), FakeProvider("p2")
        orchestrator = make_orchestrator(p1, p2, strategy=FixedOrder())

        decision = orchestrator.select_fallback("p1", RuntimeError("boom"))

        assert decision.fallback_order == ["p2"]
        assert decision.metadata["failed_provider"] == "p1"
        assert decision.metadata["selection_method"] == "fallback_fixed"
        assert "boom" in decision.reasoning
        assert p1.status.consecutive_error_count == 1

    def test_select_fallback_without_alternatives(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeProvider("p1"))
        with pytest.raises(NoProvidersAvailable, match="no fallback providers available"):
            orchestrator.select_fallback("p1")

    def test_least_errors_strategy_prefers_healthy(self, make_orchestrator):
        p1, p2 = FakeProvider("p1"), FakeProvider("p2")
        orchestrator = make_orchestrator(p1, p2)
        orchestrator.strategy = LeastErrorsSelection(orchestrator.error_count)
        p1.handle_error(RuntimeError("boom"))

        assert orchestrator.select().fallback_order == ["p2", "p1"]


class TestExecute:
    """Test the select/attempt/fallback loop."""

    def test_all_unavailable_makes_no_calls(self, make_orchestrator, request_factory):
        providers = [FakeProvider(f"p{i}") for i in range(3)]
        for provider in providers:
            provider.handle_error(RuntimeError("quota exceeded"))
        orchestrator = make_orchestrator(*providers)

        with pytest.raises(NoProvidersAvailable):
            orchestrator.execute(request_factory())
        assert all(provider.calls == [] for provider in providers)

    def test_each_provider_attempted_once(self, make_orchestrator, request_factory):
        providers = [FakeProvider(f"p{i}", outcomes=[RuntimeError("boom")]) for i in range(3)]
        orchestrator = make_orchestrator(*providers)

        with pytest.raises(AllProvidersExhausted) as excinfo:
            orchestrator.execute(request_factory())

        assert [len(p.calls) for p in providers] == [1, 1, 1]
        assert isinstance(excinfo.value.last_error, UnknownProviderError)
        assert excinfo.value.code == "GENERATION_FAILED"

    def test_recovered_provider_not_retried_in_same_request(self, make_orchestrator, request_factory):
        p1 = FakeProvider("p1", outcomes=[RuntimeError("429 too many requests")])

        def restore_p1(provider, request):
            p1.status.record_success()

        p2 = FakeProvider("p2", outcomes=[RuntimeError("boom")], on_call=restore_p1)
        orchestrator = make_orchestrator(p1, p2, strategy=FixedOrder())

        with pytest.raises(AllProvidersExhausted):
            orchestrator.execute(request_factory())

        assert len(p1.calls) == 1
        assert len(p2.calls) == 1
        assert p1.is_available() is True

    def test_rate_limited_falls_back_to_next(self, make_orchestrator, request_factory):
        p1 = FakeProvider("p1", outcomes=[RuntimeError("429 too many requests")])
        p2 = FakeProvider("p2", outcomes=[2])
        p3 = FakeProvider("p3")
        orchestrator = make_orchestrator(p1, p2, p3, strategy=FixedOrder())

        result = orchestrator.execute(request_factory())

        assert result.provider == "p2"
        assert len(result.images) == 2
        assert len(p1.calls) == 1
        assert p3.calls == []

        status = orchestrator.provider_status()
        assert status["p1"].rate_limited is True
        assert status["p1"].available is False
        assert status["p1"].consecutive_error_count == 1
        assert status["p2"].available is True
        assert status["p2"].last_success_at is not None

    def test_rate_limited_provider_skipped_until_refresh(self, make_orchestrator, request_factory):
        p1 = QuotaProvider("p1", outcomes=[RuntimeError("rate limit"), 2])
        p2 = FakeProvider("p2")
        orchestrator = make_orchestrator(p1, p2, strategy=FixedOrder())

        orchestrator.execute(request_factory())
        for _ in range(3):
            assert orchestrator.execute(request_factory()).provider == "p2"
        assert len(p1.calls) == 1

        orchestrator.refresh_quotas()
        assert orchestrator.provider_status()["p1"].available is True
        assert orchestrator.execute(request_factory()).provider == "p1"

    def test_quota_exhausted_failure_reported_last(self, make_orchestrator, request_factory):
        p1 = FakeProvider("p1", outcomes=[RuntimeError("boom")])
        p2 = FakeProvider("p2", outcomes=[RuntimeError("quota exceeded")])
        orchestrator = make_orchestrator(p1, p2, strategy=FixedOrder())

        with pytest.raises(AllProvidersExhausted) as excinfo:
            orchestrator.execute(request_factory())

        assert excinfo.value.provider == "p2"
        assert isinstance(excinfo.value.last_error, QuotaExceeded)

    def test_candidate_unavailable_after_selection_is_skipped(self, make_orchestrator, request_factory):
        p2 = FakeProvider("p2")
        p3 = FakeProvider("p3")

        def rate_limit_p2(provider, request):
            p2.status.record_failure("429", quota_exhausted=False, rate_limited=True)

        p1 = FakeProvider("p1", outcomes=[RuntimeError("boom")], on_call=rate_limit_p2)
        orchestrator = make_orchestrator(p1, p2, p3, strategy=FixedOrder())

        result = orchestrator.execute(request_factory())

        assert result.provider == "p3"
        assert p2.calls == []

    def test_cancelled_before_first_attempt(self, make_orchestrator, request_factory):
        p1 = FakeProvider("p1")
        orchestrator = make_orchestrator(p1)
        event = threading.Event()
        event.set()

        with pytest.raises(GenerationCancelled):
            orchestrator.execute(request_factory(), cancel_event=event)
        assert p1.calls == []

    def test_cancellation_stops_fallback(self, make_orchestrator, request_factory):
        p1 = FakeProvider("p1", outcomes=[GenerationCancelled("stop")])
        p2 = FakeProvider("p2")
        orchestrator = make_orchestrator(p1, p2, strategy=FixedOrder())

        with pytest.raises(GenerationCancelled):
            orchestrator.execute(request_factory())
        assert p2.calls == []
        assert p1.status.consecutive_error_count == 0

    def test_concurrent_requests_keep_status_consistent(self, make_orchestrator, request_factory):
        p1 = FakeProvider("p1", outcomes=[RuntimeError("boom")])
        p2 = FakeProvider("p2")
        orchestrator = make_orchestrator(p1, p2, strategy=FixedOrder())
        errors = []

        def run():
            try:
                orchestrator.execute(request_factory())
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=run) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert orchestrator.provider_status()["p1"].consecutive_error_count == 20
        assert len(p2.calls) == 20


class TestRefreshQuotas:
    """Test quota refresh bookkeeping."""

    def test_supported_quota_sets_exhaustion(self, make_orchestrator):
        p1 = QuotaProvider("p1", quota=ProviderQuota(remaining=0, total=100, supported=True))
        orchestrator = make_orchestrator(p1)

        outcome = orchestrator.refresh_quotas()

        assert outcome == {"p1": None}
        status = orchestrator.provider_status()["p1"]
        assert status.quota_exhausted is True
        assert status.available is False
        assert status.quota.total == 100

    def test_quota_refresh_clears_exhaustion(self, make_orchestrator):
        p1 = QuotaProvider("p1", quota=ProviderQuota(remaining=50, total=100, supported=True))
        p1.handle_error(RuntimeError("quota exceeded"))
        orchestrator = make_orchestrator(p1)

        orchestrator.refresh_quotas()

        assert orchestrator.provider_status()["p1"].available is True

    def test_unconfigured_providers_are_skipped(self, make_orchestrator):
        p1 = QuotaProvider("p1", api_key=None)
        orchestrator = make_orchestrator(p1)

        assert orchestrator.refresh_quotas() == {}
        assert p1.quota_calls == 0
        assert orchestrator.provider_status()["p1"].available is False

    def test_refresh_failure_is_reported(self, make_orchestrator):
        p1 = QuotaProvider("p1", quota_error=RuntimeError("network down"))
        p2 = QuotaProvider("p2")
        orchestrator = make_orchestrator(p1, p2)

        outcome = orchestrator.refresh_quotas()

        assert outcome == {"p1": "network down", "p2": None}

    def test_status_copies_are_isolated(self, make_orchestrator):
        p1 = FakeProvider("p1")
        orchestrator = make_orchestrator(p1)

        snapshot = orchestrator.provider_status()["p1"]
        snapshot.available = False

        assert p1.status.available is True
