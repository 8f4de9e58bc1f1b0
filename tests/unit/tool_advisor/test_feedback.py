"""Unit tests for the Feedback Updater and learning strategies."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from tests.helpers import make_capability, make_index
from tool_advisor.config import ConfigurationError
from tool_advisor.feedback import (
    CapabilityNotFoundError,
    FeedbackKind,
    FeedbackUpdater,
    NudgeStrategy,
    create_strategy,
    get_available_strategies,
)


@pytest.fixture
def updater(store, now):
    store.save(make_index(make_capability(keywords={"deploy"})))
    return FeedbackUpdater(store, clock=lambda: now)


class TestFeedbackEvents:
    """Tests for accepted, rejected and completed feedback."""

    def test_accepted(self, updater, store, now):
        updater.accepted("ops:deploy")

        capability = store.load().get("ops:deploy")
        assert capability.usage_count == 1
        assert capability.last_used == now
        assert capability.confidence_boost == pytest.approx(0.05)

    def test_rejected(self, updater, store):
        updater.rejected("ops:deploy")

        capability = store.load().get("ops:deploy")
        assert capability.usage_count == 0
        assert capability.last_used is None
        assert capability.confidence_boost == pytest.approx(-0.02)

    def test_completed_moves_success_rate(self, updater):
        """Success rate follows an exponential moving average with alpha 0.2."""
        assert updater.completed("ops:deploy", 0).success_rate == pytest.approx(0.8)
        assert updater.completed("ops:deploy", 1).success_rate == pytest.approx(0.84)

    def test_completed_accepts_bool(self, updater):
        assert updater.completed("ops:deploy", False).success_rate == pytest.approx(0.8)

    def test_invalid_outcome(self, updater):
        with pytest.raises(ValueError):
            updater.completed("ops:deploy", 2)

    def test_boost_is_clamped(self, updater):
        for _ in range(25):
            updater.accepted("ops:deploy")

        assert updater.store.load().get("ops:deploy").confidence_boost == 1.0

    def test_unknown_capability(self, updater):
        with pytest.raises(CapabilityNotFoundError):
            updater.accepted("ops:missing")

    def test_record_dispatches_by_kind(self, updater):
        assert updater.record("ops:deploy", "accepted").usage_count == 1
        assert updater.record("ops:deploy", FeedbackKind.REJECTED).confidence_boost == (
            pytest.approx(0.03)
        )
        assert updater.record("ops:deploy", "completed", 0).success_rate == pytest.approx(0.8)

    def test_record_completed_requires_outcome(self, updater):
        with pytest.raises(ValueError):
            updater.record("ops:deploy", "completed")

    def test_record_unknown_kind(self, updater):
        with pytest.raises(ValueError):
            updater.record("ops:deploy", "loved")


class TestStrategyRegistry:
    """Tests for strategy registration and creation."""

    def test_default_strategy(self):
        strategy = create_strategy()

        assert isinstance(strategy, NudgeStrategy)
        assert strategy.version == "nudge-v1"
        assert "nudge-v1" in get_available_strategies()

    def test_strategy_from_config(self):
        assert isinstance(create_strategy({"feedback": {"strategy": "nudge-v1"}}), NudgeStrategy)

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError, match="Unknown feedback strategy"):
            create_strategy({"feedback": {"strategy": "does-not-exist"}})


class TestConcurrentFeedback:
    """Feedback from concurrent threads is never lost."""

    @pytest.mark.parametrize("workers", [2, 20])
    def test_concurrent_accepts(self, updater, store, workers):
        barrier = threading.Barrier(workers)

        def accept():
            barrier.wait()
            updater.accepted("ops:deploy")

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(accept) for _ in range(workers)]
            for future in futures:
                future.result()

        assert store.load().get("ops:deploy").usage_count == workers
