"""Feedback Updater and swappable learning strategies.

Feedback events nudge a capability's learned fields and are persisted
immediately through the CapabilityStore:

    accepted   usage_count += 1, last_used = now, confidence_boost += 0.05
    rejected   confidence_boost -= 0.02
    completed  success_rate = 0.2 * outcome + 0.8 * success_rate

The arithmetic lives behind the FeedbackStrategy interface so a different
policy can be registered without touching the Scorer or Ranker.

Versions:
    - nudge-v1: fixed +0.05/-0.02 boost nudges and EMA(alpha=0.2) success rate
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

from .config import ConfigurationError
from .models import Capability, CapabilityIndex, clamp, utcnow
from .store import CapabilityStore

logger = logging.getLogger(__name__)


class CapabilityNotFoundError(KeyError):
    """Raised when feedback names a capability that is not indexed."""

    pass


class FeedbackKind(str, Enum):
    """Kind of feedback signal."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"


class FeedbackStrategy(ABC):
    """Policy that turns feedback signals into learned-field updates."""

    @property
    @abstractmethod
    def version(self) -> str:
        """Strategy version identifier (e.g. 'nudge-v1')."""
        pass

    @abstractmethod
    def accepted(self, capability: Capability, now: datetime) -> None:
        """Apply an accepted recommendation."""
        pass

    @abstractmethod
    def rejected(self, capability: Capability, now: datetime) -> None:
        """Apply a rejected recommendation."""
        pass

    @abstractmethod
    def completed(self, capability: Capability, outcome: int, now: datetime) -> None:
        """Apply a completion outcome (1 = success, 0 = failure)."""
        pass


# Strategy registry for factory function
_STRATEGY_REGISTRY: dict[str, type] = {}

DEFAULT_STRATEGY = "nudge-v1"


def register_strategy(version: str):
    """
    Decorator to register a feedback strategy implementation.

    Usage:
        @register_strategy("nudge-v1")
        class NudgeStrategy(FeedbackStrategy):
            ...
    """

    def decorator(cls):
        _STRATEGY_REGISTRY[version] = cls
        return cls

    return decorator


def get_available_strategies() -> list[str]:
    return list(_STRATEGY_REGISTRY.keys())


def create_strategy(config: dict[str, Any] | None = None) -> FeedbackStrategy:
    """
    Create the feedback strategy named in configuration.

    Args:
        config: Optional dict with ``feedback.strategy`` (default: nudge-v1)

    Raises:
        ConfigurationError: If the strategy is not registered
    """
    version = DEFAULT_STRATEGY
    if config:
        version = config.get("feedback", {}).get("strategy") or DEFAULT_STRATEGY

    if version not in _STRATEGY_REGISTRY:
        raise ConfigurationError(
            f"Unknown feedback strategy: '{version}'. "
            f"Available strategies: {get_available_strategies()}"
        )
    return _STRATEGY_REGISTRY[version]()


@register_strategy("nudge-v1")
class NudgeStrategy(FeedbackStrategy):
    """Heuristic nudges with fixed constants."""

    ACCEPT_BOOST = 0.05
    REJECT_PENALTY = 0.02
    SUCCESS_ALPHA = 0.2

    @property
    def version(self) -> str:
        return "nudge-v1"

    def accepted(self, capability: Capability, now: datetime) -> None:
        capability.usage_count += 1
        capability.last_used = now
        capability.confidence_boost = clamp(
            capability.confidence_boost + self.ACCEPT_BOOST, -1.0, 1.0
        )

    def rejected(self, capability: Capability, now: datetime) -> None:
        capability.confidence_boost = clamp(
            capability.confidence_boost - self.REJECT_PENALTY, -1.0, 1.0
        )

    def completed(self, capability: Capability, outcome: int, now: datetime) -> None:
        capability.success_rate = clamp(
            self.SUCCESS_ALPHA * outcome
            + (1 - self.SUCCESS_ALPHA) * capability.success_rate,
            0.0,
            1.0,
        )


class FeedbackUpdater:
    """Applies feedback to one capability and persists it immediately."""

    def __init__(
        self,
        store: CapabilityStore,
        strategy: FeedbackStrategy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize updater.

        Args:
            store: Store the update is written through
            strategy: Learning policy (default: nudge-v1)
            clock: Source of "now" for last_used
        """
        self.store = store
        self.strategy = strategy or create_strategy()
        self.clock = clock

    def _apply(
        self, capability_id: str, action: Callable[[Capability, datetime], None]
    ) -> Capability:
        def mutate(index: CapabilityIndex) -> Capability:
            capability = index.get(capability_id)
            if capability is None:
                raise CapabilityNotFoundError(capability_id)
            action(capability, self.clock())
            return capability

        capability = self.store.update(mutate)
        logger.debug(
            f"Feedback applied to {capability_id}: usage={capability.usage_count}, "
            f"success={capability.success_rate:.3f}, boost={capability.confidence_boost:+.3f}"
        )
        return capability

    def accepted(self, capability_id: str) -> Capability:
        """Record that a recommended capability was accepted and used."""
        return self._apply(capability_id, self.strategy.accepted)

    def rejected(self, capability_id: str) -> Capability:
        """Record that a recommended capability was declined."""
        return self._apply(capability_id, self.strategy.rejected)

    def completed(self, capability_id: str, outcome: int | bool) -> Capability:
        """
        Record the outcome of using a capability.

        Raises:
            ValueError: If outcome is not 0/1 (or a bool)
        """
        if outcome not in (0, 1):
            raise ValueError(f"Completion outcome must be 0 or 1, got {outcome!r}")
        value = int(outcome)
        return self._apply(
            capability_id,
            lambda capability, now: self.strategy.completed(capability, value, now),
        )

    def record(
        self,
        capability_id: str,
        kind: FeedbackKind | str,
        outcome: int | bool | None = None,
    ) -> Capability:
        """
        Dispatch a feedback event by kind.

        Raises:
            ValueError: If kind is unknown, or COMPLETED lacks an outcome
        """
        kind = FeedbackKind(kind)
        if kind == FeedbackKind.ACCEPTED:
            return self.accepted(capability_id)
        if kind == FeedbackKind.REJECTED:
            return self.rejected(capability_id)
        if outcome is None:
            raise ValueError("Completed feedback requires an outcome (0 or 1)")
        return self.completed(capability_id, outcome)
