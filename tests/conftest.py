"""Shared fakes for the enrichment tests."""

import threading
import time
from typing import Optional, Union

import pytest

from spot_eviction.config import EnrichmentSettings, RetrySettings, SpotConfig
from spot_eviction.errors import ScoringError
from spot_eviction.schema import ErrorKind, RawScoreLevel


Outcome = Union[RawScoreLevel, ScoringError]


class FakeScoreService:
    """Scriptable stand-in for the placement score service.

    ``per_sku`` maps a SKU to a list of outcomes consumed one per
    single-SKU call; the last outcome repeats once the list runs out.
    ``batch`` is returned (or raised) for multi-SKU calls. The first
    single-SKU call for a SKU in ``hang_first`` sleeps that many seconds
    before answering.
    """

    def __init__(
        self,
        per_sku: Optional[dict[str, list[Outcome]]] = None,
        batch: Optional[Union[list[RawScoreLevel], ScoringError]] = None,
        default: Optional[Outcome] = None,
        delay: float = 0.0,
        hang_first: Optional[dict[str, float]] = None,
    ):
        self.per_sku = {sku: list(outcomes) for sku, outcomes in (per_sku or {}).items()}
        self.batch = batch
        self.default = default if default is not None else ScoringError(ErrorKind.API_FAILED, "boom")
        self.delay = delay
        self.hang_first = dict(hang_first or {})
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def calls_for(self, sku: str) -> int:
        return sum(1 for _, skus in self.calls if skus == (sku,))

    def get_scores(self, region, skus, desired_count=1):
        with self._lock:
            self.calls.append((region, tuple(skus)))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            hang = self.hang_first.pop(skus[0], 0.0) if len(skus) == 1 else 0.0
        try:
            if hang:
                time.sleep(hang)
            if self.delay:
                time.sleep(self.delay)
            if len(skus) > 1:
                outcome = self.batch if self.batch is not None else []
                if isinstance(outcome, ScoringError):
                    raise outcome
                return list(outcome)

            outcomes = self.per_sku.get(skus[0])
            if outcomes:
                outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
            else:
                outcome = self.default
            if isinstance(outcome, ScoringError):
                raise outcome
            return [outcome]
        finally:
            with self._lock:
                self.in_flight -= 1


def no_sleep(seconds: float) -> None:
    pass


@pytest.fixture
def fast_settings() -> EnrichmentSettings:
    """Enrichment settings with every delay zeroed."""
    return EnrichmentSettings(
        stagger_max=0.0,
        inter_group_pause=0.0,
        final_sweep_pause=0.0,
        group_timeout=5.0,
        retry=RetrySettings(max_retries=4, backoff_base=0.0, jitter_max=0.0),
    )


@pytest.fixture
def fast_config(fast_settings) -> SpotConfig:
    return SpotConfig(enrichment=fast_settings)
