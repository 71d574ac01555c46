"""Retrying single-SKU placement score query.

The retry loop is a small state machine. Deciding what to do after a
failure is the pure function next_action(), which never sleeps; the loop in
query_with_retry() carries out the decision.

    Attempting --ok--------------------------------> Succeeded (LiveScore)
        |
      fail --> next_action()
                 |-- FallbackToDirect --ok---------> Succeeded (DirectProtocol)
                 |-- Retry(delay) --sleep--------> Attempting
                 '-- GiveUp -----------------------> Exhausted
"""

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .app_logging import get_logger
from .classifier import classify_for_tier
from .config import RetrySettings
from .errors import ScoringError
from .estimator import estimate
from .schema import ErrorKind, EvictionClassification, RawScoreLevel, SourceTier
from .scoring_client import PlacementScoreService

logger = get_logger('retry')

# (region, sku) -> level; raises ScoringError
DirectQuery = Callable[[str, str], RawScoreLevel]
Sleep = Callable[[float], None]


@dataclass
class RetryState:
    """Transient per-key bookkeeping for one tier."""
    attempts: int = 0
    last_error: Optional[ScoringError] = None
    elapsed_backoff: float = 0.0
    direct_available: bool = False
    direct_tried: bool = False

    def record_failure(self, error: ScoringError) -> None:
        self.attempts += 1
        self.last_error = error


@dataclass(frozen=True)
class Retry:
    delay: float


@dataclass(frozen=True)
class FallbackToDirect:
    pass


@dataclass(frozen=True)
class GiveUp:
    pass


Action = Union[Retry, FallbackToDirect, GiveUp]


def backoff_delay(attempt: int, policy: RetrySettings, rng: Optional[random.Random] = None) -> float:
    """Exponential backoff for the given failed attempt, plus 0..jitter_max jitter."""
    rng = rng or random
    jitter = rng.uniform(0, policy.jitter_max) if policy.jitter_max else 0.0
    return policy.backoff_base * (2 ** max(attempt - 1, 0)) + jitter


def next_action(
    state: RetryState,
    error: Optional[ScoringError],
    policy: RetrySettings,
    rng: Optional[random.Random] = None,
) -> Action:
    """Decide the next step after a failed attempt."""
    if (
        state.direct_available
        and not state.direct_tried
        and state.attempts >= policy.direct_fallback_after
    ):
        return FallbackToDirect()

    if state.attempts <= policy.max_retries:
        return Retry(backoff_delay(state.attempts, policy, rng))

    return GiveUp()


def _default_sleep(cancel: Optional[threading.Event]) -> Sleep:
    if cancel is not None:
        return lambda seconds: cancel.wait(seconds)
    return time.sleep


def _cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


def query_with_retry(
    service: PlacementScoreService,
    region: str,
    sku: str,
    policy: RetrySettings,
    *,
    desired_count: int = 1,
    direct: Optional[DirectQuery] = None,
    final_tier: bool = False,
    cancel: Optional[threading.Event] = None,
    sleep: Optional[Sleep] = None,
    rng: Optional[random.Random] = None,
) -> EvictionClassification:
    """Score one SKU with bounded retries.

    Issues at most ``policy.max_retries + 1`` primary requests. When every
    attempt fails the result is a static estimate if ``final_tier`` is set,
    otherwise an error placeholder carrying the last error kind so a
    higher tier can try again.
    """
    sleep = sleep or _default_sleep(cancel)
    state = RetryState(direct_available=direct is not None)

    while True:
        if _cancelled(cancel):
            logger.debug("Query for %s/%s cancelled after %d attempts", region, sku, state.attempts)
            return EvictionClassification.error(ErrorKind.TIMEOUT)

        try:
            levels = service.get_scores(region, [sku], desired_count)
            if not levels:
                raise ScoringError(ErrorKind.NO_SCORE_RETURNED, "Empty score list")
            return classify_for_tier(levels[0], SourceTier.LIVE_SCORE)
        except ScoringError as e:
            state.record_failure(e)
            logger.debug("Attempt %d for %s/%s failed: %s", state.attempts, region, sku, e)

        action = next_action(state, state.last_error, policy, rng)

        if isinstance(action, FallbackToDirect):
            state.direct_tried = True
            try:
                level = direct(region, sku)
                return classify_for_tier(level, SourceTier.DIRECT_PROTOCOL)
            except ScoringError as e:
                logger.debug("Direct fallback for %s/%s failed: %s", region, sku, e)
            action = next_action(state, state.last_error, policy, rng)

        if isinstance(action, GiveUp):
            break

        state.elapsed_backoff += action.delay
        sleep(action.delay)

    logger.info(
        "Exhausted %d attempts for %s/%s (%.1fs backoff): %s",
        state.attempts, region, sku, state.elapsed_backoff, state.last_error,
    )
    if final_tier:
        return estimate(sku)
    return EvictionClassification.error(state.last_error.kind)
