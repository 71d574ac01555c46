"""Bounded concurrent fan-out of single-SKU queries."""

import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Iterator, Optional

from .app_logging import get_logger
from .config import EnrichmentSettings
from .retry import DirectQuery, Sleep, query_with_retry
from .schema import EnrichmentResult, ErrorKind, EvictionClassification, RawScoreLevel, ScoreKey
from .scoring_client import PlacementScoreService

logger = get_logger('worker_pool')


class LimitedScoreService:
    """Placement score service whose requests share a fixed number of slots.

    A calling thread holds its slot until the request returns, so a worker
    abandoned by a timed-out group keeps counting against the limit.
    """

    def __init__(self, service: PlacementScoreService, limit: int):
        self.service = service
        self.limit = limit
        self._slots = threading.BoundedSemaphore(limit)

    def get_scores(
        self,
        region: str,
        skus: list[str],
        desired_count: int = 1,
    ) -> list[RawScoreLevel]:
        with self._slots:
            return self.service.get_scores(region, skus, desired_count)

    def limit_direct(self, direct: Optional[DirectQuery]) -> Optional[DirectQuery]:
        """Route direct REST calls through the same slots."""
        if direct is None:
            return None

        def limited(region: str, sku: str) -> RawScoreLevel:
            with self._slots:
                return direct(region, sku)

        return limited


def limit_in_flight(
    service: PlacementScoreService,
    direct: Optional[DirectQuery],
    limit: int,
) -> tuple[LimitedScoreService, Optional[DirectQuery]]:
    """Wrap a service and its direct fallback unless already limited."""
    if isinstance(service, LimitedScoreService):
        return service, direct
    limited = LimitedScoreService(service, limit)
    return limited, limited.limit_direct(direct)


def chunked(keys: list[ScoreKey], size: int) -> Iterator[list[ScoreKey]]:
    """Split keys into consecutive groups of at most ``size``."""
    for start in range(0, len(keys), size):
        yield keys[start:start + size]


def _worker(
    service: PlacementScoreService,
    key: ScoreKey,
    settings: EnrichmentSettings,
    stagger: float,
    cancel: threading.Event,
    direct: Optional[DirectQuery],
    sleep: Optional[Sleep],
    rng: random.Random,
) -> EvictionClassification:
    # Stagger starts so a group does not hit the service in one burst
    if stagger > 0:
        if sleep is not None:
            sleep(stagger)
        else:
            cancel.wait(stagger)

    return query_with_retry(
        service,
        key.region,
        key.sku,
        settings.retry,
        desired_count=settings.desired_count,
        direct=direct,
        final_tier=False,
        cancel=cancel,
        sleep=sleep,
        rng=rng,
    )


def _run_group(
    executor: ThreadPoolExecutor,
    service: PlacementScoreService,
    group: list[ScoreKey],
    settings: EnrichmentSettings,
    direct: Optional[DirectQuery],
    sleep: Optional[Sleep],
    rng: random.Random,
) -> EnrichmentResult:
    """Run one group and join it with a timeout; stragglers are cancelled."""
    cancel = threading.Event()
    futures: dict[Future, ScoreKey] = {}
    for key in group:
        stagger = rng.uniform(0, settings.stagger_max) if settings.stagger_max else 0.0
        future = executor.submit(
            _worker, service, key, settings, stagger, cancel, direct, sleep, rng
        )
        futures[future] = key

    _, not_done = wait(futures, timeout=settings.group_timeout)
    if not_done:
        cancel.set()

    results: EnrichmentResult = {}
    for future, key in futures.items():
        if future in not_done:
            # A late result from this future is discarded
            future.cancel()
            logger.warning("Scoring %s timed out after %.0fs", key, settings.group_timeout)
            results[key] = EvictionClassification.error(ErrorKind.TIMEOUT)
            continue

        try:
            results[key] = future.result()
        except Exception as e:
            logger.warning("Worker for %s failed unexpectedly: %s", key, e)
            results[key] = EvictionClassification.error(ErrorKind.API_FAILED)

    return results


def _final_sweep(
    service: PlacementScoreService,
    results: EnrichmentResult,
    settings: EnrichmentSettings,
    pause: Sleep,
    sleep: Optional[Sleep],
    rng: random.Random,
    final_tier: bool,
) -> None:
    failing = [key for key, classification in results.items() if classification.is_error]
    if not failing or len(failing) > settings.final_sweep_max_keys:
        return

    logger.info("Final sweep over %d failing SKU(s)", len(failing))
    single_shot = settings.retry.model_copy(update={"max_retries": 0})
    attempts = settings.final_sweep_attempts

    for key in failing:
        for attempt in range(1, attempts + 1):
            pause(settings.final_sweep_pause * attempt)
            try:
                outcome = query_with_retry(
                    service,
                    key.region,
                    key.sku,
                    single_shot,
                    desired_count=settings.desired_count,
                    final_tier=final_tier and attempt == attempts,
                    sleep=sleep,
                    rng=rng,
                )
            except Exception as e:
                logger.warning("Final sweep for %s failed unexpectedly: %s", key, e)
                outcome = EvictionClassification.error(ErrorKind.API_FAILED)
            results[key] = outcome
            if not outcome.is_error:
                break


def resolve_batch(
    service: PlacementScoreService,
    region: str,
    keys: list[ScoreKey],
    settings: EnrichmentSettings,
    *,
    direct: Optional[DirectQuery] = None,
    sleep: Optional[Sleep] = None,
    rng: Optional[random.Random] = None,
    final_tier: bool = False,
) -> EnrichmentResult:
    """Score keys individually, at most ``concurrency_limit`` at a time.

    Every request, including direct fallbacks and the final sweep, takes a
    slot from ``service`` when it is a LimitedScoreService; otherwise one is
    created for this call. Pass a shared one to keep the bound across calls.
    With ``final_tier`` set, a key still failing after its last sweep
    attempt gets a static estimate instead of an error placeholder.
    """
    results: EnrichmentResult = {}
    if not keys:
        return results

    service, direct = limit_in_flight(service, direct, settings.concurrency_limit)
    rng = rng or random.Random()
    pause = sleep or time.sleep
    groups = list(chunked(keys, settings.concurrency_limit))
    logger.info(
        "Scoring %d SKU(s) in %s across %d group(s) of up to %d",
        len(keys), region, len(groups), settings.concurrency_limit,
    )

    executor = ThreadPoolExecutor(
        max_workers=settings.concurrency_limit,
        thread_name_prefix="placement-score",
    )
    try:
        for index, group in enumerate(groups):
            if index and settings.inter_group_pause:
                pause(settings.inter_group_pause)
            results.update(_run_group(executor, service, group, settings, direct, sleep, rng))
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    _final_sweep(service, results, settings, pause, sleep, rng, final_tier)
    return results
