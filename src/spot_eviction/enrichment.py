"""Eviction enrichment orchestration.

Runs the tiers for each region in order of decreasing accuracy:

1. one batched request (small groups only)
2. concurrent per-SKU queries with retry and the direct REST rescue
3. a static estimate from the SKU's core count

Every submitted key ends up with exactly one classification.
"""

import functools
import random
from typing import Callable, Iterable, Optional

from .app_logging import get_logger
from .batch import try_batch
from .config import SpotConfig, get_config
from .direct_client import DirectPlacementClient
from .estimator import estimate
from .retry import DirectQuery, Sleep
from .schema import EnrichmentResult, ErrorKind, EvictionClassification, ScoreKey
from .scoring_client import ComputePlacementScoreService, PlacementScoreService
from .worker_pool import LimitedScoreService, limit_in_flight, resolve_batch

logger = get_logger('enrichment')


def group_keys_by_region(keys: Iterable[ScoreKey]) -> dict[str, list[str]]:
    """Group keys by region, keeping first-seen order and dropping duplicates."""
    grouped: dict[str, list[str]] = {}
    for key in keys:
        skus = grouped.setdefault(key.region, [])
        if key.sku not in skus:
            skus.append(key.sku)
    return grouped


def merge_classification(
    result: EnrichmentResult,
    key: ScoreKey,
    classification: EvictionClassification,
) -> EvictionClassification:
    """Record a classification unless a more confident one is already held."""
    existing = result.get(key)
    if existing is None or classification.confidence > existing.confidence:
        result[key] = classification
    return result[key]


class EnrichmentOrchestrator:
    """Drives the enrichment tiers across regions."""

    def __init__(
        self,
        service: Optional[PlacementScoreService] = None,
        config: Optional[SpotConfig] = None,
        direct: Optional[DirectQuery] = None,
        sleep: Optional[Sleep] = None,
        rng: Optional[random.Random] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        self.service = service
        self.config = config or get_config()
        self.direct = direct
        self.sleep = sleep
        self.rng = rng
        self.progress = progress_callback or (lambda x: None)

    @property
    def settings(self):
        return self.config.enrichment

    def enrich(self, grouped: dict[str, list[str]]) -> EnrichmentResult:
        """Classify every (region, sku) in ``grouped``."""
        result: EnrichmentResult = {}

        if self.settings.skip_enrichment:
            for region, skus in grouped.items():
                for sku in skus:
                    result[ScoreKey(region=region, sku=sku)] = EvictionClassification.placeholder()
            return result

        # One set of request slots for the whole run, shared by every tier
        service, direct = None, self.direct
        if self.service is not None:
            service, direct = limit_in_flight(
                self.service, self.direct, self.settings.concurrency_limit
            )

        for region, skus in grouped.items():
            keys = list(dict.fromkeys(ScoreKey(region=region, sku=sku) for sku in skus))
            if not keys:
                continue
            self.progress(f"Scoring {len(keys)} SKU(s) in {region}")
            result.update(self._enrich_region(region, keys, service, direct))

        return result

    def _enrich_region(
        self,
        region: str,
        keys: list[ScoreKey],
        service: Optional[LimitedScoreService],
        direct: Optional[DirectQuery],
    ) -> EnrichmentResult:
        result: EnrichmentResult = {}

        if service is None:
            logger.warning("No scoring service available; estimating %s from core counts", region)
        else:
            try:
                batched = try_batch(service, region, keys, self.settings)
            except Exception:
                logger.exception("Batch scoring failed for %s", region)
                batched = {}
            for key, classification in batched.items():
                merge_classification(result, key, classification)

            remaining = [key for key in keys if key not in result or not result[key].is_live]
            if remaining:
                try:
                    pooled = resolve_batch(
                        service,
                        region,
                        remaining,
                        self.settings,
                        direct=direct,
                        sleep=self.sleep,
                        rng=self.rng,
                        final_tier=self.settings.use_static_fallback,
                    )
                except Exception:
                    logger.exception("Per-SKU scoring failed for %s", region)
                    pooled = {}
                for key, classification in pooled.items():
                    merge_classification(result, key, classification)

        for key in keys:
            current = result.get(key)
            if current is not None and not current.is_error:
                continue
            if self.settings.use_static_fallback:
                merge_classification(result, key, estimate(key.sku))
            elif current is None:
                result[key] = EvictionClassification.error(ErrorKind.API_FAILED)

        live = sum(1 for key in keys if result[key].is_live)
        logger.info("%s: %d/%d SKU(s) scored live", region, live, len(keys))
        return result


def create_orchestrator(
    config: Optional[SpotConfig] = None,
    subscription_id: Optional[str] = None,
    progress_callback: Optional[Callable[[str], None]] = None,
) -> EnrichmentOrchestrator:
    """Wire the SDK service and direct REST fallback from configuration."""
    config = config or get_config()
    if config.enrichment.skip_enrichment:
        return EnrichmentOrchestrator(config=config, progress_callback=progress_callback)

    subscription_id = subscription_id or config.direct.resolve_subscription_id()
    if not subscription_id:
        logger.warning("No Azure subscription id configured; live eviction scores unavailable")
        return EnrichmentOrchestrator(config=config, progress_callback=progress_callback)

    service = ComputePlacementScoreService(subscription_id)
    direct = None
    if config.direct.enabled:
        client = DirectPlacementClient(config.direct, desired_count=config.enrichment.desired_count)
        direct = functools.partial(client.query_direct, subscription_id)

    return EnrichmentOrchestrator(
        service=service,
        config=config,
        direct=direct,
        progress_callback=progress_callback,
    )


def enrich_keys(
    keys: Iterable[ScoreKey],
    config: Optional[SpotConfig] = None,
    subscription_id: Optional[str] = None,
) -> EnrichmentResult:
    """Convenience wrapper: group, wire and enrich in one call."""
    orchestrator = create_orchestrator(config, subscription_id)
    return orchestrator.enrich(group_keys_by_region(keys))
