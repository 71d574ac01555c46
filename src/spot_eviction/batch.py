"""Single-request scoring for small groups of SKUs."""

from .app_logging import get_logger
from .classifier import classify_for_tier
from .config import EnrichmentSettings
from .errors import ScorePairingError, ScoringError
from .schema import EnrichmentResult, ScoreKey, SourceTier
from .scoring_client import PlacementScoreService, pair_scores

logger = get_logger('batch')


def try_batch(
    service: PlacementScoreService,
    region: str,
    keys: list[ScoreKey],
    settings: EnrichmentSettings,
) -> EnrichmentResult:
    """Score all keys in one request when the group is small enough.

    Returns only the keys that were resolved; an empty dict means the
    caller should fall through to per-key querying for everything.
    """
    if not keys or len(keys) > settings.batch_limit:
        return {}

    skus = [key.sku for key in keys]
    try:
        levels = service.get_scores(region, skus, settings.desired_count)
    except ScoringError as e:
        logger.info("Batch request for %d SKU(s) in %s failed: %s", len(keys), region, e)
        return {}

    if not levels:
        logger.info("Batch request for %s returned no scores", region)
        return {}

    try:
        pairs = pair_scores(keys, levels)
    except ScorePairingError as e:
        logger.warning("Discarding batch response for %s: %s", region, e)
        return {}

    return {
        key: classify_for_tier(level, SourceTier.LIVE_SCORE)
        for key, level in pairs
    }
