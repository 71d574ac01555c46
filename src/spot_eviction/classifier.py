"""Mapping from placement score levels to eviction risk labels."""

from .schema import EvictionClassification, RawScoreLevel, SourceTier


RISK_LABELS = {
    RawScoreLevel.HIGH: "Very Low",
    RawScoreLevel.MEDIUM: "Low-Medium",
    RawScoreLevel.LOW: "Medium-High",
    RawScoreLevel.NONE: "High",
}

# Shared by the SDK and direct REST tiers
PERCENT_BUCKETS = {
    RawScoreLevel.HIGH: "0-5%",
    RawScoreLevel.MEDIUM: "5-15%",
    RawScoreLevel.LOW: "15-30%",
    RawScoreLevel.NONE: "30%+",
}

UNSPECIFIED_LABEL = "N/A"


def classify(level: RawScoreLevel) -> tuple[str, str]:
    """Return (risk_label, percent_bucket) for a score level."""
    level = RawScoreLevel.parse(level)
    if level not in RISK_LABELS:
        return UNSPECIFIED_LABEL, UNSPECIFIED_LABEL

    return RISK_LABELS[level], PERCENT_BUCKETS[level]


def classify_for_tier(level: RawScoreLevel, tier: SourceTier) -> EvictionClassification:
    """Classify a live score and stamp it with the tier that produced it."""
    risk_label, percent_bucket = classify(level)
    return EvictionClassification(
        risk_label=risk_label,
        percent_bucket=percent_bucket,
        source_tier=tier,
    )
