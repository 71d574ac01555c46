"""Static eviction estimate from the core count encoded in a SKU name."""

import re

from .schema import EvictionClassification, SourceTier


DEFAULT_CORE_COUNT = 2

_CORE_PATTERN = re.compile(r'_\D*?(\d+)')

# (minimum cores, risk label, bucket), checked top-down
CORE_THRESHOLDS = [
    (64, "Very Low", "0-5% (Est)"),
    (32, "Low", "5-10% (Est)"),
    (16, "Low-Medium", "10-15% (Est)"),
    (8, "Medium", "15-20% (Est)"),
]
SMALL_VM_ESTIMATE = ("Medium-High", "20-30% (Est)")


def core_count(sku: str) -> int:
    """First run of digits after an underscore, e.g. Standard_D16s_v5 -> 16."""
    match = _CORE_PATTERN.search(sku or "")
    if not match:
        return DEFAULT_CORE_COUNT
    return int(match.group(1))


def estimate(sku: str) -> EvictionClassification:
    """Heuristic classification: larger VMs are evicted less often."""
    cores = core_count(sku)

    risk_label, percent_bucket = SMALL_VM_ESTIMATE
    for minimum, label, bucket in CORE_THRESHOLDS:
        if cores >= minimum:
            risk_label, percent_bucket = label, bucket
            break

    return EvictionClassification(
        risk_label=risk_label,
        percent_bucket=percent_bucket,
        source_tier=SourceTier.STATIC_ESTIMATE,
    )
