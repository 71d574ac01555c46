"""Tests for score classification and the static core-count estimator."""

import pytest

from spot_eviction.classifier import PERCENT_BUCKETS, RISK_LABELS, classify, classify_for_tier
from spot_eviction.estimator import core_count, estimate
from spot_eviction.schema import EvictionClassification, RawScoreLevel, SourceTier


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize("level,expected", [
        (RawScoreLevel.HIGH, ("Very Low", "0-5%")),
        (RawScoreLevel.MEDIUM, ("Low-Medium", "5-15%")),
        (RawScoreLevel.LOW, ("Medium-High", "15-30%")),
        (RawScoreLevel.NONE, ("High", "30%+")),
        (RawScoreLevel.UNSPECIFIED, ("N/A", "N/A")),
    ])
    def test_standard_table(self, level, expected):
        assert classify(level) == expected

    def test_deterministic(self):
        for level in RawScoreLevel:
            assert classify(level) == classify(level)

    def test_every_scored_level_has_a_bucket(self):
        assert set(PERCENT_BUCKETS) == set(RISK_LABELS)

    def test_raw_strings_accepted(self):
        assert classify("Low") == ("Medium-High", "15-30%")
        assert classify("DataNotFoundOrStale") == ("N/A", "N/A")

    def test_live_tiers_share_buckets(self):
        for level in RawScoreLevel:
            live = classify_for_tier(level, SourceTier.LIVE_SCORE)
            direct = classify_for_tier(level, SourceTier.DIRECT_PROTOCOL)
            assert live.percent_bucket == direct.percent_bucket

    def test_classify_for_tier_stamps_tier(self):
        result = classify_for_tier(RawScoreLevel.HIGH, SourceTier.DIRECT_PROTOCOL)
        assert result.risk_label == "Very Low"
        assert result.percent_bucket == "0-5%"
        assert result.source_tier == SourceTier.DIRECT_PROTOCOL
        assert result.error_kind is None


class TestRawScoreLevelParse:
    """Tests for RawScoreLevel.parse()."""

    @pytest.mark.parametrize("raw,expected", [
        ("High", RawScoreLevel.HIGH),
        ("medium", RawScoreLevel.MEDIUM),
        (" LOW ", RawScoreLevel.LOW),
        ("None", RawScoreLevel.NONE),
        ("DataNotFoundOrStale", RawScoreLevel.UNSPECIFIED),
        (None, RawScoreLevel.UNSPECIFIED),
        (RawScoreLevel.HIGH, RawScoreLevel.HIGH),
    ])
    def test_parse(self, raw, expected):
        assert RawScoreLevel.parse(raw) == expected


class TestStaticEstimator:
    """Tests for the core-count heuristic."""

    @pytest.mark.parametrize("sku,cores", [
        ("Standard_D4s_v5", 4),
        ("Standard_D16s_v5", 16),
        ("Standard_E64s_v5", 64),
        ("Standard_NC24ads_A100_v4", 24),
        ("Standard_F2", 2),
        ("Basic", 2),
        ("", 2),
    ])
    def test_core_count(self, sku, cores):
        assert core_count(sku) == cores

    @pytest.mark.parametrize("sku,label,bucket", [
        ("Standard_D4s_v5", "Medium-High", "20-30% (Est)"),
        ("Standard_D8s_v5", "Medium", "15-20% (Est)"),
        ("Standard_D16s_v5", "Low-Medium", "10-15% (Est)"),
        ("Standard_D32s_v5", "Low", "5-10% (Est)"),
        ("Standard_D64s_v5", "Very Low", "0-5% (Est)"),
        ("Standard_M128s", "Very Low", "0-5% (Est)"),
    ])
    def test_thresholds(self, sku, label, bucket):
        result = estimate(sku)
        assert result.risk_label == label
        assert result.percent_bucket == bucket
        assert result.source_tier == SourceTier.STATIC_ESTIMATE

    def test_risk_never_increases_with_cores(self):
        """Larger VMs must never be estimated as riskier than smaller ones."""
        risk_order = ["Very Low", "Low", "Low-Medium", "Medium", "Medium-High"]
        labels = [estimate(f"Standard_D{cores}s_v5").risk_label for cores in (4, 8, 16, 32, 64)]

        assert labels == ["Medium-High", "Medium", "Low-Medium", "Low", "Very Low"]
        ranks = [risk_order.index(label) for label in labels]
        assert ranks == sorted(ranks, reverse=True)

    def test_sku_without_digits_uses_default(self):
        assert estimate("Standard_Basic").risk_label == "Medium-High"


class TestEvictionClassification:
    """Tests for classification helpers."""

    def test_placeholder_has_no_tier(self):
        placeholder = EvictionClassification.placeholder()
        assert placeholder.risk_label == "N/A"
        assert placeholder.percent_bucket == "N/A"
        assert placeholder.source_tier is None

    def test_error_uses_kind_for_label_and_bucket(self):
        from spot_eviction.schema import ErrorKind

        error = EvictionClassification.error(ErrorKind.RATE_LIMITED)
        assert error.risk_label == "RateLimited"
        assert error.percent_bucket == "RateLimited"
        assert error.is_error
        assert error.error_kind == ErrorKind.RATE_LIMITED

    def test_confidence_ordering(self):
        from spot_eviction.schema import ErrorKind

        live = classify_for_tier(RawScoreLevel.HIGH, SourceTier.LIVE_SCORE)
        direct = classify_for_tier(RawScoreLevel.HIGH, SourceTier.DIRECT_PROTOCOL)
        static = estimate("Standard_D4s_v5")
        error = EvictionClassification.error(ErrorKind.TIMEOUT)

        assert live.confidence > direct.confidence > static.confidence > error.confidence

    def test_classification_is_immutable(self):
        result = estimate("Standard_D4s_v5")
        with pytest.raises(Exception):
            result.risk_label = "changed"
