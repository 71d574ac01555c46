"""Pydantic models for spot pricing and eviction classification."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RawScoreLevel(str, Enum):
    """Coarse placement score returned by the scoring service."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    NONE = "None"
    UNSPECIFIED = "Unspecified"

    @classmethod
    def parse(cls, value: Optional[str]) -> "RawScoreLevel":
        """Map a service score string onto a level (unknown values -> Unspecified)."""
        if value is None:
            return cls.UNSPECIFIED
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for level in cls:
            if level.value.lower() == normalized:
                return level
        return cls.UNSPECIFIED


class SourceTier(str, Enum):
    """Which enrichment tier produced a classification."""
    LIVE_SCORE = "LiveScore"
    DIRECT_PROTOCOL = "DirectProtocol"
    STATIC_ESTIMATE = "StaticEstimate"
    ERROR_PLACEHOLDER = "ErrorPlaceholder"


class ErrorKind(str, Enum):
    """Structured failure categories from the scoring transport."""
    RATE_LIMITED = "RateLimited"
    PARSER_ERROR = "ParserError"
    BAD_REQUEST = "BadRequest"
    TIMEOUT = "Timeout"
    API_FAILED = "APIFailed"
    NO_SCORE_RETURNED = "NoScoreReturned"


# Higher wins when merging results for the same key
TIER_CONFIDENCE = {
    SourceTier.LIVE_SCORE: 3,
    SourceTier.DIRECT_PROTOCOL: 2,
    SourceTier.STATIC_ESTIMATE: 1,
    SourceTier.ERROR_PLACEHOLDER: 0,
}


class ScoreKey(BaseModel):
    """A (region, SKU) pair to classify."""
    model_config = ConfigDict(frozen=True)

    region: str
    sku: str

    def __str__(self) -> str:
        return f"{self.region}/{self.sku}"


class EvictionClassification(BaseModel):
    """Eviction risk for one key. Terminal once produced."""
    model_config = ConfigDict(frozen=True)

    risk_label: str
    percent_bucket: str
    source_tier: Optional[SourceTier] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def confidence(self) -> int:
        if self.source_tier is None:
            return -1
        return TIER_CONFIDENCE[self.source_tier]

    @property
    def is_error(self) -> bool:
        return self.source_tier == SourceTier.ERROR_PLACEHOLDER

    @property
    def is_live(self) -> bool:
        return self.source_tier in (SourceTier.LIVE_SCORE, SourceTier.DIRECT_PROTOCOL)

    @classmethod
    def placeholder(cls) -> "EvictionClassification":
        """Neutral value used when enrichment is skipped."""
        return cls(risk_label="N/A", percent_bucket="N/A")

    @classmethod
    def error(cls, kind: ErrorKind) -> "EvictionClassification":
        """Error placeholder; the kind doubles as label and bucket for visibility."""
        return cls(
            risk_label=kind.value,
            percent_bucket=kind.value,
            source_tier=SourceTier.ERROR_PLACEHOLDER,
            error_kind=kind,
        )


EnrichmentResult = dict[ScoreKey, EvictionClassification]


class PriceRecord(BaseModel):
    """One item from the retail prices API."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    arm_sku_name: str = Field(alias="armSkuName")
    arm_region_name: str = Field(alias="armRegionName")
    product_name: str = Field("", alias="productName")
    meter_name: str = Field("", alias="meterName")
    sku_name: str = Field("", alias="skuName")
    unit_of_measure: str = Field("", alias="unitOfMeasure")
    retail_price: Optional[float] = Field(None, alias="retailPrice")
    price_type: str = Field("Consumption", alias="type")

    @property
    def is_spot(self) -> bool:
        return "spot" in self.meter_name.lower() or "spot" in self.sku_name.lower()

    @property
    def is_low_priority(self) -> bool:
        return "low priority" in self.meter_name.lower() or "low priority" in self.sku_name.lower()

    @property
    def operating_system(self) -> str:
        return "Windows" if "windows" in self.product_name.lower() else "Linux"


def calculate_savings(spot_price: Optional[float], payg_price: Optional[float]) -> str:
    """Percentage saved by running spot instead of pay-as-you-go."""
    if spot_price is None or payg_price is None or payg_price <= 0:
        return "N/A"
    return f"{(payg_price - spot_price) / payg_price * 100:.1f}%"


class PricingRow(BaseModel):
    """Spot and pay-as-you-go prices for one SKU/OS/region."""
    sku: str
    os: str
    region: str
    spot_price: Optional[float] = None
    payg_price: Optional[float] = None

    @property
    def key(self) -> ScoreKey:
        return ScoreKey(region=self.region, sku=self.sku)

    @property
    def savings(self) -> str:
        return calculate_savings(self.spot_price, self.payg_price)


class EnrichedRow(BaseModel):
    """A pricing row joined with its eviction classification."""
    pricing: PricingRow
    eviction: EvictionClassification

    def as_record(self) -> dict[str, str]:
        """Flatten into display/export columns."""
        def price(value: Optional[float]) -> str:
            return f"${value:.4f}" if value is not None else "N/A"

        tier = self.eviction.source_tier
        return {
            "SKU": self.pricing.sku,
            "OS": self.pricing.os,
            "Region": self.pricing.region,
            "Spot Price": price(self.pricing.spot_price),
            "PAYG Price": price(self.pricing.payg_price),
            "Savings": self.pricing.savings,
            "Eviction Risk": self.eviction.risk_label,
            "Eviction Rate": self.eviction.percent_bucket,
            "Source": tier.value if tier else "N/A",
        }
