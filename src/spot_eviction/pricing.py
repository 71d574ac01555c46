"""Retail price retrieval and spot/pay-as-you-go join.

Prices come from the public Azure Retail Prices API, which pages results
through a ``NextPageLink`` field.
"""

from fnmatch import fnmatch
from typing import Iterable, Optional

import requests

from .app_logging import get_logger
from .config import PricingSettings
from .errors import PricingError
from .schema import EnrichedRow, EnrichmentResult, EvictionClassification, PriceRecord, PricingRow

logger = get_logger('pricing')

HOURLY_UNIT = "1 hour"


def build_filter(region: str, settings: PricingSettings) -> str:
    """OData filter for consumption VM prices in one region."""
    return (
        f"serviceName eq '{settings.service_name}' "
        f"and armRegionName eq '{region}' "
        f"and priceType eq 'Consumption'"
    )


def fetch_price_records(
    region: str,
    settings: Optional[PricingSettings] = None,
    session: Optional[requests.Session] = None,
) -> list[PriceRecord]:
    """Fetch every VM consumption price item for a region.

    Raises:
        PricingError: On network failure, bad status, or malformed JSON.
    """
    settings = settings or PricingSettings()
    session = session or requests.Session()

    url: Optional[str] = settings.api_url
    params: Optional[dict] = {
        "currencyCode": settings.currency_code,
        "$filter": build_filter(region, settings),
    }
    records: list[PriceRecord] = []
    pages = 0

    while url and pages < settings.max_pages:
        try:
            resp = session.get(url, params=params, timeout=settings.timeout)
        except requests.Timeout:
            raise PricingError(f"Request timed out while fetching prices for {region}.")
        except requests.RequestException as exc:
            raise PricingError(f"Network error fetching prices for {region}: {exc}")

        if resp.status_code != 200:
            raise PricingError(f"Retail prices API returned HTTP {resp.status_code} for {region}.")

        try:
            data = resp.json()
        except ValueError as exc:
            raise PricingError(f"Retail prices response is not valid JSON: {exc}")

        for item in data.get("Items", []):
            if not item.get("armSkuName"):
                continue
            records.append(PriceRecord.model_validate(item))

        pages += 1
        # NextPageLink already carries the query string
        url = data.get("NextPageLink")
        params = None

    if url:
        logger.warning("Stopped after %d pages of prices for %s", pages, region)
    logger.info("Fetched %d price records for %s", len(records), region)
    return records


def matches_patterns(sku: str, patterns: Optional[Iterable[str]]) -> bool:
    """Case-insensitive glob match; no patterns means everything matches."""
    patterns = list(patterns or [])
    if not patterns:
        return True
    return any(fnmatch(sku.lower(), pattern.lower()) for pattern in patterns)


def build_pricing_table(
    records: Iterable[PriceRecord],
    sku_patterns: Optional[Iterable[str]] = None,
) -> list[PricingRow]:
    """Join spot and pay-as-you-go prices per (sku, region, os).

    Low Priority meters and non-hourly units are ignored. When several
    meters exist for the same side, the lowest price is kept.
    """
    patterns = list(sku_patterns or [])
    rows: dict[tuple[str, str, str], PricingRow] = {}

    for record in records:
        if record.is_low_priority or record.retail_price is None:
            continue
        if record.unit_of_measure and record.unit_of_measure.lower() != HOURLY_UNIT:
            continue
        if not matches_patterns(record.arm_sku_name, patterns):
            continue

        os_name = record.operating_system
        row_key = (record.arm_sku_name, record.arm_region_name, os_name)
        row = rows.setdefault(row_key, PricingRow(
            sku=record.arm_sku_name,
            os=os_name,
            region=record.arm_region_name,
        ))

        field = "spot_price" if record.is_spot else "payg_price"
        current = getattr(row, field)
        if current is None or record.retail_price < current:
            setattr(row, field, record.retail_price)

    # Rows without a spot price are not spot-eligible
    table = [row for row in rows.values() if row.spot_price is not None]
    table.sort(key=lambda r: (r.region, r.sku, r.os))
    return table


def join_eviction(rows: list[PricingRow], result: EnrichmentResult) -> list[EnrichedRow]:
    """Attach each row's classification; OS variants share one key."""
    return [
        EnrichedRow(
            pricing=row,
            eviction=result.get(row.key, EvictionClassification.placeholder()),
        )
        for row in rows
    ]
