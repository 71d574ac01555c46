"""Primary spot placement score client and response pairing.

The primary path goes through the azure-mgmt-compute SDK. Any transport
failure is translated into a ScoringError here, so callers only ever see
structured error kinds.
"""

from typing import Any, Optional, Protocol

from .app_logging import get_logger
from .errors import ScorePairingError, ScoringError
from .schema import ErrorKind, RawScoreLevel, ScoreKey

logger = get_logger('scoring')

# Response keys seen across SDK/REST versions
_SCORE_LIST_KEYS = ('placementScores', 'placement_scores', 'placementScore')


class PlacementScoreService(Protocol):
    """Anything that can score a list of SKUs in one region."""

    def get_scores(
        self,
        region: str,
        skus: list[str],
        desired_count: int = 1,
    ) -> list[RawScoreLevel]:
        """Return one level per SKU, in request order. Raises ScoringError."""
        ...


def build_request_body(region: str, skus: list[str], desired_count: int) -> dict:
    """Request payload shared by the SDK and direct REST paths."""
    return {
        "location": region,
        "desiredCount": desired_count,
        "desiredLocations": [region],
        "desiredSizes": [{"sku": sku} for sku in skus],
    }


def extract_scores(payload: Any) -> list[RawScoreLevel]:
    """Pull the ordered score list out of a response payload.

    Raises:
        ScoringError: ParserError if the payload has an unexpected shape.
    """
    if not isinstance(payload, dict):
        raise ScoringError(ErrorKind.PARSER_ERROR, f"Unexpected response type {type(payload).__name__}")

    entries = None
    for key in _SCORE_LIST_KEYS:
        if key in payload:
            entries = payload[key]
            break

    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ScoringError(ErrorKind.PARSER_ERROR, "Score list is not an array")

    levels = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ScoringError(ErrorKind.PARSER_ERROR, "Score entry is not an object")
        levels.append(RawScoreLevel.parse(entry.get('score')))
    return levels


def pair_scores(
    keys: list[ScoreKey],
    levels: list[RawScoreLevel],
) -> list[tuple[ScoreKey, RawScoreLevel]]:
    """Pair response entry i with request key i.

    The service does not echo SKUs back, so order is the only link between
    request and response. Any length mismatch means the pairing cannot be
    trusted.
    """
    if len(keys) != len(levels):
        raise ScorePairingError(
            f"Requested {len(keys)} SKUs but received {len(levels)} scores"
        )
    return list(zip(keys, levels))


def _response_to_dict(response: Any) -> Any:
    if response is None or isinstance(response, dict):
        return response
    if hasattr(response, 'as_dict'):
        # msrest-style models use snake_case keys
        return response.as_dict()
    try:
        return dict(response)
    except (TypeError, ValueError):
        return response


class ComputePlacementScoreService:
    """Spot placement scores through azure-mgmt-compute."""

    def __init__(
        self,
        subscription_id: str,
        credential: Optional[Any] = None,
        client: Optional[Any] = None,
    ):
        self.subscription_id = subscription_id
        self._credential = credential
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            from azure.identity import DefaultAzureCredential
            from azure.mgmt.compute import ComputeManagementClient

            credential = self._credential or DefaultAzureCredential()
            self._client = ComputeManagementClient(credential, self.subscription_id)
        return self._client

    def get_scores(
        self,
        region: str,
        skus: list[str],
        desired_count: int = 1,
    ) -> list[RawScoreLevel]:
        from azure.core.exceptions import (
            AzureError,
            DecodeError,
            HttpResponseError,
            ServiceRequestError,
            ServiceRequestTimeoutError,
            ServiceResponseError,
            ServiceResponseTimeoutError,
        )

        body = build_request_body(region, skus, desired_count)
        logger.debug("Requesting placement scores for %s in %s", skus, region)

        try:
            operations = getattr(self.client, 'spot_placement_scores', None)
            if operations is None:
                raise ScoringError(
                    ErrorKind.API_FAILED,
                    "Installed azure-mgmt-compute has no spot placement score operations",
                )
            response = operations.post(location=region, spot_placement_scores_input=body)
        except DecodeError as e:
            raise ScoringError(ErrorKind.PARSER_ERROR, str(e)) from e
        except HttpResponseError as e:
            status = getattr(e, 'status_code', None)
            if status is None:
                raise ScoringError(ErrorKind.API_FAILED, str(e)) from e
            raise ScoringError.from_status(status, str(e)) from e
        except (ServiceRequestTimeoutError, ServiceResponseTimeoutError) as e:
            raise ScoringError(ErrorKind.TIMEOUT, str(e)) from e
        except (ServiceRequestError, ServiceResponseError) as e:
            raise ScoringError(ErrorKind.API_FAILED, str(e)) from e
        except AzureError as e:
            raise ScoringError(ErrorKind.API_FAILED, str(e)) from e

        return extract_scores(_response_to_dict(response))
