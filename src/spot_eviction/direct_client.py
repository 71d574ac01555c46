"""Direct REST fallback for spot placement scores.

Used when the SDK path keeps failing: posts straight to the Compute
resource provider, walking a list of API versions (newest first) until one
returns a score.
"""

from typing import Any, Optional

import requests

from .app_logging import get_logger, sanitize_token
from .config import DirectProtocolSettings
from .errors import ScoringError
from .schema import ErrorKind, RawScoreLevel
from .scoring_client import build_request_body, extract_scores

logger = get_logger('direct')

PLACEMENT_SCORE_PATH = (
    "/subscriptions/{subscription_id}/providers/Microsoft.Compute"
    "/locations/{location}/placementScores/spot/generate"
)


class DirectPlacementClient:
    """Bearer-authenticated POSTs against versioned placement score endpoints."""

    def __init__(
        self,
        settings: Optional[DirectProtocolSettings] = None,
        credential: Optional[Any] = None,
        session: Optional[requests.Session] = None,
        desired_count: int = 1,
    ):
        self.settings = settings or DirectProtocolSettings()
        self._credential = credential
        self.session = session or requests.Session()
        self.desired_count = desired_count

    @property
    def credential(self) -> Any:
        if self._credential is None:
            from azure.identity import DefaultAzureCredential
            self._credential = DefaultAzureCredential()
        return self._credential

    def _bearer_token(self) -> str:
        """Fetch a token for every call; long runs can outlive a cached one."""
        from azure.core.exceptions import ClientAuthenticationError

        try:
            token = self.credential.get_token(self.settings.scope).token
        except ClientAuthenticationError as e:
            raise ScoringError(ErrorKind.API_FAILED, f"Could not obtain access token: {e}") from e
        logger.debug("Obtained bearer token %s", sanitize_token(token))
        return token

    def _post(self, url: str, token: str, body: dict) -> list[RawScoreLevel]:
        try:
            resp = self.session.post(
                url,
                json=body,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                timeout=self.settings.timeout,
            )
        except requests.Timeout as e:
            raise ScoringError(ErrorKind.TIMEOUT, str(e)) from e
        except requests.RequestException as e:
            raise ScoringError(ErrorKind.API_FAILED, f"Network error: {e}") from e

        if resp.status_code != 200:
            raise ScoringError.from_status(resp.status_code, resp.text[:200])

        try:
            payload = resp.json()
        except ValueError as e:
            raise ScoringError(ErrorKind.PARSER_ERROR, f"Response is not valid JSON: {e}") from e

        return extract_scores(payload)

    def query_direct(self, subscription_id: str, region: str, sku: str) -> RawScoreLevel:
        """Score one SKU, trying each configured API version in order.

        Raises:
            ScoringError: NoScoreReturned when no version produced a score.
        """
        token = self._bearer_token()
        path = PLACEMENT_SCORE_PATH.format(subscription_id=subscription_id, location=region)
        body = build_request_body(region, [sku], self.desired_count)

        last_error: Optional[ScoringError] = None
        for api_version in self.settings.api_versions:
            url = f"{self.settings.endpoint.rstrip('/')}{path}?api-version={api_version}"
            try:
                levels = self._post(url, token, body)
            except ScoringError as e:
                logger.debug("Direct query %s/%s failed on %s: %s", region, sku, api_version, e)
                last_error = e
                continue

            if levels:
                logger.info("Direct query %s/%s succeeded with api-version %s", region, sku, api_version)
                return levels[0]
            logger.debug("Direct query %s/%s returned no scores on %s", region, sku, api_version)

        detail = f" (last error: {last_error})" if last_error else ""
        raise ScoringError(ErrorKind.NO_SCORE_RETURNED, f"No score in any API version{detail}")
