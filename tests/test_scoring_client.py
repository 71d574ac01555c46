"""Tests for the SDK-backed placement score service and response parsing."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from azure.core.exceptions import (
    AzureError,
    DecodeError,
    HttpResponseError,
    SerializationError,
    ServiceRequestError,
    ServiceResponseTimeoutError,
)

from spot_eviction.errors import ScoringError
from spot_eviction.schema import ErrorKind, RawScoreLevel
from spot_eviction.scoring_client import (
    ComputePlacementScoreService,
    build_request_body,
    extract_scores,
)


def _http_error(status_code):
    error = HttpResponseError(message=f"status {status_code}")
    error.status_code = status_code
    return error


class TestExtractScores:
    """Tests for extract_scores()."""

    def test_ordered_levels(self):
        payload = {"placementScores": [{"score": "High"}, {"score": "Low"}, {"score": "weird"}]}
        assert extract_scores(payload) == [
            RawScoreLevel.HIGH,
            RawScoreLevel.LOW,
            RawScoreLevel.UNSPECIFIED,
        ]

    @pytest.mark.parametrize("key", ["placementScores", "placement_scores", "placementScore"])
    def test_accepts_known_keys(self, key):
        assert extract_scores({key: [{"score": "Medium"}]}) == [RawScoreLevel.MEDIUM]

    def test_missing_list_is_empty(self):
        assert extract_scores({"desiredLocations": ["eastus"]}) == []

    @pytest.mark.parametrize("payload", [
        [],
        "text",
        {"placementScores": "High"},
        {"placementScores": ["High"]},
    ])
    def test_malformed_payload(self, payload):
        with pytest.raises(ScoringError) as exc_info:
            extract_scores(payload)
        assert exc_info.value.kind == ErrorKind.PARSER_ERROR


class TestBuildRequestBody:
    """Tests for build_request_body()."""

    def test_sizes_in_request_order(self):
        body = build_request_body("eastus", ["b_2", "a_4"], 3)
        assert body["desiredSizes"] == [{"sku": "b_2"}, {"sku": "a_4"}]
        assert body["desiredLocations"] == ["eastus"]
        assert body["desiredCount"] == 3


class TestComputePlacementScoreService:
    """Tests for ComputePlacementScoreService.get_scores()."""

    def test_dict_response(self):
        client = MagicMock()
        client.spot_placement_scores.post.return_value = {
            "placementScores": [{"score": "High"}, {"score": "Medium"}]
        }
        service = ComputePlacementScoreService("sub", client=client)

        levels = service.get_scores("eastus", ["a_2", "b_4"], 1)

        assert levels == [RawScoreLevel.HIGH, RawScoreLevel.MEDIUM]
        kwargs = client.spot_placement_scores.post.call_args.kwargs
        assert kwargs["location"] == "eastus"
        assert kwargs["spot_placement_scores_input"]["desiredSizes"] == [{"sku": "a_2"}, {"sku": "b_4"}]

    def test_model_response(self):
        class Model:
            def as_dict(self):
                return {"placement_scores": [{"score": "Low"}]}

        client = MagicMock()
        client.spot_placement_scores.post.return_value = Model()
        service = ComputePlacementScoreService("sub", client=client)

        assert service.get_scores("eastus", ["a_2"]) == [RawScoreLevel.LOW]

    @pytest.mark.parametrize("status,kind", [
        (429, ErrorKind.RATE_LIMITED),
        (400, ErrorKind.BAD_REQUEST),
        (504, ErrorKind.TIMEOUT),
        (500, ErrorKind.API_FAILED),
    ])
    def test_http_errors_mapped(self, status, kind):
        client = MagicMock()
        client.spot_placement_scores.post.side_effect = _http_error(status)
        service = ComputePlacementScoreService("sub", client=client)

        with pytest.raises(ScoringError) as exc_info:
            service.get_scores("eastus", ["a_2"])

        assert exc_info.value.kind == kind
        assert exc_info.value.status_code == status

    def test_decode_error_is_parser_error(self):
        client = MagicMock()
        client.spot_placement_scores.post.side_effect = DecodeError("bad body")
        service = ComputePlacementScoreService("sub", client=client)

        with pytest.raises(ScoringError) as exc_info:
            service.get_scores("eastus", ["a_2"])

        assert exc_info.value.kind == ErrorKind.PARSER_ERROR

    def test_timeout_mapped(self):
        client = MagicMock()
        client.spot_placement_scores.post.side_effect = ServiceResponseTimeoutError("timed out")
        service = ComputePlacementScoreService("sub", client=client)

        with pytest.raises(ScoringError) as exc_info:
            service.get_scores("eastus", ["a_2"])

        assert exc_info.value.kind == ErrorKind.TIMEOUT

    def test_connection_error_mapped(self):
        client = MagicMock()
        client.spot_placement_scores.post.side_effect = ServiceRequestError("dns failure")
        service = ComputePlacementScoreService("sub", client=client)

        with pytest.raises(ScoringError) as exc_info:
            service.get_scores("eastus", ["a_2"])

        assert exc_info.value.kind == ErrorKind.API_FAILED

    def test_other_sdk_errors_are_api_failures(self):
        client = MagicMock()
        client.spot_placement_scores.post.side_effect = SerializationError("cannot serialize")
        service = ComputePlacementScoreService("sub", client=client)

        with pytest.raises(ScoringError) as exc_info:
            service.get_scores("eastus", ["a_2"])

        assert exc_info.value.kind == ErrorKind.API_FAILED

    def test_client_construction_error_is_api_failure(self):
        service = ComputePlacementScoreService("sub", credential=MagicMock())

        with patch("azure.mgmt.compute.ComputeManagementClient", side_effect=AzureError("no client")):
            with pytest.raises(ScoringError) as exc_info:
                service.get_scores("eastus", ["a_2"])

        assert exc_info.value.kind == ErrorKind.API_FAILED

    def test_sdk_without_operations(self):
        service = ComputePlacementScoreService("sub", client=SimpleNamespace())

        with pytest.raises(ScoringError) as exc_info:
            service.get_scores("eastus", ["a_2"])

        assert exc_info.value.kind == ErrorKind.API_FAILED


class TestScoringError:
    """Tests for ScoringError.from_status()."""

    @pytest.mark.parametrize("status,kind", [
        (429, ErrorKind.RATE_LIMITED),
        (400, ErrorKind.BAD_REQUEST),
        (408, ErrorKind.TIMEOUT),
        (504, ErrorKind.TIMEOUT),
        (403, ErrorKind.API_FAILED),
        (503, ErrorKind.API_FAILED),
    ])
    def test_status_mapping(self, status, kind):
        assert ScoringError.from_status(status).kind == kind
