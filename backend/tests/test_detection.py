"""
Tests for the Detection Service client.

Covers:
  - Workflow response parsing
  - Failure mapping (HTTP errors, transport errors, malformed payloads)
  - Display-only confidence filter
"""

import httpx
import pytest
from tenacity import wait_none

from integrations.detection import (
    DetectionClient,
    DetectionError,
    Prediction,
    filter_for_display,
    parse_detection_payload,
)

WORKFLOW_RESPONSE = {
    "outputs": [
        {
            "predictions": {
                "image": {"width": 1280, "height": 960},
                "predictions": [
                    {"class": "h1", "confidence": 0.97, "x": 120, "y": 80, "width": 60, "height": 100},
                    {"class": "h2", "confidence": 0.42, "x": 300, "y": 90, "width": 55, "height": 98},
                    {"class": "h1", "confidence": 0.99, "x": 180, "y": 82, "width": 61, "height": 101},
                ],
            }
        }
    ]
}


def _client(handler) -> DetectionClient:
    return DetectionClient(
        api_url="https://detect.test/workflow",
        api_key="test-key",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


class TestParsePayload:
    def test_parses_predictions_and_image(self):
        result = parse_detection_payload(WORKFLOW_RESPONSE)
        assert result.labels == ["h1", "h2", "h1"]
        assert result.image_width == 1280
        assert result.image_height == 960
        assert result.predictions[0].confidence == pytest.approx(0.97)

    def test_empty_predictions_are_usable(self):
        result = parse_detection_payload({"outputs": [{"predictions": {"predictions": []}}]})
        assert result.labels == []

    @pytest.mark.parametrize(
        "payload",
        [None, [], {}, {"outputs": []}, {"outputs": [{}]}, {"outputs": [{"predictions": "x"}]}],
    )
    def test_unusable_payloads_raise(self, payload):
        with pytest.raises(DetectionError):
            parse_detection_payload(payload)

    def test_skips_predictions_without_class(self):
        payload = {"outputs": [{"predictions": {"predictions": [{"confidence": 0.9}, {"class": "h3"}]}}]}
        assert parse_detection_payload(payload).labels == ["h3"]

    @pytest.mark.parametrize("confidence", ["high", {"value": 0.9}, [0.9]])
    def test_non_numeric_confidence_raises(self, confidence):
        payload = {"outputs": [{"predictions": {"predictions": [{"class": "cola", "confidence": confidence}]}}]}
        with pytest.raises(DetectionError, match="confidence"):
            parse_detection_payload(payload)


class TestDisplayFilter:
    def test_default_threshold_and_ordering(self):
        predictions = parse_detection_payload(WORKFLOW_RESPONSE).predictions
        kept = filter_for_display(predictions)
        assert [p.confidence for p in kept] == [0.99, 0.97]

    def test_explicit_threshold(self):
        kept = filter_for_display([Prediction("a", 0.5), Prediction("b", 0.4)], min_confidence=0.45)
        assert [p.label for p in kept] == ["a"]


@pytest.mark.asyncio
class TestDetectionClient:
    async def test_detect_posts_workflow_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = request.read()
            return httpx.Response(200, json=WORKFLOW_RESPONSE)

        result = await _client(handler).detect("https://cdn.test/shelf.jpg")
        assert seen["url"] == "https://detect.test/workflow"
        assert b'"api_key":"test-key"' in seen["body"].replace(b" ", b"")
        assert b"https://cdn.test/shelf.jpg" in seen["body"]
        assert len(result.predictions) == 3

    async def test_http_error_raises_detection_error(self):
        client = _client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(DetectionError, match="500"):
            await client.detect("https://cdn.test/shelf.jpg")

    async def test_malformed_body_raises_detection_error(self):
        client = _client(lambda request: httpx.Response(200, json={"unexpected": True}))
        with pytest.raises(DetectionError):
            await client.detect("https://cdn.test/shelf.jpg")

    async def test_non_json_body_raises_detection_error(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(DetectionError):
            await client.detect("https://cdn.test/shelf.jpg")

    async def test_non_numeric_confidence_raises_detection_error(self):
        body = {"outputs": [{"predictions": {"predictions": [{"class": "cola", "confidence": "high"}]}}]}
        client = _client(lambda request: httpx.Response(200, json=body))
        with pytest.raises(DetectionError):
            await client.detect("https://cdn.test/shelf.jpg")

    async def test_transport_errors_retry_then_fail(self, monkeypatch):
        monkeypatch.setattr(DetectionClient._post.retry, "wait", wait_none())
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(DetectionError):
            await _client(handler).detect("https://cdn.test/shelf.jpg")
        assert len(attempts) == 3

    async def test_missing_api_key_fails_fast(self):
        client = DetectionClient(api_url="https://detect.test/workflow", api_key="")
        with pytest.raises(DetectionError, match="not configured"):
            await client.detect("https://cdn.test/shelf.jpg")

    async def test_missing_image_url(self):
        with pytest.raises(DetectionError):
            await _client(lambda request: httpx.Response(200, json=WORKFLOW_RESPONSE)).detect("")
