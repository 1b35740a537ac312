"""
Detection Service Client

Sends a shelf photo URL to the hosted object-detection workflow and
normalizes its response into a flat list of predictions.

Response shape consumed:
  {"outputs": [{"predictions": {
      "image": {"width": 1280, "height": 960},
      "predictions": [{"class": "cola 330ml", "confidence": 0.97,
                       "x": 120, "y": 80, "width": 60, "height": 100}, ...]}}]}

Scoring only needs labels; confidence and geometry are kept for the
overlay display, which applies its own confidence floor.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import get_settings

logger = structlog.get_logger()


class DetectionError(Exception):
    """The detection call failed or returned nothing usable."""


@dataclass(frozen=True)
class Prediction:
    label: str
    confidence: float = 0.0
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None


@dataclass(frozen=True)
class DetectionResult:
    predictions: tuple[Prediction, ...] = ()
    image_width: int | None = None
    image_height: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def labels(self) -> list[str]:
        return [p.label for p in self.predictions]


def parse_detection_payload(payload: Any) -> DetectionResult:
    """Normalize a workflow response. Raises DetectionError if the shape is wrong."""
    if not isinstance(payload, dict):
        raise DetectionError("Detection response is not an object")
    outputs = payload.get("outputs")
    if not isinstance(outputs, list) or not outputs or not isinstance(outputs[0], dict):
        raise DetectionError("Detection response has no outputs")
    block = outputs[0].get("predictions")
    if not isinstance(block, dict):
        raise DetectionError("Detection response has no predictions block")

    predictions = []
    for raw in block.get("predictions") or []:
        if not isinstance(raw, dict) or raw.get("class") is None:
            continue
        try:
            confidence = float(raw.get("confidence") or 0.0)
        except (TypeError, ValueError) as exc:
            raise DetectionError(f"Prediction confidence is not a number: {raw.get('confidence')!r}") from exc
        predictions.append(
            Prediction(
                label=str(raw["class"]),
                confidence=confidence,
                x=raw.get("x"),
                y=raw.get("y"),
                width=raw.get("width"),
                height=raw.get("height"),
            )
        )

    image = block.get("image") if isinstance(block.get("image"), dict) else {}
    return DetectionResult(
        predictions=tuple(predictions),
        image_width=image.get("width"),
        image_height=image.get("height"),
        raw=payload,
    )


def filter_for_display(predictions, min_confidence: float | None = None) -> list[Prediction]:
    """Predictions confident enough to draw on the overlay, most confident first."""
    if min_confidence is None:
        min_confidence = get_settings().detection_display_min_confidence
    kept = [p for p in predictions if p.confidence >= min_confidence]
    return sorted(kept, key=lambda p: p.confidence, reverse=True)


class DetectionClient:
    """Client for the hosted detection workflow."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "DetectionClient":
        settings = get_settings()
        return cls(
            api_url=settings.detection_api_url,
            api_key=settings.detection_api_key,
            timeout=settings.detection_timeout_seconds,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post(self, body: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.post(self.api_url, json=body)

    async def detect(self, image_url: str) -> DetectionResult:
        """Run detection for one image. Raises DetectionError on any failure."""
        if not image_url:
            raise DetectionError("image_url is required")
        if not self.api_key:
            raise DetectionError("Detection API key is not configured")

        body = {
            "api_key": self.api_key,
            "inputs": {"image": {"type": "url", "value": image_url}},
        }
        try:
            response = await self._post(body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("detection.request_failed", status=exc.response.status_code, image_url=image_url[:100])
            raise DetectionError(f"Detection API error: {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("detection.request_failed", error=str(exc), image_url=image_url[:100])
            raise DetectionError(f"Detection API unreachable: {exc}") from exc

        result = parse_detection_payload(payload)
        logger.info("detection.completed", predictions=len(result.predictions), image_url=image_url[:100])
        return result
