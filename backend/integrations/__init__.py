"""
Integration clients package.

External services ShelfLens consumes:
  - Detection workflow  (hosted object detection over shelf photos)

Usage:
    from integrations.detection import DetectionClient

    client = DetectionClient.from_settings()
    result = await client.detect("https://cdn.example.com/aisle3.jpg")
"""

from integrations.detection import (
    DetectionClient,
    DetectionError,
    DetectionResult,
    Prediction,
    filter_for_display,
    parse_detection_payload,
)

__all__ = [
    "DetectionClient",
    "DetectionError",
    "DetectionResult",
    "Prediction",
    "filter_for_display",
    "parse_detection_payload",
]
