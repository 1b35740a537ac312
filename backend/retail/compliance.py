"""
Compliance Matcher — Score a Shelf Photo Against Its Planogram.

The detector speaks in free-text class labels; the planogram speaks in
product identities. Matching bridges the two:

  1. expected[product_id] = Σ facings across every placement of that product
     (Unregistered placements expect nothing)
  2. detected[label]      = number of predictions carrying that label
  3. each expected product resolves to at most one label; the observed count
     is capped at expected + 2 so a flood of duplicate boxes cannot inflate
     the score
  4. score = round(100 × found / expected), clamped to 0–100

Label resolution sits behind `LabelResolver` so a stricter strategy (exact
SKU ids, once the detector emits them) can replace substring matching
without touching aggregation or scoring.

A failed detection call never produces a result — see ScanFailedError.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

import structlog

from integrations.detection import DetectionResult
from retail.layout import Layout, Registered

logger = structlog.get_logger()

# Observed count may exceed expectation by at most this many units
OVERDETECTION_CAP = 2

STATUS_COMPLIANT = "compliant"
STATUS_PARTIAL = "partial"
STATUS_MISSING = "missing"


class ScanFailedError(Exception):
    """The detection step produced nothing usable, so there is nothing to score."""


# ── Result containers ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExpectedProduct:
    product_id: str
    name: str
    count: int


@dataclass(frozen=True)
class ComplianceDetail:
    product_id: str
    product_name: str
    expected_count: int
    actual_count: int
    status: str
    matched_label: str | None = None

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "expectedCount": self.expected_count,
            "actualCount": self.actual_count,
            "status": self.status,
        }


@dataclass(frozen=True)
class ComplianceResult:
    """Scan payload, not yet persisted."""

    compliance_score: int
    total_expected: int
    total_found: int
    total_missing: int
    total_extra: int
    details: tuple[ComplianceDetail, ...]

    def details_json(self) -> list[dict]:
        return [d.to_dict() for d in self.details]


# ── Label resolution ───────────────────────────────────────────────────────


class LabelResolver(Protocol):
    def resolve(self, expected_name: str, detected_counts: Mapping[str, int]) -> str | None:
        """Return the detected label that stands for `expected_name`, or None."""
        ...


class SubstringLabelResolver:
    """Case-insensitive containment in either direction.

    When several labels qualify: exact (case-insensitive) equality wins,
    then the label seen most often, then the alphabetically first label.
    Blank labels and blank product names never match.
    """

    def resolve(self, expected_name: str, detected_counts: Mapping[str, int]) -> str | None:
        needle = (expected_name or "").strip().lower()
        if not needle:
            return None

        candidates = []
        for label, count in detected_counts.items():
            hay = (label or "").strip().lower()
            if not hay:
                continue
            if hay in needle or needle in hay:
                candidates.append((hay != needle, -count, label))

        if not candidates:
            return None
        return min(candidates)[2]


class ExactLabelResolver:
    """Case-insensitive equality only."""

    def resolve(self, expected_name: str, detected_counts: Mapping[str, int]) -> str | None:
        needle = (expected_name or "").strip().lower()
        if not needle:
            return None
        matches = sorted(label for label in detected_counts if (label or "").strip().lower() == needle)
        return matches[0] if matches else None


DEFAULT_RESOLVER: LabelResolver = SubstringLabelResolver()


# ── Aggregation ────────────────────────────────────────────────────────────


def aggregate_expected(layout: Layout) -> dict[str, ExpectedProduct]:
    """Sum facings per registered product, in first-seen order."""
    expected: dict[str, ExpectedProduct] = {}
    for row in layout:
        for placement in row.products:
            product = placement.product
            if not isinstance(product, Registered):
                continue
            current = expected.get(product.product_id)
            if current is None:
                expected[product.product_id] = ExpectedProduct(product.product_id, product.name, placement.facings)
            else:
                expected[product.product_id] = ExpectedProduct(
                    current.product_id, current.name, current.count + placement.facings
                )
    return expected


def count_labels(labels: Iterable[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for label in labels:
        counts[label] = counts.get(label, 0) + 1
    return counts


def classify(actual_count: int, expected_count: int) -> str:
    if actual_count >= expected_count:
        return STATUS_COMPLIANT
    if actual_count > 0:
        return STATUS_PARTIAL
    return STATUS_MISSING


def compliance_percentage(found: int, expected: int) -> int:
    """Round-half-up percentage, clamped to [0, 100]. 0 when nothing is expected."""
    if expected <= 0:
        return 0
    pct = (200 * found + expected) // (2 * expected)
    return max(0, min(100, pct))


# ── Scoring ────────────────────────────────────────────────────────────────


def score_compliance(
    expected: Mapping[str, ExpectedProduct],
    detected_counts: Mapping[str, int],
    resolver: LabelResolver | None = None,
) -> ComplianceResult:
    """Compare expected facings with detected label counts."""
    resolver = resolver or DEFAULT_RESOLVER

    details = []
    for item in expected.values():
        label = resolver.resolve(item.name, detected_counts)
        if label is None:
            actual = 0
        else:
            actual = min(detected_counts[label], item.count + OVERDETECTION_CAP)
        details.append(
            ComplianceDetail(
                product_id=item.product_id,
                product_name=item.name,
                expected_count=item.count,
                actual_count=actual,
                status=classify(actual, item.count),
                matched_label=label,
            )
        )

    total_expected = sum(d.expected_count for d in details)
    total_found = sum(d.actual_count for d in details)
    total_missing = sum(d.expected_count for d in details if d.status == STATUS_MISSING)
    total_extra = max(0, sum(detected_counts.values()) - total_found)

    return ComplianceResult(
        compliance_score=compliance_percentage(total_found, total_expected),
        total_expected=total_expected,
        total_found=total_found,
        total_missing=total_missing,
        total_extra=total_extra,
        details=tuple(details),
    )


def match_layout(
    layout: Layout,
    detection: DetectionResult | None,
    resolver: LabelResolver | None = None,
) -> ComplianceResult:
    """Score a committed layout against one detection result.

    Raises ScanFailedError when there is no detection result; a missing
    result is never treated as "nothing on the shelf".
    """
    if detection is None:
        raise ScanFailedError("No detection result to score")

    result = score_compliance(aggregate_expected(layout), count_labels(detection.labels), resolver)
    logger.info(
        "compliance.scored",
        score=result.compliance_score,
        expected=result.total_expected,
        found=result.total_found,
        missing=result.total_missing,
        extra=result.total_extra,
    )
    return result
