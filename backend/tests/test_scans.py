"""
Tests for the Scan Recorder — append-only compliance history.
"""

import uuid

import pytest

from integrations.detection import DetectionResult, Prediction
from retail.compliance import match_layout
from retail.layout import layout_from_json
from retail.scans import UNKNOWN_TEMPLATE_NAME, display_template_name, latest_scores, list_scans, record_scan
from retail.versioning import create_template

LAYOUT_JSON = [
    {
        "id": "r1",
        "label": "Top",
        "products": [
            {"instanceId": "i1", "skuId": "sku-a", "name": "Apple Juice", "facings": 4},
            {"instanceId": "i2", "skuId": "sku-b", "name": "Banana Milk", "facings": 2},
        ],
    }
]


def _detection(*labels):
    return DetectionResult(predictions=tuple(Prediction(label, 0.98) for label in labels))


async def _template(db, customer_id, name="Aisle 3"):
    return await create_template(db, customer_id=customer_id, name=name, layout=layout_from_json(LAYOUT_JSON))


@pytest.mark.asyncio
class TestRecordScan:
    async def test_record_scan_persists_payload(self, test_db, customer_id):
        template = await _template(test_db, customer_id)
        result = match_layout(layout_from_json(template.layout), _detection("apple juice", "apple juice"))

        scan = await record_scan(test_db, template, result, image_url="https://cdn.test/a.jpg", scanned_by="u1")

        assert scan.scan_id is not None
        assert scan.template_name == "Aisle 3"
        assert scan.customer_id == customer_id
        assert scan.compliance_score == 33
        assert scan.total_expected == 6
        assert scan.total_found == 2
        assert scan.total_missing == 2
        assert [d["status"] for d in scan.details] == ["partial", "missing"]

    async def test_list_newest_first_and_filtered(self, test_db, customer_id):
        first = await _template(test_db, customer_id, "Aisle 3")
        second = await _template(test_db, customer_id, "Aisle 4")
        layout = layout_from_json(LAYOUT_JSON)

        await record_scan(test_db, first, match_layout(layout, _detection()))
        await record_scan(test_db, second, match_layout(layout, _detection("apple juice")))
        await record_scan(test_db, first, match_layout(layout, _detection(*["apple juice"] * 4, "banana milk")))

        feed = await list_scans(test_db, customer_id)
        assert [r.template_name for r in feed] == ["Aisle 3", "Aisle 4", "Aisle 3"]
        assert [r.scan.compliance_score for r in feed] == [83, 17, 0]

        only_first = await list_scans(test_db, customer_id, template_id=first.template_id)
        assert [r.scan.compliance_score for r in only_first] == [83, 0]

    async def test_list_is_tenant_scoped(self, test_db, customer_id):
        template = await _template(test_db, customer_id)
        await record_scan(test_db, template, match_layout(layout_from_json(template.layout), _detection()))
        assert await list_scans(test_db, uuid.uuid4()) == []

    async def test_live_name_wins_after_rename(self, test_db, customer_id):
        template = await _template(test_db, customer_id, "Old Name")
        await record_scan(test_db, template, match_layout(layout_from_json(template.layout), _detection()))

        template.name = "New Name"
        await test_db.commit()

        records = await list_scans(test_db, customer_id)
        assert records[0].template_name == "New Name"
        assert records[0].scan.template_name == "Old Name"

    async def test_latest_scores(self, test_db, customer_id):
        template = await _template(test_db, customer_id)
        never_scanned = await _template(test_db, customer_id, "Aisle 9")
        layout = layout_from_json(template.layout)
        await record_scan(test_db, template, match_layout(layout, _detection()))
        await record_scan(test_db, template, match_layout(layout, _detection("banana milk", "banana milk")))

        scores = await latest_scores(test_db, [template.template_id, never_scanned.template_id])
        assert scores == {template.template_id: 33}


class TestDisplayName:
    def test_fallback_order(self):
        assert display_template_name("Live", "Then") == "Live"
        assert display_template_name(None, "Then") == "Then"
        assert display_template_name(None, None) == UNKNOWN_TEMPLATE_NAME
