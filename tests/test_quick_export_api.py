import json

import pytest
from fastapi.testclient import TestClient

from app import api
from app.backend import process
from populator.errors import TemplateFetchError

XLSX_CT = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def client():
    return TestClient(api.app)


def _item(**overrides):
    payload = {
        "id": "1",
        "originalName": "Land",
        "itemCode": "<site.purchase.price>",
        "value": 500000,
        "dataType": "currency",
        "category": "Site Costs",
        "mappingStatus": "confirmed",
    }
    payload.update(overrides)
    return payload


def test_health(client):
    resp = client.get("/api/quick-export")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["supportedFormats"] == ["xlsm", "xlsx"]


def test_quick_export_returns_populated_file(client, make_workbook, read_workbook):
    template = make_workbook({"S": {"A1": "<site.purchase.price>", "A2": "<missing>"}})

    resp = client.post(
        "/api/quick-export",
        data={"items": json.dumps([_item()]), "document_name": "Mill Lane"},
        files={"template": ("appraisal.xlsx", template, XLSX_CT)},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(XLSX_CT)
    assert 'filename="Mill_Lane_appraisal_' in resp.headers["content-disposition"]
    assert resp.headers["x-matched-count"] == "1"
    assert resp.headers["x-unmatched-count"] == "1"
    assert json.loads(resp.headers["x-population-stats"])["placeholdersCleared"] == 1
    assert read_workbook(resp.content)["S"]["A1"].value == 500000


def test_items_must_be_json(client, make_workbook):
    resp = client.post(
        "/api/quick-export",
        data={"items": "not json"},
        files={"template": ("t.xlsx", make_workbook({"S": {}}), XLSX_CT)},
    )
    assert resp.status_code == 400


def test_invalid_item_shape(client, make_workbook):
    resp = client.post(
        "/api/quick-export",
        data={"items": json.dumps({"rows": []})},
        files={"template": ("t.xlsx", make_workbook({"S": {}}), XLSX_CT)},
    )
    assert resp.status_code == 400


def test_no_usable_items(client, make_workbook):
    resp = client.post(
        "/api/quick-export",
        data={"items": json.dumps([_item(mappingStatus="suggested")])},
        files={"template": ("t.xlsx", make_workbook({"S": {}}), XLSX_CT)},
    )
    assert resp.status_code == 400
    assert "No confirmed or matched items" in resp.json()["detail"]


def test_template_source_required(client):
    resp = client.post("/api/quick-export", data={"items": json.dumps([_item()])})
    assert resp.status_code == 400


def test_unreadable_template(client):
    resp = client.post(
        "/api/quick-export",
        data={"items": json.dumps([_item()])},
        files={"template": ("t.xlsx", b"garbage", XLSX_CT)},
    )
    assert resp.status_code == 400


def test_fetch_failure_maps_to_502(client, monkeypatch):
    async def failing_fetch(url):
        raise TemplateFetchError(url, 404, "NoSuchKey")

    monkeypatch.setattr(process, "fetch_template_bytes", failing_fetch)
    resp = client.post(
        "/api/quick-export",
        data={"items": json.dumps([_item()]), "template_url": "https://example.com/t.xlsm"},
    )

    assert resp.status_code == 502
    assert resp.json()["detail"] == {"error": "Failed to fetch template", "status": 404, "body": "NoSuchKey"}


def test_debug_codification(client):
    resp = client.post("/api/debug-codification", json={"items": [_item(), _item(id="2", mappingStatus="unmatched")]})
    assert resp.status_code == 200
    report = resp.json()
    assert report["stats"]["total"] == 2
    assert report["stats"]["usable"] == 1


def test_debug_codification_rejects_bad_body(client):
    resp = client.post("/api/debug-codification", content=b"{", headers={"content-type": "application/json"})
    assert resp.status_code == 400
