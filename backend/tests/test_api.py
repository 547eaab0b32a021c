"""Tests for the HTTP endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from main import app

ELECTRICITY_CSV = b"Question\nWhat was your total electricity consumption and renewable share?\n"
COMPANY_DATA = {
    "company_name": "Acme Components Ltd",
    "country": "Germany",
    "reporting_period": "2024",
    "electricity_kwh": 50000,
    "renewable_percent": 60,
}


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["engine_loaded"] is True
    assert body["mapping_rules"] == 15


def test_rules_stats(client):
    body = client.get("/api/v1/rules/stats").json()
    assert body["mapping_rules"] == 15
    assert body["metric_keys"] == 17
    assert body["classifier_rules"] == 3
    assert body["metric_keys_by_unit"]["kWh"] >= 1


def test_emission_factor_lookup(client):
    germany = client.get("/api/v1/emission-factors/Germany").json()
    assert germany["factor_tco2e_per_kwh"] == 0.000385
    assert germany["is_default"] is False

    unknown = client.get("/api/v1/emission-factors/Atlantis").json()
    assert unknown["is_default"] is True


def test_parse_upload(client):
    response = client.post(
        "/api/v1/questionnaire/parse", files={"file": ("questions.csv", ELECTRICITY_CSV, "text/csv")}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["questions"][0]["text"] == "What was your total electricity consumption and renewable share?"
    assert body["metadata"]["column_mapping"]["question_text"] == "Question"


@pytest.mark.parametrize("filename,detail", [("notes.txt", "Unsupported file format"), ("old.doc", "Legacy .doc")])
def test_parse_rejects_unsupported_uploads(client, filename, detail):
    response = client.post("/api/v1/questionnaire/parse", files={"file": (filename, b"data", "text/plain")})
    assert response.status_code == 400
    assert detail in response.json()["detail"]


def test_parse_with_mapping(client):
    content = b"Ref,Prompt\nEN-1,Energy use in kWh for the year\n"
    response = client.post(
        "/api/v1/questionnaire/parse-with-mapping",
        files={"file": ("manual.csv", content, "text/csv")},
        data={"mapping": json.dumps({"question_text": "Prompt", "reference_id": "Ref"})},
    )
    assert response.status_code == 200
    assert response.json()["questions"][0]["reference_id"] == "EN-1"


def test_parse_with_mapping_rejects_bad_json(client):
    response = client.post(
        "/api/v1/questionnaire/parse-with-mapping",
        files={"file": ("manual.csv", ELECTRICITY_CSV, "text/csv")},
        data={"mapping": "{not json"},
    )
    assert response.status_code == 400


def test_draft_endpoint(client):
    payload = {
        "questions": [
            {"id": "a", "row_index": 2, "text": "What was your total electricity consumption and renewable share?"},
            {"id": "b", "row_index": 3, "text": "Describe how waste is handled."},
        ],
        "company_data": COMPANY_DATA,
        "config": {"verbosity": "standard"},
    }
    response = client.post("/api/v1/questionnaire/draft", json=payload)
    assert response.status_code == 200
    body = response.json()

    assert body["total_questions"] == 2
    assert [d["question_id"] for d in body["drafts"]] == ["a", "b"]
    assert body["drafts"][0]["answer_stage"] == "rich_template"
    assert body["drafts"][1]["confidence_source"] == "unknown"
    assert body["summary"]["total"] == 2
    assert body["match_statistics"]["total"] == 2
    assert set(body["question_types"]) == {"policy", "measure", "kpi"}
    for name, counted in body["question_types"].items():
        assert counted == sum(1 for d in body["drafts"] if d["question_type"] == name.upper())
    assert sum(body["question_types"].values()) == 2


def _split_stream(text):
    status_part, _, payload = text.partition("---JSON---\n")
    statuses = [json.loads(line) for line in status_part.splitlines() if line.strip()]
    return statuses, payload


def test_fill_streams_progress_then_drafts(client):
    response = client.post(
        "/api/v1/questionnaire/fill",
        files={"file": ("questions.csv", ELECTRICITY_CSV, "text/csv")},
        data={"company_data": json.dumps(COMPANY_DATA), "config": json.dumps({"verbosity": "concise"})},
    )
    assert response.status_code == 200
    statuses, payload = _split_stream(response.text)

    assert statuses[0]["state"] == "processing"
    assert statuses[-1]["state"] == "ready"
    assert statuses[-1]["progress"] == 100
    assert statuses[-1]["output_filename"] == "questions_drafts.json"

    result = json.loads(payload)
    assert len(result["drafts"]) == 1
    assert result["drafts"][0]["answer"].startswith("Our total electricity consumption was 50,000 kWh")
    assert result["summary"]["provided"] == 1


def test_fill_reports_parse_errors_in_stream(client):
    response = client.post(
        "/api/v1/questionnaire/fill",
        files={"file": ("empty.csv", b"Question\nTotal\n", "text/csv")},
    )
    assert response.status_code == 200
    statuses, payload = _split_stream(response.text)
    assert statuses[-1]["state"] == "error"
    assert payload == ""


def test_fill_rejects_invalid_company_data(client):
    response = client.post(
        "/api/v1/questionnaire/fill",
        files={"file": ("questions.csv", ELECTRICITY_CSV, "text/csv")},
        data={"company_data": json.dumps({"electricity_kwh": "lots"})},
    )
    assert response.status_code == 400


def test_draft_rejects_non_finite_numbers(client):
    body = (
        '{"questions": [{"id": "a", "row_index": 2, "text": "What was your total electricity consumption?"}], '
        '"company_data": {"country": "Germany", "electricity_kwh": Infinity}}'
    )
    response = client.post(
        "/api/v1/questionnaire/draft", content=body, headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 422
