"""
E2E tests for the drug search, expansion and resolution endpoints.
"""
from __future__ import annotations

from fastapi.testclient import TestClient

EXTERNAL_DRUG = {
    "id": "EU-77",
    "name": "Ozempic 1 mg oldatos injekció",
    "activeIngredient": "semaglutide",
    "atcCode": "a10bj06",
}


def result_ids(payload: dict) -> list[str]:
    return [hit["drug"]["id"] for hit in payload["results"]]


def test_root_redirects_to_docs(api_client: TestClient):
    response = api_client.get("/", follow_redirects=False)
    assert response.status_code in (302, 307)
    assert response.headers["location"] == "/docs"


def test_openapi_contains_core_routes(api_client: TestClient):
    paths = api_client.get("/openapi.json").json()["paths"]
    assert "/drugs/search" in paths
    assert "/drugs/{drug_id}/{source}" in paths
    assert "/sources/status" in paths


def test_search_by_brand_name(api_client: TestClient):
    response = api_client.get("/drugs/search", params={"q": "sortis"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["query"] == "sortis"
    assert {"OGYI-1002", "OGYI-1003"} <= set(result_ids(payload))
    assert payload["count"] == len(payload["results"])


def test_search_can_hide_withdrawn_products(api_client: TestClient):
    response = api_client.get(
        "/drugs/search", params={"q": "sortis", "include_inactive": "false"}
    )
    ids = result_ids(response.json())
    assert "OGYI-1002" in ids
    assert "OGYI-1003" not in ids


def test_search_rejects_unknown_route(api_client: TestClient):
    response = api_client.get("/drugs/search", params={"q": "sortis", "route": "teleport"})
    assert response.status_code == 400


def test_get_drug_and_missing_drug(api_client: TestClient):
    response = api_client.get("/drugs/OGYI-1004")
    assert response.status_code == 200
    assert response.json()["base_name"] == "Crestor"

    missing = api_client.get("/drugs/OGYI-0000")
    assert missing.status_code == 404


def test_ingredient_breakdown_skips_placeholder(api_client: TestClient):
    payload = api_client.get("/drugs/OGYI-1005/ingredients").json()
    assert payload["ingredients"] == ["irbesartan", "diuretics"]
    assert payload["is_generic_placeholder"] is True
    assert "irbesartan" in payload["translations"]
    assert "diuretics" not in payload["translations"]
    assert payload["classification_name"] == "irbesartan and diuretics"


def test_generic_alternatives_exclude_the_record(api_client: TestClient):
    payload = api_client.get("/drugs/OGYI-1002/alternatives").json()
    ids = [drug["id"] for drug in payload["drugs"]]
    assert "OGYI-1001" in ids
    assert "OGYI-1002" not in ids


def test_classification_listing(api_client: TestClient):
    payload = api_client.get("/drugs/classification/C10AA").json()
    ids = {drug["id"] for drug in payload["drugs"]}
    assert {"OGYI-1001", "OGYI-1004"} <= ids


def test_expansion_cache_flow(api_client: TestClient):
    created = api_client.post("/drugs/expansion", json=EXTERNAL_DRUG)
    assert created.status_code == 201
    entry = created.json()
    assert entry["drug"]["id"] == "ext_EU-77"
    assert entry["drug"]["route"] == "iv"
    assert entry["drug"]["atc_code"] == "A10BJ06"
    assert entry["original_id"] == "EU-77"

    search = api_client.get("/drugs/search", params={"q": "ozempic"}).json()
    assert "ext_EU-77" in result_ids(search)
    assert api_client.get("/drugs/ext_EU-77").status_code == 200

    listed = api_client.get("/drugs/expansion").json()
    assert [item["drug"]["id"] for item in listed] == ["ext_EU-77"]
    assert api_client.get("/drugs/expansion/stats").json()["count"] == 1

    removed = api_client.delete("/drugs/expansion/ext_EU-77")
    assert removed.status_code == 200
    assert removed.json() == {"removed": True, "drug_id": "ext_EU-77"}
    assert api_client.delete("/drugs/expansion/ext_EU-77").status_code == 404


def test_expansion_clear_and_prune(api_client: TestClient):
    api_client.post("/drugs/expansion", json=EXTERNAL_DRUG)
    assert api_client.post("/drugs/expansion/prune").json() == {"removed": 0}
    assert api_client.delete("/drugs/expansion").status_code == 204
    assert api_client.get("/drugs/expansion").json() == []


def test_expansion_rejects_missing_name(api_client: TestClient):
    response = api_client.post("/drugs/expansion", json={"id": "EU-1"})
    assert response.status_code == 422


def test_label_resolution_by_brand(api_client: TestClient):
    payload = api_client.get("/drugs/OGYI-1004/labels").json()
    assert payload["status"] == "found"
    assert payload["method"] == "brand_name"
    assert payload["record"]["brand_name"] == "CRESTOR"


def test_label_resolution_miss(api_client: TestClient):
    payload = api_client.get("/drugs/OGYI-1005/labels").json()
    assert payload["status"] == "not_found"
    assert payload["matched"] is False


def test_unknown_source_is_not_found(api_client: TestClient):
    assert api_client.get("/drugs/OGYI-1004/pubmed").status_code == 404


def test_authorization_resolution_with_shortage(api_client: TestClient):
    payload = api_client.get("/drugs/OGYI-1009/authorizations").json()
    assert payload["status"] == "found"
    record = payload["record"]
    assert record["medicine"]["name"] == "Humira"
    assert [item["status"] for item in record["shortages"]] == ["Ongoing"]
    dates = [item["dissemination_date"] for item in record["safety_communications"]]
    assert dates == ["20/07/2026", "03/11/2024"]


def test_component_resolution_marks_placeholder(api_client: TestClient):
    payload = api_client.get("/drugs/OGYI-1005/authorizations/components").json()
    assert payload["combination"]["status"] == "found"
    components = payload["components"]
    assert [item["ingredient"] for item in components] == ["irbesartan", "diuretics"]
    assert components[1]["is_generic_placeholder"] is True
    assert components[1]["candidates"] == []


def test_clinical_record_and_summary(api_client: TestClient):
    record = api_client.get("/drugs/OGYI-1009/clinical/record").json()
    assert record["has_label_data"] is True
    assert record["has_boxed_warning"] is True
    assert record["has_shortage"] is True
    severities = [warning["severity"] for warning in record["warnings"]]
    assert severities == sorted(
        severities, key=["critical", "high", "moderate", "info"].index
    )

    summary = api_client.get("/drugs/OGYI-1009/clinical/summary").json()
    assert summary["drug_id"] == "OGYI-1009"
    assert summary["critical_count"] == 1
    assert summary["top_warning"]["type"] == "boxed"
    assert summary["warning_count"] == len(record["warnings"])


def test_sources_status(api_client: TestClient):
    payload = api_client.get("/sources/status").json()
    assert [item["source"] for item in payload["sources"]] == ["openfda", "ema"]
    assert payload["catalog"]["records"] == 13
    assert payload["expansion_cache"]["capacity"] == 1000


def test_shortages_and_communications(api_client: TestClient):
    shortages = api_client.get("/sources/shortages").json()
    assert shortages["count"] == 1
    assert shortages["shortages"][0]["medicine"] == "Humira"

    communications = api_client.get("/sources/communications", params={"limit": 1}).json()
    assert communications["count"] == 1
    assert communications["communications"][0]["dissemination_date"] == "20/07/2026"

    stats = api_client.get("/sources/authorizations/stats").json()
    assert stats["total_medicines"] == 4
    assert stats["resolved_shortages"] == 1
