from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from PHARMALINK.server.app import app
from PHARMALINK.server.database.database import MemoryKeyValueRepository
from PHARMALINK.server.routes.drugs import expansion_cache, label_matcher

LABEL_DOCUMENTS: dict[str, dict[str, Any]] = {
    'openfda.brand_name:"Humira"': {
        "set_id": "608d4f0d-b19f-46d3-749a-7159aa5f933d",
        "openfda": {
            "brand_name": ["HUMIRA"],
            "generic_name": ["ADALIMUMAB"],
            "manufacturer_name": ["AbbVie Inc."],
        },
        "boxed_warning": [
            "WARNING: SERIOUS INFECTIONS AND MALIGNANCY Patients treated with "
            "adalimumab are at increased risk for serious infections."
        ],
        "warnings_and_cautions": ["Hypersensitivity reactions have been reported."],
    },
    'openfda.brand_name:"Crestor"': {
        "openfda": {
            "brand_name": ["CRESTOR"],
            "generic_name": ["ROSUVASTATIN CALCIUM"],
        },
        "contraindications": ["Active liver disease."],
    },
}


# -----------------------------------------------------------------------------
def label_transport(request: httpx.Request) -> httpx.Response:
    search = request.url.params.get("search")
    if search is None:
        return httpx.Response(200, json={"results": []})
    document = LABEL_DOCUMENTS.get(search)
    if document is None:
        return httpx.Response(404, json={"error": {"code": "NOT_FOUND"}})
    return httpx.Response(200, json={"meta": {}, "results": [document]})


# -----------------------------------------------------------------------------
@pytest.fixture(scope="session")
def api_client() -> Iterator[TestClient]:
    # swapped before the first request so no test touches disk or network
    expansion_cache.store = MemoryKeyValueRepository()
    label_matcher.client = httpx.AsyncClient(
        transport=httpx.MockTransport(label_transport)
    )
    with TestClient(app) as client:
        yield client
