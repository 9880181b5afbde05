from __future__ import annotations

import json

import pytest

import app as refmonster_app


@pytest.fixture
def client(monkeypatch, gateway):
    monkeypatch.setattr(refmonster_app, "gateway", gateway)
    refmonster_app.app.config["TESTING"] = True
    return refmonster_app.app.test_client()


TERMS = [
    {"term": "Elendel skyline", "description": "city setting"},
    {"term": "mistcloak", "description": "signature clothing"},
]


def test_index_injects_page_settings(client) -> None:
    res = client.get("/")
    html = res.get_data(as_text=True)

    assert res.status_code == 200
    assert "/*__SETTINGS__*/" not in html
    assert '"maxConcurrentLookups":' in html
    assert "mistborn era 2" in html


def test_generate_terms_extracts_terms_from_prose(api_key, client, fake_client) -> None:
    fake_client.models.queue('Here you go:\n{"terms": %s}\nGood luck!' % json.dumps(TERMS))

    res = client.post("/api/generate-terms", json={"query": "mistborn era 2"})
    body = res.get_json()

    assert res.status_code == 200
    assert body["terms"] == TERMS
    assert "elapsed" in body
    call = fake_client.models.calls[0]
    assert 'Query: "mistborn era 2"' in call["contents"]
    assert call["contents"].startswith("You are an expert reference researcher.")
    assert not call["config"].tools


def test_generate_terms_passes_items_through_unvalidated(api_key, client, fake_client) -> None:
    fake_client.models.queue({"terms": [{"term": "only a term"}, "loose string"]})

    res = client.post("/api/generate-terms", json={"query": "fantasy tavern"})

    assert res.status_code == 200
    assert res.get_json()["terms"] == [{"term": "only a term"}, "loose string"]


@pytest.mark.parametrize("payload", [{}, {"query": 42}, {"query": ""}, {"term": "x"}])
def test_generate_terms_rejects_invalid_query(api_key, client, fake_client, payload) -> None:
    res = client.post("/api/generate-terms", json=payload)

    assert res.status_code == 400
    assert res.get_json() == {"error": "Invalid query"}
    assert fake_client.models.calls == []


def test_non_json_body_is_a_validation_error(api_key, client) -> None:
    res = client.post("/api/generate-terms", data="query=x", content_type="text/plain")

    assert res.status_code == 400


def test_generate_terms_fails_when_no_terms(api_key, client, fake_client) -> None:
    fake_client.models.queue({"terms": []})

    res = client.post("/api/generate-terms", json={"query": "nothing"})

    assert res.status_code == 500
    assert res.get_json() == {"error": "No terms generated"}


def test_generate_terms_reports_unparseable_output(api_key, client, fake_client) -> None:
    fake_client.models.queue("I am not JSON at all")

    res = client.post("/api/generate-terms", json={"query": "anything"})

    assert res.status_code == 500
    assert res.get_json() == {"error": "Failed to parse gemini-2.5-flash response as JSON"}


@pytest.mark.parametrize("path", ["/api/generate-terms", "/api/search-images", "/api/search"])
def test_missing_credential_is_a_500_without_calling_the_model(no_api_key, client, fake_client, path) -> None:
    res = client.post(path, json={"query": "q", "term": "t"})

    assert res.status_code == 500
    assert res.get_json() == {"error": "GEMINI_API_KEY not configured"}
    assert fake_client.models.calls == []
    assert fake_client.api_keys == []


def test_search_images_keeps_only_http_urls(api_key, client, fake_client) -> None:
    fake_client.models.queue(
        'Found: {"imageUrls": ["https://museum.org/a.jpg", "ftp://x/b.png", 7, "/relative.png", "http://c.org/d.webp"]}'
    )

    res = client.post("/api/search-images", json={"term": "mistcloak"})

    assert res.status_code == 200
    assert res.get_json()["imageUrls"] == ["https://museum.org/a.jpg", "http://c.org/d.webp"]
    call = fake_client.models.calls[0]
    assert call["config"].tools[0].google_search is not None
    assert 'Search term: "mistcloak"' in call["contents"]


def test_search_images_returns_empty_list_without_failing(api_key, client, fake_client) -> None:
    fake_client.models.queue({"imageUrls": []})

    res = client.post("/api/search-images", json={"term": "obscure thing"})

    assert res.status_code == 200
    assert res.get_json()["imageUrls"] == []


def test_search_images_rejects_missing_term(api_key, client) -> None:
    res = client.post("/api/search-images", json={"query": "wrong field"})

    assert res.status_code == 400
    assert res.get_json() == {"error": "Invalid term"}


def test_search_images_upstream_empty_output(api_key, client, fake_client) -> None:
    fake_client.models.queue("")

    res = client.post("/api/search-images", json={"term": "x"})

    assert res.status_code == 500
    assert res.get_json() == {"error": "No output from gemini-2.5-flash"}


def test_aggregate_search_filters_results(api_key, client, fake_client) -> None:
    many = [f"https://cdn.example/{i}.jpg" for i in range(8)]
    fake_client.models.queue({
        "results": [
            {"term": "  steel pushing  ", "description": " allomancy ", "imageUrls": many},
            {"term": "", "description": "no term", "imageUrls": ["https://x/y.jpg"]},
            {"term": "no images", "imageUrls": ["not-a-url"]},
            "garbage",
            {"term": "kandra", "imageUrls": ["https://k/1.png"]},
        ]
    })

    res = client.post("/api/search", json={"query": "mistborn"})
    body = res.get_json()

    assert res.status_code == 200
    assert body["results"] == [
        {
            "term": "steel pushing",
            "description": "allomancy",
            "imageUrls": many[:6],
            "sources": many[:6],
        },
        {
            "term": "kandra",
            "description": "",
            "imageUrls": ["https://k/1.png"],
            "sources": ["https://k/1.png"],
        },
    ]


def test_aggregate_search_fails_when_nothing_survives(api_key, client, fake_client) -> None:
    fake_client.models.queue({"results": [{"term": "x", "imageUrls": []}]})

    res = client.post("/api/search", json={"query": "mistborn"})

    assert res.status_code == 500
    assert res.get_json() == {"error": "No valid image results were returned"}


def test_unexpected_exceptions_become_500(api_key, client, fake_client) -> None:
    fake_client.models.queue(RuntimeError("socket closed"))

    res = client.post("/api/generate-terms", json={"query": "x"})

    assert res.status_code == 500
    assert res.get_json() == {"error": "socket closed"}


def test_whitespace_query_is_passed_to_the_model(api_key, client, fake_client) -> None:
    fake_client.models.queue({"terms": [{"term": "fog", "description": "mood"}]})

    res = client.post("/api/generate-terms", json={"query": "   "})

    assert res.status_code == 200
    assert len(fake_client.models.calls) == 1
