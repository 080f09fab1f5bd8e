"""
In-memory tests for the HTTP surface (TestClient runs the lifespan)
"""
import pytest
from fastapi.testclient import TestClient

from star_tracker.main import create_app

from conftest import FakeLLM, FakeStore, make_repo


@pytest.fixture
def fakes():
    store = FakeStore([make_repo(i) for i in range(120)])
    llm = FakeLLM(reply={"success": False, "sql": "", "conditions": []})
    return store, llm


@pytest.fixture
def client(settings, fakes):
    store, llm = fakes
    with TestClient(create_app(settings, store=store, llm=llm)) as test_client:
        yield test_client


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_list_default(client):
    resp = client.get("/repositories", params={"offset": 100, "limit": 50})

    body = resp.json()
    assert resp.status_code == 200
    assert body["source"] == "default"
    assert len(body["results"]) == 20
    assert body["results"][0]["name"] == "repo-100"


def test_count(client):
    assert client.get("/repositories/count").json() == {"total": 120}


def test_structured_search(client, fakes):
    store, _ = fakes
    resp = client.post("/search", json={"term": "rust", "language": "all", "offset": 0, "limit": 50})

    assert resp.status_code == 200
    assert resp.json()["source"] == "search"
    assert store.queries[-1][1]["term"] == "%rust%"


@pytest.mark.parametrize("language,bound", [("", None), ("Ren'Py", "Ren'Py"), ("C++", "C++")])
def test_language_values_are_accepted(client, fakes, language, bound):
    store, _ = fakes
    resp = client.post("/search", json={"term": "rust", "language": language})

    assert resp.status_code == 200
    assert store.queries[-1][1].get("language") == bound


def test_ai_search_declined_serves_default_listing(client):
    ai = client.post("/search/ai", json={"utterance": "sing me a song", "offset": 0, "limit": 10}).json()
    default = client.get("/repositories", params={"offset": 0, "limit": 10}).json()

    assert ai == default


@pytest.mark.parametrize(
    "method,path,kwargs",
    [
        ("get", "/repositories", {"params": {"offset": -1}}),
        ("get", "/repositories", {"params": {"limit": 0}}),
        ("get", "/repositories", {"params": {"limit": 1000}}),
        ("post", "/search", {"json": {"term": "x", "offset": -5}}),
        ("post", "/search", {"json": {"term": "x" * 500}}),
        ("post", "/search", {"json": {"term": "x", "language": "x" * 41}}),
        ("post", "/search", {"json": {"term": "x", "language": "Go\nRust"}}),
        ("post", "/search/ai", {"json": {"utterance": "y" * 1000}}),
    ],
)
def test_malformed_requests_are_rejected(client, fakes, method, path, kwargs):
    store, _ = fakes
    before = len(store.queries)

    resp = getattr(client, method)(path, **kwargs)

    assert resp.status_code == 422
    assert len(store.queries) == before


def test_clients_are_closed_on_shutdown(settings, fakes):
    store, llm = fakes
    with TestClient(create_app(settings, store=store, llm=llm)):
        pass

    assert store.closed
    assert llm.closed
