import copy
import math

import pytest
from fastapi.testclient import TestClient

from upcycle_search.config import settings
from upcycle_search.tools.geo import EARTH_RADIUS_KM, distance_km

NYC = (40.7128, -74.0060)


def north_of(lat: float, lng: float, km: float) -> tuple[float, float]:
    """Point ``km`` due north of ``(lat, lng)``; haversine along a meridian is exact."""
    return lat + math.degrees(km / EARTH_RADIUS_KM), lng


@pytest.fixture(autouse=True)
def set_test_env(monkeypatch, tmp_path):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("ES_HOST", "http://elasticsearch:9200")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.setenv("APP_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("OUTBOUND_ALLOWLIST", raising=False)

    monkeypatch.setattr(settings, "es_materials_index", "materials")
    monkeypatch.setattr(settings, "es_users_index", "users")
    monkeypatch.setattr(settings, "es_retry_delay_seconds", 0)
    monkeypatch.setattr(settings, "data_dir", str(tmp_path))


ES_EARTH_RADIUS_KM = 6371.0088


def _es_distance_km(lat1, lon1, lat2, lon2):
    # Elasticsearch's arc distance uses its own mean earth radius
    return distance_km(lat1, lon1, lat2, lon2) * ES_EARTH_RADIUS_KM / EARTH_RADIUS_KM


def _matches(source: dict, clause: dict) -> bool:
    if "term" in clause:
        (field, value), = clause["term"].items()
        return source.get(field) == value
    if "terms" in clause:
        (field, values), = clause["terms"].items()
        return source.get(field) in values
    if "geo_distance" in clause:
        geo = dict(clause["geo_distance"])
        radius_km = float(geo.pop("distance").rstrip("km"))
        (field, center), = geo.items()
        coords = (source.get(field) or {}).get("coordinates")
        if not coords:
            return False
        return _es_distance_km(center["lat"], center["lon"], coords[1], coords[0]) <= radius_km
    raise AssertionError(f"FakeES does not understand clause {clause}")


class _FakeES:
    def __init__(self):
        self.calls = []
        self.docs = {}  # index -> {id: source}
        self.indices = self._Indices()
        self.error = None
        self.pits = {}  # pit id -> index
        self.closed_pits = []

    class _Indices:
        def __init__(self):
            self.created = []

        def create(self, index, mappings=None, **kwargs):
            self.created.append((index, mappings))

        def exists(self, index):
            return True

    def info(self):
        return {"cluster_name": "test_cluster"}

    def add(self, index: str, doc_id: str, source: dict):
        self.docs.setdefault(index, {})[doc_id] = copy.deepcopy(source)

    def open_point_in_time(self, index: str, keep_alive: str):
        pit_id = f"pit-{len(self.pits) + 1}"
        self.pits[pit_id] = index
        return {"id": pit_id}

    def close_point_in_time(self, id: str):
        self.closed_pits.append(id)
        return {"succeeded": True}

    def search(
        self, index=None, query=None, sort=None, size=10, pit=None, search_after=None, **kwargs
    ):
        if pit is not None:
            assert index is None, "a point-in-time search must not name an index"
            index = self.pits[pit["id"]]
        self.calls.append(("search", index, copy.deepcopy(query), copy.deepcopy(sort), size))
        if self.error is not None:
            raise self.error
        clauses = []
        if query and "bool" in query:
            clauses = query["bool"].get("filter", [])
        elif query and "term" in query:
            clauses = [query]

        hits = [
            {"_id": doc_id, "_source": copy.deepcopy(src)}
            for doc_id, src in self.docs.get(index, {}).items()
            if all(_matches(src, c) for c in clauses)
        ]
        for key in sort or []:
            if "_geo_distance" in key:
                center = key["_geo_distance"]["location"]

                def _d(hit, center=center):
                    lng, lat = hit["_source"]["location"]["coordinates"]
                    return _es_distance_km(center["lat"], center["lon"], lat, lng)

                hits.sort(key=_d)
            elif "createdAt" in key:
                hits.sort(key=lambda h: h["_source"].get("createdAt") or "", reverse=True)
        # last sort value stands in for the implicit _shard_doc tiebreaker
        for position, hit in enumerate(hits):
            hit["sort"] = [position]
        if search_after is not None:
            hits = hits[search_after[-1] + 1:]
        res = {"hits": {"hits": hits[:size]}}
        if pit is not None:
            res["pit_id"] = pit["id"]
        return res

    def mget(self, index: str, ids):
        self.calls.append(("mget", index, list(ids)))
        store = self.docs.get(index, {})
        docs = []
        for doc_id in ids:
            if doc_id in store:
                docs.append({"_id": doc_id, "found": True, "_source": copy.deepcopy(store[doc_id])})
            else:
                docs.append({"_id": doc_id, "found": False})
        return {"docs": docs}


@pytest.fixture()
def fake_es(monkeypatch):
    fake = _FakeES()

    import upcycle_search.tools.es_client as es_client

    monkeypatch.setattr(es_client, "Elasticsearch", lambda *args, **kwargs: fake)
    monkeypatch.setattr(es_client, "_es_client", None)
    return fake


@pytest.fixture()
def make_material():
    counter = {"n": 0}

    def _make(lat, lng, category="Electronics", provider_id="prov-1", **extra):
        counter["n"] += 1
        doc = {
            "title": extra.pop("title", f"Material {counter['n']}"),
            "category": category,
            "description": "",
            "quantity": "1 box",
            "providerId": provider_id,
            "location": {"type": "Point", "coordinates": [lng, lat]},
            "status": extra.pop("status", "available"),
            "createdAt": extra.pop("createdAt", f"2025-01-{counter['n']:02d}T00:00:00Z"),
        }
        doc.update(extra)
        return doc

    return _make


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


def chat_body(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture()
def fake_llm(monkeypatch):
    """Stub the outbound HTTP call made by category inference.

    ``fake_llm.reply(content)`` sets a 200 chat-completion reply;
    ``fake_llm.status(code, body, text)`` sets a raw response;
    ``fake_llm.raise_(exc)`` makes the call raise.
    """
    from upcycle_search.tools import http

    class _LLM:
        def __init__(self):
            self.calls = []
            self.response = FakeResponse(200, chat_body('{"categories": []}'))
            self.exc = None

        def reply(self, content: str):
            self.response = FakeResponse(200, chat_body(content))

        def status(self, status_code: int, body=None, text: str = ""):
            self.response = FakeResponse(status_code, body, text)

        def raise_(self, exc: Exception):
            self.exc = exc

    llm = _LLM()

    def fake_request(method, url, headers=None, timeout=None, allow_redirects=None, **kwargs):
        llm.calls.append(
            {"method": method, "url": url, "headers": headers, "timeout": timeout, **kwargs}
        )
        if llm.exc is not None:
            raise llm.exc
        return llm.response

    monkeypatch.setattr(http.requests, "request", fake_request)
    return llm


@pytest.fixture()
def client(fake_es):
    from upcycle_search.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def point_north():
    return north_of
