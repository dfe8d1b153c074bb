import pytest

from upcycle_search.tools import material_store
from upcycle_search.tools.categories import Category

NYC = (40.7128, -74.0060)


@pytest.fixture()
def store(fake_es, make_material, point_north):
    def _add(doc_id, km, **kwargs):
        lat, lng = point_north(*NYC, km)
        fake_es.add("materials", doc_id, make_material(lat, lng, **kwargs))

    fake_es.add_at = _add
    return fake_es


def test_find_nearby_boundary_is_inclusive(store):
    store.add_at("edge", 10.0)
    store.add_at("outside", 10.5)
    found = material_store.find_nearby(store, *NYC, 10.0)
    assert [m.material.id for m in found] == ["edge"]
    assert found[0].distance_km == pytest.approx(10.0)


def test_find_nearby_orders_by_distance_and_filters_status(store):
    store.add_at("far", 8.0)
    store.add_at("near", 2.0)
    store.add_at("taken", 1.0, status="requested")
    store.add_at("beyond", 15.0)
    found = material_store.find_nearby(store, *NYC, 10.0)
    assert [m.material.id for m in found] == ["near", "far"]
    assert [round(m.distance_km, 1) for m in found] == [2.0, 8.0]


def test_find_nearby_query_shape(store):
    material_store.find_nearby(store, *NYC, 5.0, categories=[Category.METALS, "Glassware"])
    op, index, query, sort, size = store.calls[-1]
    assert (op, index, size) == ("search", "materials", material_store.NEARBY_RESULT_LIMIT)
    filters = query["bool"]["filter"]
    assert {"term": {"status": "available"}} in filters
    assert {"terms": {"category": ["Glassware", "Metals"]}} in filters
    geo = next(f["geo_distance"] for f in filters if "geo_distance" in f)
    assert geo == {
        "distance": f"{material_store.store_radius_km(5.0)}km",
        "location": {"lat": NYC[0], "lon": NYC[1]},
    }
    assert sort[0]["_geo_distance"]["order"] == "asc"


def test_store_radius_covers_elasticsearch_arc(store):
    # on Elasticsearch's larger earth radius the edge point is ~1.4e-5 km further out
    assert material_store.store_radius_km(10.0) > 10.0 * 6371.0088 / 6371.0
    store.add_at("edge", 10.0)
    assert [m.material.id for m in material_store.find_nearby(store, *NYC, 10.0)] == ["edge"]


def test_haversine_has_the_final_say_on_the_boundary(store):
    store.add_at("just-outside", 10.0005)
    padded = {
        "geo_distance": {
            "distance": f"{material_store.store_radius_km(10.0)}km",
            "location": {"lat": NYC[0], "lon": NYC[1]},
        }
    }
    raw = store.search(index="materials", query={"bool": {"filter": [padded]}})
    # the store lets it through; the haversine check drops it
    assert len(raw["hits"]["hits"]) == 1
    assert material_store.find_nearby(store, *NYC, 10.0) == []
    assert material_store.find_all_nearby(store, *NYC, 10.0) == []


def test_find_all_nearby_pages_through_point_in_time(store):
    for i, km in enumerate([4.0, 1.0, 3.0, 5.0, 2.0]):
        store.add_at(f"m{i}", km)
    store.add_at("beyond", 7.0)

    found = material_store.find_all_nearby(store, *NYC, 6.0, page_size=2)

    assert [round(m.distance_km) for m in found] == [1, 2, 3, 4, 5]
    searches = [c for c in store.calls if c[0] == "search"]
    assert len(searches) == 3
    assert all(c[1] == "materials" and c[4] == 2 for c in searches)
    assert store.closed_pits == ["pit-1"]


def test_find_all_nearby_is_not_capped_by_result_limit(store):
    for i in range(material_store.NEARBY_RESULT_LIMIT + 5):
        store.add_at(f"m{i}", 1.0 + i / 1000)
    found = material_store.find_all_nearby(store, *NYC, 5.0)
    assert len(found) == material_store.NEARBY_RESULT_LIMIT + 5


def test_find_all_nearby_closes_point_in_time_on_error(store):
    from elastic_transport import ConnectionError

    store.error = ConnectionError("cluster down")
    with pytest.raises(ConnectionError):
        material_store.find_all_nearby(store, *NYC, 5.0)
    assert store.closed_pits == ["pit-1"]


def test_find_nearby_category_filter(store):
    store.add_at("chip", 1.0, category="Electronics")
    store.add_at("pipe", 1.0, category="Metals")
    found = material_store.find_nearby(store, *NYC, 5.0, categories=[Category.METALS])
    assert [m.material.id for m in found] == ["pipe"]
    assert material_store.find_nearby(store, *NYC, 5.0, categories=[]) == []


def test_malformed_documents_are_skipped(store, caplog):
    store.add_at("good", 1.0)
    store.add_at("bad", 2.0, category="Wood")
    found = material_store.find_nearby(store, *NYC, 5.0)
    assert [m.material.id for m in found] == ["good"]
    assert "Skipping malformed material bad" in caplog.text


def test_find_available_is_newest_first(store):
    store.add_at("old", 500.0, createdAt="2024-01-01T00:00:00Z")
    store.add_at("new", 900.0, createdAt="2025-06-01T00:00:00Z")
    store.add_at("gone", 1.0, status="picked")
    found = material_store.find_available(store)
    assert [m.id for m in found] == ["new", "old"]


def test_fetch_providers_skips_missing(fake_es):
    fake_es.add("users", "u1", {"name": "Lab One", "averageRating": 4.5, "totalReviews": 3})
    providers = material_store.fetch_providers(fake_es, ["u1", "u2", None, "u1"])
    assert list(providers) == ["u1"]
    assert providers["u1"].average_rating == 4.5
    assert fake_es.calls[-1] == ("mget", "users", ["u1", "u2"])


def test_fetch_providers_without_ids_makes_no_call(fake_es):
    assert material_store.fetch_providers(fake_es, [None, ""]) == {}
    assert fake_es.calls == []


def test_attach_providers(store):
    store.add("users", "prov-1", {"name": "Maker Space", "averageRating": 3})
    store.add_at("a", 1.0)
    store.add_at("b", 2.0, provider_id="nobody")
    found = material_store.attach_providers(
        store, material_store.find_nearby(store, *NYC, 5.0)
    )
    assert found[0].provider.name == "Maker Space"
    assert found[1].provider is None


def test_find_user_location(fake_es):
    fake_es.add(
        "users",
        "u1",
        {"email": "maker@example.com", "location": {"type": "Point", "coordinates": [-73.9, 40.7]}},
    )
    fake_es.add("users", "u2", {"email": "nowhere@example.com"})
    assert material_store.find_user_location(fake_es, " Maker@Example.com ") == (40.7, -73.9)
    assert material_store.find_user_location(fake_es, "nowhere@example.com") is None
    assert material_store.find_user_location(fake_es, "ghost@example.com") is None
