import pytest
from starlette.testclient import TestClient

from wayfinder.api.app import app
from wayfinder.service import build_service


@pytest.fixture
def client(monkeypatch, make_settings):
    # Patch the cached service factory so API tests stay offline (no geocoder key, no store URL).
    import wayfinder.api.routes as routes

    service = build_service(make_settings())
    monkeypatch.setattr(routes, "_service", lambda: service)
    with TestClient(app) as c:
        yield c, service


def test_position_denied_degrades_to_stored_default(client):
    c, _ = client
    resp = c.get("/api/position", params={"sensor_error": "permission_denied"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["position"]["source"] == "stored_default"
    assert data["verified"] is True
    assert data["meta"]["sources"]["sensor"]["status"] == "error"


def test_position_from_reported_fix(client):
    c, service = client
    resp = c.get(
        "/api/position", params={"lat": -4.3175, "lng": 15.3117, "accuracy": 8, "device_id": "phone-1"}
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["position"]["source"] == "sensor"
    assert data["position"]["address"] == "Gombe, Kinshasa"
    assert data["verified"] is False
    assert service.cache.get_current_position("phone-1") is not None


def test_position_requires_both_coordinates(client):
    c, _ = client
    resp = c.get("/api/position", params={"lat": -4.3})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_position_with_every_fallback_disabled_is_503(client):
    c, _ = client
    payload = {
        "sensor_error": "permission_denied",
        "settings_overrides": {
            "resolver": {"fallback_to_network": False, "fallback_to_stored_default": False, "fallback_to_static": False}
        },
    }
    resp = c.post("/api/position", json=payload)
    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "PERMISSION_DENIED"


def test_search_endpoint(client):
    c, _ = client
    resp = c.get("/api/search", params={"q": "aero", "city": "Kinshasa", "country": "CD"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["results"][0]["id"] == "kin-airport-ndjili"
    assert data["meta"]["sources"]["places_store"]["status"] == "skipped"


def test_search_rejects_disallowed_overrides(client):
    c, _ = client
    resp = c.post(
        "/api/search",
        json={"query": "gombe", "context": {"city": "Kinshasa"}, "settings_overrides": {"cache": {"dir": "/tmp"}}},
    )
    assert resp.status_code == 400
    assert "cache" in resp.json()["detail"]["message"]


def test_geocode_without_provider_is_404(client):
    c, _ = client
    resp = c.get("/api/geocode", params={"address": "Avenue du Commerce"})
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NOT_FOUND"


def test_popular_nearby_and_cities(client):
    c, _ = client
    popular = c.get("/api/popular", params={"city": "Abidjan", "max_results": 1}).json()
    assert [r["id"] for r in popular["results"]] == ["abj-airport-fhb"]

    nearby = c.get("/api/nearby", params={"lat": -4.3217, "lng": 15.3069, "radius_km": 1}).json()
    assert nearby["results"][0]["id"] == "kin-marche-central"

    cities = c.get("/api/cities").json()
    assert [city["name"] for city in cities["cities"]][:2] == ["Kinshasa", "Lubumbashi"]


def test_public_settings_hide_credentials(client):
    c, _ = client
    data = c.get("/api/settings").json()
    assert "providers" not in data
    assert data["search"]["dedup_radius_m"] == 500


def test_delete_cache_wipes_position(client):
    c, service = client
    c.get("/api/position", params={"lat": -4.3175, "lng": 15.3117, "device_id": "phone-1"})
    assert service.cache.get_current_position("phone-1") is not None

    resp = c.delete("/api/cache")
    assert resp.json() == {"cleared": True}
    assert service.cache.get_current_position("phone-1") is None


def test_one_clients_fix_is_never_served_to_another(client):
    c, service = client
    c.get("/api/position", params={"lat": -4.4419, "lng": 15.2663})
    c.get("/api/position", params={"lat": -4.4419, "lng": 15.2663, "device_id": "phone-1"})

    anonymous = c.get("/api/position", params={"sensor_error": "permission_denied"}).json()
    other = c.get("/api/position", params={"sensor_error": "permission_denied", "device_id": "phone-2"}).json()
    same = c.get("/api/position", params={"sensor_error": "permission_denied", "device_id": "phone-1"}).json()

    assert anonymous["position"]["source"] == "stored_default"
    assert other["position"]["source"] == "stored_default"
    assert same["position"]["source"] == "sensor"
    assert service.cache.get_current_position() is None


def test_search_uses_cached_position_only_for_the_same_device(client):
    c, _ = client
    c.get("/api/position", params={"lat": -4.3217, "lng": 15.3069, "device_id": "phone-1"})

    anonymous = c.get("/api/search", params={"q": "aero", "city": "Kinshasa"}).json()
    owner = c.get("/api/search", params={"q": "aero", "city": "Kinshasa", "device_id": "phone-1"}).json()

    assert anonymous["results"][0]["distance_meters"] is None
    assert owner["results"][0]["distance_meters"] > 0
