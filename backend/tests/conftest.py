"""
Fixtures partagées : store en mémoire, comptes de test et client HTTP.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from core.security import create_access_token
from database import get_store
from models.common import GeoPin, Location
from models.mission import MissionCreate
from services.mission_service import create_mission
from services.pricing_service import calculate_price
from services.security_level_service import DEFAULT_SECURITY_LEVELS
from tests.fakes import InMemoryDocumentStore

CLIENT = {
    "user_id":        "usr_client01",
    "name":           "Awa Ndiaye",
    "role":           "client",
    "anonymous_code": "OT-CQNT2",
    "is_active":      True,
}

DRIVER = {
    "user_id":   "usr_driver01",
    "name":      "Moussa Diop",
    "role":      "driver",
    "is_active": True,
}

ADMIN = {
    "user_id":   "usr_admin01",
    "name":      "Jane Doe",
    "role":      "admin",
    "is_active": True,
}

# Profil éligible à tous les niveaux
DRIVER_PROFILE = {
    "driver_id":           DRIVER["user_id"],
    "driver_code":         "DR-DRVR7",
    "max_security_level":  "critical",
    "certification_level": "critical",
    "stats":               {"average_rating": 4.95, "completed_missions": 250},
}


def seed_security_levels(store: InMemoryDocumentStore) -> None:
    for level in DEFAULT_SECURITY_LEVELS:
        store.seed("security_levels", level.model_dump(mode="json"))


def make_location(address: str, lat: float, lng: float) -> Location:
    return Location(
        address=address,
        coordinates=GeoPin(lat=lat, lng=lng),
        timestamp=datetime(2026, 11, 2, 9, 0, tzinfo=timezone.utc),
    )


def auth_headers(user: dict) -> dict:
    token = create_access_token({"sub": user["user_id"]}, expires_delta=timedelta(minutes=5))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def seeded_store(store):
    seed_security_levels(store)
    for user in (CLIENT, DRIVER, ADMIN):
        store.seed("users", user)
    store.seed("driver_profiles", DRIVER_PROFILE)
    return store


@pytest.fixture
def pickup():
    return make_location("1 Place de la Concorde, Paris", 48.8656, 2.3212)


@pytest.fixture
def dropoff():
    return make_location("35 Rue du Faubourg Saint-Honoré, Paris", 48.8700, 2.3160)


@pytest.fixture
def api(seeded_store):
    from main import app

    app.dependency_overrides[get_store] = lambda: seeded_store
    yield TestClient(app)
    app.dependency_overrides.clear()


async def create_test_mission(store, pickup, dropoff, **overrides):
    """Mission `pending` du client de test (10 km / 20 min par défaut)."""
    level = overrides.pop("security_level", "standard")
    price = calculate_price(overrides.pop("distance_km", 10), overrides.pop("duration_minutes", 20), level)
    data = {
        "client_id":          CLIENT["user_id"],
        "client_code":        CLIENT["anonymous_code"],
        "type":               "person",
        "security_level":     level,
        "pickup":             pickup,
        "dropoff":            dropoff,
        "scheduled_for":      datetime(2026, 11, 2, 9, 30, tzinfo=timezone.utc),
        "estimated_duration": 20,
        "base_price":         price.base_price,
        "security_premium":   price.security_premium,
        **overrides,
    }
    return await create_mission(store, MissionCreate(**data))
