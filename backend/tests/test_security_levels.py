import pytest

from models.common import SecurityLevel
from services.security_level_service import (
    can_driver_handle_security_level,
    get_all_security_levels,
    get_available_security_levels,
    get_price_multiplier,
    get_security_level,
    get_security_level_display,
    initialize_security_levels,
    level_rank,
)


def _profile(**overrides):
    profile = {
        "driver_id":           "drv_1",
        "driver_code":         "DR-AAAAA",
        "max_security_level":  "confidential",
        "certification_level": "discreet",
        "stats":               {"average_rating": 4.8, "completed_missions": 120},
    }
    profile.update(overrides)
    return profile


async def test_initialize_is_idempotent(store):
    assert await initialize_security_levels(store) == 4
    assert await initialize_security_levels(store) == 0
    assert len(store.all("security_levels")) == 4


async def test_levels_sorted_by_rank(store):
    await initialize_security_levels(store)
    levels = await get_all_security_levels(store)
    assert [cfg["level_id"] for cfg in levels] == ["standard", "discreet", "confidential", "critical"]


async def test_critical_not_public(store):
    await initialize_security_levels(store)
    public = await get_available_security_levels(store)
    assert "critical" not in [cfg["level_id"] for cfg in public]
    assert len(await get_available_security_levels(store, is_public=False)) == 4


async def test_get_security_level(store):
    await initialize_security_levels(store)
    config = await get_security_level(store, "confidential")
    assert config["price_multiplier"] == 2.0
    assert config["driver_requirements"]["minimum_rating"] == 4.7
    assert await get_security_level(store, SecurityLevel.CRITICAL) is not None


@pytest.mark.parametrize("level,multiplier", [
    ("standard", 1.0), ("discreet", 1.5), ("confidential", 2.0), ("critical", 3.0),
])
def test_price_multipliers(level, multiplier):
    assert get_price_multiplier(level) == multiplier


def test_rank_and_display():
    assert level_rank("standard") < level_rank("discreet") < level_rank("confidential") < level_rank("critical")
    assert level_rank(None) == -1
    assert level_rank("platinum") == -1
    assert get_security_level_display("critical").endswith("Critical")


async def test_missing_profile_is_not_eligible(store):
    await initialize_security_levels(store)
    assert await can_driver_handle_security_level(store, "drv_unknown", "standard") is False


async def test_missing_level_config_is_not_eligible(store):
    store.seed("driver_profiles", _profile())
    assert await can_driver_handle_security_level(store, "drv_1", "standard") is False


@pytest.mark.parametrize("overrides,level,expected", [
    ({}, "standard", True),
    ({}, "discreet", True),
    # certification discreet < confidential
    ({}, "confidential", False),
    ({"certification_level": "confidential"}, "confidential", True),
    ({"certification_level": "critical"}, "critical", False),
    ({"stats": {"average_rating": 3.9, "completed_missions": 500}}, "standard", False),
    ({"stats": {"average_rating": 4.9, "completed_missions": 9}}, "standard", False),
    ({"stats": {"average_rating": 4.6, "completed_missions": 60}}, "discreet", True),
    ({"stats": {"average_rating": 4.6, "completed_missions": 60}, "certification_level": "confidential"}, "confidential", False),
])
async def test_driver_eligibility(store, overrides, level, expected):
    await initialize_security_levels(store)
    store.seed("driver_profiles", _profile(**overrides))
    assert await can_driver_handle_security_level(store, "drv_1", level) is expected


async def test_profile_without_stats(store):
    await initialize_security_levels(store)
    store.seed("driver_profiles", {"driver_id": "drv_2", "max_security_level": "standard"})
    assert await can_driver_handle_security_level(store, "drv_2", "standard") is False


async def test_profile_with_null_stats_is_not_eligible(store):
    await initialize_security_levels(store)
    store.seed("driver_profiles", _profile(stats={"average_rating": None, "completed_missions": None}))
    assert await can_driver_handle_security_level(store, "drv_1", "standard") is False
