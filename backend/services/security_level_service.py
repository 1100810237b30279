"""
Service niveaux de sécurité : table de référence (multiplicateurs, exigences
livreur/véhicule, options) et éligibilité d'un livreur à un niveau.
"""
import logging
from typing import Optional

from database import DocumentStore
from models.common import SECURITY_LEVEL_ORDER, SecurityLevel
from models.security_level import (
    DriverRequirements, SecurityFeatures, SecurityLevelConfig, VehicleRequirements,
)

logger = logging.getLogger(__name__)

DEFAULT_SECURITY_LEVELS: list[SecurityLevelConfig] = [
    SecurityLevelConfig(
        level_id=SecurityLevel.STANDARD,
        icon="🟢",
        name="Standard",
        description="Premium VIP transport with professional service",
        price_multiplier=1.0,
        driver_requirements=DriverRequirements(
            minimum_rating=4.0,
            certification_required=False,
            background_check_level="basic",
            experience_minimum=10,
        ),
        vehicle_requirements=VehicleRequirements(
            luxury_level="standard", tinted_windows=False, secure_compartment=False,
        ),
        features=SecurityFeatures(
            enhanced_logging=False, dedicated_support=False, priority_assignment=False,
            anomaly_monitoring=False, legal_report=False,
        ),
        available_to_public=True,
        requires_pre_approval=False,
    ),
    SecurityLevelConfig(
        level_id=SecurityLevel.DISCREET,
        icon="🔵",
        name="Discreet",
        description="Enhanced privacy for sensitive individuals (doctors, executives, celebrities)",
        price_multiplier=1.5,
        driver_requirements=DriverRequirements(
            minimum_rating=4.5,
            certification_required=True,
            background_check_level="enhanced",
            experience_minimum=50,
        ),
        vehicle_requirements=VehicleRequirements(
            luxury_level="premium", tinted_windows=True, secure_compartment=False,
        ),
        features=SecurityFeatures(
            enhanced_logging=True, dedicated_support=True, priority_assignment=True,
            anomaly_monitoring=True, legal_report=False,
        ),
        available_to_public=True,
        requires_pre_approval=False,
    ),
    SecurityLevelConfig(
        level_id=SecurityLevel.CONFIDENTIAL,
        icon="🟠",
        name="Confidential",
        description="Secure transport for sensitive documents (legal, medical, corporate)",
        price_multiplier=2.0,
        driver_requirements=DriverRequirements(
            minimum_rating=4.7,
            certification_required=True,
            background_check_level="criminal",
            experience_minimum=100,
        ),
        vehicle_requirements=VehicleRequirements(
            luxury_level="premium", tinted_windows=True, secure_compartment=True,
        ),
        features=SecurityFeatures(
            enhanced_logging=True, dedicated_support=True, priority_assignment=True,
            anomaly_monitoring=True, legal_report=True,
        ),
        available_to_public=True,
        requires_pre_approval=True,
    ),
    SecurityLevelConfig(
        level_id=SecurityLevel.CRITICAL,
        icon="🔴",
        name="Critical",
        description="Maximum security for diplomatic, governmental, and hyper-sensitive missions",
        price_multiplier=3.0,
        driver_requirements=DriverRequirements(
            minimum_rating=4.9,
            certification_required=True,
            background_check_level="security_clearance",
            experience_minimum=200,
        ),
        vehicle_requirements=VehicleRequirements(
            luxury_level="luxury", tinted_windows=True, secure_compartment=True,
        ),
        features=SecurityFeatures(
            enhanced_logging=True, dedicated_support=True, priority_assignment=True,
            anomaly_monitoring=True, legal_report=True,
        ),
        available_to_public=False,
        requires_pre_approval=True,
    ),
]

_DEFAULTS_BY_LEVEL = {cfg.level_id: cfg for cfg in DEFAULT_SECURITY_LEVELS}


def get_price_multiplier(level: SecurityLevel) -> float:
    return _DEFAULTS_BY_LEVEL[SecurityLevel(level)].price_multiplier


def level_rank(level: Optional[str]) -> int:
    """Rang ordinal ; -1 si le niveau est absent ou inconnu."""
    try:
        return SECURITY_LEVEL_ORDER.index(SecurityLevel(level))
    except ValueError:
        return -1


def get_security_level_display(level: SecurityLevel) -> str:
    cfg = _DEFAULTS_BY_LEVEL[SecurityLevel(level)]
    return f"{cfg.icon} {cfg.name}"


async def initialize_security_levels(store: DocumentStore) -> int:
    """Insère les niveaux absents. Retourne le nombre de niveaux créés."""
    created = 0
    for level in DEFAULT_SECURITY_LEVELS:
        if await store.exists("security_levels", {"level_id": level.level_id.value}):
            continue
        await store.insert_one("security_levels", level.model_dump(mode="json"))
        logger.info(f"Security level {level.level_id.value} initialized")
        created += 1
    return created


async def get_security_level(store: DocumentStore, level: SecurityLevel) -> Optional[dict]:
    return await store.find_one("security_levels", {"level_id": SecurityLevel(level).value})


async def get_all_security_levels(store: DocumentStore) -> list[dict]:
    levels = await store.find("security_levels", {})
    return sorted(levels, key=lambda cfg: level_rank(cfg.get("level_id")))


async def get_available_security_levels(store: DocumentStore, is_public: bool = True) -> list[dict]:
    levels = await get_all_security_levels(store)
    if is_public:
        return [cfg for cfg in levels if cfg.get("available_to_public")]
    return levels


async def can_driver_handle_security_level(
    store: DocumentStore,
    driver_id: str,
    security_level: SecurityLevel,
) -> bool:
    """
    Éligibilité d'un livreur : niveau max, note moyenne, expérience et,
    si le niveau l'exige, niveau de certification. Profil absent ⇒ False.
    """
    profile = await store.find_one("driver_profiles", {"driver_id": driver_id})
    if not profile:
        return False

    level_config = await get_security_level(store, security_level)
    if not level_config:
        return False

    required = level_rank(security_level)
    if required > level_rank(profile.get("max_security_level")):
        return False

    requirements = level_config["driver_requirements"]
    stats = profile.get("stats") or {}
    if (stats.get("average_rating") or 0.0) < requirements["minimum_rating"]:
        return False
    if (stats.get("completed_missions") or 0) < requirements["experience_minimum"]:
        return False

    if requirements["certification_required"]:
        if required > level_rank(profile.get("certification_level")):
            return False

    return True
