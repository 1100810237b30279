"""
Migration des profils hérités : rôles, valeurs par défaut et codes anonymes.
Les plans sont des fonctions pures ; seules les différences sont écrites.
"""
import logging

from core.utils import diff_fields
from database import DocumentStore
from models.common import SecurityLevel, UserRole
from models.user import DriverStats, User
from services.anonymous_code_service import CodeType, generate_anonymous_code

logger = logging.getLogger(__name__)

LEGACY_ROLES = {
    "user":     UserRole.CLIENT.value,
    "customer": UserRole.CLIENT.value,
}

DEFAULT_DRIVER_STATS = DriverStats().model_dump()


def plan_user_backfill(user: dict) -> dict:
    desired = dict(user)
    role = user.get("role") or UserRole.CLIENT.value
    desired["role"] = LEGACY_ROLES.get(role, role)
    desired.setdefault("is_active", User.model_fields["is_active"].default)
    return diff_fields(user, desired)


def plan_driver_profile_backfill(profile: dict) -> dict:
    desired = dict(profile)
    desired["max_security_level"] = profile.get("max_security_level") or SecurityLevel.STANDARD.value
    desired["certification_level"] = profile.get("certification_level") or SecurityLevel.STANDARD.value
    desired["stats"] = {**DEFAULT_DRIVER_STATS, **(profile.get("stats") or {})}
    return diff_fields(profile, desired)


async def backfill_users(store: DocumentStore) -> int:
    """Retourne le nombre d'utilisateurs modifiés."""
    updated = 0
    for user in await store.find("users", {}):
        changes = plan_user_backfill(user)
        role = changes.get("role", user.get("role"))
        if role == UserRole.CLIENT.value and not user.get("anonymous_code"):
            changes["anonymous_code"] = await generate_anonymous_code(store, CodeType.CLIENT)
        if not changes:
            continue
        await store.update_one("users", {"user_id": user["user_id"]}, changes)
        logger.info(f"Utilisateur {user['user_id']} mis à jour : {sorted(changes)}")
        updated += 1
    return updated


async def backfill_driver_profiles(store: DocumentStore) -> int:
    """Retourne le nombre de profils livreur modifiés."""
    updated = 0
    for profile in await store.find("driver_profiles", {}):
        changes = plan_driver_profile_backfill(profile)
        if not profile.get("driver_code"):
            changes["driver_code"] = await generate_anonymous_code(store, CodeType.DRIVER)
        if not changes:
            continue
        await store.update_one("driver_profiles", {"driver_id": profile["driver_id"]}, changes)
        logger.info(f"Profil livreur {profile['driver_id']} mis à jour : {sorted(changes)}")
        updated += 1
    return updated
