"""
Router niveaux de sécurité : catalogue public et éligibilité des livreurs.
"""
from fastapi import APIRouter, Depends

from core.dependencies import get_current_user, require_admin
from core.exceptions import NotFound
from database import DocumentStore, get_store
from models.common import SecurityLevel
from services.security_level_service import (
    can_driver_handle_security_level,
    get_available_security_levels,
    get_security_level,
)

router = APIRouter()


@router.get("", summary="Niveaux proposés au public")
async def list_public_levels(store: DocumentStore = Depends(get_store)):
    return {"levels": await get_available_security_levels(store, is_public=True)}


@router.get("/all", summary="Tous les niveaux (admin)")
async def list_all_levels(
    _admin=Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    return {"levels": await get_available_security_levels(store, is_public=False)}


@router.get("/{level}", summary="Détail d'un niveau")
async def get_level(level: SecurityLevel, store: DocumentStore = Depends(get_store)):
    config = await get_security_level(store, level)
    if not config:
        raise NotFound("Niveau de sécurité")
    return config


@router.get("/{level}/drivers/{driver_id}", summary="Éligibilité d'un livreur")
async def check_driver_eligibility(
    level: SecurityLevel,
    driver_id: str,
    _user=Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    return {
        "driver_id":      driver_id,
        "security_level": level.value,
        "eligible":       await can_driver_handle_security_level(store, driver_id, level),
    }
