"""
Router missions : réservation, assignation, transitions de la machine d'états,
confirmation, scans de documents, anomalies, chaîne de possession et suivi live.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from core.dependencies import get_current_user, load_user_from_token, require_client, require_driver
from core.exceptions import InvalidInput, NotFound, Unauthorized
from core.utils import to_jsonable
from database import DocumentStore, get_store
from models.common import MissionStatus, UserRole
from models.mission import (
    AssignRequest, ConfirmRequest, DriverMissionView, Mission, MissionBooking,
    ScanRequest, StatusChangeRequest,
)
from models.mission_log import AnomalyReport, MissionLog
from services.audit_service import build_chain_of_custody
from services.document_service import scan_document
from services.mission_service import (
    assign_mission_to_driver,
    book_mission,
    confirm_mission,
    get_client_missions,
    get_driver_mission_view,
    get_driver_missions,
    get_mission,
    report_anomaly,
    subscribe_to_mission,
    update_mission_status,
)
from services.security_level_service import can_driver_handle_security_level

logger = logging.getLogger(__name__)

router = APIRouter()


def _can_access(mission: dict, user: dict) -> bool:
    if user["role"] == UserRole.ADMIN.value:
        return True
    return user["user_id"] in (mission.get("client_id"), mission.get("driver_id"))


async def _get_accessible_mission(store: DocumentStore, mission_id: str, user: dict) -> dict:
    mission = await get_mission(store, mission_id)
    if not mission:
        raise NotFound("Mission")
    if not _can_access(mission, user):
        raise Unauthorized("Accès refusé à cette mission")
    return mission


# ── Client ────────────────────────────────────────────────────────────────────
@router.post("", response_model=Mission, summary="Réserver une mission")
async def create_mission_endpoint(
    body: MissionBooking,
    current_user: dict = Depends(require_client),
    store: DocumentStore = Depends(get_store),
):
    return await book_mission(store, current_user, body)


@router.get("/my", summary="Mes missions")
async def list_my_missions(
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    if current_user["role"] == UserRole.DRIVER.value:
        missions = await get_driver_missions(store, current_user["user_id"])
    else:
        missions = await get_client_missions(store, current_user["user_id"])
    return {"missions": missions}


@router.get("/{mission_id}", response_model=Mission, summary="Détail d'une mission")
async def get_mission_endpoint(
    mission_id: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    return await _get_accessible_mission(store, mission_id, current_user)


# ── Livreur ───────────────────────────────────────────────────────────────────
@router.get("/{mission_id}/driver-view", response_model=DriverMissionView, summary="Vue livreur anonymisée")
async def driver_view(
    mission_id: str,
    current_user: dict = Depends(require_driver),
    store: DocumentStore = Depends(get_store),
):
    return await get_driver_mission_view(store, mission_id, current_user["user_id"])


@router.post("/{mission_id}/assign", summary="Assigner un livreur")
async def assign_mission(
    mission_id: str,
    body: AssignRequest,
    current_user: dict = Depends(require_driver),
    store: DocumentStore = Depends(get_store),
):
    if current_user["role"] == UserRole.ADMIN.value:
        if not body.driver_id:
            raise InvalidInput("driver_id obligatoire pour une assignation admin")
        driver_id = body.driver_id
    else:
        driver_id = current_user["user_id"]

    mission = await get_mission(store, mission_id)
    if not mission:
        raise NotFound("Mission")
    if not await can_driver_handle_security_level(store, driver_id, mission["security_level"]):
        raise Unauthorized(f"Livreur non éligible au niveau {mission['security_level']}")

    profile = await store.find_one("driver_profiles", {"driver_id": driver_id}) or {}
    driver_code = profile.get("driver_code") or body.driver_code
    if not driver_code:
        raise InvalidInput("Profil livreur sans code anonyme")

    await assign_mission_to_driver(store, mission_id, driver_id, driver_code)
    return {"mission_id": mission_id, "driver_code": driver_code, "status": MissionStatus.ASSIGNED.value}


@router.post("/{mission_id}/status", summary="Changer le statut")
async def change_status(
    mission_id: str,
    body: StatusChangeRequest,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    mission = await _get_accessible_mission(store, mission_id, current_user)
    # Le client ne peut qu'annuler sa mission
    is_client = current_user["user_id"] == mission["client_id"] and current_user["role"] == UserRole.CLIENT.value
    if is_client and body.status != MissionStatus.CANCELLED:
        raise Unauthorized("Le client ne peut qu'annuler la mission")

    await update_mission_status(
        store,
        mission_id,
        body.status,
        user_id=current_user["user_id"],
        user_role=current_user["role"],
        additional_data=body.additional_data,
    )
    return {"mission_id": mission_id, "status": body.status.value}


@router.post("/{mission_id}/confirm", summary="Valider le code de confirmation")
async def confirm(
    mission_id: str,
    body: ConfirmRequest,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await _get_accessible_mission(store, mission_id, current_user)
    return await confirm_mission(
        store, mission_id, body.code,
        user_id=current_user["user_id"],
        user_role=current_user["role"],
    )


@router.post("/{mission_id}/scans", summary="Enregistrer un scan de document")
async def add_scan(
    mission_id: str,
    body: ScanRequest,
    current_user: dict = Depends(require_driver),
    store: DocumentStore = Depends(get_store),
):
    await _get_accessible_mission(store, mission_id, current_user)
    report_id = await scan_document(
        store, mission_id, body.scan_type, body, scanned_by=current_user["user_id"],
    )
    return {"mission_id": mission_id, "scan_type": body.scan_type.value, "report_id": report_id}


@router.post("/{mission_id}/anomalies", response_model=MissionLog, summary="Signaler une anomalie")
async def add_anomaly(
    mission_id: str,
    body: AnomalyReport,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await _get_accessible_mission(store, mission_id, current_user)
    log = await report_anomaly(
        store, mission_id, body.anomaly,
        user_id=current_user["user_id"],
        user_role=current_user["role"],
        location=body.location,
        details=body.details,
    )
    return log


@router.get("/{mission_id}/chain-of-custody", summary="Chaîne de possession")
async def chain_of_custody(
    mission_id: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await _get_accessible_mission(store, mission_id, current_user)
    chain = await build_chain_of_custody(store, mission_id)
    return {
        "mission_id":     mission_id,
        "chain_verified": bool(chain) and all(entry["verified"] for entry in chain),
        "chain":          chain,
    }


# ── Temps réel ────────────────────────────────────────────────────────────────
@router.websocket("/{mission_id}/live")
async def mission_live(
    websocket: WebSocket,
    mission_id: str,
    token: str = Query(...),
    store: DocumentStore = Depends(get_store),
):
    """Pousse l'état de la mission à chaque modification (participants uniquement)."""
    user = await load_user_from_token(store, token)
    mission = await get_mission(store, mission_id) if user else None
    if not user or not mission or not _can_access(mission, user):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    await websocket.send_json(to_jsonable(mission))

    stream = subscribe_to_mission(store, mission_id)

    async def forward():
        async for document in stream:
            await websocket.send_json(to_jsonable(document))

    async def wait_disconnect():
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    # Le flux reste ouvert tant que le client est là, même sans modification
    tasks = [asyncio.create_task(forward()), asyncio.create_task(wait_disconnect())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await stream.aclose()

    for task in done:
        error = None if task.cancelled() else task.exception()
        if error is not None and not isinstance(error, WebSocketDisconnect):
            raise error
    logger.debug(f"Suivi live fermé pour mission {mission_id}")
