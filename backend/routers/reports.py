"""
Router rapports : rapport de chaîne de possession des missions document.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from core.dependencies import get_current_user
from core.exceptions import NotFound, Unauthorized
from database import DocumentStore, get_store
from models.common import UserRole
from models.report import DocumentReport
from services.document_service import (
    generate_document_report,
    get_document_report,
    get_mission_document_report,
)
from services.mission_service import get_mission
from services.report_service import generate_report_html, report_filename

router = APIRouter()


async def _check_mission_access(store: DocumentStore, mission_id: str, user: dict) -> None:
    mission = await get_mission(store, mission_id)
    if not mission:
        raise NotFound("Mission")
    if user["role"] != UserRole.ADMIN.value and user["user_id"] not in (
        mission.get("client_id"), mission.get("driver_id"),
    ):
        raise Unauthorized("Accès refusé à ce rapport")


@router.post("/missions/{mission_id}", summary="Générer le rapport d'une mission document")
async def create_report(
    mission_id: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await _check_mission_access(store, mission_id, current_user)
    return {"report_id": await generate_document_report(store, mission_id)}


@router.get("/missions/{mission_id}", response_model=DocumentReport, summary="Dernier rapport d'une mission")
async def latest_mission_report(
    mission_id: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await _check_mission_access(store, mission_id, current_user)
    report = await get_mission_document_report(store, mission_id)
    if not report:
        raise NotFound("Rapport")
    return report


@router.get("/missions/{mission_id}/html", response_class=HTMLResponse, summary="Rapport HTML téléchargeable")
async def mission_report_html(
    mission_id: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await _check_mission_access(store, mission_id, current_user)
    mission, html = await generate_report_html(store, mission_id)
    return HTMLResponse(
        content=html,
        headers={"Content-Disposition": f'attachment; filename="{report_filename(mission)}"'},
    )


@router.get("/{report_id}", response_model=DocumentReport, summary="Détail d'un rapport")
async def get_report(
    report_id: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    report = await get_document_report(store, report_id)
    await _check_mission_access(store, report["mission_id"], current_user)
    return report
