"""
Service documents : missions de transport de documents, scans à la prise en
charge et à la remise, rapport de chaîne de possession.
"""
import logging
import uuid
from typing import Optional

from config import settings
from core.exceptions import InvalidInput, InvalidTransition, NotFound
from core.security import compute_checksum
from core.utils import to_jsonable, utcnow
from database import DocumentStore
from models.common import ConfirmationMethod, Location, MissionType, SecurityLevel, UserRole
from models.mission import DocumentDetails, DocumentScan, MissionBooking, ScanType
from models.mission_log import EventType
from services.audit_service import build_chain_of_custody, log_mission_event
from services.mission_service import ABORTED_STATUSES, book_mission

logger = logging.getLogger(__name__)

# Champs identifiants couverts par le checksum du rapport
REPORT_HASH_FIELDS = ("mission_id", "mission_code", "client_code", "driver_code")


def _report_id() -> str:
    return f"rpt_{uuid.uuid4().hex[:12]}"


async def create_document_mission(
    store: DocumentStore,
    client: dict,
    *,
    security_level: SecurityLevel,
    pickup: Location,
    dropoff: Location,
    scheduled_for,
    document_details: DocumentDetails,
    confirmation_method: ConfirmationMethod = ConfirmationMethod.QR,
) -> dict:
    return await book_mission(store, client, MissionBooking(
        type=MissionType.DOCUMENT,
        security_level=security_level,
        pickup=pickup,
        dropoff=dropoff,
        scheduled_for=scheduled_for,
        confirmation_method=confirmation_method,
        document_details=document_details,
    ))


async def require_document_mission(store: DocumentStore, mission_id: str) -> dict:
    mission = await store.find_one("missions", {"mission_id": mission_id})
    if not mission:
        raise NotFound("Mission")
    if mission["type"] != MissionType.DOCUMENT.value:
        raise InvalidInput("Cette mission n'est pas une mission document")
    if not mission.get("document_details"):
        raise InvalidInput("Détails du document manquants")
    return mission


async def scan_document(
    store: DocumentStore,
    mission_id: str,
    scan_type: ScanType,
    scan: DocumentScan,
    scanned_by: str,
) -> Optional[str]:
    """
    Enregistre le scan (référence photo + heure) et l'événement `document_scanned`.
    Le scan de remise génère le rapport : son identifiant est retourné.
    """
    scan_type = ScanType(scan_type)
    async with store.transaction():
        mission = await require_document_mission(store, mission_id)
        if mission["status"] in ABORTED_STATUSES:
            raise InvalidTransition(f"Mission {mission['status']} : scan refusé")

        details = dict(mission["document_details"])
        if scan_type == ScanType.PICKUP:
            details["scan_at_pickup"] = scan.image_uri
            details["pickup_scanned_at"] = to_jsonable(scan.scanned_at)
        else:
            details["scan_at_delivery"] = scan.image_uri
            details["delivery_scanned_at"] = to_jsonable(scan.scanned_at)

        # Écriture conditionnelle sur updated_at : pas de scan concurrent écrasé
        matched = await store.update_one(
            "missions",
            {
                "mission_id": mission_id,
                "status":     {"$nin": ABORTED_STATUSES},
                "updated_at": mission.get("updated_at"),
            },
            {"document_details": details, "updated_at": utcnow()},
        )
        if not matched:
            raise InvalidTransition("Mission modifiée pendant le scan : réessayer")
        await log_mission_event(
            store,
            mission_id=mission_id,
            event_type=EventType.DOCUMENT_SCANNED,
            user_id=scanned_by,
            user_role=UserRole.DRIVER,
            location=scan.location,
            details={"scan_type": scan_type.value, "scanned_at": scan.scanned_at},
        )
    logger.info(f"Scan {scan_type.value} enregistré pour mission {mission_id}")

    if scan_type == ScanType.DELIVERY:
        return await generate_document_report(store, mission_id)
    return None


def compute_report_hash(mission: dict, algorithm: str) -> str:
    payload = {field: mission.get(field) for field in REPORT_HASH_FIELDS}
    payload["pickup_time"] = mission.get("mission_started_at")
    payload["delivery_time"] = mission.get("mission_completed_at")
    return compute_checksum(to_jsonable(payload), algorithm)


async def generate_document_report(store: DocumentStore, mission_id: str) -> str:
    """Construit et persiste le rapport de chaîne de possession. Retourne son id."""
    mission = await require_document_mission(store, mission_id)
    chain = await build_chain_of_custody(store, mission_id)
    details = mission["document_details"]
    chain_verified = bool(chain) and all(entry["verified"] for entry in chain)

    now = utcnow()
    report = {
        "report_id":           _report_id(),
        "mission_id":          mission_id,
        "mission_code":        mission["mission_code"],
        "document_type":       details["document_type"],
        "security_level":      mission["security_level"],
        "chain_of_custody":    chain,
        "pickup_scan":         details.get("scan_at_pickup"),
        "delivery_scan":       details.get("scan_at_delivery"),
        "pickup_scanned_at":   details.get("pickup_scanned_at"),
        "delivery_scanned_at": details.get("delivery_scanned_at"),
        "pickup_time":         mission.get("mission_started_at"),
        "delivery_time":       mission.get("mission_completed_at"),
        "total_duration":      mission.get("actual_duration"),
        "client_confirmation": {
            "method":    mission["confirmation_method"],
            "timestamp": mission.get("confirmed_at"),
            "code":      mission["confirmation_code"],
        },
        "recipient_confirmation": {
            "method":    mission["confirmation_method"],
            "timestamp": mission.get("mission_completed_at"),
            "code":      mission["confirmation_code"],
        },
        "report_hash":         compute_report_hash(mission, settings.AUDIT_CHECKSUM),
        "checksum_algorithm":  settings.AUDIT_CHECKSUM,
        "chain_verified":      chain_verified,
        "legally_valid":       chain_verified,
        "validated_by":        "system",
        "validated_at":        now,
        "generated_at":        now,
    }
    await store.insert_one("document_reports", report)
    if not chain_verified:
        logger.warning(f"Rapport {report['report_id']} : chaîne de possession non vérifiée")
    logger.info(f"Rapport {report['report_id']} généré pour mission {mission_id}")
    return report["report_id"]


async def get_document_report(store: DocumentStore, report_id: str) -> dict:
    report = await store.find_one("document_reports", {"report_id": report_id})
    if not report:
        raise NotFound("Rapport")
    return report


async def get_mission_document_report(store: DocumentStore, mission_id: str) -> Optional[dict]:
    """Dernier rapport généré pour la mission, ou None."""
    reports = await store.find(
        "document_reports", {"mission_id": mission_id}, sort=[("generated_at", -1)], limit=1,
    )
    return reports[0] if reports else None
