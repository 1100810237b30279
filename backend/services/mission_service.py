"""
Service missions : machine d'états, création, assignation, transitions et
lectures. Chaque écriture sur une mission est accompagnée de son événement
d'audit dans la même transaction du store.
"""
import logging
import uuid
from typing import AsyncIterator, Optional

from pydantic import ValidationError

from config import settings
from core.exceptions import (
    DuplicateKey, ExhaustedRetries, InvalidInput, InvalidTransition, NotFound, Unauthorized,
)
from core.utils import diff_fields, round_cents, to_jsonable, utcnow
from database import DocumentStore
from models.common import ConfirmationMethod, MissionStatus, MissionType, UserRole
from models.mission import DriverMissionView, MissionBooking, MissionCreate, MissionStatusUpdate
from models.mission_log import EventType
from services.anonymous_code_service import (
    CodeType,
    generate_anonymous_code,
    generate_confirmation_code,
    generate_pin,
    validate_confirmation_code,
)
from services.audit_service import log_mission_event
from services.pricing_service import calculate_price, estimate_trip

logger = logging.getLogger(__name__)

# ── Machine d'états ───────────────────────────────────────────────────────────
ALLOWED_TRANSITIONS: dict[MissionStatus, list[MissionStatus]] = {
    MissionStatus.PENDING: [
        MissionStatus.ASSIGNED,
        MissionStatus.CANCELLED,
        MissionStatus.FAILED,
    ],
    MissionStatus.ASSIGNED: [
        MissionStatus.DRIVER_EN_ROUTE,
        MissionStatus.CANCELLED,
        MissionStatus.FAILED,
    ],
    MissionStatus.DRIVER_EN_ROUTE: [
        MissionStatus.DRIVER_ARRIVED,
        MissionStatus.CANCELLED,
        MissionStatus.FAILED,
    ],
    MissionStatus.DRIVER_ARRIVED: [
        MissionStatus.IN_PROGRESS,
        MissionStatus.CANCELLED,
        MissionStatus.FAILED,
    ],
    MissionStatus.IN_PROGRESS: [
        MissionStatus.COMPLETED,
        MissionStatus.CANCELLED,
        MissionStatus.FAILED,
    ],
    # États terminaux
    MissionStatus.COMPLETED: [],
    MissionStatus.CANCELLED: [],
    MissionStatus.FAILED:    [],
}

TERMINAL_STATUSES = {s for s, targets in ALLOWED_TRANSITIONS.items() if not targets}

# Missions interrompues : plus de confirmation ni de scan
ABORTED_STATUSES = [MissionStatus.CANCELLED.value, MissionStatus.FAILED.value]

STATUS_TIMESTAMP_FIELDS: dict[MissionStatus, str] = {
    MissionStatus.DRIVER_EN_ROUTE: "driver_departed_at",
    MissionStatus.DRIVER_ARRIVED:  "driver_arrived_at",
    MissionStatus.IN_PROGRESS:     "mission_started_at",
    MissionStatus.COMPLETED:       "mission_completed_at",
}

STATUS_EVENT_TYPES: dict[MissionStatus, EventType] = {
    MissionStatus.DRIVER_EN_ROUTE: EventType.DRIVER_DEPARTED,
    MissionStatus.DRIVER_ARRIVED:  EventType.DRIVER_ARRIVED,
    MissionStatus.IN_PROGRESS:     EventType.STARTED,
    MissionStatus.COMPLETED:       EventType.COMPLETED,
    MissionStatus.CANCELLED:       EventType.CANCELLED,
    MissionStatus.FAILED:          EventType.FAILED,
}


def _mission_id() -> str:
    return f"msn_{uuid.uuid4().hex[:12]}"


def check_transition(current: MissionStatus, new_status: MissionStatus) -> None:
    """Lève InvalidTransition si le passage current → new_status est interdit."""
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(f"Mission terminée ({current.value}) : aucune transition possible")
    # Renvoyer le statut courant est idempotent
    if new_status == current:
        return
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(f"Transition interdite : {current.value} → {new_status.value}")


async def _require_mission(store: DocumentStore, mission_id: str) -> dict:
    mission = await store.find_one("missions", {"mission_id": mission_id})
    if not mission:
        raise NotFound("Mission")
    return mission


# ── Création ──────────────────────────────────────────────────────────────────
async def create_mission(store: DocumentStore, data: MissionCreate) -> dict:
    """
    Crée une mission `pending` et son événement `created`.
    Le code mission est revérifié par l'index unique : en cas de conflit on
    recommence avec un nouveau code.
    """
    if data.confirmation_method == ConfirmationMethod.PIN:
        confirmation_code = generate_pin()
    else:
        confirmation_code = generate_confirmation_code()

    for attempt in range(settings.CODE_MAX_ATTEMPTS):
        mission_code = await generate_anonymous_code(store, CodeType.MISSION)
        now = utcnow()
        mission_doc = {
            "mission_id":           _mission_id(),
            "mission_code":         mission_code,
            "type":                 data.type.value,
            "security_level":       data.security_level.value,
            "client_id":            data.client_id,
            "client_code":          data.client_code,
            "driver_id":            None,
            "driver_code":          None,
            "pickup":               data.pickup.model_dump(),
            "dropoff":              data.dropoff.model_dump(),
            "requested_at":         now,
            "scheduled_for":        data.scheduled_for,
            "assigned_at":          None,
            "driver_departed_at":   None,
            "driver_arrived_at":    None,
            "mission_started_at":   None,
            "mission_completed_at": None,
            "estimated_duration":   data.estimated_duration,
            "actual_duration":      None,
            "status":               MissionStatus.PENDING.value,
            "base_price":           data.base_price,
            "security_premium":     data.security_premium,
            "total_price":          round_cents(data.base_price + data.security_premium),
            "currency":             settings.CURRENCY,
            "confirmation_method":  data.confirmation_method.value,
            "confirmation_code":    confirmation_code,
            "confirmed_at":         None,
            "document_details":     data.document_details.model_dump(mode="json") if data.document_details else None,
            "created_at":           now,
            "updated_at":           now,
        }
        try:
            async with store.transaction():
                await store.insert_one("missions", mission_doc)
                await log_mission_event(
                    store,
                    mission_id=mission_doc["mission_id"],
                    event_type=EventType.CREATED,
                    user_id=data.client_id,
                    user_role=UserRole.CLIENT,
                    details={
                        "type":           data.type.value,
                        "security_level": data.security_level.value,
                        "scheduled_for":  data.scheduled_for,
                    },
                )
        except DuplicateKey:
            logger.warning(f"Code mission {mission_code} déjà pris à l'écriture, nouvel essai")
            continue

        logger.info(f"Mission créée : {mission_doc['mission_id']} ({mission_code})")
        return mission_doc

    raise ExhaustedRetries(
        f"Impossible d'enregistrer un code mission unique après {settings.CODE_MAX_ATTEMPTS} tentatives"
    )


async def book_mission(store: DocumentStore, client: dict, booking: MissionBooking) -> dict:
    """Réservation : estimation du trajet → prix → création."""
    if booking.type == MissionType.DOCUMENT and booking.document_details is None:
        raise InvalidInput("Une mission document exige document_details")
    if not client.get("anonymous_code"):
        raise InvalidInput("Compte client sans code anonyme")

    distance, duration = estimate_trip(booking.pickup.coordinates, booking.dropoff.coordinates)
    price = calculate_price(distance, duration, booking.security_level)

    return await create_mission(store, MissionCreate(
        client_id=client["user_id"],
        client_code=client["anonymous_code"],
        type=booking.type,
        security_level=booking.security_level,
        pickup=booking.pickup,
        dropoff=booking.dropoff,
        scheduled_for=booking.scheduled_for,
        estimated_duration=duration,
        base_price=price.base_price,
        security_premium=price.security_premium,
        confirmation_method=booking.confirmation_method,
        document_details=booking.document_details,
    ))


# ── Transitions ───────────────────────────────────────────────────────────────
async def assign_mission_to_driver(
    store: DocumentStore,
    mission_id: str,
    driver_id: str,
    driver_code: str,
) -> None:
    async with store.transaction():
        mission = await _require_mission(store, mission_id)
        if mission["status"] != MissionStatus.PENDING.value:
            raise InvalidTransition(f"Mission déjà prise en charge ({mission['status']})")

        now = utcnow()
        # Écriture conditionnelle : un seul livreur peut prendre la mission
        matched = await store.update_one(
            "missions",
            {"mission_id": mission_id, "status": MissionStatus.PENDING.value},
            {
                "driver_id":   driver_id,
                "driver_code": driver_code,
                "status":      MissionStatus.ASSIGNED.value,
                "assigned_at": now,
                "updated_at":  now,
            },
        )
        if not matched:
            raise InvalidTransition("Mission déjà prise en charge par un autre livreur")
        await log_mission_event(
            store,
            mission_id=mission_id,
            event_type=EventType.ASSIGNED,
            user_id=driver_id,
            user_role=UserRole.DRIVER,
            details={"driver_code": driver_code},
        )
    logger.info(f"Mission {mission_id} assignée à {driver_code}")


def _parse_additional_data(additional_data) -> dict:
    if additional_data is None:
        return {}
    if isinstance(additional_data, MissionStatusUpdate):
        return additional_data.model_dump(exclude_none=True)
    try:
        return MissionStatusUpdate.model_validate(additional_data).model_dump(exclude_none=True)
    except ValidationError as exc:
        raise InvalidInput(f"Données complémentaires invalides : {exc.errors()[0]['msg']}")


async def update_mission_status(
    store: DocumentStore,
    mission_id: str,
    new_status: MissionStatus,
    user_id: str,
    user_role: str,
    additional_data=None,
) -> None:
    """
    Transition officielle de la machine d'états.
    Horodate le champ de cycle de vie correspondant s'il n'est ni fourni ni déjà posé.
    """
    try:
        new_status = MissionStatus(new_status)
    except ValueError:
        raise InvalidInput(f"Statut inconnu : {new_status}")
    extra = _parse_additional_data(additional_data)

    async with store.transaction():
        mission = await _require_mission(store, mission_id)
        current = MissionStatus(mission["status"])
        check_transition(current, new_status)
        if new_status == MissionStatus.ASSIGNED and not mission.get("driver_id"):
            raise InvalidInput("Assignation sans livreur : utiliser l'assignation de mission")

        now = utcnow()
        notes = extra.pop("notes", None)
        desired = {**mission, **extra, "status": new_status.value}

        ts_field = STATUS_TIMESTAMP_FIELDS.get(new_status)
        if ts_field and ts_field not in extra and not mission.get(ts_field):
            desired[ts_field] = now

        started_at = desired.get("mission_started_at")
        if (
            new_status == MissionStatus.COMPLETED
            and "actual_duration" not in extra
            and desired.get("actual_duration") is None
            and started_at is not None
        ):
            try:
                elapsed = desired["mission_completed_at"] - started_at
            except TypeError:
                # dates naïves fournies par l'appelant mélangées à des dates UTC
                logger.warning(f"Mission {mission_id} : durée réelle non calculable")
            else:
                desired["actual_duration"] = max(0, round(elapsed.total_seconds() / 60))

        changes = diff_fields(mission, desired)
        changes["updated_at"] = now
        matched = await store.update_one(
            "missions", {"mission_id": mission_id, "status": current.value}, changes,
        )
        if not matched:
            raise InvalidTransition(f"Mission modifiée entre-temps : statut {current.value} périmé")

        details = to_jsonable(extra)
        if notes:
            details["notes"] = notes
        await log_mission_event(
            store,
            mission_id=mission_id,
            event_type=STATUS_EVENT_TYPES.get(new_status, new_status.value),
            user_id=user_id,
            user_role=user_role,
            details=details,
        )
    logger.info(f"Mission {mission_id} : {current.value} → {new_status.value}")


async def confirm_mission(
    store: DocumentStore,
    mission_id: str,
    code: str,
    user_id: str,
    user_role: str,
) -> dict:
    """Vérifie le code de confirmation présenté par la contrepartie."""
    async with store.transaction():
        mission = await _require_mission(store, mission_id)
        if mission["status"] in ABORTED_STATUSES:
            raise InvalidTransition(f"Mission {mission['status']} : confirmation impossible")
        if not validate_confirmation_code(code, mission["confirmation_code"]):
            raise InvalidInput("Code de confirmation invalide")

        confirmed_at = mission.get("confirmed_at")
        if confirmed_at is None:
            confirmed_at = utcnow()
            matched = await store.update_one(
                "missions",
                {"mission_id": mission_id, "confirmed_at": None, "status": {"$nin": ABORTED_STATUSES}},
                {"confirmed_at": confirmed_at, "updated_at": confirmed_at},
            )
            if not matched:
                # Confirmée ou interrompue par une requête concurrente
                latest = await _require_mission(store, mission_id)
                if latest.get("confirmed_at") is None or latest["status"] in ABORTED_STATUSES:
                    raise InvalidTransition(f"Mission {latest['status']} : confirmation impossible")
                return {"mission_id": mission_id, "confirmed_at": latest["confirmed_at"]}
            await log_mission_event(
                store,
                mission_id=mission_id,
                event_type=EventType.PICKUP_CONFIRMED,
                user_id=user_id,
                user_role=user_role,
                details={"method": mission["confirmation_method"]},
            )
    return {"mission_id": mission_id, "confirmed_at": confirmed_at}


async def report_anomaly(
    store: DocumentStore,
    mission_id: str,
    anomaly,
    user_id: str,
    user_role: str,
    location=None,
    details: Optional[dict] = None,
) -> dict:
    await _require_mission(store, mission_id)
    log = await log_mission_event(
        store,
        mission_id=mission_id,
        event_type=EventType.ANOMALY_DETECTED,
        user_id=user_id,
        user_role=user_role,
        location=location,
        details=details or {},
        anomaly=anomaly,
    )
    logger.warning(f"Anomalie signalée sur mission {mission_id} : {log['anomaly']}")
    return log


# ── Lectures ──────────────────────────────────────────────────────────────────
async def get_mission(store: DocumentStore, mission_id: str) -> Optional[dict]:
    return await store.find_one("missions", {"mission_id": mission_id})


async def get_client_missions(store: DocumentStore, client_id: str) -> list[dict]:
    return await store.find("missions", {"client_id": client_id}, sort=[("created_at", -1)])


async def get_driver_missions(store: DocumentStore, driver_id: str) -> list[dict]:
    return await store.find("missions", {"driver_id": driver_id}, sort=[("scheduled_for", -1)])


async def get_driver_mission_view(store: DocumentStore, mission_id: str, driver_id: str) -> DriverMissionView:
    """Vue livreur : uniquement les données anonymisées nécessaires à la course."""
    mission = await _require_mission(store, mission_id)
    if mission.get("driver_id") != driver_id:
        raise Unauthorized("Mission assignée à un autre livreur")
    return DriverMissionView.model_validate(mission)


# ── Temps réel ────────────────────────────────────────────────────────────────
def subscribe_to_mission(store: DocumentStore, mission_id: str) -> AsyncIterator[dict]:
    return store.watch("missions", {"mission_id": mission_id})


def subscribe_to_user_missions(store: DocumentStore, user_id: str, role: UserRole) -> AsyncIterator[dict]:
    field = "driver_id" if UserRole(role) == UserRole.DRIVER else "client_id"
    return store.watch("missions", {field: user_id})
