"""
Journal d'audit des missions : un événement immuable par transition, chaîné
par checksum (chaîne de possession).

Le checksum par défaut ("rolling32") est un hash glissant 32 bits : il détecte
une corruption accidentelle, pas une falsification délibérée. AUDIT_CHECKSUM=
"hmac-sha256" active un HMAC ; l'algorithme est enregistré sur chaque ligne.
"""
import logging
import uuid
from typing import Any, Optional

from pydantic import BaseModel

from config import settings
from core.security import ROLLING32, compute_checksum, verify_checksum
from core.utils import to_jsonable, utcnow
from database import DocumentStore

logger = logging.getLogger(__name__)

# Champs couverts par le checksum d'une ligne
HASHED_FIELDS = (
    "mission_id", "event_type", "timestamp", "user_id", "user_role",
    "location", "details", "anomaly", "sequence", "previous_log_hash",
)


def _log_id() -> str:
    return f"log_{uuid.uuid4().hex[:12]}"


def _as_document(value: Any) -> Optional[dict]:
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return to_jsonable(dict(value))


def _hash_payload(log: dict) -> dict:
    return to_jsonable({field: log.get(field) for field in HASHED_FIELDS})


def verify_log(log: dict) -> bool:
    try:
        return verify_checksum(
            _hash_payload(log),
            log.get("log_hash"),
            log.get("checksum_algorithm", ROLLING32),
        )
    except ValueError:
        return False


async def log_mission_event(
    store: DocumentStore,
    *,
    mission_id: str,
    event_type: str,
    user_id: str,
    user_role: str,
    location: Any = None,
    details: Optional[dict] = None,
    anomaly: Any = None,
) -> dict:
    """Ajoute une ligne au journal. N'altère jamais les lignes existantes."""
    previous = await store.find(
        "mission_logs", {"mission_id": mission_id}, sort=[("sequence", -1)], limit=1,
    )
    last = previous[0] if previous else None

    log = {
        "log_id":             _log_id(),
        "mission_id":         mission_id,
        "event_type":         to_jsonable(event_type),
        "timestamp":          utcnow(),
        "user_id":            user_id,
        "user_role":          to_jsonable(user_role),
        "location":           _as_document(location),
        "details":            to_jsonable(details or {}),
        "anomaly":            _as_document(anomaly),
        "sequence":           last["sequence"] + 1 if last else 1,
        "previous_log_hash":  last["log_hash"] if last else None,
        "checksum_algorithm": settings.AUDIT_CHECKSUM,
    }
    log["log_hash"] = compute_checksum(_hash_payload(log), log["checksum_algorithm"])
    await store.insert_one("mission_logs", log)
    logger.debug("Événement %s #%d pour mission %s", log["event_type"], log["sequence"], mission_id)
    return log


async def get_mission_logs(store: DocumentStore, mission_id: str) -> list[dict]:
    """Événements triés chronologiquement (horodatage puis numéro de séquence)."""
    return await store.find(
        "mission_logs",
        {"mission_id": mission_id},
        sort=[("timestamp", 1), ("sequence", 1)],
    )


async def build_chain_of_custody(store: DocumentStore, mission_id: str) -> list[dict]:
    """
    Chaîne de possession d'une mission. `verified` n'est vrai que si le checksum
    recalculé correspond et que la ligne pointe bien sur la précédente.
    """
    logs = await get_mission_logs(store, mission_id)

    chain = []
    previous_hash = None
    for log in logs:
        linked = log.get("previous_log_hash") == previous_hash
        verified = linked and verify_log(log)
        if not verified:
            logger.warning(
                "Journal mission %s : ligne %s non vérifiée", mission_id, log.get("log_id"),
            )
        chain.append({
            "event":              log["event_type"],
            "timestamp":          log["timestamp"],
            "location":           log.get("location"),
            "performed_by":       log["user_id"],
            "performed_by_role":  log["user_role"],
            "verified":           verified,
            "integrity_checksum": log["log_hash"],
        })
        previous_hash = log.get("log_hash")
    return chain
