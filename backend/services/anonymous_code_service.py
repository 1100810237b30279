"""
Service codes anonymes : identifiants publics courts (client, livreur, mission,
entreprise), codes de confirmation, PIN et masquage des noms réels.
"""
import logging
import secrets
from enum import Enum
from typing import Optional

from config import settings
from core.exceptions import ExhaustedRetries
from database import DocumentStore

logger = logging.getLogger(__name__)

# Pas de 0/O/1/I/L : lisible à voix haute et sans ambiguïté visuelle
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class CodeType(str, Enum):
    CLIENT    = "client"
    DRIVER    = "driver"
    MISSION   = "mission"
    CORPORATE = "corporate"


# type → (préfixe, collection, champ vérifié pour l'unicité)
CODE_NAMESPACES: dict[CodeType, tuple[str, str, str]] = {
    CodeType.CLIENT:    ("OT",   "users",           "anonymous_code"),
    CodeType.DRIVER:    ("DR",   "driver_profiles", "driver_code"),
    CodeType.MISSION:   ("M",    "missions",        "mission_code"),
    CodeType.CORPORATE: ("CORP", "users",           "anonymous_code"),
}


def _random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


async def generate_anonymous_code(
    store: DocumentStore,
    code_type: CodeType,
    additional_prefix: Optional[str] = None,
) -> str:
    """
    Génère PREFIX-XXXXX (ou PREFIX-EXTRA-XXXXX) introuvable dans sa collection.
    Aucune écriture : l'appelant persiste le code, l'index unique tranche les courses.
    """
    code_type = CodeType(code_type)
    prefix, collection, field = CODE_NAMESPACES[code_type]

    for attempt in range(1, settings.CODE_MAX_ATTEMPTS + 1):
        random_part = _random_code(settings.CODE_LENGTH)
        if additional_prefix:
            code = f"{prefix}-{additional_prefix}-{random_part}"
        else:
            code = f"{prefix}-{random_part}"

        if not await store.exists(collection, {field: code}):
            return code
        logger.warning("Collision code %s (%s), tentative %d", code, code_type.value, attempt)

    raise ExhaustedRetries(
        f"Impossible de générer un code {code_type.value} unique "
        f"après {settings.CODE_MAX_ATTEMPTS} tentatives, réessayez"
    )


def generate_confirmation_code() -> str:
    return _random_code(settings.CONFIRMATION_CODE_LENGTH)


def generate_pin() -> str:
    return str(100000 + secrets.randbelow(900000))


def mask_real_name(name: Optional[str]) -> str:
    """'John Smith' → 'John S***', 'Madonna' → 'M***', vide → '***'."""
    parts = (name or "").split()
    if not parts:
        return "***"
    if len(parts) == 1:
        return parts[0][0] + "***"
    return " ".join([parts[0]] + [part[0] + "***" for part in parts[1:]])


def validate_confirmation_code(input_code: str, stored: str) -> bool:
    return (input_code or "").upper() == (stored or "").upper()
