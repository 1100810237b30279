import math
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Heure UTC tronquée à la milliseconde (précision des dates BSON)."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance en km entre deux coordonnées GPS."""
    R = 6371.0
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlng / 2) ** 2
    return R * 2 * math.asin(math.sqrt(a))


def round_cents(value: float) -> float:
    """Arrondi au centime, demi supérieur (2.675 → 2.68)."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def to_jsonable(value: Any) -> Any:
    """Convertit dates et enums en valeurs JSON stables (pour stockage et checksums)."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def diff_fields(current: dict, desired: dict) -> dict:
    """
    Champs de `desired` absents ou différents dans `current`.
    Sert à n'écrire que ce qui change, au lieu d'un merge implicite.
    """
    return {k: v for k, v in desired.items() if k not in current or current[k] != v}
