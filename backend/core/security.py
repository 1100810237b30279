import hashlib
import hmac
import json
from datetime import datetime, timezone, timedelta
from typing import Any, Optional

from jose import jwt, JWTError

from config import settings

# ── JWT ───────────────────────────────────────────────────────────────────────
ALGORITHM = "HS256"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Lève JWTError si invalide ou expiré."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])


def verify_access_token(token: str) -> Optional[dict]:
    try:
        payload = decode_token(token)
        if payload.get("type") != "access":
            return None
        return payload
    except JWTError:
        return None


# ── Checksums d'intégrité ─────────────────────────────────────────────────────
ROLLING32 = "rolling32"
HMAC_SHA256 = "hmac-sha256"


def canonical_json(payload: Any) -> str:
    """Sérialisation stable : clés triées, ASCII uniquement, sans espaces."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str)


def rolling_hash(text: str) -> str:
    """
    Hash glissant 32 bits signé : h = (h << 5) - h + code du caractère.
    Sortie hexadécimale signée ("-1a2b3c" pour une valeur négative).
    Checksum de détection de corruption, PAS une signature cryptographique.
    """
    h = 0
    for char in text:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return format(h, "x")


def hmac_checksum(text: str) -> str:
    key = settings.AUDIT_HMAC_SECRET or settings.JWT_SECRET
    return hmac.new(key.encode(), text.encode(), hashlib.sha256).hexdigest()


def compute_checksum(payload: Any, algorithm: str = ROLLING32) -> str:
    text = canonical_json(payload)
    if algorithm == ROLLING32:
        return rolling_hash(text)
    if algorithm == HMAC_SHA256:
        return hmac_checksum(text)
    raise ValueError(f"Algorithme de checksum inconnu : {algorithm}")


def verify_checksum(payload: Any, expected: str, algorithm: str = ROLLING32) -> bool:
    return hmac.compare_digest(compute_checksum(payload, algorithm), expected or "")
