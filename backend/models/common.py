from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field


class SecurityLevel(str, Enum):
    STANDARD     = "standard"
    DISCREET     = "discreet"
    CONFIDENTIAL = "confidential"
    CRITICAL     = "critical"


# Échelle ordinale : standard < discreet < confidential < critical
SECURITY_LEVEL_ORDER: list[SecurityLevel] = [
    SecurityLevel.STANDARD,
    SecurityLevel.DISCREET,
    SecurityLevel.CONFIDENTIAL,
    SecurityLevel.CRITICAL,
]


class MissionType(str, Enum):
    PERSON   = "person"
    DOCUMENT = "document"


class MissionStatus(str, Enum):
    PENDING         = "pending"
    ASSIGNED        = "assigned"
    DRIVER_EN_ROUTE = "driver_en_route"
    DRIVER_ARRIVED  = "driver_arrived"
    IN_PROGRESS     = "in_progress"
    COMPLETED       = "completed"
    CANCELLED       = "cancelled"
    FAILED          = "failed"


class ConfirmationMethod(str, Enum):
    QR     = "qr"
    NFC    = "nfc"
    PIN    = "pin"
    VISUAL = "visual"


class DocumentType(str, Enum):
    LEGAL        = "legal"
    MEDICAL      = "medical"
    DIPLOMATIC   = "diplomatic"
    CORPORATE    = "corporate"
    CONFIDENTIAL = "confidential"


class UserRole(str, Enum):
    CLIENT = "client"
    DRIVER = "driver"
    SYSTEM = "system"
    ADMIN  = "admin"


class GeoPin(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class Location(BaseModel):
    address:     str
    coordinates: GeoPin
    timestamp:   datetime
