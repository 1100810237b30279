from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel
from models.common import GeoPin, UserRole


class EventType(str, Enum):
    CREATED          = "created"
    ASSIGNED         = "assigned"
    DRIVER_DEPARTED  = "driver_departed"
    DRIVER_ARRIVED   = "driver_arrived"
    PICKUP_CONFIRMED = "pickup_confirmed"
    STARTED          = "started"
    COMPLETED        = "completed"
    CANCELLED        = "cancelled"
    FAILED           = "failed"
    DOCUMENT_SCANNED = "document_scanned"
    ANOMALY_DETECTED = "anomaly_detected"


class AnomalyType(str, Enum):
    DEVIATION       = "deviation"
    SUSPICIOUS_STOP = "suspicious_stop"
    DELAY           = "delay"
    ROUTE_CHANGE    = "route_change"


class Severity(str, Enum):
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"


class Anomaly(BaseModel):
    type:          AnomalyType
    severity:      Severity
    auto_detected: bool = False
    resolved:      bool = False


class MissionLog(BaseModel):
    log_id:     str
    mission_id: str
    event_type: str
    timestamp:  datetime
    user_id:    str
    user_role:  UserRole
    location:   Optional[GeoPin] = None
    details:    Dict[str, Any] = {}
    anomaly:    Optional[Anomaly] = None
    sequence:   int
    previous_log_hash:  Optional[str] = None
    checksum_algorithm: str = "rolling32"
    log_hash:   str          # checksum d'intégrité, pas une signature


class CustodyEntry(BaseModel):
    event:              str
    timestamp:          datetime
    location:           Optional[GeoPin] = None
    performed_by:       str
    performed_by_role:  UserRole
    verified:           bool     # checksum recalculé + chaînage vérifié
    integrity_checksum: str


class AnomalyReport(BaseModel):
    anomaly:  Anomaly
    location: Optional[GeoPin] = None
    details:  Dict[str, Any] = {}
