from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from models.common import (
    ConfirmationMethod, DocumentType, GeoPin, Location,
    MissionStatus, MissionType, SecurityLevel,
)


class DocumentDetails(BaseModel):
    document_type:       DocumentType
    sealed_package:      bool = True
    scan_at_pickup:      Optional[str]      = None   # URI de la photo
    scan_at_delivery:    Optional[str]      = None
    pickup_scanned_at:   Optional[datetime] = None
    delivery_scanned_at: Optional[datetime] = None
    recipient_name:      Optional[str]      = None
    recipient_code:      Optional[str]      = None


class Mission(BaseModel):
    mission_id:    str
    mission_code:  str                 # "M-XXXXX"
    type:          MissionType
    security_level: SecurityLevel
    # Acteurs (anonymisés)
    client_id:     str
    client_code:   str
    driver_id:     Optional[str] = None
    driver_code:   Optional[str] = None
    # Trajet
    pickup:        Location
    dropoff:       Location
    requested_at:  datetime
    scheduled_for: datetime
    # Cycle de vie (chaque champ posé une seule fois)
    assigned_at:          Optional[datetime] = None
    driver_departed_at:   Optional[datetime] = None
    driver_arrived_at:    Optional[datetime] = None
    mission_started_at:   Optional[datetime] = None
    mission_completed_at: Optional[datetime] = None
    estimated_duration:   int                       # minutes
    actual_duration:      Optional[int] = None
    status:        MissionStatus = MissionStatus.PENDING
    # Prix
    base_price:       float
    security_premium: float
    total_price:      float
    currency:         str = "EUR"
    # Confirmation
    confirmation_method: ConfirmationMethod = ConfirmationMethod.QR
    confirmation_code:   str
    confirmed_at:        Optional[datetime] = None
    document_details:    Optional[DocumentDetails] = None
    created_at:  datetime
    updated_at:  datetime


class MissionCreate(BaseModel):
    client_id:          str
    client_code:        str
    type:               MissionType
    security_level:     SecurityLevel
    pickup:             Location
    dropoff:            Location
    scheduled_for:      datetime
    estimated_duration: int   = Field(gt=0)
    base_price:         float = Field(ge=0)
    security_premium:   float = Field(ge=0)
    confirmation_method: ConfirmationMethod = ConfirmationMethod.QR
    document_details:   Optional[DocumentDetails] = None


class MissionBooking(BaseModel):
    """Réservation côté client : le prix est calculé par le serveur."""
    type:           MissionType = MissionType.PERSON
    security_level: SecurityLevel = SecurityLevel.STANDARD
    pickup:         Location
    dropoff:        Location
    scheduled_for:  datetime
    confirmation_method: ConfirmationMethod = ConfirmationMethod.QR
    document_details: Optional[DocumentDetails] = None


class MissionStatusUpdate(BaseModel):
    """Champs que l'appelant peut fournir avec un changement de statut."""
    model_config = ConfigDict(extra="forbid")

    driver_departed_at:   Optional[datetime] = None
    driver_arrived_at:    Optional[datetime] = None
    mission_started_at:   Optional[datetime] = None
    mission_completed_at: Optional[datetime] = None
    actual_duration:      Optional[int]      = Field(default=None, ge=0)
    notes:                Optional[str]      = None


class StatusChangeRequest(BaseModel):
    status:          MissionStatus
    additional_data: Optional[MissionStatusUpdate] = None


class AssignRequest(BaseModel):
    driver_id:   Optional[str] = None   # admin uniquement ; sinon le livreur connecté
    driver_code: Optional[str] = None


class ConfirmRequest(BaseModel):
    code: str


class DriverMissionView(BaseModel):
    mission_id:          str
    mission_code:        str
    client_code:         str
    type:                MissionType
    security_level:      SecurityLevel
    pickup:              Location
    dropoff:             Location
    scheduled_for:       datetime
    status:              MissionStatus
    confirmation_method: ConfirmationMethod
    confirmation_code:   str
    estimated_duration:  int


class DocumentScan(BaseModel):
    image_uri:  str
    scanned_at: datetime
    location:   GeoPin


class ScanType(str, Enum):
    PICKUP   = "pickup"
    DELIVERY = "delivery"


class ScanRequest(DocumentScan):
    scan_type: ScanType
