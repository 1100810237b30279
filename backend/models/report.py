from datetime import datetime
from typing import Optional
from pydantic import BaseModel
from models.common import ConfirmationMethod, DocumentType, SecurityLevel
from models.mission_log import CustodyEntry


class ConfirmationRecord(BaseModel):
    method:    ConfirmationMethod
    timestamp: Optional[datetime] = None
    code:      str


class DocumentReport(BaseModel):
    report_id:        str
    mission_id:       str
    mission_code:     str
    document_type:    DocumentType
    security_level:   SecurityLevel
    chain_of_custody: list[CustodyEntry]
    pickup_scan:      Optional[str] = None
    delivery_scan:    Optional[str] = None
    pickup_scanned_at:   Optional[datetime] = None
    delivery_scanned_at: Optional[datetime] = None
    pickup_time:      Optional[datetime] = None
    delivery_time:    Optional[datetime] = None
    total_duration:   Optional[int] = None
    client_confirmation:    ConfirmationRecord
    recipient_confirmation: ConfirmationRecord
    report_hash:      str
    checksum_algorithm: str = "rolling32"
    chain_verified:   bool
    legally_valid:    bool
    validated_by:     str = "system"
    validated_at:     datetime
    generated_at:     datetime
