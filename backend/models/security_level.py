from typing import Literal
from pydantic import BaseModel
from models.common import SecurityLevel


class DriverRequirements(BaseModel):
    minimum_rating:         float
    certification_required: bool
    background_check_level: Literal["basic", "enhanced", "criminal", "security_clearance"]
    experience_minimum:     int     # missions terminées


class VehicleRequirements(BaseModel):
    luxury_level:       Literal["standard", "premium", "luxury"]
    tinted_windows:     bool
    secure_compartment: bool


class SecurityFeatures(BaseModel):
    enhanced_logging:    bool
    dedicated_support:   bool
    priority_assignment: bool
    anomaly_monitoring:  bool
    legal_report:        bool


class SecurityLevelConfig(BaseModel):
    level_id:              SecurityLevel
    icon:                  str
    name:                  str
    description:           str
    price_multiplier:      float
    driver_requirements:   DriverRequirements
    vehicle_requirements:  VehicleRequirements
    features:              SecurityFeatures
    available_to_public:   bool
    requires_pre_approval: bool
