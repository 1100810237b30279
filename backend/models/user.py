from typing import Optional
from pydantic import BaseModel
from models.common import UserRole


class User(BaseModel):
    user_id:        str
    name:           str
    role:           UserRole = UserRole.CLIENT
    anonymous_code: Optional[str] = None   # "OT-XXXXX", seul identifiant visible du livreur
    is_active:      bool = True


class DriverStats(BaseModel):
    average_rating:     float = 0.0
    completed_missions: int   = 0
