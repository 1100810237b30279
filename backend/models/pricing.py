from typing import Optional
from pydantic import BaseModel, Field, model_validator
from models.common import GeoPin, SecurityLevel


class PriceBreakdown(BaseModel):
    base_price:       float
    security_premium: float
    total_price:      float
    currency:         str = "EUR"


class QuoteRequest(BaseModel):
    security_level:   SecurityLevel = SecurityLevel.STANDARD
    # Soit les coordonnées, soit distance + durée déjà connues
    pickup:           Optional[GeoPin] = None
    dropoff:          Optional[GeoPin] = None
    distance_km:      Optional[float] = Field(default=None, ge=0)
    duration_minutes: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def route_or_distance(self):
        has_route = self.pickup is not None and self.dropoff is not None
        has_distance = self.distance_km is not None and self.duration_minutes is not None
        if not (has_route or has_distance):
            raise ValueError("Fournir pickup/dropoff ou distance_km/duration_minutes")
        return self


class QuoteResponse(PriceBreakdown):
    security_level:   SecurityLevel
    distance_km:      float
    duration_minutes: float
