"""
Service de tarification des missions.

Formule :
  base    = max(distance_km × PRICE_PER_KM + durée_min × PRICE_PER_MINUTE, MIN_PRICE)
  prime   = base × (multiplicateur_sécurité - 1)
  total   = base + prime
  arrondi au centime (demi supérieur) ; le total est recalculé à partir
  de la base et de la prime arrondies, donc total == base + prime.
"""
import math
import logging

from config import settings
from core.exceptions import InvalidInput
from core.utils import haversine_km, round_cents
from models.common import GeoPin, SecurityLevel
from models.pricing import PriceBreakdown, QuoteResponse
from services.security_level_service import get_price_multiplier

logger = logging.getLogger(__name__)


def calculate_price(
    distance_km: float,
    duration_minutes: float,
    security_level: SecurityLevel,
) -> PriceBreakdown:
    """Fonction pure : mêmes entrées, même prix (re-tarification et audit)."""
    if distance_km is None or duration_minutes is None:
        raise InvalidInput("Distance et durée obligatoires")
    if distance_km < 0 or duration_minutes < 0:
        raise InvalidInput("Distance et durée doivent être positives")
    try:
        level = SecurityLevel(security_level)
    except ValueError:
        raise InvalidInput(f"Niveau de sécurité inconnu : {security_level}")

    distance_price = distance_km * settings.PRICE_PER_KM
    duration_price = duration_minutes * settings.PRICE_PER_MINUTE
    base = max(distance_price + duration_price, settings.MIN_PRICE)

    multiplier = get_price_multiplier(level)
    base_price = round_cents(base)
    security_premium = round_cents(base * (multiplier - 1))

    return PriceBreakdown(
        base_price=base_price,
        security_premium=security_premium,
        total_price=round_cents(base_price + security_premium),
        currency=settings.CURRENCY,
    )


def estimate_trip(pickup: GeoPin, dropoff: GeoPin) -> tuple[float, int]:
    """Distance Haversine (km) et durée estimée (min, au moins 1)."""
    distance = haversine_km(pickup.lat, pickup.lng, dropoff.lat, dropoff.lng)
    duration = max(1, math.ceil(distance / settings.AVERAGE_SPEED_KM_PER_MIN))
    return round(distance, 2), duration


def quote_route(
    pickup: GeoPin,
    dropoff: GeoPin,
    security_level: SecurityLevel,
) -> QuoteResponse:
    distance, duration = estimate_trip(pickup, dropoff)
    logger.debug("Devis %s : %.2f km, %d min", security_level, distance, duration)
    price = calculate_price(distance, duration, security_level)
    return QuoteResponse(
        **price.model_dump(),
        security_level=security_level,
        distance_km=distance,
        duration_minutes=duration,
    )
