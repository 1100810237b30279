"""
Router pricing : devis public (prix de base + prime de sécurité).
"""
from fastapi import APIRouter, Request

from config import settings
from core.dependencies import limiter
from models.pricing import QuoteRequest, QuoteResponse
from services.pricing_service import calculate_price, quote_route

router = APIRouter()


@router.post("/quote", response_model=QuoteResponse, summary="Calculer un devis (public)")
@limiter.limit(settings.QUOTE_RATE_LIMIT)
async def get_quote(request: Request, body: QuoteRequest):
    if body.pickup is not None and body.dropoff is not None:
        return quote_route(body.pickup, body.dropoff, body.security_level)

    price = calculate_price(body.distance_km, body.duration_minutes, body.security_level)
    return QuoteResponse(
        **price.model_dump(),
        security_level=body.security_level,
        distance_km=body.distance_km,
        duration_minutes=body.duration_minutes,
    )
