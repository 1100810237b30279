import pytest

from core.exceptions import InvalidInput
from models.common import GeoPin, SecurityLevel
from services.pricing_service import calculate_price, estimate_trip, quote_route


@pytest.mark.parametrize("level,premium,total", [
    (SecurityLevel.STANDARD, 0.0, 35.0),
    (SecurityLevel.DISCREET, 17.5, 52.5),
    (SecurityLevel.CONFIDENTIAL, 35.0, 70.0),
    (SecurityLevel.CRITICAL, 70.0, 105.0),
])
def test_price_per_security_level(level, premium, total):
    price = calculate_price(10, 20, level)
    assert price.base_price == 35.0
    assert price.security_premium == premium
    assert price.total_price == total
    assert price.currency == "EUR"


def test_minimum_price_floor():
    price = calculate_price(1, 1, SecurityLevel.STANDARD)
    assert price.base_price == 15.0
    assert price.total_price == 15.0


def test_zero_trip_is_floored():
    assert calculate_price(0, 0, SecurityLevel.DISCREET).total_price == 22.5


def test_critical_is_three_times_standard_base():
    assert calculate_price(10, 20, "critical").total_price == 3 * calculate_price(10, 20, "standard").base_price


@pytest.mark.parametrize("distance,duration", [(0.01, 0.01), (3.333, 7.777), (12.345, 41.2), (99.99, 180)])
def test_total_is_sum_of_rounded_parts(distance, duration):
    for level in SecurityLevel:
        price = calculate_price(distance, duration, level)
        assert price.base_price >= 15.0
        assert round(price.base_price + price.security_premium, 2) == price.total_price


def test_half_cent_rounds_up():
    # 30.01 min * 0.5 = 15.005
    assert calculate_price(0, 30.01, SecurityLevel.STANDARD).base_price == 15.01


def test_pure_function():
    assert calculate_price(7.2, 18, "confidential") == calculate_price(7.2, 18, "confidential")


@pytest.mark.parametrize("distance,duration", [(-1, 10), (10, -0.5)])
def test_negative_inputs_rejected(distance, duration):
    with pytest.raises(InvalidInput):
        calculate_price(distance, duration, SecurityLevel.STANDARD)


def test_unknown_level_rejected():
    with pytest.raises(InvalidInput):
        calculate_price(10, 20, "platinum")


def test_estimate_trip_paris():
    distance, duration = estimate_trip(GeoPin(lat=48.8566, lng=2.3522), GeoPin(lat=48.8738, lng=2.2950))
    assert 4.5 < distance < 4.7
    assert duration == 10


def test_estimate_trip_same_point_has_minimum_duration():
    pin = GeoPin(lat=14.6928, lng=-17.4467)
    assert estimate_trip(pin, pin) == (0.0, 1)


def test_quote_route_carries_trip():
    quote = quote_route(GeoPin(lat=48.8566, lng=2.3522), GeoPin(lat=48.8738, lng=2.2950), SecurityLevel.DISCREET)
    assert quote.security_level == SecurityLevel.DISCREET
    assert quote.total_price == round(quote.base_price + quote.security_premium, 2)
    assert quote.duration_minutes == 10
