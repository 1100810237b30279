import re

import pytest

from core.exceptions import ExhaustedRetries
from services import anonymous_code_service
from services.anonymous_code_service import (
    CODE_ALPHABET,
    CodeType,
    generate_anonymous_code,
    generate_confirmation_code,
    generate_pin,
    mask_real_name,
    validate_confirmation_code,
)


@pytest.mark.parametrize("code_type,prefix", [
    (CodeType.CLIENT, "OT"),
    (CodeType.DRIVER, "DR"),
    (CodeType.MISSION, "M"),
    (CodeType.CORPORATE, "CORP"),
])
async def test_code_format_per_namespace(store, code_type, prefix):
    code = await generate_anonymous_code(store, code_type)
    assert re.fullmatch(rf"{prefix}-[{CODE_ALPHABET}]{{5}}", code)


async def test_additional_prefix(store):
    code = await generate_anonymous_code(store, CodeType.CORPORATE, additional_prefix="ACME")
    assert code.startswith("CORP-ACME-")
    assert len(code.split("-")[-1]) == 5


async def test_codes_unique_in_namespace(store):
    codes = set()
    for i in range(200):
        code = await generate_anonymous_code(store, CodeType.CLIENT)
        store.seed("users", {"user_id": f"usr_{i}", "anonymous_code": code})
        codes.add(code)
    assert len(codes) == 200


async def test_collision_retries_with_new_code(store, monkeypatch):
    store.seed("driver_profiles", {"driver_id": "drv_1", "driver_code": "DR-AAAAA"})
    candidates = iter(["AAAAA", "AAAAA", "BBBBB"])
    monkeypatch.setattr(anonymous_code_service, "_random_code", lambda length: next(candidates))

    assert await generate_anonymous_code(store, CodeType.DRIVER) == "DR-BBBBB"


async def test_exhausted_after_ten_collisions(store, monkeypatch):
    store.seed("missions", {"mission_id": "msn_1", "mission_code": "M-AAAAA"})
    calls = []

    def always_same(length):
        calls.append(length)
        return "AAAAA"

    monkeypatch.setattr(anonymous_code_service, "_random_code", always_same)

    with pytest.raises(ExhaustedRetries):
        await generate_anonymous_code(store, CodeType.MISSION)
    assert len(calls) == 10


async def test_namespaces_are_independent(store, monkeypatch):
    store.seed("users", {"user_id": "usr_1", "anonymous_code": "OT-AAAAA"})
    monkeypatch.setattr(anonymous_code_service, "_random_code", lambda length: "AAAAA")

    assert await generate_anonymous_code(store, CodeType.DRIVER) == "DR-AAAAA"


def test_confirmation_code_and_pin():
    code = generate_confirmation_code()
    assert len(code) == 6
    assert set(code) <= set(CODE_ALPHABET)

    pin = generate_pin()
    assert pin.isdigit() and len(pin) == 6


@pytest.mark.parametrize("name,expected", [
    ("John Smith", "John S***"),
    ("Madonna", "M***"),
    ("", "***"),
    (None, "***"),
    ("  Jean  Paul Sartre ", "Jean P*** S***"),
])
def test_mask_real_name(name, expected):
    assert mask_real_name(name) == expected


def test_confirmation_code_case_insensitive():
    assert validate_confirmation_code("ab12cd", "AB12CD")
    assert not validate_confirmation_code("ab12ce", "AB12CD")
    assert not validate_confirmation_code("", "AB12CD")
