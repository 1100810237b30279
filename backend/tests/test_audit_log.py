import random

import pytest

from config import settings
from core.security import HMAC_SHA256, compute_checksum, rolling_hash, verify_checksum
from services.audit_service import build_chain_of_custody, get_mission_logs, log_mission_event, verify_log


async def _log_events(store, mission_id, events):
    for event in events:
        await log_mission_event(
            store, mission_id=mission_id, event_type=event, user_id="usr_driver01", user_role="driver",
        )


def test_rolling_hash_known_values():
    assert rolling_hash("") == "0"
    assert rolling_hash("a") == "61"
    # 31 * 97 + 98
    assert rolling_hash("ab") == format(31 * 97 + 98, "x")


def test_rolling_hash_is_signed_32_bits():
    digest = rolling_hash("x" * 64)
    value = int(digest, 16)
    assert -(2 ** 31) <= value < 2 ** 31


def test_checksum_detects_changes():
    payload = {"mission_id": "msn_1", "details": {"a": 1}}
    checksum = compute_checksum(payload)
    assert verify_checksum(payload, checksum)
    assert not verify_checksum({**payload, "details": {"a": 2}}, checksum)


def test_unknown_algorithm():
    with pytest.raises(ValueError):
        compute_checksum({}, "md5")


async def test_rows_are_chained(store):
    await _log_events(store, "msn_1", ["created", "assigned", "driver_departed"])
    logs = await get_mission_logs(store, "msn_1")

    assert [log["sequence"] for log in logs] == [1, 2, 3]
    assert logs[0]["previous_log_hash"] is None
    assert logs[1]["previous_log_hash"] == logs[0]["log_hash"]
    assert logs[2]["previous_log_hash"] == logs[1]["log_hash"]
    assert all(verify_log(log) for log in logs)


async def test_chains_are_per_mission(store):
    await _log_events(store, "msn_1", ["created"])
    await _log_events(store, "msn_2", ["created"])

    logs = await get_mission_logs(store, "msn_2")
    assert logs[0]["sequence"] == 1
    assert logs[0]["previous_log_hash"] is None


async def test_chain_order_ignores_storage_order(store):
    events = ["created", "assigned", "driver_departed", "driver_arrived", "started", "completed"]
    await _log_events(store, "msn_1", events)
    random.Random(7).shuffle(store.collections["mission_logs"])

    chain = await build_chain_of_custody(store, "msn_1")
    assert [entry["event"] for entry in chain] == events
    timestamps = [entry["timestamp"] for entry in chain]
    assert timestamps == sorted(timestamps)
    assert all(entry["verified"] for entry in chain)


async def test_tampered_row_is_not_verified(store):
    await _log_events(store, "msn_1", ["created", "assigned", "driver_departed"])
    store.collections["mission_logs"][1]["user_id"] = "usr_intruder"

    chain = await build_chain_of_custody(store, "msn_1")
    assert [entry["verified"] for entry in chain] == [True, False, True]


async def test_removed_row_breaks_the_link(store):
    await _log_events(store, "msn_1", ["created", "assigned", "driver_departed"])
    del store.collections["mission_logs"][1]

    chain = await build_chain_of_custody(store, "msn_1")
    assert [entry["verified"] for entry in chain] == [True, False]


async def test_custody_entry_shape(store):
    await log_mission_event(
        store, mission_id="msn_1", event_type="document_scanned", user_id="usr_driver01",
        user_role="driver", location={"lat": 48.85, "lng": 2.35}, details={"scan_type": "pickup"},
    )
    entry = (await build_chain_of_custody(store, "msn_1"))[0]

    assert entry["event"] == "document_scanned"
    assert entry["performed_by"] == "usr_driver01"
    assert entry["performed_by_role"] == "driver"
    assert entry["location"] == {"lat": 48.85, "lng": 2.35}
    assert entry["integrity_checksum"]


async def test_hmac_checksum_opt_in(store, monkeypatch):
    await _log_events(store, "msn_1", ["created"])
    monkeypatch.setattr(settings, "AUDIT_CHECKSUM", HMAC_SHA256)
    await _log_events(store, "msn_1", ["assigned"])

    logs = await get_mission_logs(store, "msn_1")
    assert [log["checksum_algorithm"] for log in logs] == ["rolling32", HMAC_SHA256]
    assert len(logs[1]["log_hash"]) == 64

    chain = await build_chain_of_custody(store, "msn_1")
    assert all(entry["verified"] for entry in chain)


async def test_unknown_algorithm_on_row_is_not_verified(store):
    await _log_events(store, "msn_1", ["created"])
    store.collections["mission_logs"][0]["checksum_algorithm"] = "crc8"

    chain = await build_chain_of_custody(store, "msn_1")
    assert chain[0]["verified"] is False


async def test_empty_chain(store):
    assert await build_chain_of_custody(store, "msn_missing") == []
