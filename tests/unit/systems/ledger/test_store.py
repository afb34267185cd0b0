"""
Unit tests for ledger persistence.
"""

from __future__ import annotations

import orjson
import pytest

from passport.primitives.membership import MembershipStatus
from passport.systems.ledger.ledger import MembershipLedger
from passport.systems.ledger.store import LedgerStore

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


def make_ledger() -> MembershipLedger:
    ledger = MembershipLedger(5)
    ledger.record_issuance(ALICE, 1)
    ledger.record_issuance(BOB, 2)
    ledger.record_withdrawal(BOB)
    return ledger


class TestLedgerStore:
    def test_missing_file_loads_none(self, tmp_path):
        assert LedgerStore(tmp_path / "ledger.json").load() is None

    def test_save_then_load(self, tmp_path):
        store = LedgerStore(tmp_path / "ledger.json")
        store.save(make_ledger().snapshot())

        restored = MembershipLedger.from_snapshot(store.load())

        assert restored.status_of(ALICE) == MembershipStatus.ISSUED
        assert restored.token_id_of(ALICE) == 1
        assert restored.status_of(BOB) == MembershipStatus.WITHDRAWN
        assert restored.total_issued == 2
        assert restored.max_issuances == 5

    def test_creates_parent_directory(self, tmp_path):
        store = LedgerStore(tmp_path / "nested" / "dir" / "ledger.json")
        store.save(make_ledger().snapshot())
        assert store.path.exists()

    def test_no_temp_file_left_behind(self, tmp_path):
        store = LedgerStore(tmp_path / "ledger.json")
        store.save(make_ledger().snapshot())
        assert [p.name for p in tmp_path.iterdir()] == ["ledger.json"]

    def test_file_is_versioned_json(self, tmp_path):
        store = LedgerStore(tmp_path / "ledger.json")
        store.save(make_ledger().snapshot())

        data = orjson.loads(store.path.read_bytes())
        assert data["version"] == 1
        assert data["ledger"]["counters"] == {"max_issuances": 5, "total_issued": 2}

    def test_unknown_version_rejected(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_bytes(orjson.dumps({"version": 99, "ledger": {}}))

        with pytest.raises(ValueError, match="version"):
            LedgerStore(path).load()

    def test_mismatched_record_key_rejected(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_bytes(
            orjson.dumps(
                {
                    "version": 1,
                    "ledger": {
                        "records": {"wrong": {"identity": ALICE, "status": "issued", "token_id": 1}},
                        "counters": {"total_issued": 1, "max_issuances": 5},
                    },
                }
            )
        )

        with pytest.raises(ValueError):
            LedgerStore(path).load()
