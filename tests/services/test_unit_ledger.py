"""
UnitLedger tests: recording units and all-or-nothing claims.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from harvest_kernel.exceptions import (
    DraftNotFoundError,
    DuplicateUnitCodeError,
    UnitConflictError,
    UnitsNotFoundError,
    ValidationError,
)
from harvest_kernel.models.collection_draft import DraftStatus
from harvest_kernel.models.raw_unit import BatchUnitAssignment
from tests.conftest import TEST_ACTOR_ID


def _assignment_count(session) -> int:
    return session.execute(select(func.count(BatchUnitAssignment.id))).scalar_one()


class TestRecordUnit:
    def test_records_unit_with_draft_line(self, unit_ledger, make_draft):
        draft = make_draft("treacle")

        unit = unit_ledger.record_unit(
            draft.id, " T-001 ", "12.5", TEST_ACTOR_ID,
            collection_center="North", brix_value=Decimal("68.2"),
        )

        assert unit.unit_code == "T-001"
        assert unit.product_line.value == "treacle"
        assert unit.quantity == Decimal("12.5")
        assert unit.collected_on == draft.collected_on
        assert unit.is_free

    @pytest.mark.parametrize("quantity", [0, "-1", "abc"])
    def test_rejects_bad_quantity(self, unit_ledger, make_draft, quantity):
        draft = make_draft()

        with pytest.raises(ValidationError) as exc_info:
            unit_ledger.record_unit(draft.id, "S-1", quantity, TEST_ACTOR_ID)

        assert exc_info.value.field == "quantity"

    def test_rejects_bad_reading(self, unit_ledger, make_draft):
        draft = make_draft()

        with pytest.raises(ValidationError) as exc_info:
            unit_ledger.record_unit(draft.id, "S-1", 5, TEST_ACTOR_ID, ph_value="acidic")

        assert exc_info.value.field == "ph_value"

    @pytest.mark.parametrize("field,kwargs", [
        ("quantity", {"quantity": "2.0005"}),
        ("brix_value", {"brix_value": "1000"}),
        ("ph_value", {"ph_value": "6.125"}),
    ])
    def test_rejects_values_outside_column_range(self, unit_ledger, make_draft, field, kwargs):
        draft = make_draft()
        kwargs.setdefault("quantity", 5)

        with pytest.raises(ValidationError) as exc_info:
            unit_ledger.record_unit(draft.id, "S-1", actor_id=TEST_ACTOR_ID, **kwargs)

        assert exc_info.value.field == field

    def test_duplicate_code(self, unit_ledger, make_draft):
        draft = make_draft()
        unit_ledger.record_unit(draft.id, "S-DUP", 5, TEST_ACTOR_ID)

        with pytest.raises(DuplicateUnitCodeError):
            unit_ledger.record_unit(draft.id, "S-DUP", 7, TEST_ACTOR_ID)

        # The savepoint rollback keeps the session usable.
        unit_ledger.record_unit(draft.id, "S-OTHER", 7, TEST_ACTOR_ID)

    def test_unknown_draft(self, unit_ledger):
        from uuid import uuid4

        with pytest.raises(DraftNotFoundError):
            unit_ledger.record_unit(uuid4(), "S-1", 5, TEST_ACTOR_ID)

    def test_set_draft_status(self, unit_ledger, make_draft):
        draft = make_draft()

        updated = unit_ledger.set_draft_status(draft.id, DraftStatus.COMPLETED, TEST_ACTOR_ID)

        assert updated.status == "completed"


class TestTryClaim:
    def test_claims_all(self, session, unit_ledger, make_units, make_processing_batch):
        codes = make_units(3)
        batch = make_processing_batch()

        result = unit_ledger.try_claim(batch.id, "sap", codes, TEST_ACTOR_ID)

        assert result.claimed == tuple(sorted(codes))
        assert result.already_held == ()
        assert unit_ledger.codes_of(batch.id) == sorted(codes)

    def test_reclaim_by_holder_is_noop(self, unit_ledger, make_units, make_processing_batch):
        codes = make_units(2)
        batch = make_processing_batch(units=codes)

        result = unit_ledger.try_claim(batch.id, "sap", codes, TEST_ACTOR_ID)

        assert result.claimed == ()
        assert result.already_held == tuple(sorted(codes))
        assert result.unit_codes == tuple(sorted(codes))

    def test_conflict_claims_nothing(
        self, session, unit_ledger, make_units, make_processing_batch
    ):
        taken = make_units(2)
        free = make_units(2)
        owner = make_processing_batch(units=taken)
        other = make_processing_batch()
        before = _assignment_count(session)

        with pytest.raises(UnitConflictError) as exc_info:
            unit_ledger.try_claim(other.id, "sap", free + [taken[1]], TEST_ACTOR_ID)

        assert exc_info.value.unit_codes == [taken[1]]
        assert _assignment_count(session) == before
        assert unit_ledger.codes_of(other.id) == []
        assert unit_ledger.codes_of(owner.id) == sorted(taken)

    def test_unknown_codes_listed(self, unit_ledger, make_units, make_processing_batch):
        codes = make_units(1)
        batch = make_processing_batch()

        with pytest.raises(UnitsNotFoundError) as exc_info:
            unit_ledger.try_claim(batch.id, "sap", codes + ["NOPE-1", "NOPE-2"], TEST_ACTOR_ID)

        assert exc_info.value.unit_codes == ["NOPE-1", "NOPE-2"]
        assert unit_ledger.codes_of(batch.id) == []

    def test_other_line_rejected(
        self, session, unit_ledger, make_units, make_processing_batch
    ):
        treacle_codes = make_units(1, "treacle")
        sap_codes = make_units(1, "sap")
        batch = make_processing_batch("sap")
        before = _assignment_count(session)

        with pytest.raises(ValidationError) as exc_info:
            unit_ledger.try_claim(batch.id, "sap", sap_codes + treacle_codes, TEST_ACTOR_ID)

        assert exc_info.value.field == "unitIds"
        assert _assignment_count(session) == before
        # The savepoint rollback keeps the session usable.
        assert unit_ledger.try_claim(batch.id, "sap", sap_codes, TEST_ACTOR_ID).claimed == (
            sap_codes[0],
        )

    def test_empty_claim(self, unit_ledger, make_processing_batch):
        batch = make_processing_batch()

        assert unit_ledger.try_claim(batch.id, "sap", [], TEST_ACTOR_ID).unit_codes == ()

    def test_conflict_logged(
        self, captured_logs, unit_ledger, make_units, make_processing_batch
    ):
        codes = make_units(1)
        make_processing_batch(units=codes)
        other = make_processing_batch()

        with pytest.raises(UnitConflictError):
            unit_ledger.try_claim(other.id, "sap", codes, TEST_ACTOR_ID)

        records = [r for r in captured_logs() if r["message"] == "unit_claim_conflict"]
        assert records
        assert records[0]["unit_codes"] == codes


class TestRelease:
    def test_release_frees_units(self, unit_ledger, unit_selector, make_units, make_processing_batch):
        codes = make_units(2)
        batch = make_processing_batch(units=codes)

        released = unit_ledger.release(batch.id)

        assert released == 2
        assert {u.unit_code for u in unit_selector.list_free("sap")} >= set(codes)

    def test_release_empty_batch(self, unit_ledger, make_processing_batch):
        batch = make_processing_batch()

        assert unit_ledger.release(batch.id) == 0
