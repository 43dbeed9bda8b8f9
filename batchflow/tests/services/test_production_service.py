"""
Tests for production_service: batch creation, stage progression, QC and
handover to the Packing Area.
"""

import re
from decimal import Decimal

import pytest

from batchflow.services import notification_service, production_service
from batchflow.services.exceptions import (
    BatchFrozen,
    BatchNotFound,
    BatchNotReadyForHandover,
    InvalidStageTransition,
    InvalidStatusTransition,
    ValidationError,
)
from batchflow.utils.constants import ROLE_PACKING_AREA_MANAGER


class TestCreateBatch:
    """Tests for create_batch()"""

    def test_create_batch_defaults(self, sample_batch):
        assert re.match(r"^BATCH-PROD-\d{4}-0001$", sample_batch["batch_number"])
        assert sample_batch["status"] == "active"
        assert sample_batch["stage"] == "preparation"
        assert sample_batch["progress"] == 0
        assert sample_batch["target_quantity"] == Decimal("100")
        assert sample_batch["output_quantity"] is None
        assert sample_batch["priority"] == "normal"
        assert sample_batch["created_by"] == "u-prod"
        assert sample_batch["created_by_name"] == "Pat Production"
        assert set(sample_batch["qc_stages"]) == {
            "preparation",
            "mixing",
            "heating",
            "cooling",
            "final_qc",
            "completed",
        }
        assert not any(entry["completed"] for entry in sample_batch["qc_stages"].values())

    def test_batch_numbers_are_sequential(self, sample_batch, production_manager):
        second = production_service.create_batch(
            {"product_id": "PRD-002", "product_name": "Chili Oil", "target_quantity": 20, "unit": "l"},
            principal=production_manager,
        )
        assert second["batch_number"].endswith("-0002")
        assert second["batch_number"] != sample_batch["batch_number"]

    def test_system_action_uses_role_label(self, test_db):
        batch = production_service.create_batch(
            {"product_id": "PRD-001", "product_name": "Tomato Sauce", "target_quantity": 5, "unit": "kg"},
            principal=None,
        )
        assert batch["created_by"] is None
        assert batch["created_by_name"] == "Production Manager"

    def test_missing_fields_rejected(self, test_db, production_manager):
        with pytest.raises(ValidationError) as exc_info:
            production_service.create_batch({"product_id": "PRD-001"}, principal=production_manager)
        errors = exc_info.value.errors
        assert "product_name: This field is required" in errors
        assert "unit: This field is required" in errors
        assert "target_quantity: Must be a valid number" in errors

    def test_non_positive_target_rejected(self, test_db, production_manager):
        with pytest.raises(ValidationError):
            production_service.create_batch(
                {"product_id": "P", "product_name": "P", "target_quantity": 0, "unit": "kg"},
                principal=production_manager,
            )


class TestBatchReads:
    """Tests for get_batch(), get_batches() and get_active_batches()"""

    def test_get_batch(self, sample_batch):
        assert production_service.get_batch(sample_batch["id"])["id"] == sample_batch["id"]

    def test_get_batch_not_found(self, test_db):
        with pytest.raises(BatchNotFound):
            production_service.get_batch(999)

    def test_get_batches_newest_first_and_filtered(self, sample_batch, production_manager):
        second = production_service.create_batch(
            {"product_id": "PRD-002", "product_name": "Chili Oil", "target_quantity": 20, "unit": "l"},
            principal=production_manager,
        )
        batches = production_service.get_batches()
        assert [b["id"] for b in batches] == [second["id"], sample_batch["id"]]
        assert [b["id"] for b in production_service.get_batches(product_id="PRD-002")] == [
            second["id"]
        ]

    def test_active_batches_exclude_completed(self, completed_batch, production_manager):
        other = production_service.create_batch(
            {"product_id": "PRD-002", "product_name": "Chili Oil", "target_quantity": 20, "unit": "l"},
            principal=production_manager,
        )
        assert [b["id"] for b in production_service.get_active_batches()] == [other["id"]]


class TestUpdateBatchStage:
    """Tests for update_batch_stage()"""

    def test_stage_sets_progress_and_qc(self, sample_batch, production_manager):
        batch = production_service.update_batch_stage(
            sample_batch["id"],
            "mixing",
            {"temperature": 65, "ph": "4.1"},
            principal=production_manager,
        )
        assert batch["stage"] == "mixing"
        assert batch["progress"] == 30
        entry = batch["qc_stages"]["mixing"]
        assert entry["completed"] is True
        assert entry["temperature"] == 65.0
        assert entry["ph"] == 4.1
        assert entry["completed_by"] == "Pat Production"
        assert batch["qc_stages"]["heating"]["completed"] is False

    def test_skipping_forward_allowed(self, sample_batch, production_manager):
        batch = production_service.update_batch_stage(
            sample_batch["id"], "cooling", principal=production_manager
        )
        assert batch["progress"] == 90

    def test_repeating_current_stage_allowed(self, sample_batch, production_manager):
        production_service.update_batch_stage(sample_batch["id"], "heating", principal=production_manager)
        batch = production_service.update_batch_stage(
            sample_batch["id"], "heating", {"remarks": "re-check"}, principal=production_manager
        )
        assert batch["qc_stages"]["heating"]["remarks"] == "re-check"

    def test_moving_backward_rejected(self, sample_batch, production_manager):
        production_service.update_batch_stage(sample_batch["id"], "heating", principal=production_manager)
        with pytest.raises(InvalidStageTransition):
            production_service.update_batch_stage(
                sample_batch["id"], "mixing", principal=production_manager
            )
        assert production_service.get_batch(sample_batch["id"])["stage"] == "heating"

    def test_legacy_stage_alias(self, sample_batch, production_manager):
        batch = production_service.update_batch_stage(
            sample_batch["id"], "qc_final", {"overall_grade": "A"}, principal=production_manager
        )
        assert batch["stage"] == "final_qc"
        assert batch["progress"] == 100

    def test_unknown_stage_rejected(self, sample_batch, production_manager):
        with pytest.raises(ValidationError):
            production_service.update_batch_stage(
                sample_batch["id"], "fermenting", principal=production_manager
            )

    def test_invalid_stage_data_rejected(self, sample_batch, production_manager):
        with pytest.raises(ValidationError) as exc_info:
            production_service.update_batch_stage(
                sample_batch["id"], "mixing", {"ph": 20}, principal=production_manager
            )
        assert "ph must be between 0 and 14" in exc_info.value.errors

    def test_completed_output_quantity_scale(self, sample_batch, production_manager):
        with pytest.raises(ValidationError) as exc_info:
            production_service.update_batch_stage(
                sample_batch["id"],
                "completed",
                {"output_quantity": "97.1234"},
                principal=production_manager,
            )
        assert "output_quantity must have at most 3 decimal places" in exc_info.value.errors
        assert production_service.get_batch(sample_batch["id"])["status"] == "active"

    def test_non_finite_reading_rejected(self, sample_batch, production_manager):
        with pytest.raises(ValidationError) as exc_info:
            production_service.update_batch_stage(
                sample_batch["id"], "mixing", {"ph": "NaN"}, principal=production_manager
            )
        assert exc_info.value.errors == ["ph must be a number"]

    def test_completed_defaults_output_to_target(self, sample_batch, production_manager):
        batch = production_service.update_batch_stage(
            sample_batch["id"], "completed", principal=production_manager
        )
        assert batch["status"] == "completed"
        assert batch["output_quantity"] == Decimal("100")
        assert batch["completed_at"] is not None

    def test_completed_uses_recorded_output(self, completed_batch):
        assert completed_batch["output_quantity"] == Decimal("100")
        assert completed_batch["status"] == "completed"

    def test_completed_keeps_qc_verdict(self, completed_batch, production_manager, qc_officer):
        production_service.record_qc_verdict(
            completed_batch["id"], passed=True, overall_grade="A", principal=qc_officer
        )
        batch = production_service.update_batch_stage(
            completed_batch["id"], "completed", principal=production_manager
        )
        assert batch["status"] == "qc_passed"

    def test_not_found(self, test_db, production_manager):
        with pytest.raises(BatchNotFound):
            production_service.update_batch_stage(999, "mixing", principal=production_manager)


class TestProgressAndStatus:
    """Tests for update_batch_progress() and set_batch_status()"""

    def test_manual_progress(self, sample_batch, production_manager):
        batch = production_service.update_batch_progress(
            sample_batch["id"],
            {"progress": 55, "notes": "Slow heat-up", "priority": "high"},
            principal=production_manager,
        )
        assert batch["progress"] == 55
        assert batch["notes"] == "Slow heat-up"
        assert batch["priority"] == "high"
        assert batch["updated_by"] == "u-prod"

    def test_output_quantity_scale(self, sample_batch, production_manager):
        with pytest.raises(ValidationError) as exc_info:
            production_service.update_batch_progress(
                sample_batch["id"], {"output_quantity": "0.0004"}, principal=production_manager
            )
        assert exc_info.value.errors == ["output_quantity: Must have at most 3 decimal places"]

    def test_progress_out_of_range(self, sample_batch, production_manager):
        with pytest.raises(ValidationError):
            production_service.update_batch_progress(
                sample_batch["id"], {"progress": 120}, principal=production_manager
            )

    def test_unknown_field_rejected(self, sample_batch, production_manager):
        with pytest.raises(ValidationError) as exc_info:
            production_service.update_batch_progress(
                sample_batch["id"], {"batch_number": "X"}, principal=production_manager
            )
        assert "batch_number: Cannot be updated here" in exc_info.value.errors

    def test_handed_over_status_not_settable(self, sample_batch, production_manager):
        with pytest.raises(ValidationError):
            production_service.update_batch_progress(
                sample_batch["id"], {"status": "handed_over"}, principal=production_manager
            )

    def test_manual_completion(self, sample_batch, production_manager):
        batch = production_service.update_batch_progress(
            sample_batch["id"], {"status": "completed"}, principal=production_manager
        )
        assert batch["status"] == "completed"
        assert batch["completed_at"] is not None

    @pytest.mark.parametrize("status", ["on_hold", "qc_passed", "qc_failed", "active"])
    def test_only_completed_status_accepted(self, sample_batch, production_manager, status):
        with pytest.raises(ValidationError) as exc_info:
            production_service.update_batch_progress(
                sample_batch["id"], {"status": status}, principal=production_manager
            )
        assert "status: Only completed can be set here; use set_batch_status" in exc_info.value.errors
        assert production_service.get_batch(sample_batch["id"])["status"] == "active"

    def test_failed_batch_cannot_be_passed_through_progress(
        self, completed_batch, production_manager, qc_officer
    ):
        production_service.record_qc_verdict(
            completed_batch["id"], passed=False, overall_grade="D", principal=qc_officer
        )
        with pytest.raises(InvalidStatusTransition):
            production_service.set_batch_status(
                completed_batch["id"], "qc_passed", principal=production_manager
            )
        with pytest.raises(ValidationError):
            production_service.update_batch_progress(
                completed_batch["id"], {"status": "qc_passed"}, principal=production_manager
            )
        with pytest.raises(InvalidStatusTransition):
            production_service.update_batch_progress(
                completed_batch["id"], {"status": "completed"}, principal=production_manager
            )
        assert production_service.get_batch(completed_batch["id"])["status"] == "qc_failed"

    def test_hold_and_resume(self, sample_batch, production_manager):
        held = production_service.set_batch_status(
            sample_batch["id"], "on_hold", principal=production_manager, notes="Pump failure"
        )
        assert held["status"] == "on_hold"
        assert held["notes"] == "Pump failure"
        resumed = production_service.set_batch_status(
            sample_batch["id"], "active", principal=production_manager
        )
        assert resumed["status"] == "active"

    def test_invalid_transition(self, sample_batch, production_manager):
        with pytest.raises(InvalidStatusTransition):
            production_service.set_batch_status(
                sample_batch["id"], "qc_passed", principal=production_manager
            )

    def test_unknown_status(self, sample_batch, production_manager):
        with pytest.raises(ValidationError):
            production_service.set_batch_status(
                sample_batch["id"], "paused", principal=production_manager
            )


class TestQualityControl:
    """Tests for record_qc_data(), record_qc_verdict() and get_qc_records()"""

    def test_record_qc_data(self, sample_batch, qc_officer):
        record = production_service.record_qc_data(
            sample_batch["id"], "heating", {"temperature": 85, "passed": True}, principal=qc_officer
        )
        assert record["stage"] == "heating"
        assert record["qc_data"] == {"temperature": 85.0, "passed": True}
        assert record["recorded_by_name"] == "quinn@example.com"

        batch = production_service.get_batch(sample_batch["id"])
        assert batch["qc_stages"]["heating"]["qc_id"] == record["id"]
        assert batch["qc_stages"]["heating"]["completed"] is True

    def test_qc_records_newest_first(self, sample_batch, qc_officer):
        first = production_service.record_qc_data(
            sample_batch["id"], "mixing", {"ph": 4}, principal=qc_officer
        )
        second = production_service.record_qc_data(
            sample_batch["id"], "heating", {"ph": 4}, principal=qc_officer
        )
        records = production_service.get_qc_records(sample_batch["id"])
        assert [r["id"] for r in records] == [second["id"], first["id"]]

    def test_verdict_passed(self, completed_batch, qc_officer):
        batch = production_service.record_qc_verdict(
            completed_batch["id"],
            passed=True,
            overall_grade="B",
            principal=qc_officer,
            remarks="Slightly thin",
        )
        assert batch["status"] == "qc_passed"
        assert batch["qc_completed"] is True
        assert batch["qc_grade"] == "B"
        assert batch["qc_stages"]["final_qc"]["overall_grade"] == "B"

    def test_verdict_failed(self, completed_batch, qc_officer):
        batch = production_service.record_qc_verdict(
            completed_batch["id"], passed=False, overall_grade="D", principal=qc_officer
        )
        assert batch["status"] == "qc_failed"

    def test_verdict_requires_completed_batch(self, sample_batch, qc_officer):
        with pytest.raises(InvalidStatusTransition):
            production_service.record_qc_verdict(
                sample_batch["id"], passed=True, overall_grade="A", principal=qc_officer
            )

    def test_verdict_grade_validated(self, completed_batch, qc_officer):
        with pytest.raises(ValidationError):
            production_service.record_qc_verdict(
                completed_batch["id"], passed=True, overall_grade="Z", principal=qc_officer
            )


class TestHandover:
    """Tests for handover_batch_to_packing()"""

    def test_handover_defaults(self, completed_batch, production_manager):
        handover = production_service.handover_batch_to_packing(
            completed_batch["id"], {}, principal=production_manager
        )
        assert handover["batch_id"] == completed_batch["id"]
        assert handover["batch_number"] == completed_batch["batch_number"]
        assert handover["quantity"] == Decimal("100")
        assert handover["unit"] == "kg"
        assert handover["quality_grade"] == "A"
        assert handover["status"] == "handed_over"
        assert handover["received_by_packing"] is False
        assert handover["handed_over_by_name"] == "Pat Production"

        batch = production_service.get_batch(completed_batch["id"])
        assert batch["status"] == "handed_over"
        assert batch["handover_id"] == handover["id"]
        assert batch["handed_over_at"] is not None

    def test_handover_explicit_values(self, completed_batch, production_manager):
        handover = production_service.handover_batch_to_packing(
            completed_batch["id"],
            {"quantity": 95, "quality_grade": "B", "expiry_date": "2030-06-30"},
            principal=production_manager,
        )
        assert handover["quantity"] == Decimal("95")
        assert handover["quality_grade"] == "B"
        assert handover["expiry_date"] == "2030-06-30"

    def test_handover_quantity_scale(self, completed_batch, production_manager):
        with pytest.raises(ValidationError) as exc_info:
            production_service.handover_batch_to_packing(
                completed_batch["id"], {"quantity": "95.0004"}, principal=production_manager
            )
        assert "quantity: Must have at most 3 decimal places" in exc_info.value.errors
        assert production_service.get_batch_handovers() == []

    def test_handover_queues_notification(self, completed_batch, production_manager):
        handover = production_service.handover_batch_to_packing(
            completed_batch["id"], {}, principal=production_manager
        )
        outbox = notification_service.get_outbox(status="pending")
        assert len(outbox) == 1
        assert outbox[0]["role"] == ROLE_PACKING_AREA_MANAGER
        assert outbox[0]["notification_type"] == "batch_handover"
        assert outbox[0]["data"]["handover_id"] == handover["id"]

    def test_handover_requires_finished_batch(self, sample_batch, production_manager):
        with pytest.raises(BatchNotReadyForHandover):
            production_service.handover_batch_to_packing(
                sample_batch["id"], {}, principal=production_manager
            )
        assert production_service.get_batch_handovers() == []
        assert notification_service.get_outbox() == []

    def test_full_progress_is_enough(self, sample_batch, production_manager):
        production_service.update_batch_progress(
            sample_batch["id"], {"progress": 100}, principal=production_manager
        )
        handover = production_service.handover_batch_to_packing(
            sample_batch["id"], {}, principal=production_manager
        )
        assert handover["quantity"] == Decimal("100")

    def test_invalid_grade_leaves_batch_unchanged(self, completed_batch, production_manager):
        with pytest.raises(ValidationError):
            production_service.handover_batch_to_packing(
                completed_batch["id"], {"quality_grade": "E"}, principal=production_manager
            )
        assert production_service.get_batch(completed_batch["id"])["status"] == "completed"

    def test_handed_over_batch_is_frozen(self, completed_batch, production_manager, qc_officer):
        production_service.handover_batch_to_packing(
            completed_batch["id"], {}, principal=production_manager
        )
        with pytest.raises(BatchFrozen):
            production_service.update_batch_stage(
                completed_batch["id"], "completed", principal=production_manager
            )
        with pytest.raises(BatchFrozen):
            production_service.update_batch_progress(
                completed_batch["id"], {"notes": "late edit"}, principal=production_manager
            )
        with pytest.raises(BatchFrozen):
            production_service.record_qc_data(
                completed_batch["id"], "final_qc", {"overall_grade": "A"}, principal=qc_officer
            )
        with pytest.raises(BatchFrozen):
            production_service.handover_batch_to_packing(
                completed_batch["id"], {}, principal=production_manager
            )
        assert len(production_service.get_batch_handovers()) == 1

    def test_get_batch_handovers_filters(self, completed_batch, production_manager):
        production_service.handover_batch_to_packing(
            completed_batch["id"], {}, principal=production_manager
        )
        assert len(production_service.get_batch_handovers(received_by_packing=False)) == 1
        assert production_service.get_batch_handovers(received_by_packing=True) == []


class TestMonitoring:
    """Tests for get_batches_for_monitoring()"""

    def test_efficiency_and_delay(self, sample_batch, production_manager):
        production_service.update_batch_stage(
            sample_batch["id"], "completed", {"output_quantity": 95}, principal=production_manager
        )
        late = production_service.create_batch(
            {
                "product_id": "PRD-002",
                "product_name": "Chili Oil",
                "target_quantity": 20,
                "unit": "l",
                "expected_completion_date": "2020-01-01",
            },
            principal=production_manager,
        )

        rows = {row["id"]: row for row in production_service.get_batches_for_monitoring()}

        done = rows[sample_batch["id"]]
        assert done["efficiency"] == 95.0
        assert done["is_delayed"] is False
        assert done["cycle_time_days"] >= 0

        pending = rows[late["id"]]
        assert pending["efficiency"] is None
        assert pending["is_delayed"] is True
