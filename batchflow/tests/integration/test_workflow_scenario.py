"""
End-to-end workflow: a production batch travels through the Packing Area
into the Finished Goods Store.

Each step uses the public service functions with their own sessions, as
the CLI and any UI would.
"""

from decimal import Decimal

from batchflow.services import (
    dispatch_service,
    notification_service,
    packaging_service,
    packing_stock_service,
    product_variant_service,
    production_service,
)


class TestProductionToFinishedGoods:
    def test_full_flow(self, role_users, production_manager, qc_officer, packing_manager, fg_manager):
        # Production
        batch = production_service.create_batch(
            {
                "product_id": "PRD-001",
                "product_name": "Tomato Sauce",
                "target_quantity": 100,
                "unit": "kg",
            },
            principal=production_manager,
        )
        for stage, data in (
            ("mixing", {"temperature": 25, "remarks": "Smooth"}),
            ("heating", {"temperature": 92, "ph": "4.1"}),
            ("cooling", {"temperature": 18}),
            ("completed", {"output_quantity": 100}),
        ):
            batch = production_service.update_batch_stage(
                batch["id"], stage, data, principal=production_manager
            )
        assert batch["progress"] == 100
        assert batch["status"] == "completed"

        batch = production_service.record_qc_verdict(
            batch["id"], passed=True, overall_grade="B", principal=qc_officer
        )
        assert batch["status"] == "qc_passed"

        handover = production_service.handover_batch_to_packing(
            batch["id"],
            {"quantity": 95, "quality_grade": "B", "expiry_date": "2030-06-30"},
            principal=production_manager,
        )
        assert production_service.get_batch(batch["id"])["status"] == "handed_over"

        # Packing managers hear about it
        counts = notification_service.deliver_pending_notifications()
        assert counts["notifications"] == 2
        assert notification_service.get_user_notifications("u-pack")[0]["notification_type"] == "batch_handover"

        # Packing Area
        stock = packing_stock_service.receive_product_batch(handover["id"], principal=packing_manager)
        assert stock["quantity"] == Decimal("95")
        assert stock["quality_grade"] == "B"

        issued = packing_stock_service.issue_stock_for_packing(
            stock["id"], {"quantity": 30}, principal=packing_manager
        )
        assert issued["new_quantity"] == Decimal("65")

        variant = product_variant_service.create_product_variant(
            {"product_id": "PRD-001", "name": "500 g Jar", "size": "0.5", "unit": "kg"}
        )
        packaged = packaging_service.package_bulk_product(
            {"stock_id": stock["id"], "variant_id": variant["id"], "bulk_quantity_used": 60},
            principal=packing_manager,
        )
        assert packaged["units_produced"] == 120
        assert packing_stock_service.get_stock(stock["id"])["quantity"] == Decimal("5")

        dispatch = dispatch_service.export_to_fg_store(
            {"items": [{"packaged_product_id": packaged["id"], "units_to_export": 120}]},
            principal=packing_manager,
        )
        assert packaging_service.get_packaged_products()[0]["status"] == "fully_exported"

        # FG Store is told the release is waiting, then claims it
        notification_service.deliver_pending_notifications()
        fg_note = notification_service.get_user_notifications("u-fg")[0]
        assert fg_note["data"]["release_code"] == dispatch["release_code"]

        dispatch_service.claim_fg_dispatch(fg_note["data"]["dispatch_id"], principal=fg_manager)
        balance = dispatch_service.get_fg_inventory(product_id="PRD-001")[0]
        assert balance["quantity"] == Decimal("120")
        assert balance["quality_grade"] == "B"
        assert balance["expiry_date"] == "2030-06-30"

        # Audit trail of the packing stock row: in, out (issue), out (packaging)
        movements = packing_stock_service.get_stock_movements(stock_id=stock["id"])
        assert [m["movement_type"] for m in movements] == ["out", "out", "in"]
        assert sum(m["quantity"] for m in movements if m["movement_type"] == "out") == Decimal("90")

        assert dispatch_service.get_pending_fg_dispatches() == []
