"""
Unit tests for billing snapshots and billing groups.

Orders built by ``make_order`` bill as:
    Allover Sublimation run: 5 pcs at 100.00  -> 500
    DTF run:                 10 layouts at 1058 -> 10580
    Sublimation run:         10 pcs at 100     -> 1000
"""

import re
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from core.exceptions import (
    BillingContextNotFoundError,
    BillingInputError,
    ContextFinalizedError,
    StaleSnapshotError,
)
from models.billing import BillingDraft, ContextType, RunBillingInput
from services.billing_service import (
    BillingService,
    baseline_inputs,
    effective_run_input,
    order_amount,
)
from services.store import fiscal_year


def run_id_for(order, process_name):
    for process in order.processes:
        if process.name == process_name:
            return process.runs[0].id
    raise KeyError(process_name)


# Fixtures

@pytest.fixture
def order(make_order):
    return make_order("Allover Sublimation", "DTF", code="ORD1/26-27")


@pytest.fixture
def group(billing_service, order):
    return billing_service.create_group_context([order.id], description="October dispatch")


# =============================================================================
# Pure arithmetic
# =============================================================================

class TestOrderArithmetic:

    def test_baseline_inputs_from_run_totals(self, order):
        inputs = baseline_inputs(order)

        assert inputs[run_id_for(order, "Allover Sublimation")] == RunBillingInput(100.0, 5.0)
        assert inputs[run_id_for(order, "DTF")] == RunBillingInput(1058.0, 10.0)

    def test_effective_rate_prefers_draft_override(self):
        stored = {"r1": RunBillingInput(new_rate=10, quantity=4)}

        assert effective_run_input("r1", stored, {"r1": 12}) == RunBillingInput(12, 4)
        assert effective_run_input("r1", stored) == RunBillingInput(10, 4)

    def test_missing_inputs_are_zero(self):
        assert effective_run_input("r9", {}, None) == RunBillingInput(0, 0)
        assert effective_run_input("r9", None, {"r9": 50}) == RunBillingInput(50, 0)

    def test_order_amount(self, order):
        assert order_amount(order, baseline_inputs(order)) == 11080.0

    def test_order_amount_with_override(self, order):
        overrides = {run_id_for(order, "Allover Sublimation"): 120}

        assert order_amount(order, baseline_inputs(order), overrides) == 11180.0


# =============================================================================
# Order snapshots
# =============================================================================

class TestOrderSnapshots:

    def test_first_build_creates_order_context(self, billing_service, store, order):
        snapshot = billing_service.build_order_snapshot(order.id)

        assert snapshot.version == 1
        assert snapshot.is_draft
        assert snapshot.result == 11080.0
        assert snapshot.currency == "INR"
        assert store.get_context(snapshot.billing_context_id).type == ContextType.ORDER

    def test_rebuild_replaces_latest(self, billing_service, store, order):
        first = billing_service.build_order_snapshot(order.id)
        second = billing_service.build_order_snapshot(order.id)

        history = store.snapshot_history(first.billing_context_id)
        assert second.version == 2
        assert [s.is_latest for s in history] == [False, True]

    def test_save_order_billing_replaces_rate(self, billing_service, order):
        run_id = run_id_for(order, "Allover Sublimation")

        snapshot = billing_service.save_order_billing(order.id, {run_id: {"new_rate": 110}})

        assert snapshot.inputs[run_id] == RunBillingInput(110.0, 5.0)
        assert snapshot.result == 11130.0
        assert snapshot.reason == "MANUAL_RATE_UPDATE"

    def test_save_order_billing_accepts_quantity(self, billing_service, order):
        run_id = run_id_for(order, "Allover Sublimation")

        snapshot = billing_service.save_order_billing(
            order.id, {run_id: {"new_rate": 100, "quantity": 6}}
        )

        assert snapshot.result == 11180.0

    def test_save_order_billing_rejects_unknown_run(self, billing_service, order):
        with pytest.raises(BillingInputError) as exc_info:
            billing_service.save_order_billing(order.id, {"nope": {"new_rate": 1}})

        assert "does not belong" in exc_info.value.details["errors"][0]
        assert billing_service.get_latest_snapshot(order_id=order.id) is None

    @pytest.mark.parametrize("rate", [-1, "abc", None, float("inf"), True])
    def test_save_order_billing_rejects_bad_rates(self, billing_service, order, rate):
        run_id = run_id_for(order, "DTF")

        with pytest.raises(BillingInputError):
            billing_service.save_order_billing(order.id, {run_id: {"new_rate": rate}})

    def test_save_order_billing_checks_expected_version(self, billing_service, order):
        run_id = run_id_for(order, "Allover Sublimation")
        billing_service.save_order_billing(order.id, {run_id: {"new_rate": 110}}, expected_version=0)

        with pytest.raises(StaleSnapshotError) as exc_info:
            billing_service.save_order_billing(order.id, {run_id: {"new_rate": 90}}, expected_version=0)

        assert exc_info.value.actual_version == 1
        assert billing_service.get_latest_snapshot(order_id=order.id).result == 11130.0

    def test_save_order_billing_sees_group_finalize(self, billing_service, group, order):
        run_id = run_id_for(order, "Allover Sublimation")
        version = billing_service.get_latest_snapshot(order_id=order.id).version
        billing_service.finalize_group(group["id"], {order.id: {run_id: {"new_rate": 120}}})

        with pytest.raises(StaleSnapshotError):
            billing_service.save_order_billing(
                order.id, {run_id: {"new_rate": 90}}, expected_version=version
            )


# =============================================================================
# Group creation and membership
# =============================================================================

class TestCreateGroup:

    def test_group_starts_as_draft_with_fiscal_name(self, group, order):
        assert re.fullmatch(r"R1/\d{2}-\d{2}", group["name"])
        assert group["type"] == "GROUP"
        assert group["description"] == "October dispatch"
        assert group["latestSnapshot"]["isDraft"] is True
        assert group["latestSnapshot"]["version"] == 1
        assert group["latestSnapshot"]["result"] == 11080.0
        assert group["orders"][0]["billing"]["result"] == 11080.0

    def test_codes_increment(self, billing_service, group, make_order):
        second = billing_service.create_group_context([make_order("Sublimation").id])

        assert second["name"].startswith("R2/")

    def test_requires_orders(self, billing_service):
        with pytest.raises(BillingInputError):
            billing_service.create_group_context([])

    def test_rejects_incomplete_orders(self, billing_service, make_order):
        pending = make_order("DTF", configure=False)

        with pytest.raises(BillingInputError):
            billing_service.create_group_context([pending.id])

        assert billing_service.list_contexts()["meta"]["total"] == 0

    def test_rejects_unknown_orders(self, billing_service, order):
        with pytest.raises(BillingInputError):
            billing_service.create_group_context([order.id, "missing"])

    def test_duplicate_ids_collapse(self, billing_service, order):
        group = billing_service.create_group_context([order.id, order.id])

        assert group["orderIds"] == [order.id]


@pytest.mark.parametrize("today, expected", [
    (date(2026, 4, 1), "26-27"),
    (date(2026, 10, 19), "26-27"),
    (date(2027, 3, 31), "26-27"),
    (date(2099, 12, 1), "99-00"),
])
def test_fiscal_year_runs_april_to_march(today, expected):
    assert fiscal_year(today) == expected


class TestMembership:

    def test_add_orders_rebuilds_draft(self, billing_service, group, make_order):
        extra = make_order("Sublimation", code="ORD2/26-27")

        assert billing_service.add_orders(group["id"], [extra.id]) == {"added": 1}

        context = billing_service.get_context(group["id"])
        assert context["latestSnapshot"]["version"] == 2
        assert context["latestSnapshot"]["result"] == 12080.0

    def test_add_existing_order_is_noop(self, billing_service, group, order):
        assert billing_service.add_orders(group["id"], [order.id]) == {"added": 0}

    def test_remove_order(self, billing_service, group, make_order):
        extra = make_order("Sublimation")
        billing_service.add_orders(group["id"], [extra.id])

        billing_service.remove_order(group["id"], extra.id)

        context = billing_service.get_context(group["id"])
        assert context["orderIds"] == [group["orderIds"][0]]
        assert context["latestSnapshot"]["result"] == 11080.0

    def test_cannot_remove_last_order(self, billing_service, group, order):
        with pytest.raises(BillingInputError):
            billing_service.remove_order(group["id"], order.id)

    def test_membership_frozen_after_finalize(self, billing_service, group, order, make_order):
        billing_service.finalize_group(group["id"], {})

        with pytest.raises(ContextFinalizedError):
            billing_service.add_orders(group["id"], [make_order("DTF").id])
        with pytest.raises(ContextFinalizedError):
            billing_service.remove_order(group["id"], order.id)


# =============================================================================
# Finalize
# =============================================================================

class TestFinalizeGroup:

    def test_finalize_applies_override(self, billing_service, group, order):
        run_id = run_id_for(order, "Allover Sublimation")

        context = billing_service.finalize_group(
            group["id"], {order.id: {run_id: {"new_rate": 120}}}
        )

        latest = context["latestSnapshot"]
        assert latest["isDraft"] is False
        assert latest["version"] == 2
        assert latest["result"] == 11180.0
        assert latest["inputs"][order.id][run_id] == {"new_rate": 120.0, "quantity": 5.0}
        assert context["orders"][0]["billing"]["intent"] == "FINAL"
        assert context["orders"][0]["billing"]["result"] == 11180.0

    def test_finalize_is_idempotent(self, billing_service, group, order):
        inputs = {order.id: {run_id_for(order, "DTF"): {"new_rate": 1000}}}

        once = billing_service.finalize_group(group["id"], inputs)
        twice = billing_service.finalize_group(group["id"], inputs)

        assert once["latestSnapshot"]["result"] == 10500.0
        assert twice["latestSnapshot"]["result"] == once["latestSnapshot"]["result"]
        assert twice["latestSnapshot"]["version"] == 3

    def test_refinalize_stays_final(self, billing_service, group, order):
        billing_service.finalize_group(group["id"], {})
        context = billing_service.finalize_group(
            group["id"], {order.id: {run_id_for(order, "DTF"): {"new_rate": 0}}}
        )

        assert context["latestSnapshot"]["isDraft"] is False
        assert context["latestSnapshot"]["reason"] == "REFINALIZE"
        assert context["latestSnapshot"]["result"] == 500.0

    def test_refinalize_can_be_disabled(self, store, group, order):
        strict = BillingService(store, allow_refinalize=False)
        strict.finalize_group(group["id"], {})

        with pytest.raises(ContextFinalizedError):
            strict.finalize_group(group["id"], {})

    def test_invalid_request_applies_nothing(self, billing_service, store, group, order):
        good_run = run_id_for(order, "Allover Sublimation")
        inputs = {order.id: {good_run: {"new_rate": 999}, "ghost-run": {"new_rate": 1}}}

        with pytest.raises(BillingInputError):
            billing_service.finalize_group(group["id"], inputs)

        context = billing_service.get_context(group["id"])
        assert context["latestSnapshot"]["version"] == 1
        assert context["latestSnapshot"]["isDraft"] is True
        assert context["orders"][0]["billing"]["inputs"][good_run]["new_rate"] == 100.0

    def test_order_outside_group_rejected(self, billing_service, group, make_order):
        outsider = make_order("DTF")

        with pytest.raises(BillingInputError):
            billing_service.finalize_group(
                group["id"], {outsider.id: {run_id_for(outsider, "DTF"): {"new_rate": 1}}}
            )

    def test_negative_rate_rejected(self, billing_service, group, order):
        with pytest.raises(BillingInputError):
            billing_service.finalize_group(
                group["id"], {order.id: {run_id_for(order, "DTF"): {"new_rate": -5}}}
            )

    def test_stale_version_rejected(self, billing_service, group):
        billing_service.finalize_group(group["id"], {}, expected_version=1)

        with pytest.raises(StaleSnapshotError) as exc_info:
            billing_service.finalize_group(group["id"], {}, expected_version=1)

        assert exc_info.value.actual_version == 2

    def test_accepts_billing_draft(self, billing_service, group, order):
        draft = BillingDraft().with_rate(order.id, run_id_for(order, "Allover Sublimation"), 80)

        context = billing_service.finalize_group(group["id"], draft)

        assert context["latestSnapshot"]["result"] == 10980.0

    def test_order_context_is_not_a_group(self, billing_service, order):
        snapshot = billing_service.build_order_snapshot(order.id)

        with pytest.raises(BillingInputError):
            billing_service.finalize_group(snapshot.billing_context_id, {})

    def test_unknown_context(self, billing_service):
        with pytest.raises(BillingContextNotFoundError):
            billing_service.finalize_group("missing", {})

    def test_concurrent_finalizes_get_distinct_versions(self, billing_service, store, group, order):
        inputs = {order.id: {run_id_for(order, "DTF"): {"new_rate": 900}}}

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: billing_service.finalize_group(group["id"], inputs), range(8)))

        history = store.snapshot_history(group["id"])
        assert [s.version for s in history] == list(range(1, 10))
        assert [s.is_latest for s in history].count(True) == 1
        assert {r["latestSnapshot"]["result"] for r in results} == {9500.0}


# =============================================================================
# Reads
# =============================================================================

class TestReads:

    def test_preview_is_display_only(self, billing_service, group, order):
        draft = BillingDraft().with_rate(order.id, run_id_for(order, "Allover Sublimation"), 200)

        preview = billing_service.preview_context_total(group["id"], draft)

        assert preview["result"] == 11080.0
        assert preview["preview"] == 11580.0
        assert billing_service.get_context(group["id"])["latestSnapshot"]["version"] == 1

    def test_list_contexts_meta_and_search(self, billing_service, group, make_order):
        other = make_order("Sublimation", code="ORD9/26-27", quantity=40)
        billing_service.create_group_context([other.id])

        listing = billing_service.list_contexts(page=1, limit=1)
        assert listing["meta"]["total"] == 2
        assert listing["meta"]["totalPages"] == 2
        assert listing["meta"]["totalQuantity"] == 140
        assert listing["meta"]["totalEstimatedAmount"] == 12080.0
        assert len(listing["data"]) == 1

        found = billing_service.list_contexts(search="ord9")
        assert [c["orderCodes"] for c in found["data"]] == ["ORD9/26-27"]

        by_name = billing_service.list_contexts(search=group["name"])
        assert [c["id"] for c in by_name["data"]] == [group["id"]]

    def test_list_excludes_order_contexts(self, billing_service, order):
        billing_service.build_order_snapshot(order.id)

        assert billing_service.list_contexts()["data"] == []

    def test_latest_snapshot_lookups(self, billing_service, group, order):
        by_context = billing_service.get_latest_snapshot(billing_context_id=group["id"])
        by_order = billing_service.get_latest_snapshot(order_id=order.id)

        assert by_context.version == 1
        assert by_order.result == 11080.0

    def test_latest_snapshot_needs_an_id(self, billing_service):
        with pytest.raises(BillingInputError):
            billing_service.get_latest_snapshot()
