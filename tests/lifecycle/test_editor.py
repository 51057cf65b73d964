from decimal import Decimal

import pytest

from fencequote.core.errors import IllegalTransition, InvalidPricingData
from fencequote.domain.models import LineType, Quote, QuoteStatus
from fencequote.lifecycle.editor import QuoteEditor
from fencequote.lifecycle.states import QuoteEvent

D = Decimal


@pytest.fixture
def approved_quote(machine, line_factory):
    quote = Quote(id="q1", line_items=[line_factory("l1", price="6.50"), line_factory("l2")])
    pending = machine.transition(quote, QuoteEvent.REQUEST_APPROVAL).quote
    approved = machine.transition(pending, QuoteEvent.APPROVE, actor="mgr").quote
    sent = machine.transition(approved, QuoteEvent.SEND).quote
    reopened = machine.transition(sent, QuoteEvent.REQUEST_CHANGES).quote
    assert reopened.status is QuoteStatus.CHANGES_REQUESTED
    assert reopened.has_current_manager_approval
    return reopened


def test_quantity_change_clears_manager_approval(approved_quote):
    editor = QuoteEditor(approved_quote)

    editor.update_line_item("l1", quantity="150")

    assert editor.quote.manager_approved_at is None
    assert editor.quote.approved_fingerprint is None
    assert editor.approval_invalidated
    # caller's quote untouched
    assert approved_quote.manager_approved_at is not None


def test_description_change_keeps_approval(approved_quote):
    editor = QuoteEditor(approved_quote)
    editor.update_line_item("l1", description="6' cedar, dog-ear")

    assert editor.quote.manager_approved_at is not None
    assert not editor.approval_invalidated


def test_rate_change_clears_approval(approved_quote):
    editor = QuoteEditor(approved_quote)
    editor.set_rates(discount_percent="5")
    assert editor.quote.discount_percent == D("5")
    assert editor.approval_invalidated


def test_setting_same_rate_is_not_an_edit(approved_quote):
    editor = QuoteEditor(approved_quote)
    editor.set_rates(discount_percent=approved_quote.discount_percent)
    assert not editor.approval_invalidated


def test_add_and_soft_delete_recompute_totals(healthy_quote, line_factory):
    editor = QuoteEditor(healthy_quote)
    before = editor.totals.subtotal

    editor.add_line_item(line_factory("l2", qty="10", price="25.00"))
    assert editor.totals.subtotal == before + D("250.00")

    editor.remove_line_item("l2")
    assert editor.totals.subtotal == before
    assert [li.id for li in editor.quote.line_items] == ["l1", "l2"]
    assert editor.quote.line_items[1].is_deleted


def test_removed_line_cannot_be_edited(healthy_quote):
    editor = QuoteEditor(healthy_quote)
    editor.remove_line_item("l1")
    with pytest.raises(InvalidPricingData):
        editor.update_line_item("l1", quantity="1")


def test_edits_rejected_once_sent(machine, healthy_quote):
    sent = machine.transition(healthy_quote, QuoteEvent.SEND).quote
    editor = QuoteEditor(sent)

    with pytest.raises(IllegalTransition) as e:
        editor.set_rates(tax_rate_percent="8.25")
    assert e.value.code == "NOT_EDITABLE"
    assert sent.status is QuoteStatus.SENT


def test_negative_quantity_rejected(healthy_quote):
    with pytest.raises(InvalidPricingData):
        QuoteEditor(healthy_quote).update_line_item("l1", quantity="-3")


def test_id_cannot_be_rewritten(healthy_quote):
    with pytest.raises(InvalidPricingData):
        QuoteEditor(healthy_quote).update_line_item("l1", id="other")


def test_edits_rejected_while_pending_approval(machine, healthy_quote):
    pending = machine.transition(healthy_quote, QuoteEvent.REQUEST_APPROVAL).quote

    with pytest.raises(IllegalTransition) as e:
        QuoteEditor(pending).update_line_item("l1", unit_price="9.00")
    assert e.value.code == "NOT_EDITABLE"


def test_line_type_is_coerced(approved_quote):
    editor = QuoteEditor(approved_quote)
    line = editor.update_line_item("l2", line_type="labor")

    assert line.line_type is LineType.LABOR
    assert editor.approval_invalidated
    # fingerprint reads line_type.value
    assert editor.quote.pricing_fingerprint() != approved_quote.pricing_fingerprint()


def test_unknown_line_type_rejected(healthy_quote):
    with pytest.raises(InvalidPricingData) as e:
        QuoteEditor(healthy_quote).update_line_item("l1", line_type="bogus")
    assert e.value.code == "INVALID_LINE_TYPE"


@pytest.mark.parametrize("field", ["quantity", "unit_price", "unit_cost"])
def test_required_numbers_cannot_be_cleared(healthy_quote, field):
    editor = QuoteEditor(healthy_quote)
    with pytest.raises(InvalidPricingData) as e:
        editor.update_line_item("l1", **{field: None})
    assert e.value.code == "REQUIRED_FIELD"
    assert editor.quote.line_items[0] == healthy_quote.line_items[0]


def test_optional_cost_split_can_be_cleared(healthy_quote):
    line = QuoteEditor(healthy_quote).update_line_item("l1", labor_unit_cost=None)
    assert line.labor_unit_cost is None


def test_quantity_kept_to_four_places(healthy_quote, line_factory):
    editor = QuoteEditor(healthy_quote)

    assert editor.update_line_item("l1", quantity="10.12345").quantity == D("10.1235")
    assert editor.update_line_item("l1", quantity="12.375").quantity == D("12.3750")
    assert editor.add_line_item(line_factory("l2", qty="0.33333")).quantity == D("0.3333")
