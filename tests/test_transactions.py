"""
Tests for the transaction ledger: classification, validation, status
changes and deferred reconciliation.
"""

from decimal import Decimal

import pytest

from conftest import at, booking_data, purchase_order_data
from venue_ledger.core.exceptions import (
    ConcurrencyError,
    InvalidStateTransitionError,
    NotFoundError,
    ReconciliationPendingError,
    ValidationError,
)
from venue_ledger.models.enums import TransactionDirection, TransactionStatus, VendorType
from venue_ledger.schemas.transaction import TransactionCreate
from venue_ledger.services import transaction_service
from venue_ledger.services.booking_service import create_booking, delete_booking
from venue_ledger.services.purchase_order_service import create_purchase_order
from venue_ledger.services.queries import get_booking, get_purchase_order, get_transaction
from venue_ledger.services.reconciliation import sweep_pending_reconciliations
from venue_ledger.services.transaction_service import (
    list_booking_transactions,
    list_purchase_order_transactions,
    record_transaction,
    update_transaction_status,
)


def payment(booking_id: int, amount: str, **overrides) -> TransactionCreate:
    payload = {"booking_id": booking_id, "amount": Decimal(amount), "mode": "upi"}
    payload.update(overrides)
    return TransactionCreate(**payload)


def vendor_payment(booking_id: int, amount: str, po_id=None, **overrides) -> TransactionCreate:
    return payment(
        booking_id,
        amount,
        direction=TransactionDirection.OUTBOUND,
        vendor_type=VendorType.SERVICE,
        purchase_order_id=po_id,
        **overrides,
    )


@pytest.mark.asyncio
async def test_inbound_payments_are_classified(db_session, booking):
    """Booking total is 1000: 200 is an advance, 300 partial, 500 completes it."""
    first = await record_transaction(db_session, payment(booking.id, "200"))
    second = await record_transaction(db_session, payment(booking.id, "300"))
    third = await record_transaction(db_session, payment(booking.id, "500"))

    assert [first.type, second.type, third.type] == ["advance", "partial", "full"]


@pytest.mark.asyncio
async def test_single_payment_of_full_total_is_full(db_session, booking):
    txn = await record_transaction(db_session, payment(booking.id, "1000"))
    assert txn.type == "full"


@pytest.mark.asyncio
async def test_overpayment_is_full(db_session, booking):
    await record_transaction(db_session, payment(booking.id, "900"))
    txn = await record_transaction(db_session, payment(booking.id, "250"))
    assert txn.type == "full"

    refreshed = await get_booking(db_session, booking.id)
    assert refreshed.advance_amount == Decimal("1150")
    assert refreshed.payment_status == "paid"


@pytest.mark.asyncio
async def test_caller_supplied_type_is_ignored(db_session, booking):
    data = TransactionCreate(
        booking_id=booking.id,
        amount=Decimal("100"),
        mode="cash",
        type="full",
    )
    txn = await record_transaction(db_session, data)
    assert txn.type == "advance"


@pytest.mark.asyncio
async def test_recording_reconciles_the_booking(db_session, booking):
    txn = await record_transaction(db_session, payment(booking.id, "400"))

    assert txn.reconciliation_pending is False
    refreshed = await get_booking(db_session, booking.id)
    assert refreshed.advance_amount == Decimal("400")
    assert refreshed.payment_status == "partially_paid"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-50"])
async def test_non_positive_amount_rejected(db_session, booking, amount):
    with pytest.raises(ValidationError):
        await record_transaction(db_session, payment(booking.id, amount))


@pytest.mark.asyncio
async def test_unknown_booking_rejected(db_session):
    with pytest.raises(NotFoundError):
        await record_transaction(db_session, payment(9999, "100"))


@pytest.mark.asyncio
async def test_deleted_booking_rejects_new_money(db_session, booking):
    await delete_booking(db_session, booking.id)
    with pytest.raises(NotFoundError):
        await record_transaction(db_session, payment(booking.id, "100"))


@pytest.mark.asyncio
async def test_outbound_requires_vendor_type(db_session, booking):
    with pytest.raises(ValidationError):
        await record_transaction(
            db_session,
            payment(booking.id, "100", direction=TransactionDirection.OUTBOUND),
        )


@pytest.mark.asyncio
async def test_inbound_cannot_reference_a_po(db_session, booking):
    po = await create_purchase_order(db_session, purchase_order_data(booking.id, Decimal("500")))
    with pytest.raises(ValidationError):
        await record_transaction(db_session, payment(booking.id, "100", purchase_order_id=po.id))


@pytest.mark.asyncio
async def test_outbound_po_must_belong_to_booking(db_session, venue, booking):
    other = await create_booking(db_session, booking_data(venue.id, at(15), at(18)))
    po = await create_purchase_order(db_session, purchase_order_data(other.id, Decimal("500")))

    with pytest.raises(ValidationError):
        await record_transaction(db_session, vendor_payment(booking.id, "100", po.id))


@pytest.mark.asyncio
async def test_outbound_unknown_po_not_found(db_session, booking):
    with pytest.raises(NotFoundError):
        await record_transaction(db_session, vendor_payment(booking.id, "100", 9999))


@pytest.mark.asyncio
async def test_outbound_does_not_touch_booking_totals(db_session, booking):
    po = await create_purchase_order(db_session, purchase_order_data(booking.id, Decimal("500")))
    txn = await record_transaction(db_session, vendor_payment(booking.id, "200", po.id))

    assert txn.type == "vendor_payment"
    refreshed = await get_booking(db_session, booking.id)
    assert refreshed.advance_amount == Decimal("0")
    assert refreshed.payment_status == "unpaid"

    po = await get_purchase_order(db_session, po.id)
    assert po.paid_amount == Decimal("200")
    assert po.balance_amount == Decimal("300")
    assert po.status == "partially_paid"


@pytest.mark.asyncio
async def test_outbound_without_po_is_not_flagged(db_session, booking):
    txn = await record_transaction(db_session, vendor_payment(booking.id, "75"))
    assert txn.type == "vendor_payment"
    assert txn.purchase_order_id is None
    assert txn.reconciliation_pending is False


@pytest.mark.asyncio
async def test_initiated_payment_does_not_count_until_success(db_session, booking):
    txn = await record_transaction(
        db_session, payment(booking.id, "400", status=TransactionStatus.INITIATED)
    )
    assert txn.reconciliation_pending is False
    assert (await get_booking(db_session, booking.id)).advance_amount == Decimal("0")

    txn = await update_transaction_status(db_session, txn.id, TransactionStatus.SUCCESS, updated_by="cashier")
    assert txn.status == "success"
    assert txn.reconciliation_pending is False

    refreshed = await get_booking(db_session, booking.id)
    assert refreshed.advance_amount == Decimal("400")
    assert refreshed.payment_status == "partially_paid"


@pytest.mark.asyncio
async def test_initiated_payment_is_classified_on_its_own_amount(db_session, booking):
    txn = await record_transaction(
        db_session, payment(booking.id, "1000", status=TransactionStatus.INITIATED)
    )
    assert txn.type == "full"


@pytest.mark.asyncio
async def test_refund_reduces_paid_total(db_session, booking):
    await record_transaction(db_session, payment(booking.id, "300"))
    second = await record_transaction(db_session, payment(booking.id, "700"))
    assert (await get_booking(db_session, booking.id)).payment_status == "paid"

    await update_transaction_status(db_session, second.id, TransactionStatus.REFUNDED)

    refreshed = await get_booking(db_session, booking.id)
    assert refreshed.advance_amount == Decimal("300")
    assert refreshed.payment_status == "partially_paid"


@pytest.mark.asyncio
async def test_failed_payment_never_counts(db_session, booking):
    txn = await record_transaction(
        db_session, payment(booking.id, "400", status=TransactionStatus.INITIATED)
    )
    await update_transaction_status(db_session, txn.id, TransactionStatus.FAILED)

    assert (await get_booking(db_session, booking.id)).advance_amount == Decimal("0")
    with pytest.raises(InvalidStateTransitionError):
        await update_transaction_status(db_session, txn.id, TransactionStatus.SUCCESS)


@pytest.mark.asyncio
async def test_refunded_is_final(db_session, booking):
    txn = await record_transaction(db_session, payment(booking.id, "100"))
    await update_transaction_status(db_session, txn.id, TransactionStatus.REFUNDED)
    with pytest.raises(InvalidStateTransitionError):
        await update_transaction_status(db_session, txn.id, TransactionStatus.SUCCESS)


@pytest.mark.asyncio
async def test_cannot_record_a_refunded_transaction(db_session, booking):
    """Refunded is only reachable from success."""
    with pytest.raises(ValidationError):
        await record_transaction(
            db_session, payment(booking.id, "100", status=TransactionStatus.REFUNDED)
        )
    assert await list_booking_transactions(db_session, booking.id) == []


@pytest.mark.asyncio
async def test_refunding_the_first_of_two_payments(db_session, venue):
    """Total 10000: pay 3000, pay 7000, refund the 3000."""
    booking = await create_booking(
        db_session, booking_data(venue.id, at(15), at(18), total_amount=Decimal("10000"))
    )
    first = await record_transaction(db_session, payment(booking.id, "3000"))
    second = await record_transaction(db_session, payment(booking.id, "7000"))
    assert [first.type, second.type] == ["advance", "full"]
    assert (await get_booking(db_session, booking.id)).payment_status == "paid"

    await update_transaction_status(db_session, first.id, TransactionStatus.REFUNDED)

    refreshed = await get_booking(db_session, booking.id)
    assert refreshed.advance_amount == Decimal("7000")
    assert refreshed.payment_status == "partially_paid"


@pytest.mark.asyncio
async def test_reconciled_totals_do_not_depend_on_recording_order(db_session, venue, other_venue):
    amounts = ["3000", "2500", "4500"]
    forward = await create_booking(
        db_session, booking_data(venue.id, at(15), at(18), total_amount=Decimal("10000"))
    )
    backward = await create_booking(
        db_session, booking_data(other_venue.id, at(15), at(18), total_amount=Decimal("10000"))
    )

    recorded = {}
    for amount in amounts:
        recorded[(forward.id, amount)] = await record_transaction(db_session, payment(forward.id, amount))
    for amount in reversed(amounts):
        recorded[(backward.id, amount)] = await record_transaction(db_session, payment(backward.id, amount))

    for booking_id in (forward.id, backward.id):
        await update_transaction_status(db_session, recorded[(booking_id, "2500")].id, TransactionStatus.REFUNDED)

    results = []
    for booking_id in (forward.id, backward.id):
        reconciled = await get_booking(db_session, booking_id)
        results.append((reconciled.advance_amount, reconciled.payment_status))
    assert results == [(Decimal("7500"), "partially_paid")] * 2


@pytest.mark.asyncio
async def test_reconciliation_failure_keeps_transaction_flagged(db_session, booking, monkeypatch):
    """
    The owner cannot be reconciled: the payment is still recorded, stays
    flagged, and the sweep folds it in later.
    """

    async def unavailable(db, txn):
        raise ConcurrencyError("Booking reconciliation lost to concurrent writes")

    booking_id = booking.id
    monkeypatch.setattr(transaction_service, "reconcile_owner", unavailable)

    with pytest.raises(ReconciliationPendingError) as exc_info:
        await record_transaction(db_session, payment(booking_id, "250"))

    txn = await get_transaction(db_session, exc_info.value.transaction_id)
    assert txn.amount == Decimal("250")
    assert txn.reconciliation_pending is True
    assert (await get_booking(db_session, booking_id)).advance_amount == Decimal("0")

    summary = await sweep_pending_reconciliations(db_session)
    assert summary == {"bookings": 1, "purchase_orders": 0, "failed": 0}

    txn = await get_transaction(db_session, txn.id)
    assert txn.reconciliation_pending is False
    refreshed = await get_booking(db_session, booking.id)
    assert refreshed.advance_amount == Decimal("250")
    assert refreshed.payment_status == "partially_paid"


@pytest.mark.asyncio
async def test_next_payment_repairs_a_deferred_reconciliation(db_session, booking, monkeypatch):
    booking_id = booking.id

    async def unavailable(db, txn):
        raise ConcurrencyError("Booking reconciliation lost to concurrent writes")

    monkeypatch.setattr(transaction_service, "reconcile_owner", unavailable)
    with pytest.raises(ReconciliationPendingError):
        await record_transaction(db_session, payment(booking_id, "250"))
    monkeypatch.undo()

    await record_transaction(db_session, payment(booking_id, "250"))

    refreshed = await get_booking(db_session, booking_id)
    assert refreshed.advance_amount == Decimal("500")
    transactions = await list_booking_transactions(db_session, booking_id)
    assert all(not t.reconciliation_pending for t in transactions)


@pytest.mark.asyncio
async def test_list_transactions_by_direction(db_session, booking):
    po = await create_purchase_order(db_session, purchase_order_data(booking.id, Decimal("500")))
    inbound = await record_transaction(db_session, payment(booking.id, "100"))
    outbound = await record_transaction(db_session, vendor_payment(booking.id, "50", po.id))

    everything = await list_booking_transactions(db_session, booking.id)
    assert {t.id for t in everything} == {inbound.id, outbound.id}

    only_in = await list_booking_transactions(db_session, booking.id, TransactionDirection.INBOUND)
    assert [t.id for t in only_in] == [inbound.id]

    for_po = await list_purchase_order_transactions(db_session, po.id)
    assert [t.id for t in for_po] == [outbound.id]
