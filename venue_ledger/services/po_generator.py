"""
Purchase order generator: draft POs for a booking's vendors.

One catering PO when the booking has a catering vendor, one service PO per
service that names a vendor. Each PO is created in its own transaction; a
vendor that fails is logged and skipped so the others still get their PO.

Catering line items:
  1. aggregate line: per-person package price x guests, or the flat price
  2. one breakdown line per food-package section that lists items
     (section price per person x guests)
  3. an inclusions line at zero cost
The PO total is the aggregate line; breakdown lines describe it.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.core.exceptions import BookingEngineError, ConflictError, ValidationError
from venue_ledger.core.logging import get_logger
from venue_ledger.core.metrics import po_generation_failures
from venue_ledger.models.booking import Booking
from venue_ledger.models.enums import VendorType
from venue_ledger.models.purchase_order import PurchaseOrder
from venue_ledger.schemas.booking import ServiceAssignment, VendorContact
from venue_ledger.schemas.purchase_order import POLineItem, PurchaseOrderCreate, PurchaseOrderUpdate
from venue_ledger.services.po_lifecycle import EDITABLE_STATUSES
from venue_ledger.services.purchase_order_service import (
    create_purchase_order,
    list_booking_purchase_orders,
    update_purchase_order,
)
from venue_ledger.services.queries import get_booking

logger = get_logger(__name__)

CATERING_REFERENCE = "catering"


def service_reference(index: int, service_name: str) -> str:
    return f"service:{index}:{service_name}"


def _money(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def catering_total(food_package: Optional[dict], guests: int) -> Decimal:
    if not food_package:
        return Decimal("0")
    if food_package.get("flat_price") is not None:
        return _money(food_package["flat_price"])
    return _money(food_package.get("total_price_per_person")) * guests


def services_total(services: Optional[list]) -> Decimal:
    return sum((_money(s.get("price")) for s in services or []), Decimal("0"))


def build_catering_line_items(food_package: Optional[dict], guests: int) -> tuple[list[POLineItem], Decimal]:
    package = food_package or {}
    total = catering_total(package, guests)
    flat = package.get("flat_price") is not None

    lines = [
        POLineItem(
            description=f"{package.get('name', 'Catering Services')} for {guests} guests",
            service_type="catering",
            quantity=None if flat else guests,
            unit_price=None if flat else _money(package.get("total_price_per_person")),
            total_price=total,
        )
    ]

    for section in package.get("sections") or []:
        items = section.get("items") or []
        if not items:
            continue
        per_person = _money(section.get("section_total_per_person"))
        lines.append(
            POLineItem(
                description=f"{section['section_name']}: " + ", ".join(item["name"] for item in items),
                service_type="catering_section",
                quantity=guests,
                unit_price=per_person,
                total_price=per_person * guests,
            )
        )

    inclusions = package.get("inclusions") or []
    if inclusions:
        lines.append(
            POLineItem(
                description="Inclusions: " + ", ".join(inclusions),
                service_type="catering_inclusions",
                total_price=Decimal("0"),
            )
        )

    return lines, total


def build_catering_request(booking: Booking, created_by: Optional[str]) -> PurchaseOrderCreate:
    if not booking.catering_vendor:
        raise ValidationError("No catering vendor found in booking", booking_id=booking.id)

    lines, total = build_catering_line_items(booking.food_package, booking.number_of_guests)
    return PurchaseOrderCreate(
        booking_id=booking.id,
        vendor_type=VendorType.CATERING,
        vendor_details=VendorContact.model_validate(booking.catering_vendor),
        vendor_reference=CATERING_REFERENCE,
        line_items=lines,
        total_amount=total,
        due_date=booking.event_start,
        notes=f"Catering for {booking.occasion_type} - {booking.number_of_guests} guests",
        created_by=created_by,
    )


def build_service_request(booking: Booking, index: int, created_by: Optional[str]) -> PurchaseOrderCreate:
    services = booking.services or []
    if index < 0 or index >= len(services):
        raise ValidationError("Service not found at the specified index", booking_id=booking.id, service_index=index)

    service = ServiceAssignment.model_validate(services[index])
    if service.vendor is None:
        raise ValidationError("No vendor found for this service", booking_id=booking.id, service_index=index)

    return PurchaseOrderCreate(
        booking_id=booking.id,
        vendor_type=VendorType.SERVICE,
        vendor_details=service.vendor,
        vendor_reference=service_reference(index, service.service),
        line_items=[
            POLineItem(
                description=service.service,
                service_type=service.service,
                total_price=service.price,
            )
        ],
        total_amount=service.price,
        due_date=booking.event_start,
        notes=f"{service.service} for {booking.occasion_type}",
        created_by=created_by,
    )


def build_vendor_requests(booking: Booking, created_by: Optional[str]) -> list[PurchaseOrderCreate]:
    requests = []
    if booking.catering_vendor:
        requests.append(build_catering_request(booking, created_by))
    for index, service in enumerate(booking.services or []):
        if service.get("vendor"):
            requests.append(build_service_request(booking, index, created_by))
    return requests


async def generate_pos_for_booking(
    db: AsyncSession,
    booking_id: int,
    created_by: Optional[str] = None,
) -> list[PurchaseOrder]:
    """
    Create draft POs for every vendor on the booking.

    Raises ConflictError if the booking already has POs. Per-vendor failures
    are logged and skipped; if no PO could be created and at least one vendor
    failed, the last failure is raised.
    """
    booking = await get_booking(db, booking_id)

    existing = await list_booking_purchase_orders(db, booking_id)
    if existing:
        raise ConflictError(
            f"{len(existing)} PO(s) already exist for this booking",
            booking_id=booking_id,
            po_count=len(existing),
        )

    # Built up front: a failed vendor rolls the session back and expires `booking`
    requests = build_vendor_requests(booking, created_by)

    created: list[PurchaseOrder] = []
    last_error: Optional[Exception] = None

    for request in requests:
        try:
            created.append(await create_purchase_order(db, request, source="generated"))
        except (BookingEngineError, SQLAlchemyError) as e:
            await db.rollback()
            last_error = e
            po_generation_failures.inc()
            logger.error(
                "po_generation_failed",
                booking_id=booking_id,
                vendor_reference=request.vendor_reference,
                error=str(e),
            )

    if not created and last_error is not None:
        raise last_error

    logger.info(
        "purchase_orders_generated",
        booking_id=booking_id,
        created=len(created),
        failed=len(requests) - len(created),
    )
    return created


async def generate_po_for_vendor(
    db: AsyncSession,
    booking_id: int,
    vendor_type: VendorType,
    service_index: Optional[int] = None,
    created_by: Optional[str] = None,
) -> PurchaseOrder:
    booking = await get_booking(db, booking_id)

    if vendor_type == VendorType.CATERING:
        request = build_catering_request(booking, created_by)
    elif service_index is None:
        raise ValidationError("service_index is required for service vendor PO", booking_id=booking_id)
    else:
        request = build_service_request(booking, service_index, created_by)

    return await create_purchase_order(db, request, source="generated")


async def refresh_catering_po(
    db: AsyncSession,
    booking_id: int,
    updated_by: Optional[str] = None,
) -> Optional[PurchaseOrder]:
    """
    Rebuild the catering PO's lines and total from the booking's current guest
    count and food package, then reconcile it. Returns None when there is no
    catering PO to rebuild.
    """
    booking = await get_booking(db, booking_id)
    if not booking.catering_vendor:
        return None

    result = await db.execute(
        select(PurchaseOrder).where(
            PurchaseOrder.booking_id == booking_id,
            PurchaseOrder.vendor_reference == CATERING_REFERENCE,
        )
    )
    po = result.scalar_one_or_none()
    if po is None:
        return None
    if po.status not in EDITABLE_STATUSES:
        logger.info("catering_po_refresh_skipped", purchase_order_id=po.id, status=po.status)
        return None

    request = build_catering_request(booking, updated_by)
    po = await update_purchase_order(
        db,
        po.id,
        PurchaseOrderUpdate(
            vendor_details=request.vendor_details,
            line_items=request.line_items,
            total_amount=request.total_amount,
            updated_by=updated_by,
        ),
    )
    logger.info(
        "catering_po_refreshed",
        booking_id=booking_id,
        purchase_order_id=po.id,
        total_amount=str(po.total_amount),
    )
    return po
