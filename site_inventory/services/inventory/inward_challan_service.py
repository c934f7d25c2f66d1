"""Inward delivery challans: vendor deliveries received against an approved PO.

Each line receives stock into the PO's site at the PO line rate, blends the
site rate by weighted average and raises the PO line's received quantity.
"""

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload, selectinload

from site_inventory.constants.activity_codes import ActivityCode
from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.exceptions import (
    AppException,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from site_inventory.models.enums.purchase_order_status import PurchaseOrderStatus
from site_inventory.models.inventory.inward_challan_models import (
    InwardDeliveryChallan,
    InwardDeliveryChallanDetail,
    InwardDeliveryChallanDetailBatch,
)
from site_inventory.models.masters.item_models import Item
from site_inventory.models.procurement.purchase_order_models import (
    PurchaseOrder,
    PurchaseOrderDetail,
)
from site_inventory.models.users.user_models import User
from site_inventory.schemas.inventory.inward_challan_schemas import (
    InwardChallanCreateSchema,
    InwardChallanListItemSchema,
    InwardChallanOutSchema,
    InwardLineOutSchema,
)
from site_inventory.services.inventory.document_numbering import generate_block_number
from site_inventory.services.inventory.stock_ledger_service import (
    apply_batch_receipt,
    get_or_create_batch,
    get_or_create_site_item,
    lock_site_items,
    receive_stock,
)
from site_inventory.utils.activity_helpers import emit_activity
from site_inventory.utils.decimal_utils import ZERO, qty_equal, to_decimal, to_qty, to_rate
from site_inventory.utils.response import PageData

logger = logging.getLogger(__name__)


def po_line_rate(line: PurchaseOrderDetail) -> Decimal:
    """Landed rate of a PO line: line amount over ordered qty, else the quoted rate."""
    qty = to_qty(line.qty)
    amount = to_decimal(line.amount)
    if qty > 0 and amount > 0:
        return to_rate(amount / qty)
    return to_rate(line.rate)


def receivable_qty(line: PurchaseOrderDetail) -> Decimal:
    approved = line.approved2_qty if line.approved2_qty is not None else line.qty
    return max(to_qty(approved) - to_qty(line.received_qty or ZERO), ZERO)


async def _lock_approved_po(db: AsyncSession, po_id: int):
    po = await db.scalar(
        select(PurchaseOrder)
        .options(noload("*"))
        .where(PurchaseOrder.id == po_id)
        .with_for_update()
    )
    if not po:
        raise NotFoundError("Purchase order not found", ErrorCode.PO_NOT_FOUND)

    if po.approval_status != PurchaseOrderStatus.APPROVED_LEVEL_2:
        raise ValidationError(
            f"Purchase order {po.purchase_order_no} is {po.approval_status.value}; "
            "only fully approved orders can be received",
            ErrorCode.PO_INVALID_STATUS,
        )

    rows = await db.execute(
        select(PurchaseOrderDetail)
        .options(noload("*"))
        .where(PurchaseOrderDetail.purchase_order_id == po_id)
        .order_by(PurchaseOrderDetail.id)
        .with_for_update()
    )
    return po, {d.id: d for d in rows.scalars().all()}


def _build_inward_out(c: InwardDeliveryChallan) -> InwardChallanOutSchema:
    return InwardChallanOutSchema(
        id=c.id,
        inward_challan_no=c.inward_challan_no,
        inward_challan_date=c.inward_challan_date,
        purchase_order_id=c.purchase_order_id,
        purchase_order_no=c.purchase_order.purchase_order_no if c.purchase_order else None,
        vendor_id=c.vendor_id,
        site_id=c.site_id,
        site=c.site.site if c.site else None,
        challan_no=c.challan_no,
        challan_date=c.challan_date,
        lr_no=c.lr_no,
        lr_date=c.lr_date,
        bill_no=c.bill_no,
        bill_date=c.bill_date,
        vehicle_no=c.vehicle_no,
        remarks=c.remarks,
        bill_amount=c.bill_amount,
        created_at=c.created_at,
        created_by=c.created_by_username,
        details=[InwardLineOutSchema.model_validate(d) for d in c.details],
    )


# =====================================================
# CREATE
# =====================================================
async def create_inward_challan(
    db: AsyncSession,
    payload: InwardChallanCreateSchema,
    user: User,
) -> InwardChallanOutSchema:
    po, po_lines = await _lock_approved_po(db, payload.purchase_order_id)

    receiving: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for line in payload.details:
        if line.purchase_order_detail_id not in po_lines:
            raise ValidationError(
                f"Line {line.purchase_order_detail_id} does not belong to "
                f"purchase order {po.purchase_order_no}",
                ErrorCode.IDC_INVALID_LINES,
            )
        receiving[line.purchase_order_detail_id] += to_qty(line.receiving_qty)

    for detail_id, qty in receiving.items():
        po_line = po_lines[detail_id]
        remaining = receivable_qty(po_line)
        if qty > remaining:
            raise ValidationError(
                f"Receiving {qty} exceeds the pending quantity {remaining} "
                f"on PO line {po_line.serial_no}",
                ErrorCode.IDC_OVER_RECEIPT,
                {"purchase_order_detail_id": detail_id, "pending": str(remaining)},
            )

    item_ids = {po_lines[line.purchase_order_detail_id].item_id for line in payload.details}
    rows = await db.execute(
        select(Item.id, Item.is_expiry_date).where(Item.id.in_(item_ids))
    )
    expiry_items = {r.id: r.is_expiry_date for r in rows.all()}

    for line in payload.details:
        item_id = po_lines[line.purchase_order_detail_id].item_id
        if not line.batches:
            continue
        if not expiry_items.get(item_id):
            raise ValidationError(
                f"Item {item_id} is not batch tracked",
                ErrorCode.BATCH_NOT_ALLOWED,
            )
        batch_total = sum((to_qty(b.qty) for b in line.batches), ZERO)
        if not qty_equal(batch_total, line.receiving_qty):
            raise ValidationError(
                f"Batch quantities ({batch_total}) do not add up to the "
                f"receiving quantity ({to_qty(line.receiving_qty)})",
                ErrorCode.BATCH_QTY_MISMATCH,
                {"purchase_order_detail_id": line.purchase_order_detail_id},
            )

    if payload.inward_challan_no and payload.inward_challan_no.strip():
        number = payload.inward_challan_no.strip()
        taken = await db.scalar(
            select(InwardDeliveryChallan.id).where(
                InwardDeliveryChallan.inward_challan_no == number
            )
        )
        if taken:
            raise ConflictError(
                f"Inward challan number {number} already exists",
                ErrorCode.IDC_DUPLICATE_NUMBER,
            )
    else:
        number = await generate_block_number(db, InwardDeliveryChallan.inward_challan_no)

    balances = await lock_site_items(db, po.site_id, item_ids)

    try:
        challan = InwardDeliveryChallan(
            inward_challan_no=number,
            inward_challan_date=payload.inward_challan_date,
            purchase_order_id=po.id,
            vendor_id=po.vendor_id,
            site_id=po.site_id,
            challan_no=payload.challan_no.strip(),
            challan_date=payload.challan_date,
            lr_no=payload.lr_no,
            lr_date=payload.lr_date,
            bill_no=payload.bill_no,
            bill_date=payload.bill_date,
            vehicle_no=payload.vehicle_no,
            remarks=payload.remarks,
            bill_amount=ZERO,
            created_by_id=user.id,
            updated_by_id=user.id,
        )
        db.add(challan)
        await db.flush()

        bill_amount = ZERO
        for line in payload.details:
            po_line = po_lines[line.purchase_order_detail_id]
            qty = to_qty(line.receiving_qty)
            rate = po_line_rate(po_line)
            amount = to_decimal(qty * rate)

            detail = InwardDeliveryChallanDetail(
                inward_delivery_challan_id=challan.id,
                purchase_order_detail_id=po_line.id,
                item_id=po_line.item_id,
                receiving_qty=qty,
                rate=rate,
                amount=amount,
                batches=[
                    InwardDeliveryChallanDetailBatch(
                        batch_number=b.batch_number,
                        expiry_date=b.expiry_date,
                        qty=to_qty(b.qty),
                    )
                    for b in line.batches
                ],
            )
            db.add(detail)

            po_line.received_qty = to_qty((po_line.received_qty or ZERO) + qty)

            site_item = await get_or_create_site_item(
                db, po.site_id, po_line.item_id, user, locked=balances
            )
            await receive_stock(
                db,
                site_item=site_item,
                qty=qty,
                rate=rate,
                document_type=StockDocumentType.INWARD_DELIVERY_CHALLAN,
                document_id=challan.id,
                actor=user,
            )
            for b in line.batches:
                batch = await get_or_create_batch(db, site_item, b.batch_number, b.expiry_date)
                apply_batch_receipt(batch, b.qty, rate)

            bill_amount += amount

        challan.bill_amount = to_decimal(bill_amount)

        await emit_activity(
            db,
            user=user,
            code=ActivityCode.CREATE_INWARD_CHALLAN,
            target_name=number,
            purchase_order_no=po.purchase_order_no,
            site_id=po.site_id,
        )

        await db.commit()

    except AppException:
        await db.rollback()
        raise

    except IntegrityError:
        await db.rollback()
        raise ConflictError(
            "Inward challan could not be saved, please retry",
            ErrorCode.IDC_DUPLICATE_NUMBER,
        )

    challan_id = challan.id
    logger.info(
        "Inward challan %s received against PO %s (%d line(s))",
        number,
        payload.purchase_order_id,
        len(payload.details),
    )
    return await get_inward_challan(db, challan_id)


# =====================================================
# READ
# =====================================================
async def get_inward_challan(db: AsyncSession, challan_id: int) -> InwardChallanOutSchema:
    challan = await db.scalar(
        select(InwardDeliveryChallan)
        .options(
            selectinload(InwardDeliveryChallan.details)
            .selectinload(InwardDeliveryChallanDetail.batches),
            selectinload(InwardDeliveryChallan.purchase_order),
            selectinload(InwardDeliveryChallan.site),
            selectinload(InwardDeliveryChallan.created_by),
        )
        .where(InwardDeliveryChallan.id == challan_id)
        .execution_options(populate_existing=True)
    )
    if not challan:
        raise NotFoundError("Inward delivery challan not found", ErrorCode.IDC_NOT_FOUND)

    return _build_inward_out(challan)


async def list_inward_challans(
    db: AsyncSession,
    *,
    site_id: int | None = None,
    purchase_order_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> PageData[InwardChallanListItemSchema]:
    filters = []
    if site_id:
        filters.append(InwardDeliveryChallan.site_id == site_id)
    if purchase_order_id:
        filters.append(InwardDeliveryChallan.purchase_order_id == purchase_order_id)
    if search:
        term = f"%{search.strip()}%"
        filters.append(
            or_(
                InwardDeliveryChallan.inward_challan_no.ilike(term),
                InwardDeliveryChallan.challan_no.ilike(term),
                InwardDeliveryChallan.bill_no.ilike(term),
            )
        )

    total = await db.scalar(
        select(func.count()).select_from(InwardDeliveryChallan).where(*filters)
    )
    rows = await db.execute(
        select(InwardDeliveryChallan)
        .options(noload("*"))
        .where(*filters)
        .order_by(InwardDeliveryChallan.created_at.desc(), InwardDeliveryChallan.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    return PageData[InwardChallanListItemSchema](
        total=total or 0,
        page=page,
        page_size=page_size,
        items=[InwardChallanListItemSchema.model_validate(c) for c in rows.scalars().all()],
    )
