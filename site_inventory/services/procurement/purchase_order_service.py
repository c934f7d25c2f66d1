import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload, selectinload

from site_inventory.constants.activity_codes import ActivityCode
from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.roles import PROJECT_DIRECTOR
from site_inventory.core.config import (
    APPLY_BUDGET_VALIDATION,
    PO_AUTO_APPROVE_LIMIT,
    PO_NUMBER_MAX_RETRIES,
)
from site_inventory.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from site_inventory.models.enums.purchase_order_status import PurchaseOrderStatus
from site_inventory.models.masters.item_models import Item
from site_inventory.models.masters.vendor_models import Vendor
from site_inventory.models.procurement.indent_models import Indent, IndentItem
from site_inventory.models.procurement.purchase_order_models import (
    PurchaseOrder,
    PurchaseOrderDetail,
)
from site_inventory.models.users.user_models import User
from site_inventory.schemas.procurement.purchase_order_schemas import (
    PurchaseOrderApproveSchema,
    PurchaseOrderCreateSchema,
    PurchaseOrderLineOutSchema,
    PurchaseOrderOutSchema,
)
from site_inventory.services.budget.budget_validation import find_budget_violations
from site_inventory.services.procurement.po_numbering import generate_po_number
from site_inventory.utils.activity_helpers import emit_activity
from site_inventory.utils.decimal_utils import ZERO, to_decimal, to_qty, to_rate

logger = logging.getLogger(__name__)


# =====================================================
# SHARED
# =====================================================
def _build_po_out(po: PurchaseOrder) -> PurchaseOrderOutSchema:
    return PurchaseOrderOutSchema(
        id=po.id,
        purchase_order_no=po.purchase_order_no,
        purchase_order_date=po.purchase_order_date,
        delivery_date=po.delivery_date,
        site_id=po.site_id,
        site=po.site.site if po.site else None,
        vendor_id=po.vendor_id,
        vendor=po.vendor.vendor_name if po.vendor else None,
        indent_id=po.indent_id,
        quotation_no=po.quotation_no,
        quotation_date=po.quotation_date,
        transport=po.transport,
        note=po.note,
        delivery_schedule=po.delivery_schedule,
        payment_terms_in_days=po.payment_terms_in_days,
        amount=po.amount,
        total_cgst_amount=po.total_cgst_amount,
        total_sgst_amount=po.total_sgst_amount,
        total_igst_amount=po.total_igst_amount,
        approval_status=po.approval_status,
        approved1_by_id=po.approved1_by_id,
        approved1_at=po.approved1_at,
        approved2_by_id=po.approved2_by_id,
        approved2_at=po.approved2_at,
        completed_by_id=po.completed_by_id,
        completed_at=po.completed_at,
        suspended_by_id=po.suspended_by_id,
        suspended_at=po.suspended_at,
        created_at=po.created_at,
        created_by_id=po.created_by_id,
        created_by=po.created_by_username,
        details=[PurchaseOrderLineOutSchema.model_validate(d) for d in po.details],
    )


async def _lock_purchase_order(db: AsyncSession, po_id: int) -> PurchaseOrder:
    po = await db.scalar(
        select(PurchaseOrder)
        .options(noload("*"))
        .where(PurchaseOrder.id == po_id)
        .with_for_update()
    )
    if not po:
        raise NotFoundError("Purchase order not found", ErrorCode.PO_NOT_FOUND)
    return po


async def _fetch_po_details(db: AsyncSession, po_id: int) -> list[PurchaseOrderDetail]:
    rows = await db.execute(
        select(PurchaseOrderDetail)
        .where(PurchaseOrderDetail.purchase_order_id == po_id)
        .order_by(PurchaseOrderDetail.serial_no)
    )
    return list(rows.scalars().all())


def _apply_approved_quantities(
    details: list[PurchaseOrderDetail],
    payload: PurchaseOrderApproveSchema | None,
    field: str,
    fallback: str | None = None,
) -> None:
    """Set ``field`` on every line: the given quantity, else ``fallback``, else qty."""
    by_id = {d.id: d for d in details}
    given = {}

    for row in (payload.details if payload else []):
        detail = by_id.get(row.detail_id)
        if not detail:
            raise ValidationError(
                f"Line {row.detail_id} does not belong to this purchase order",
                ErrorCode.PO_INVALID_LINES,
            )
        if row.detail_id in given:
            raise ValidationError(
                f"Line {row.detail_id} given more than once",
                ErrorCode.PO_INVALID_LINES,
            )
        qty = to_qty(row.qty)
        if qty > to_qty(detail.qty):
            raise ValidationError(
                f"Approved quantity {qty} exceeds ordered quantity {detail.qty} "
                f"on line {detail.serial_no}",
                ErrorCode.PO_INVALID_LINES,
            )
        given[row.detail_id] = qty

    for d in details:
        if d.id in given:
            value = given[d.id]
        elif fallback and getattr(d, fallback) is not None:
            value = getattr(d, fallback)
        else:
            value = d.qty
        setattr(d, field, value)


async def _activity(db, user, code, po, **context):
    await emit_activity(
        db,
        user=user,
        code=code,
        target_name=po.purchase_order_no,
        **context,
    )


# =====================================================
# CREATE
# =====================================================
async def _insert_purchase_order(
    db: AsyncSession,
    payload: PurchaseOrderCreateSchema,
    purchase_order_no: str,
    user: User,
) -> int:
    po = PurchaseOrder(
        purchase_order_no=purchase_order_no,
        purchase_order_date=payload.purchase_order_date,
        delivery_date=payload.delivery_date,
        site_id=payload.site_id,
        vendor_id=payload.vendor_id,
        indent_id=payload.indent_id,
        quotation_no=(payload.quotation_no or "").strip() or None,
        quotation_date=payload.quotation_date,
        transport=payload.transport,
        note=payload.note,
        delivery_schedule=payload.delivery_schedule,
        payment_terms_in_days=payload.payment_terms_in_days,
        amount=to_decimal(payload.amount),
        total_cgst_amount=to_decimal(payload.total_cgst_amount),
        total_sgst_amount=to_decimal(payload.total_sgst_amount),
        total_igst_amount=to_decimal(payload.total_igst_amount),
        approval_status=PurchaseOrderStatus.DRAFT,
        created_by_id=user.id,
        updated_by_id=user.id,
    )
    db.add(po)
    await db.flush()

    linked = []
    for index, line in enumerate(payload.details):
        detail = PurchaseOrderDetail(
            purchase_order_id=po.id,
            serial_no=index + 1,
            item_id=line.item_id,
            remark=line.remark,
            qty=to_qty(line.qty),
            ordered_qty=to_qty(line.qty),
            received_qty=ZERO,
            rate=to_rate(line.rate),
            discount_percent=line.discount_percent,
            dis_amt=to_decimal(line.dis_amt),
            cgst_percent=line.cgst_percent,
            cgst_amt=to_decimal(line.cgst_amt),
            sgst_percent=line.sgst_percent,
            sgst_amt=to_decimal(line.sgst_amt),
            igst_percent=line.igst_percent,
            igst_amt=to_decimal(line.igst_amt),
            amount=to_decimal(line.amount),
        )
        db.add(detail)
        if line.indent_item_id is not None:
            linked.append((line.indent_item_id, detail))

    await db.flush()

    # only lines of this PO's own indent are linked; others are ignored
    if linked and payload.indent_id:
        rows = await db.execute(
            select(IndentItem).where(
                IndentItem.id.in_([indent_item_id for indent_item_id, _ in linked]),
                IndentItem.indent_id == payload.indent_id,
            )
        )
        indent_items = {ii.id: ii for ii in rows.scalars().all()}
        for indent_item_id, detail in linked:
            indent_item = indent_items.get(indent_item_id)
            if indent_item:
                indent_item.purchase_order_detail_id = detail.id

    await _activity(db, user, ActivityCode.CREATE_PURCHASE_ORDER, po)
    return po.id


async def create_purchase_order(
    db: AsyncSession,
    payload: PurchaseOrderCreateSchema,
    user: User,
    today: date | None = None,
) -> PurchaseOrderOutSchema:
    if payload.vendor_id is not None:
        vendor = await db.scalar(select(Vendor.id).where(Vendor.id == payload.vendor_id))
        if not vendor:
            raise NotFoundError("Vendor not found", ErrorCode.VENDOR_NOT_FOUND)

    if payload.indent_id is not None:
        indent = await db.scalar(select(Indent.id).where(Indent.id == payload.indent_id))
        if not indent:
            raise NotFoundError("Indent not found", ErrorCode.INDENT_NOT_FOUND)

    item_ids = {line.item_id for line in payload.details}
    found = set(
        (await db.execute(select(Item.id).where(Item.id.in_(item_ids)))).scalars().all()
    )
    if item_ids - found:
        raise NotFoundError(
            f"Invalid item(s): {sorted(item_ids - found)}",
            ErrorCode.ITEM_NOT_FOUND,
        )

    if APPLY_BUDGET_VALIDATION:
        violations = await find_budget_violations(
            db,
            payload.site_id,
            [(line.item_id, line.qty) for line in payload.details],
        )
        if violations:
            raise ValidationError(
                "Item limit exceeded for: "
                + ", ".join(v.item_name or str(v.item_id) for v in violations),
                ErrorCode.PO_BUDGET_EXCEEDED,
                {"items": [v.model_dump(mode="json") for v in violations]},
            )

    actor_id = user.id
    po_id = None

    for attempt in range(1, PO_NUMBER_MAX_RETRIES + 1):
        purchase_order_no = await generate_po_number(db, payload.site_id, today)
        try:
            po_id = await _insert_purchase_order(db, payload, purchase_order_no, user)
            await db.commit()
            break
        except IntegrityError:
            await db.rollback()
            logger.warning(
                "PO number %s collided (attempt %d/%d)",
                purchase_order_no,
                attempt,
                PO_NUMBER_MAX_RETRIES,
            )
            # rollback expired the session; reload the actor
            user = await db.get(User, actor_id)

    if po_id is None:
        raise ConflictError(
            "Could not allocate a unique purchase order number, please retry",
            ErrorCode.PO_NUMBER_CONFLICT,
        )

    logger.info("Purchase order %s created (id=%s)", purchase_order_no, po_id)
    return await get_purchase_order(db, po_id)


# =====================================================
# APPROVAL LADDER
# =====================================================
async def approve_purchase_order_level1(
    db: AsyncSession,
    po_id: int,
    user: User,
    payload: PurchaseOrderApproveSchema | None = None,
) -> PurchaseOrderOutSchema:
    po = await _lock_purchase_order(db, po_id)

    if po.approval_status != PurchaseOrderStatus.DRAFT:
        raise ValidationError(
            "Only DRAFT purchase orders can be approved (level 1)",
            ErrorCode.PO_INVALID_STATUS,
        )
    if po.created_by_id == user.id:
        raise AuthorizationError(
            "Creator cannot approve level 1",
            ErrorCode.PO_SELF_APPROVAL,
        )

    details = await _fetch_po_details(db, po.id)
    _apply_approved_quantities(details, payload, "approved1_qty")

    now = datetime.now(timezone.utc)
    po.approval_status = PurchaseOrderStatus.APPROVED_LEVEL_1
    po.approved1_by_id = user.id
    po.approved1_at = now
    po.touch(user)

    auto_level2 = (
        to_decimal(po.amount) <= PO_AUTO_APPROVE_LIMIT
        or user.role.lower() == PROJECT_DIRECTOR
    )
    if auto_level2:
        _apply_approved_quantities(details, None, "approved2_qty", fallback="approved1_qty")
        po.approval_status = PurchaseOrderStatus.APPROVED_LEVEL_2
        po.approved2_by_id = user.id
        po.approved2_at = now

    await _activity(
        db,
        user,
        ActivityCode.APPROVE_PURCHASE_ORDER,
        po,
        level="level 1 + level 2" if auto_level2 else "level 1",
    )
    await db.commit()

    logger.info(
        "Purchase order %s approved level 1 by %s%s",
        po_id,
        user.id,
        " (auto level 2)" if auto_level2 else "",
    )
    return await get_purchase_order(db, po_id)


async def approve_purchase_order_level2(
    db: AsyncSession,
    po_id: int,
    user: User,
    payload: PurchaseOrderApproveSchema | None = None,
) -> PurchaseOrderOutSchema:
    po = await _lock_purchase_order(db, po_id)

    if po.approval_status != PurchaseOrderStatus.APPROVED_LEVEL_1:
        raise ValidationError(
            "Only level 1 approved purchase orders can be approved (level 2)",
            ErrorCode.PO_INVALID_STATUS,
        )
    if po.created_by_id == user.id:
        raise AuthorizationError(
            "Creator cannot approve level 2",
            ErrorCode.PO_SELF_APPROVAL,
        )
    if po.approved1_by_id == user.id:
        raise AuthorizationError(
            "Level 1 approver cannot approve level 2",
            ErrorCode.PO_SELF_APPROVAL,
        )

    details = await _fetch_po_details(db, po.id)
    _apply_approved_quantities(details, payload, "approved2_qty", fallback="approved1_qty")

    po.approval_status = PurchaseOrderStatus.APPROVED_LEVEL_2
    po.approved2_by_id = user.id
    po.approved2_at = datetime.now(timezone.utc)
    po.touch(user)

    await _activity(db, user, ActivityCode.APPROVE_PURCHASE_ORDER, po, level="level 2")
    await db.commit()

    logger.info("Purchase order %s approved level 2 by %s", po_id, user.id)
    return await get_purchase_order(db, po_id)


async def complete_purchase_order(
    db: AsyncSession,
    po_id: int,
    user: User,
) -> PurchaseOrderOutSchema:
    po = await _lock_purchase_order(db, po_id)

    if po.approval_status != PurchaseOrderStatus.APPROVED_LEVEL_2:
        raise ValidationError(
            "Only level 2 approved purchase orders can be completed",
            ErrorCode.PO_INVALID_STATUS,
        )

    po.approval_status = PurchaseOrderStatus.COMPLETED
    po.completed_by_id = user.id
    po.completed_at = datetime.now(timezone.utc)
    po.touch(user)

    await _activity(db, user, ActivityCode.COMPLETE_PURCHASE_ORDER, po)
    await db.commit()

    return await get_purchase_order(db, po_id)


async def suspend_purchase_order(
    db: AsyncSession,
    po_id: int,
    user: User,
) -> PurchaseOrderOutSchema:
    po = await _lock_purchase_order(db, po_id)

    if po.approval_status == PurchaseOrderStatus.COMPLETED:
        raise ValidationError(
            "Completed purchase order cannot be suspended",
            ErrorCode.PO_INVALID_STATUS,
        )
    if po.approval_status == PurchaseOrderStatus.SUSPENDED:
        raise ValidationError(
            "Purchase order is already suspended",
            ErrorCode.PO_INVALID_STATUS,
        )

    po.approval_status = PurchaseOrderStatus.SUSPENDED
    po.suspended_by_id = user.id
    po.suspended_at = datetime.now(timezone.utc)
    po.touch(user)

    await _activity(db, user, ActivityCode.SUSPEND_PURCHASE_ORDER, po)
    await db.commit()

    return await get_purchase_order(db, po_id)


def restored_status(po: PurchaseOrder) -> PurchaseOrderStatus:
    """Furthest stage reached before suspension."""
    if po.completed_at is not None:
        return PurchaseOrderStatus.COMPLETED
    if po.approved2_at is not None:
        return PurchaseOrderStatus.APPROVED_LEVEL_2
    if po.approved1_at is not None:
        return PurchaseOrderStatus.APPROVED_LEVEL_1
    return PurchaseOrderStatus.DRAFT


async def unsuspend_purchase_order(
    db: AsyncSession,
    po_id: int,
    user: User,
) -> PurchaseOrderOutSchema:
    po = await _lock_purchase_order(db, po_id)

    if po.approval_status != PurchaseOrderStatus.SUSPENDED:
        raise ValidationError(
            "Purchase order is not suspended",
            ErrorCode.PO_INVALID_STATUS,
        )

    po.approval_status = restored_status(po)
    po.suspended_by_id = None
    po.suspended_at = None
    po.touch(user)

    await _activity(
        db,
        user,
        ActivityCode.UNSUSPEND_PURCHASE_ORDER,
        po,
        status=po.approval_status.value,
    )
    await db.commit()

    return await get_purchase_order(db, po_id)


# =====================================================
# READ
# =====================================================
async def get_purchase_order(
    db: AsyncSession,
    po_id: int,
) -> PurchaseOrderOutSchema:
    po = await db.scalar(
        select(PurchaseOrder)
        .options(
            selectinload(PurchaseOrder.details),
            selectinload(PurchaseOrder.site),
            selectinload(PurchaseOrder.vendor),
            selectinload(PurchaseOrder.created_by),
        )
        .where(PurchaseOrder.id == po_id)
        .execution_options(populate_existing=True)
    )
    if not po:
        raise NotFoundError("Purchase order not found", ErrorCode.PO_NOT_FOUND)

    return _build_po_out(po)
