"""Outward delivery challans: inter-site stock transfer in three steps.

draft --approve--> approved --accept--> accepted

Approval fixes the quantities to send; acceptance at the receiving site moves
the stock. Every check runs before the first write so a rejected transition
leaves balances, ledger and header untouched.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload, selectinload

from site_inventory.constants.activity_codes import ActivityCode
from site_inventory.constants.error_codes import ErrorCode
from site_inventory.constants.stock_document_type import StockDocumentType
from site_inventory.core.exceptions import (
    AppException,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from site_inventory.models.enums.challan_status import ChallanStatus
from site_inventory.models.inventory.outward_challan_models import (
    OutwardDeliveryChallan,
    OutwardDeliveryChallanDetail,
    OutwardDeliveryChallanDetailBatch,
)
from site_inventory.models.inventory.site_item_models import SiteItem
from site_inventory.models.masters.item_models import Item
from site_inventory.models.masters.site_models import Site
from site_inventory.models.users.user_models import User
from site_inventory.schemas.inventory.outward_challan_schemas import (
    OutwardChallanCreateSchema,
    ChallanApproveSchema,
    ChallanAcceptSchema,
    ChallanBatchOutSchema,
    ChallanLineOutSchema,
    OutwardChallanOutSchema,
    OutwardChallanListItemSchema,
)
from site_inventory.services.inventory.document_numbering import (
    generate_block_number,
    next_block_number,
)
from site_inventory.services.inventory.stock_ledger_service import (
    apply_batch_issue,
    apply_batch_receipt,
    ensure_batch_expiry,
    get_or_create_batch,
    get_or_create_site_item,
    issue_stock,
    lock_site_item_batches,
    lock_site_items,
    receive_stock,
)
from site_inventory.utils.activity_helpers import emit_activity
from site_inventory.utils.decimal_utils import ZERO, qty_equal, to_decimal, to_qty, to_rate
from site_inventory.utils.response import PageData

logger = logging.getLogger(__name__)


# =====================================================
# NUMBERING
# =====================================================
next_challan_number = next_block_number


async def generate_outward_challan_number(db: AsyncSession) -> str:
    return await generate_block_number(db, OutwardDeliveryChallan.outward_challan_no)


# =====================================================
# SHARED HELPERS
# =====================================================
async def _lock_challan(db: AsyncSession, challan_id: int) -> OutwardDeliveryChallan:
    challan = await db.scalar(
        select(OutwardDeliveryChallan)
        .options(noload("*"))
        .where(OutwardDeliveryChallan.id == challan_id)
        .with_for_update()
    )
    if not challan:
        raise NotFoundError("Outward delivery challan not found", ErrorCode.ODC_NOT_FOUND)
    return challan


async def _fetch_details(
    db: AsyncSession,
    challan_id: int,
) -> list[OutwardDeliveryChallanDetail]:
    rows = await db.execute(
        select(OutwardDeliveryChallanDetail)
        .options(
            selectinload(OutwardDeliveryChallanDetail.batches),
            selectinload(OutwardDeliveryChallanDetail.item),
        )
        .where(OutwardDeliveryChallanDetail.outward_delivery_challan_id == challan_id)
        .order_by(OutwardDeliveryChallanDetail.id)
    )
    return list(rows.scalars().all())


def _resolve_line_quantities(
    details: list[OutwardDeliveryChallanDetail],
    rows: list[tuple[int, Decimal]],
    field: str,
) -> dict[int, Decimal]:
    """Every line exactly once, each quantity > 0."""
    detail_ids = {d.id for d in details}
    quantities: dict[int, Decimal] = {}

    for detail_id, qty in rows:
        if detail_id not in detail_ids:
            raise ValidationError(
                f"Line {detail_id} does not belong to this challan",
                ErrorCode.ODC_INVALID_LINES,
            )
        if detail_id in quantities:
            raise ValidationError(
                f"Line {detail_id} given more than once",
                ErrorCode.ODC_INVALID_LINES,
            )
        qty = to_qty(qty)
        if qty <= 0:
            raise ValidationError(
                f"{field} must be greater than 0 for line {detail_id}",
                ErrorCode.ODC_INVALID_LINES,
                {"detail_id": detail_id, field: str(qty)},
            )
        quantities[detail_id] = qty

    missing = detail_ids - quantities.keys()
    if missing:
        raise ValidationError(
            f"Missing {field} for line(s) {sorted(missing)}",
            ErrorCode.ODC_INVALID_LINES,
        )
    return quantities


def _check_against_stock(
    details: list[OutwardDeliveryChallanDetail],
    quantities: dict[int, Decimal],
    balances: dict[int, SiteItem],
    site_id: int,
) -> None:
    # the same item may sit on several lines
    needed: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for d in details:
        needed[d.item_id] += quantities[d.id]

    for item_id, qty in needed.items():
        site_item = balances.get(item_id)
        available = to_qty(site_item.closing_stock) if site_item else ZERO
        if qty > available:
            raise ValidationError(
                f"Quantity {qty} of item {item_id} exceeds closing stock "
                f"{available} at site {site_id}",
                ErrorCode.STOCK_INSUFFICIENT,
                {
                    "item_id": item_id,
                    "site_id": site_id,
                    "requested": str(qty),
                    "available": str(available),
                },
            )


def _build_challan_out(c: OutwardDeliveryChallan) -> OutwardChallanOutSchema:
    return OutwardChallanOutSchema(
        id=c.id,
        outward_challan_no=c.outward_challan_no,
        outward_challan_date=c.outward_challan_date,
        challan_no=c.challan_no,
        challan_date=c.challan_date,
        remarks=c.remarks,
        from_site_id=c.from_site_id,
        from_site=c.from_site.site if c.from_site else None,
        to_site_id=c.to_site_id,
        to_site=c.to_site.site if c.to_site else None,
        status=c.status,
        is_approved1=c.is_approved1,
        is_accepted=c.is_accepted,
        approved1_by_id=c.approved1_by_id,
        approved1_by=c.approved1_by.username if c.approved1_by else None,
        approved1_at=c.approved1_at,
        accepted_by_id=c.accepted_by_id,
        accepted_by=c.accepted_by.username if c.accepted_by else None,
        accepted_at=c.accepted_at,
        created_at=c.created_at,
        created_by_id=c.created_by_id,
        created_by=c.created_by_username,
        details=[
            ChallanLineOutSchema(
                id=d.id,
                item_id=d.item_id,
                item_code=d.item.item_code if d.item else None,
                item=d.item.item if d.item else None,
                qty=d.qty,
                challan_qty=d.challan_qty,
                approved1_qty=d.approved1_qty,
                received_qty=d.received_qty,
                remarks=d.remarks,
                batches=[ChallanBatchOutSchema.model_validate(b) for b in d.batches],
            )
            for d in c.details
        ],
    )


# =====================================================
# CREATE
# =====================================================
async def create_outward_challan(
    db: AsyncSession,
    payload: OutwardChallanCreateSchema,
    user: User,
) -> OutwardChallanOutSchema:
    if not payload.details:
        raise ValidationError(
            "Challan must contain at least one item",
            ErrorCode.ODC_EMPTY_ITEMS,
        )

    if payload.from_site_id == payload.to_site_id:
        raise ValidationError(
            "From site and to site must differ",
            ErrorCode.ODC_INVALID_SITE,
        )

    site_count = await db.scalar(
        select(func.count())
        .select_from(Site)
        .where(Site.id.in_([payload.from_site_id, payload.to_site_id]))
    )
    if site_count != 2:
        raise NotFoundError("Invalid from/to site", ErrorCode.SITE_NOT_FOUND)

    item_ids = {line.item_id for line in payload.details}
    rows = await db.execute(
        select(Item.id, Item.is_expiry_date).where(Item.id.in_(item_ids))
    )
    expiry_items = {r.id: r.is_expiry_date for r in rows.all()}

    unknown = item_ids - expiry_items.keys()
    if unknown:
        raise NotFoundError(
            f"Invalid item(s): {sorted(unknown)}",
            ErrorCode.ITEM_NOT_FOUND,
        )

    for line in payload.details:
        if line.batches and not expiry_items[line.item_id]:
            raise ValidationError(
                f"Item {line.item_id} is not batch tracked",
                ErrorCode.BATCH_NOT_ALLOWED,
            )

    if payload.outward_challan_no and payload.outward_challan_no.strip():
        number = payload.outward_challan_no.strip()
        taken = await db.scalar(
            select(OutwardDeliveryChallan.id).where(
                OutwardDeliveryChallan.outward_challan_no == number
            )
        )
        if taken:
            raise ConflictError(
                f"Outward challan number {number} already exists",
                ErrorCode.ODC_DUPLICATE_NUMBER,
            )
    else:
        number = await generate_outward_challan_number(db)

    try:
        challan = OutwardDeliveryChallan(
            outward_challan_no=number,
            outward_challan_date=payload.outward_challan_date,
            challan_no=payload.challan_no,
            challan_date=payload.challan_date,
            remarks=payload.remarks,
            from_site_id=payload.from_site_id,
            to_site_id=payload.to_site_id,
            status=ChallanStatus.draft,
            created_by_id=user.id,
        )
        db.add(challan)
        await db.flush()

        for line in payload.details:
            detail = OutwardDeliveryChallanDetail(
                outward_delivery_challan_id=challan.id,
                item_id=line.item_id,
                qty=to_qty(line.challan_qty),
                challan_qty=to_qty(line.challan_qty),
                remarks=line.remarks,
            )
            db.add(detail)
            await db.flush()

            db.add_all(
                [
                    OutwardDeliveryChallanDetailBatch(
                        outward_delivery_challan_detail_id=detail.id,
                        batch_number=b.batch_number,
                        expiry_date=b.expiry_date,
                        qty=to_qty(b.qty),
                        unit_rate=to_rate(b.unit_rate),
                        amount=to_decimal(b.qty * b.unit_rate),
                    )
                    for b in line.batches
                ]
            )

        await emit_activity(
            db,
            user=user,
            code=ActivityCode.CREATE_OUTWARD_CHALLAN,
            target_name=number,
        )

        await db.commit()

    except IntegrityError:
        await db.rollback()
        raise ConflictError(
            f"Outward challan number {number} already exists",
            ErrorCode.ODC_DUPLICATE_NUMBER,
        )

    challan_id = challan.id
    logger.info("Outward challan %s created (id=%s)", number, challan_id)
    return await get_outward_challan(db, challan_id)


# =====================================================
# APPROVE (LEVEL 1)
# =====================================================
async def approve_challan(
    db: AsyncSession,
    challan_id: int,
    user: User,
    payload: ChallanApproveSchema,
) -> OutwardChallanOutSchema:
    challan = await _lock_challan(db, challan_id)

    if challan.status != ChallanStatus.draft:
        raise ValidationError(
            f"Challan is already {challan.status.value}",
            ErrorCode.ODC_INVALID_STATUS,
        )

    if challan.created_by_id == user.id:
        logger.warning("User %s tried to approve own challan %s", user.id, challan_id)
        raise AuthorizationError(
            "Creator cannot approve their own challan",
            ErrorCode.ODC_SELF_APPROVAL,
        )

    details = await _fetch_details(db, challan.id)
    quantities = _resolve_line_quantities(
        details,
        [(row.detail_id, row.approved1_qty) for row in payload.details],
        "approved1_qty",
    )

    balances = await lock_site_items(
        db, challan.from_site_id, {d.item_id for d in details}
    )
    _check_against_stock(details, quantities, balances, challan.from_site_id)

    try:
        for d in details:
            d.approved1_qty = quantities[d.id]
            d.qty = quantities[d.id]

        challan.status = ChallanStatus.approved
        challan.approved1_by_id = user.id
        challan.approved1_at = datetime.now(timezone.utc)
        challan.touch(user)

        await emit_activity(
            db,
            user=user,
            code=ActivityCode.APPROVE_OUTWARD_CHALLAN,
            target_name=challan.outward_challan_no,
        )

        await db.commit()

    except IntegrityError:
        await db.rollback()
        raise ConflictError("Concurrent challan update detected")

    logger.info("Outward challan %s approved by user %s", challan_id, user.id)
    return await get_outward_challan(db, challan_id)


# =====================================================
# ACCEPT (STOCK MOVES)
# =====================================================
async def accept_challan(
    db: AsyncSession,
    challan_id: int,
    user: User,
    payload: ChallanAcceptSchema,
) -> OutwardChallanOutSchema:
    challan = await _lock_challan(db, challan_id)

    if challan.status != ChallanStatus.approved:
        raise ValidationError(
            "Challan must be approved before acceptance"
            if challan.status == ChallanStatus.draft
            else "Challan is already accepted",
            ErrorCode.ODC_INVALID_STATUS,
        )

    if user.id == challan.created_by_id:
        logger.warning("User %s tried to accept own challan %s", user.id, challan_id)
        raise AuthorizationError(
            "Creator cannot accept the challan",
            ErrorCode.ODC_SELF_APPROVAL,
        )

    if user.id == challan.approved1_by_id:
        logger.warning("Approver %s tried to accept challan %s", user.id, challan_id)
        raise AuthorizationError(
            "Approver cannot accept the challan",
            ErrorCode.ODC_SELF_APPROVAL,
        )

    details = await _fetch_details(db, challan.id)
    quantities = _resolve_line_quantities(
        details,
        [(row.detail_id, row.received_qty) for row in payload.details],
        "received_qty",
    )
    acceptance = {row.detail_id: row for row in payload.details}
    item_ids = {d.item_id for d in details}

    from_balances = await lock_site_items(db, challan.from_site_id, item_ids)
    _check_against_stock(details, quantities, from_balances, challan.from_site_id)

    # -------------------------
    # BATCH PLAN
    # -------------------------
    plan: dict[int, list[tuple[str, object, Decimal, Decimal]]] = {}
    for d in details:
        supplied = acceptance[d.id].batches

        if not d.item.is_expiry_date:
            if supplied:
                raise ValidationError(
                    f"Item {d.item_id} is not batch tracked",
                    ErrorCode.BATCH_NOT_ALLOWED,
                )
            plan[d.id] = []
            continue

        if supplied is not None:
            rows = [
                (b.batch_number, b.expiry_date, to_qty(b.qty), to_rate(b.unit_rate))
                for b in supplied
            ]
        else:
            rows = [
                (b.batch_number, b.expiry_date, to_qty(b.qty), to_rate(b.unit_rate))
                for b in d.batches
            ]

        if rows:
            total = sum((r[2] for r in rows), ZERO)
            if not qty_equal(total, quantities[d.id]):
                raise ValidationError(
                    f"Batch quantities ({total}) must equal received quantity "
                    f"({quantities[d.id]}) for line {d.id}",
                    ErrorCode.BATCH_QTY_MISMATCH,
                    {"detail_id": d.id},
                )
        plan[d.id] = rows

    # -------------------------
    # FROM-SITE BATCHES
    # -------------------------
    from_keys = [
        (from_balances[d.item_id].id, r[0])
        for d in details
        for r in plan[d.id]
    ]
    from_batches = await lock_site_item_batches(db, from_keys)

    batch_needed: dict[tuple[int, str], Decimal] = defaultdict(lambda: ZERO)
    for d in details:
        site_item = from_balances[d.item_id]
        for batch_number, expiry_date, qty, _ in plan[d.id]:
            key = (site_item.id, batch_number)
            batch = from_batches.get(key)
            if not batch:
                raise ValidationError(
                    f"Batch {batch_number} of item {d.item_id} not found at from site",
                    ErrorCode.BATCH_NOT_FOUND,
                )
            ensure_batch_expiry(batch, expiry_date)
            batch_needed[key] += qty

    for key, qty in batch_needed.items():
        available = to_qty(from_batches[key].closing_qty)
        if qty > available:
            raise ValidationError(
                f"Batch {key[1]} has only {available} in stock, {qty} requested",
                ErrorCode.STOCK_INSUFFICIENT,
            )

    # -------------------------
    # TO-SITE BATCH EXPIRY
    # -------------------------
    to_balances = await lock_site_items(db, challan.to_site_id, item_ids)
    to_keys = [
        (to_balances[d.item_id].id, r[0])
        for d in details
        if d.item_id in to_balances
        for r in plan[d.id]
    ]
    to_batches = await lock_site_item_batches(db, to_keys)
    for d in details:
        to_item = to_balances.get(d.item_id)
        if not to_item:
            continue
        for batch_number, expiry_date, _, _ in plan[d.id]:
            existing = to_batches.get((to_item.id, batch_number))
            if existing:
                ensure_batch_expiry(existing, expiry_date)

    # -------------------------
    # MUTATIONS
    # -------------------------
    try:
        for d in details:
            qty = quantities[d.id]
            d.received_qty = qty
            d.qty = qty

            from_item = from_balances[d.item_id]
            rate = await issue_stock(
                db,
                site_item=from_item,
                qty=qty,
                document_type=StockDocumentType.OUTWARD_DELIVERY_CHALLAN,
                document_id=challan.id,
                actor=user,
            )

            to_item = await get_or_create_site_item(
                db, challan.to_site_id, d.item_id, user, locked=to_balances
            )
            await receive_stock(
                db,
                site_item=to_item,
                qty=qty,
                rate=rate,
                document_type=StockDocumentType.OUTWARD_DELIVERY_CHALLAN,
                document_id=challan.id,
                actor=user,
            )

            if acceptance[d.id].batches is not None:
                d.batches = [
                    OutwardDeliveryChallanDetailBatch(
                        batch_number=batch_number,
                        expiry_date=expiry_date,
                        qty=batch_qty,
                        unit_rate=batch_rate,
                        amount=to_decimal(batch_qty * batch_rate),
                    )
                    for batch_number, expiry_date, batch_qty, batch_rate in plan[d.id]
                ]

            for batch_number, expiry_date, batch_qty, batch_rate in plan[d.id]:
                from_batch = from_batches[(from_item.id, batch_number)]
                receipt_rate = batch_rate if batch_rate > 0 else from_batch.unit_rate
                apply_batch_issue(from_batch, batch_qty)

                to_batch = await get_or_create_batch(db, to_item, batch_number, expiry_date)
                apply_batch_receipt(to_batch, batch_qty, receipt_rate)

        challan.status = ChallanStatus.accepted
        challan.accepted_by_id = user.id
        challan.accepted_at = datetime.now(timezone.utc)
        challan.touch(user)

        await emit_activity(
            db,
            user=user,
            code=ActivityCode.ACCEPT_OUTWARD_CHALLAN,
            target_name=challan.outward_challan_no,
            from_site_id=challan.from_site_id,
            to_site_id=challan.to_site_id,
        )

        await db.commit()

    except AppException:
        await db.rollback()
        raise

    except IntegrityError:
        await db.rollback()
        raise ConflictError("Concurrent stock update detected")

    logger.info(
        "Outward challan %s accepted by user %s: %d line(s) moved %s -> %s",
        challan_id,
        user.id,
        len(details),
        challan.from_site_id,
        challan.to_site_id,
    )
    return await get_outward_challan(db, challan_id)


# =====================================================
# READ
# =====================================================
async def get_outward_challan(
    db: AsyncSession,
    challan_id: int,
) -> OutwardChallanOutSchema:
    result = await db.execute(
        select(OutwardDeliveryChallan)
        .options(
            selectinload(OutwardDeliveryChallan.details)
            .selectinload(OutwardDeliveryChallanDetail.batches),
            selectinload(OutwardDeliveryChallan.details)
            .selectinload(OutwardDeliveryChallanDetail.item),
            selectinload(OutwardDeliveryChallan.from_site),
            selectinload(OutwardDeliveryChallan.to_site),
            selectinload(OutwardDeliveryChallan.created_by),
            selectinload(OutwardDeliveryChallan.approved1_by),
            selectinload(OutwardDeliveryChallan.accepted_by),
        )
        .where(OutwardDeliveryChallan.id == challan_id)
        .execution_options(populate_existing=True)
    )
    challan = result.scalar_one_or_none()

    if not challan:
        raise NotFoundError("Outward delivery challan not found", ErrorCode.ODC_NOT_FOUND)

    return _build_challan_out(challan)


async def list_outward_challans(
    db: AsyncSession,
    *,
    status: ChallanStatus | None,
    from_site_id: int | None,
    to_site_id: int | None,
    search: str | None,
    page: int,
    page_size: int,
) -> PageData[OutwardChallanListItemSchema]:
    filters = []
    if status:
        filters.append(OutwardDeliveryChallan.status == status)
    if from_site_id:
        filters.append(OutwardDeliveryChallan.from_site_id == from_site_id)
    if to_site_id:
        filters.append(OutwardDeliveryChallan.to_site_id == to_site_id)
    if search:
        filters.append(
            OutwardDeliveryChallan.outward_challan_no.ilike(f"%{search.strip()}%")
        )

    total = await db.scalar(
        select(func.count()).select_from(OutwardDeliveryChallan).where(*filters)
    )

    result = await db.execute(
        select(
            OutwardDeliveryChallan.id,
            OutwardDeliveryChallan.outward_challan_no,
            OutwardDeliveryChallan.outward_challan_date,
            OutwardDeliveryChallan.from_site_id,
            OutwardDeliveryChallan.to_site_id,
            OutwardDeliveryChallan.status,
            func.count(OutwardDeliveryChallanDetail.id).label("no_of_items"),
            OutwardDeliveryChallan.created_at,
        )
        .outerjoin(
            OutwardDeliveryChallanDetail,
            OutwardDeliveryChallanDetail.outward_delivery_challan_id
            == OutwardDeliveryChallan.id,
        )
        .where(*filters)
        .group_by(OutwardDeliveryChallan.id)
        .order_by(OutwardDeliveryChallan.created_at.desc(), OutwardDeliveryChallan.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    return PageData[OutwardChallanListItemSchema](
        total=total or 0,
        page=page,
        page_size=page_size,
        items=[
            OutwardChallanListItemSchema(
                id=r.id,
                outward_challan_no=r.outward_challan_no,
                outward_challan_date=r.outward_challan_date,
                from_site_id=r.from_site_id,
                to_site_id=r.to_site_id,
                status=r.status,
                no_of_items=r.no_of_items,
                created_at=r.created_at,
            )
            for r in result.all()
        ],
    )
