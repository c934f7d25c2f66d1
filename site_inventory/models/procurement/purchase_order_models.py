from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Numeric,
    Enum,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from site_inventory.core.db import Base
from site_inventory.models.base.mixins import TimestampMixin, AuditMixin
from site_inventory.models.enums.purchase_order_status import PurchaseOrderStatus


class PurchaseOrder(Base, TimestampMixin, AuditMixin):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True)
    purchase_order_no = Column(String(60), nullable=False, unique=True, index=True)
    purchase_order_date = Column(Date, nullable=False, index=True)
    delivery_date = Column(Date, nullable=True)

    site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id", ondelete="RESTRICT"), nullable=True, index=True)
    indent_id = Column(Integer, ForeignKey("indents.id", ondelete="SET NULL"), nullable=True)

    quotation_no = Column(String(100), nullable=True)
    quotation_date = Column(Date, nullable=True)
    transport = Column(String(255), nullable=True)
    note = Column(String(1000), nullable=True)
    delivery_schedule = Column(String(255), nullable=True)
    payment_terms_in_days = Column(Integer, nullable=True)

    amount = Column(Numeric(14, 2), nullable=False, default=0)
    total_cgst_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total_sgst_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total_igst_amount = Column(Numeric(14, 2), nullable=False, default=0)

    approval_status = Column(
        Enum(PurchaseOrderStatus),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT,
        index=True,
    )
    approved1_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved1_at = Column(DateTime(timezone=True), nullable=True)
    approved2_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved2_at = Column(DateTime(timezone=True), nullable=True)
    completed_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    suspended_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    suspended_at = Column(DateTime(timezone=True), nullable=True)

    site = relationship("Site", lazy="selectin")
    vendor = relationship("Vendor", lazy="selectin")
    details = relationship(
        "PurchaseOrderDetail",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderDetail.serial_no",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_purchase_order_site_status", "site_id", "approval_status"),
    )

    def __repr__(self):
        return f"<PurchaseOrder id={self.id} no={self.purchase_order_no} status={self.approval_status}>"


class PurchaseOrderDetail(Base):
    __tablename__ = "purchase_order_details"

    id = Column(Integer, primary_key=True)
    purchase_order_id = Column(
        Integer,
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    serial_no = Column(Integer, nullable=False)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True)
    remark = Column(String(255), nullable=True)

    qty = Column(Numeric(14, 4), nullable=False)
    ordered_qty = Column(Numeric(14, 4), nullable=False)
    approved1_qty = Column(Numeric(14, 4), nullable=True)
    approved2_qty = Column(Numeric(14, 4), nullable=True)
    received_qty = Column(Numeric(14, 4), nullable=False, default=0)
    rate = Column(Numeric(14, 4), nullable=False, default=0)

    discount_percent = Column(Numeric(6, 2), nullable=False, default=0)
    dis_amt = Column(Numeric(14, 2), nullable=False, default=0)
    cgst_percent = Column(Numeric(6, 2), nullable=False, default=0)
    cgst_amt = Column(Numeric(14, 2), nullable=False, default=0)
    sgst_percent = Column(Numeric(6, 2), nullable=False, default=0)
    sgst_amt = Column(Numeric(14, 2), nullable=False, default=0)
    igst_percent = Column(Numeric(6, 2), nullable=False, default=0)
    igst_amt = Column(Numeric(14, 2), nullable=False, default=0)
    amount = Column(Numeric(14, 2), nullable=False, default=0)

    purchase_order = relationship("PurchaseOrder", back_populates="details")

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_po_detail_qty_positive"),
    )

    def __repr__(self):
        return f"<PurchaseOrderDetail id={self.id} po={self.purchase_order_id} #{self.serial_no} item_id={self.item_id}>"
