from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    Numeric,
    ForeignKey,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from site_inventory.core.db import Base
from site_inventory.models.base.mixins import TimestampMixin, AuditMixin


class InwardDeliveryChallan(Base, TimestampMixin, AuditMixin):
    """Vendor delivery received at a site against a purchase order."""

    __tablename__ = "inward_delivery_challans"

    id = Column(Integer, primary_key=True)
    inward_challan_no = Column(String(30), nullable=False, unique=True, index=True)
    inward_challan_date = Column(Date, nullable=False)

    purchase_order_id = Column(
        Integer, ForeignKey("purchase_orders.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    vendor_id = Column(Integer, ForeignKey("vendors.id", ondelete="RESTRICT"), nullable=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)

    # vendor's own paperwork
    challan_no = Column(String(100), nullable=False)
    challan_date = Column(Date, nullable=False)
    lr_no = Column(String(100), nullable=True)
    lr_date = Column(Date, nullable=True)
    bill_no = Column(String(100), nullable=True)
    bill_date = Column(Date, nullable=True)
    vehicle_no = Column(String(50), nullable=True)
    remarks = Column(String(255), nullable=True)

    bill_amount = Column(Numeric(14, 2), nullable=False, default=0)

    purchase_order = relationship("PurchaseOrder", lazy="selectin")
    site = relationship("Site", lazy="selectin")
    vendor = relationship("Vendor", lazy="selectin")
    details = relationship(
        "InwardDeliveryChallanDetail",
        back_populates="challan",
        cascade="all, delete-orphan",
        order_by="InwardDeliveryChallanDetail.id",
        lazy="selectin",
    )

    def __repr__(self):
        return (
            f"<InwardDeliveryChallan id={self.id} no={self.inward_challan_no} "
            f"po={self.purchase_order_id} site={self.site_id}>"
        )


class InwardDeliveryChallanDetail(Base):
    __tablename__ = "inward_delivery_challan_details"

    id = Column(Integer, primary_key=True)
    inward_delivery_challan_id = Column(
        Integer,
        ForeignKey("inward_delivery_challans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    purchase_order_detail_id = Column(
        Integer,
        ForeignKey("purchase_order_details.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    receiving_qty = Column(Numeric(14, 4), nullable=False)
    rate = Column(Numeric(14, 4), nullable=False, default=0)
    amount = Column(Numeric(14, 2), nullable=False, default=0)

    challan = relationship("InwardDeliveryChallan", back_populates="details")
    item = relationship("Item", lazy="selectin")
    batches = relationship(
        "InwardDeliveryChallanDetailBatch",
        back_populates="detail",
        cascade="all, delete-orphan",
        order_by="InwardDeliveryChallanDetailBatch.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("receiving_qty > 0", name="ck_idc_detail_qty_positive"),
    )

    def __repr__(self):
        return (
            f"<InwardDeliveryChallanDetail id={self.id} po_detail={self.purchase_order_detail_id} "
            f"qty={self.receiving_qty}>"
        )


class InwardDeliveryChallanDetailBatch(Base):
    __tablename__ = "inward_delivery_challan_detail_batches"

    id = Column(Integer, primary_key=True)
    inward_delivery_challan_detail_id = Column(
        Integer,
        ForeignKey("inward_delivery_challan_details.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_number = Column(String(100), nullable=False)
    expiry_date = Column(Date, nullable=True)
    qty = Column(Numeric(14, 4), nullable=False)

    detail = relationship("InwardDeliveryChallanDetail", back_populates="batches")

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_idc_batch_qty_positive"),
    )
