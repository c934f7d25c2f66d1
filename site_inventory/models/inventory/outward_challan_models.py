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
from site_inventory.models.enums.challan_status import ChallanStatus


class OutwardDeliveryChallan(Base, TimestampMixin, AuditMixin):
    """Inter-site material transfer document: draft -> approved -> accepted."""

    __tablename__ = "outward_delivery_challans"

    id = Column(Integer, primary_key=True)
    outward_challan_no = Column(String(30), nullable=False, unique=True, index=True)
    outward_challan_date = Column(Date, nullable=False)
    challan_no = Column(String(50), nullable=True)
    challan_date = Column(Date, nullable=True)
    remarks = Column(String(500), nullable=True)

    from_site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)
    to_site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)

    status = Column(Enum(ChallanStatus), nullable=False, default=ChallanStatus.draft, index=True)

    approved1_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved1_at = Column(DateTime(timezone=True), nullable=True)
    accepted_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)

    from_site = relationship("Site", foreign_keys=[from_site_id], lazy="selectin")
    to_site = relationship("Site", foreign_keys=[to_site_id], lazy="selectin")
    approved1_by = relationship("User", foreign_keys=[approved1_by_id], lazy="selectin")
    accepted_by = relationship("User", foreign_keys=[accepted_by_id], lazy="selectin")

    details = relationship(
        "OutwardDeliveryChallanDetail",
        back_populates="challan",
        cascade="all, delete-orphan",
        order_by="OutwardDeliveryChallanDetail.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("from_site_id != to_site_id", name="ck_odc_site_diff"),
        Index("ix_odc_sites_status", "from_site_id", "to_site_id", "status"),
    )

    @property
    def is_approved1(self):
        return self.status in (ChallanStatus.approved, ChallanStatus.accepted)

    @property
    def is_accepted(self):
        return self.status == ChallanStatus.accepted

    def __repr__(self):
        return (
            f"<OutwardDeliveryChallan id={self.id} no={self.outward_challan_no} "
            f"{self.from_site_id}->{self.to_site_id} status={self.status}>"
        )


class OutwardDeliveryChallanDetail(Base):
    __tablename__ = "outward_delivery_challan_details"

    id = Column(Integer, primary_key=True)
    outward_delivery_challan_id = Column(
        Integer,
        ForeignKey("outward_delivery_challans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True)

    # qty always mirrors the latest stage
    qty = Column(Numeric(14, 4), nullable=False, default=0)
    challan_qty = Column(Numeric(14, 4), nullable=False, default=0)
    approved1_qty = Column(Numeric(14, 4), nullable=True)
    received_qty = Column(Numeric(14, 4), nullable=True)
    remarks = Column(String(255), nullable=True)

    challan = relationship("OutwardDeliveryChallan", back_populates="details")
    item = relationship("Item", lazy="selectin")
    batches = relationship(
        "OutwardDeliveryChallanDetailBatch",
        back_populates="detail",
        cascade="all, delete-orphan",
        order_by="OutwardDeliveryChallanDetailBatch.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("challan_qty >= 0", name="ck_odc_detail_challan_qty_non_negative"),
    )

    def __repr__(self):
        return f"<OutwardDeliveryChallanDetail id={self.id} item_id={self.item_id} qty={self.qty}>"


class OutwardDeliveryChallanDetailBatch(Base):
    __tablename__ = "outward_delivery_challan_detail_batches"

    id = Column(Integer, primary_key=True)
    outward_delivery_challan_detail_id = Column(
        Integer,
        ForeignKey("outward_delivery_challan_details.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_number = Column(String(100), nullable=False)
    expiry_date = Column(Date, nullable=True)
    qty = Column(Numeric(14, 4), nullable=False)
    unit_rate = Column(Numeric(14, 4), nullable=False, default=0)
    amount = Column(Numeric(14, 2), nullable=False, default=0)

    detail = relationship("OutwardDeliveryChallanDetail", back_populates="batches")

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_odc_batch_qty_positive"),
    )

    def __repr__(self):
        return f"<OutwardDeliveryChallanDetailBatch id={self.id} batch={self.batch_number} qty={self.qty}>"
