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


class StockAdjustment(Base, TimestampMixin, AuditMixin):
    """Single-site correction: receipts and issues posted straight to the ledger."""

    __tablename__ = "stock_adjustments"

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)
    adjustment_date = Column(Date, nullable=False)
    remarks = Column(String(500), nullable=True)

    site = relationship("Site", lazy="selectin")
    details = relationship(
        "StockAdjustmentDetail",
        back_populates="adjustment",
        cascade="all, delete-orphan",
        order_by="StockAdjustmentDetail.id",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<StockAdjustment id={self.id} site_id={self.site_id} date={self.adjustment_date}>"


class StockAdjustmentDetail(Base):
    __tablename__ = "stock_adjustment_details"

    id = Column(Integer, primary_key=True)
    stock_adjustment_id = Column(
        Integer,
        ForeignKey("stock_adjustments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    received_qty = Column(Numeric(14, 4), nullable=False, default=0)
    issued_qty = Column(Numeric(14, 4), nullable=False, default=0)
    rate = Column(Numeric(14, 4), nullable=False, default=0)
    amount = Column(Numeric(14, 2), nullable=False, default=0)
    remarks = Column(String(255), nullable=True)

    adjustment = relationship("StockAdjustment", back_populates="details")

    __table_args__ = (
        CheckConstraint(
            "received_qty >= 0 AND issued_qty >= 0",
            name="ck_stock_adjustment_detail_qty_non_negative",
        ),
    )

    def __repr__(self):
        return (
            f"<StockAdjustmentDetail id={self.id} item_id={self.item_id} "
            f"in={self.received_qty} out={self.issued_qty}>"
        )
