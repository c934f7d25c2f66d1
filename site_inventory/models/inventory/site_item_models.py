from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    Numeric,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from site_inventory.core.db import Base
from site_inventory.models.base.mixins import TimestampMixin, AuditMixin


class SiteItem(Base, TimestampMixin, AuditMixin):
    """Materialized stock balance of one item at one site.

    Derived from the stock ledger; only mutated through the receipt/issue
    helpers in stock_ledger_service.
    """

    __tablename__ = "site_items"

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True)

    opening_stock = Column(Numeric(14, 4), nullable=False, default=0)
    opening_rate = Column(Numeric(14, 4), nullable=False, default=0)
    opening_value = Column(Numeric(14, 2), nullable=False, default=0)

    closing_stock = Column(Numeric(14, 4), nullable=False, default=0)
    unit_rate = Column(Numeric(14, 4), nullable=False, default=0)
    closing_value = Column(Numeric(14, 2), nullable=False, default=0)

    site = relationship("Site", lazy="selectin")
    item = relationship("Item", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("site_id", "item_id", name="uq_site_item_site_item"),
        CheckConstraint("closing_stock >= 0", name="ck_site_item_closing_stock_non_negative"),
    )

    def __repr__(self):
        return (
            f"<SiteItem site_id={self.site_id} item_id={self.item_id} "
            f"stock={self.closing_stock} rate={self.unit_rate}>"
        )


class SiteItemBatch(Base, TimestampMixin):
    """Batch sub-balance of an expiry-tracked SiteItem. Expiry is fixed at creation."""

    __tablename__ = "site_item_batches"

    id = Column(Integer, primary_key=True)
    site_item_id = Column(Integer, ForeignKey("site_items.id", ondelete="CASCADE"), nullable=False, index=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)

    batch_number = Column(String(100), nullable=False)
    expiry_date = Column(Date, nullable=True)

    closing_qty = Column(Numeric(14, 4), nullable=False, default=0)
    unit_rate = Column(Numeric(14, 4), nullable=False, default=0)
    closing_value = Column(Numeric(14, 2), nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("site_item_id", "batch_number", name="uq_site_item_batch_number"),
        CheckConstraint("closing_qty >= 0", name="ck_site_item_batch_qty_non_negative"),
        Index("ix_site_item_batch_site_item", "site_id", "item_id"),
    )

    def __repr__(self):
        return (
            f"<SiteItemBatch site_item_id={self.site_item_id} batch={self.batch_number} "
            f"expiry={self.expiry_date} qty={self.closing_qty}>"
        )
