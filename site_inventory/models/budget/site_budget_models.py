from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    Boolean,
    Numeric,
    ForeignKey,
)
from sqlalchemy.orm import relationship
from site_inventory.core.db import Base
from site_inventory.models.base.mixins import TimestampMixin, AuditMixin


class SiteBudget(Base, TimestampMixin, AuditMixin):
    __tablename__ = "site_budgets"

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)
    # BOQ lives in the estimation module; referenced by id only
    boq_id = Column(Integer, nullable=True, index=True)
    month = Column(String(20), nullable=True)
    week = Column(String(20), nullable=True)
    from_date = Column(Date, nullable=True)
    to_date = Column(Date, nullable=True)

    site = relationship("Site", lazy="selectin")
    details = relationship(
        "SiteBudgetDetail",
        back_populates="site_budget",
        cascade="all, delete-orphan",
        order_by="SiteBudgetDetail.id",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<SiteBudget id={self.id} site_id={self.site_id} boq_id={self.boq_id}>"


class SiteBudgetDetail(Base):
    __tablename__ = "site_budget_details"

    id = Column(Integer, primary_key=True)
    site_budget_id = Column(Integer, ForeignKey("site_budgets.id", ondelete="CASCADE"), nullable=False, index=True)
    boq_item_id = Column(Integer, nullable=True)

    site_budget = relationship("SiteBudget", back_populates="details")
    items = relationship(
        "SiteBudgetItem",
        back_populates="detail",
        cascade="all, delete-orphan",
        order_by="SiteBudgetItem.id",
        lazy="selectin",
    )


class SiteBudgetItem(Base):
    """Budget line. budget_value and ordered_value are derived, never set directly."""

    __tablename__ = "site_budget_items"

    id = Column(Integer, primary_key=True)
    site_budget_detail_id = Column(
        Integer,
        ForeignKey("site_budget_details.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True)

    budget_qty = Column(Numeric(14, 4), nullable=False, default=0)
    budget_rate = Column(Numeric(14, 4), nullable=False, default=0)
    purchase_rate = Column(Numeric(14, 4), nullable=False, default=0)
    budget_value = Column(Numeric(14, 2), nullable=False, default=0)

    ordered_qty = Column(Numeric(14, 4), nullable=False, default=0)
    avg_rate = Column(Numeric(14, 4), nullable=False, default=0)
    ordered_value = Column(Numeric(14, 2), nullable=False, default=0)

    qty_50_alert = Column(Boolean, nullable=False, default=False)
    value_50_alert = Column(Boolean, nullable=False, default=False)
    qty_75_alert = Column(Boolean, nullable=False, default=False)
    value_75_alert = Column(Boolean, nullable=False, default=False)

    detail = relationship("SiteBudgetDetail", back_populates="items")

    def __repr__(self):
        return (
            f"<SiteBudgetItem id={self.id} item_id={self.item_id} "
            f"qty={self.budget_qty} rate={self.budget_rate} value={self.budget_value}>"
        )
