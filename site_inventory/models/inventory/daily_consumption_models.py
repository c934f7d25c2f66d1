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


class DailyConsumption(Base, TimestampMixin, AuditMixin):
    """Material used up at a site on a given day; issued at the running rate."""

    __tablename__ = "daily_consumptions"

    id = Column(Integer, primary_key=True)
    daily_consumption_no = Column(String(30), nullable=False, unique=True, index=True)
    daily_consumption_date = Column(Date, nullable=False)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)

    site = relationship("Site", lazy="selectin")
    details = relationship(
        "DailyConsumptionDetail",
        back_populates="consumption",
        cascade="all, delete-orphan",
        order_by="DailyConsumptionDetail.id",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<DailyConsumption id={self.id} no={self.daily_consumption_no} site={self.site_id}>"


class DailyConsumptionDetail(Base):
    __tablename__ = "daily_consumption_details"

    id = Column(Integer, primary_key=True)
    daily_consumption_id = Column(
        Integer,
        ForeignKey("daily_consumptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qty = Column(Numeric(14, 4), nullable=False)
    rate = Column(Numeric(14, 4), nullable=False, default=0)
    amount = Column(Numeric(14, 2), nullable=False, default=0)

    consumption = relationship("DailyConsumption", back_populates="details")
    item = relationship("Item", lazy="selectin")

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_daily_consumption_qty_positive"),
    )
