from sqlalchemy import Column, Integer, String, Boolean
from site_inventory.core.db import Base
from site_inventory.models.base.mixins import TimestampMixin, AuditMixin


class Item(Base, TimestampMixin, AuditMixin):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True)
    item_code = Column(String(50), nullable=False, unique=True, index=True)
    item = Column(String(255), nullable=False)
    unit = Column(String(20), nullable=True)
    # expiry-tracked items move stock in batches
    is_expiry_date = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<Item id={self.id} code={self.item_code} expiry={self.is_expiry_date}>"
