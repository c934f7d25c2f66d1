from sqlalchemy import Column, Integer, String
from site_inventory.core.db import Base
from site_inventory.models.base.mixins import TimestampMixin, AuditMixin


class Vendor(Base, TimestampMixin, AuditMixin):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True)
    vendor_name = Column(String(200), nullable=False, index=True)
    gst_no = Column(String(20), nullable=True)

    def __repr__(self):
        return f"<Vendor id={self.id} name={self.vendor_name}>"
