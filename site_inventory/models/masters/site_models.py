from sqlalchemy import Column, Integer, String
from site_inventory.core.db import Base
from site_inventory.models.base.mixins import TimestampMixin, AuditMixin


class Site(Base, TimestampMixin, AuditMixin):
    """Construction site. Holds its own stock and budgets."""

    __tablename__ = "sites"

    id = Column(Integer, primary_key=True)
    site = Column(String(200), nullable=False, index=True)
    # required for PO numbering, may be filled in later
    site_code = Column(String(20), nullable=True, unique=True)

    def __repr__(self):
        return f"<Site id={self.id} site={self.site} code={self.site_code}>"
