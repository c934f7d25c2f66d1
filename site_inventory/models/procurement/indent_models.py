from sqlalchemy import Column, Integer, String, Date, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from site_inventory.core.db import Base
from site_inventory.models.base.mixins import TimestampMixin, AuditMixin


class Indent(Base, TimestampMixin, AuditMixin):
    """Material requisition raised by a site; fulfilled by purchase orders."""

    __tablename__ = "indents"

    id = Column(Integer, primary_key=True)
    indent_no = Column(String(50), nullable=False, unique=True)
    indent_date = Column(Date, nullable=False)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)

    items = relationship(
        "IndentItem",
        back_populates="indent",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Indent id={self.id} no={self.indent_no} site_id={self.site_id}>"


class IndentItem(Base):
    __tablename__ = "indent_items"

    id = Column(Integer, primary_key=True)
    indent_id = Column(Integer, ForeignKey("indents.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qty = Column(Numeric(14, 4), nullable=False, default=0)
    # set once a PO line is raised against this requisition line
    purchase_order_detail_id = Column(
        Integer,
        ForeignKey("purchase_order_details.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    indent = relationship("Indent", back_populates="items")

    def __repr__(self):
        return f"<IndentItem id={self.id} indent_id={self.indent_id} po_detail={self.purchase_order_detail_id}>"
