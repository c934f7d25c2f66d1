from sqlalchemy import (
    Column,
    Integer,
    Numeric,
    Enum,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.sql import func
from site_inventory.core.db import Base
from site_inventory.constants.stock_document_type import StockDocumentType


class StockLedger(Base):
    """Stock movement journal. APPEND-ONLY. Rows are never updated or deleted."""

    __tablename__ = "stock_ledgers"

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)

    transaction_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    document_type = Column(Enum(StockDocumentType), nullable=False)
    document_id = Column(Integer, nullable=False)

    received_qty = Column(Numeric(14, 4), nullable=False, default=0)
    issued_qty = Column(Numeric(14, 4), nullable=False, default=0)
    unit_rate = Column(Numeric(14, 4), nullable=False, default=0)

    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        CheckConstraint("received_qty >= 0 AND issued_qty >= 0", name="ck_stock_ledger_qty_non_negative"),
        Index("ix_stock_ledger_site_item", "site_id", "item_id"),
        Index("ix_stock_ledger_document", "document_type", "document_id"),
    )

    def __repr__(self):
        return (
            f"<StockLedger id={self.id} site_id={self.site_id} item_id={self.item_id} "
            f"in={self.received_qty} out={self.issued_qty} ref={self.document_type}:{self.document_id}>"
        )
