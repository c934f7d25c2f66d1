from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from site_inventory.core.db import Base


class User(Base):
    """Local mirror of an identity-service account. No credentials stored here."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(150), unique=True, nullable=False, index=True)
    name = Column(String(150), nullable=True)
    role = Column(String(50), nullable=False, default="site_engineer")
    is_active = Column(Boolean, default=True, nullable=False)
    token_version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<User id={self.id} username={self.username} role={self.role}>"
