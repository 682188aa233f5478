"""
SQLAlchemy ORM models for database tables
"""

from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, DateTime, Boolean, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class AccountModel(Base):
    """SQLAlchemy ORM model for accounts table"""

    __tablename__ = "accounts"

    address = Column(String(42), primary_key=True)  # lower-case
    enable = Column(Boolean, default=True, nullable=False)
    # Decimal strings: balances routinely exceed 64-bit range
    remain_gas = Column(String(80), default="0", nullable=False)
    used_gas = Column(String(80), default="0", nullable=False)
    last_request = Column(DateTime(timezone=True), nullable=True)
    vip_id = Column(String(80), default="-1", nullable=False)  # decimal uint256 token id, "-1" for none
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_accounts_vip_id', 'vip_id'),
    )

    def __repr__(self):
        return f"<Account(address='{self.address}', enable={self.enable}, remain_gas='{self.remain_gas}')>"


class ApiKeyModel(Base):
    """SQLAlchemy ORM model for api_keys table"""

    __tablename__ = "api_keys"

    key = Column(String(128), primary_key=True)
    name = Column(String(255), nullable=True)
    enable = Column(Boolean, default=True, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return f"<ApiKey(name='{self.name}', enable={self.enable})>"
