import enum
import secrets
import string
from sqlalchemy import Boolean, Column, DateTime, Enum, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from khata.core.database import Base


class EntityKind(str, enum.Enum):
    customer = "customer"
    supplier = "supplier"
    expense = "expense"


ID_PREFIX = {
    EntityKind.customer: "CUS",
    EntityKind.supplier: "SUP",
    EntityKind.expense: "EXPCAT",
}


def generate_custom_id(prefix: str, length: int = 8) -> str:
    random_part = ''.join(secrets.choice(string.ascii_uppercase + string.digits)
                          for _ in range(length))
    return f"{prefix}-{random_part}"


class AggregateMixin:
    """
    Columns shared by both physical copies of an entity.

    total_debit holds totalSales / totalPurchases / totalExpenses and
    total_credit holds totalReceived / totalPaid, depending on ``kind``.
    """
    kind = Column(Enum(EntityKind), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)

    total_balance = Column(Numeric(15, 2), nullable=False, default=0)
    total_debit = Column(Numeric(15, 2), nullable=False, default=0)
    total_credit = Column(Numeric(15, 2), nullable=False, default=0)
    last_activity_date = Column(String(10), nullable=True)

    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    reconciled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Entity(AggregateMixin, Base):
    """Root copy: owns the ledger and is what the ledger screens read."""
    __tablename__ = "entities"

    id = Column(String(20), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)

    entries = relationship("LedgerEntry", back_populates="entity")

    def __repr__(self):
        return f"<Entity(id='{self.id}', kind='{self.kind}', balance={self.total_balance})>"


class UserEntity(AggregateMixin, Base):
    """User-scoped copy: what the list screens read. Kept in sync by hand."""
    __tablename__ = "user_entities"

    user_id = Column(String(64), primary_key=True)
    entity_id = Column(String(20), primary_key=True)

    def __repr__(self):
        return f"<UserEntity(user_id='{self.user_id}', entity_id='{self.entity_id}')>"
