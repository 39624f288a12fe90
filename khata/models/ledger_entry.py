import enum
from decimal import Decimal
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from khata.core.database import Base
from khata.models.entity import EntityKind


class EntryKind(str, enum.Enum):
    sale = "sale"
    purchase = "purchase"
    payment = "payment"
    expense = "expense"

    @property
    def is_debit(self) -> bool:
        """Debit kinds raise the outstanding balance, payments lower it."""
        return self is not EntryKind.payment

    @property
    def sign(self) -> int:
        return 1 if self.is_debit else -1


ALLOWED_KINDS = {
    EntityKind.customer: (EntryKind.sale, EntryKind.payment),
    EntityKind.supplier: (EntryKind.purchase, EntryKind.payment),
    EntityKind.expense: (EntryKind.expense,),
}


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(String(20), ForeignKey("entities.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    kind = Column(Enum(EntryKind), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    date = Column(String(10), nullable=False, index=True)   # YYYY-MM-DD, any calendar
    note = Column(Text, nullable=True)
    profit = Column(Numeric(15, 2), nullable=False, default=0)

    # Lets the recycle bin show the owner even when the owner is deleted too
    parent_name = Column(String(255), nullable=True)

    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    entity = relationship("Entity", back_populates="entries")
    line_items = relationship(
        "LineItem",
        back_populates="entry",
        order_by="LineItem.position",
        cascade="all, delete-orphan",
    )

    @property
    def signed_amount(self) -> Decimal:
        return Decimal(self.amount) * self.kind.sign

    @property
    def is_itemized(self) -> bool:
        return bool(self.line_items)

    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, kind='{self.kind}', amount={self.amount}, date='{self.date}')>"


class LineItem(Base):
    __tablename__ = "ledger_line_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(Integer, ForeignKey("ledger_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # No FK: the product may be deleted while old sales still mention it
    product_id = Column(String(20), nullable=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    unit_cost = Column(Numeric(15, 2), nullable=False, default=0)
    line_total = Column(Numeric(15, 2), nullable=False)

    entry = relationship("LedgerEntry", back_populates="line_items")
