from sqlalchemy import Column, DateTime, Integer, Numeric, String
from sqlalchemy.sql import func
from khata.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(20), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    unit_price = Column(Numeric(15, 2), nullable=False, default=0)
    unit_cost = Column(Numeric(15, 2), nullable=False, default=0)
    quantity_on_hand = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Product(id='{self.id}', qty={self.quantity_on_hand})>"
