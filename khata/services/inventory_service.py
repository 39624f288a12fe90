from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from khata.core.context import UserContext
from khata.core.exceptions import NotFoundError
from khata.logger_config import logger
from khata.models.entity import generate_custom_id
from khata.models.product import Product


def get_product_by_id(db: Session, ctx: UserContext, product_id: str) -> Optional[Product]:
    """Get a product owned by the user."""
    return (db.query(Product)
            .filter(Product.id == product_id, Product.user_id == ctx.user_id)
            .first())


def get_all_products(
    db: Session,
    ctx: UserContext,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
) -> tuple[List[Product], int]:
    """Get all products with optional search."""
    query = db.query(Product).filter(Product.user_id == ctx.user_id)
    if search:
        term = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(term), Product.id.ilike(term)))
    total = query.count()
    products = query.order_by(Product.name).offset(skip).limit(limit).all()
    return products, total


def create_product(
    db: Session,
    ctx: UserContext,
    name: str,
    unit_price: Decimal,
    unit_cost: Decimal,
    quantity_on_hand: int = 0,
) -> Product:
    """Create a new product."""
    product_id = generate_custom_id("PRD")
    while db.query(Product.id).filter(Product.id == product_id).first():
        product_id = generate_custom_id("PRD")

    product = Product(
        id=product_id,
        user_id=ctx.user_id,
        name=name,
        unit_price=unit_price,
        unit_cost=unit_cost,
        quantity_on_hand=quantity_on_hand,
    )
    db.add(product)
    try:
        db.commit()
        db.refresh(product)
        logger.info(f"Product {product.id} created for user {ctx.user_id}")
        return product
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error creating product: {str(e)}")
        raise ValueError("Failed to create product.")


def update_product(db: Session, ctx: UserContext, product_id: str, **changes) -> Optional[Product]:
    """Update product fields; None values are left untouched."""
    product = get_product_by_id(db, ctx, product_id)
    if not product:
        return None

    for field in ("name", "unit_price", "unit_cost", "quantity_on_hand"):
        value = changes.get(field)
        if value is not None:
            setattr(product, field, value)

    try:
        db.commit()
        db.refresh(product)
        return product
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error updating product: {str(e)}")
        raise ValueError("Failed to update product.")


def delete_product(db: Session, ctx: UserContext, product_id: str) -> bool:
    """Delete a product. Sales that mention it keep their line items."""
    product = get_product_by_id(db, ctx, product_id)
    if not product:
        return False

    db.delete(product)
    try:
        db.commit()
        return True
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting product: {str(e)}")
        raise ValueError("Failed to delete product.")


# ==================== STOCK MOVEMENTS ====================
# Staged on the caller's session; committed with the ledger batch.

def require_product(db: Session, ctx: UserContext, product_id: str) -> Product:
    product = get_product_by_id(db, ctx, product_id)
    if not product:
        logger.error(f"Product not found: {product_id}")
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _move_stock(db: Session, ctx: UserContext, line_items: Iterable, sign: int) -> None:
    for item in line_items:
        if not item.product_id:
            continue
        change = sign * int(item.quantity)
        rows = (db.query(Product)
                .filter(Product.id == item.product_id, Product.user_id == ctx.user_id)
                .update({Product.quantity_on_hand: Product.quantity_on_hand + change},
                        synchronize_session=False))
        if rows == 0:
            # Product deleted since the sale; nothing left to restock
            logger.warning(f"Skipping stock change for missing product {item.product_id}")
        else:
            logger.debug(f"Stock {item.product_id}: {change:+d}")


def consume_stock(db: Session, ctx: UserContext, line_items: Iterable) -> None:
    """Take sold quantities out of stock (sale created or restored)."""
    _move_stock(db, ctx, line_items, -1)


def release_stock(db: Session, ctx: UserContext, line_items: Iterable) -> None:
    """Put quantities back (sale deleted, or its items replaced)."""
    _move_stock(db, ctx, line_items, 1)
