from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from khata.core.context import UserContext
from khata.core.dependencies import get_db, get_user_context
from khata.services.inventory_service import (
    get_product_by_id,
    get_all_products,
    create_product,
    update_product,
    delete_product
)
from khata.schemas.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductListResponse
)
from khata.logger_config import logger

router = APIRouter()


@router.get("", response_model=ProductListResponse)
def get_products(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    search: Optional[str] = Query(None),
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    try:
        products, total = get_all_products(db, ctx, skip=skip, limit=limit, search=search)
        return ProductListResponse(
            total=total,
            products=[ProductResponse.model_validate(p) for p in products]
        )
    except Exception as e:
        logger.error(f"Error fetching products: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch products"
        )


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: str,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    product = get_product_by_id(db, ctx, product_id)
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )
    return ProductResponse.model_validate(product)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product_route(
    product_data: ProductCreate,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    try:
        product = create_product(
            db, ctx,
            name=product_data.name,
            unit_price=product_data.unit_price,
            unit_cost=product_data.unit_cost,
            quantity_on_hand=product_data.quantity_on_hand
        )
        return ProductResponse.model_validate(product)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Error creating product: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create product"
        )


@router.put("/{product_id}", response_model=ProductResponse)
def update_product_route(
    product_id: str,
    product_data: ProductUpdate,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    try:
        product = update_product(db, ctx, product_id, **product_data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product_route(
    product_id: str,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    try:
        success = delete_product(db, ctx, product_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    if not success:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )
    return None
