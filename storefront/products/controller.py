from typing import List, Optional, Union

from fastapi import APIRouter, Query, Request, Response, status

from .service import ProductService
from ..auth.service import AdminUser
from ..core.cache import cached, clear_cache
from ..database.core import DbSession
from ..schemas.products import (
    MessageResponse,
    ProductCreate,
    ProductPage,
    ProductResponse,
    ProductUpdate,
)

router = APIRouter(prefix="/api/products", tags=["products"])

CACHE_TAG = "products"


@router.get("", response_model=Union[ProductPage, List[ProductResponse]])
async def list_products(
    db: DbSession,
    category: Optional[str] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    include_count: bool = Query(False, alias="includeCount"),
):
    """List products, optionally with pagination metadata."""
    return ProductService.list_products(
        db,
        category=category,
        featured=featured,
        search=search,
        min_price=min_price,
        max_price=max_price,
        limit=limit,
        offset=offset,
        include_count=include_count,
    )


@router.get("/categories/list", response_model=List[str])
@cached(ttl=300)
async def list_categories(request: Request, response: Response, db: DbSession):
    return ProductService.list_categories(db)


@router.get("/featured", response_model=List[ProductResponse])
@cached(ttl=300)
async def list_featured(
    request: Request,
    response: Response,
    db: DbSession,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
):
    return [ProductResponse.model_validate(p) for p in ProductService.list_featured(db, limit, offset)]


@router.get("/trending", response_model=List[ProductResponse])
@cached(ttl=300)
async def list_trending(
    request: Request,
    response: Response,
    db: DbSession,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
):
    """Top products by weighted rating and review count."""
    return [ProductResponse.model_validate(p) for p in ProductService.list_trending(db, limit, offset)]


@router.get("/category/{category}", response_model=List[ProductResponse])
async def list_by_category(
    category: str, db: DbSession, limit: Optional[int] = None, offset: Optional[int] = None
):
    return ProductService.list_by_category(db, category, limit, offset)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, db: DbSession):
    return ProductService.get_product(db, product_id)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(data: ProductCreate, admin: AdminUser, db: DbSession):
    product = ProductService.create_product(db, data)
    clear_cache(CACHE_TAG)
    return product


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(product_id: int, data: ProductUpdate, admin: AdminUser, db: DbSession):
    product = ProductService.update_product(db, product_id, data)
    clear_cache(CACHE_TAG)
    return product


@router.delete("/{product_id}", response_model=MessageResponse, response_model_exclude_none=True)
async def delete_product(product_id: int, admin: AdminUser, db: DbSession):
    ProductService.delete_product(db, product_id)
    clear_cache(CACHE_TAG)
    return {"message": "Product removed successfully"}
