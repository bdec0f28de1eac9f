from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import Field

from .base import CamelModel


class ProductBase(CamelModel):
    img: Optional[str] = None
    rating: Optional[float] = None
    original_price: Optional[float] = None
    color: Optional[str] = None
    category: Optional[str] = None
    sizes: Optional[List[Any]] = None
    print_type: Optional[str] = None
    material: Optional[str] = None
    reviews: Optional[int] = None
    is_customizable: Optional[bool] = None
    colors: Optional[List[Any]] = None
    tag: Optional[str] = None
    fabric_type: Optional[str] = None
    production_time: Optional[str] = None
    featured: Optional[bool] = None
    base_price: Optional[float] = None


class ProductCreate(ProductBase):
    # title and price are validated in ProductService
    title: Optional[str] = None
    price: Optional[Union[float, str]] = None


class ProductUpdate(ProductBase):
    title: Optional[str] = None
    price: Optional[Union[float, str]] = None


class ProductResponse(ProductBase):
    id: int
    title: str
    price: float
    is_customizable: bool = False
    featured: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class ProductPage(CamelModel):
    products: List[ProductResponse]
    pagination: Pagination


class MessageResponse(CamelModel):
    message: str
    id: Optional[int] = Field(default=None)
