import math
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .models import Product
from ..core.exceptions import DuplicateResourceError, ResourceNotFoundError, ValidationFailedError
from ..logging import logger
from ..schemas.products import ProductCreate, ProductUpdate

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000
FEATURED_LIMIT = 10
TRENDING_LIMIT = 5
TRENDING_MAX_LIMIT = 100

TITLE_REQUIRED = "Product title is required"
PRICE_REQUIRED = "Valid product price is required"
TITLE_EXISTS = "Product with this title already exists"
NON_NULLABLE_FLAGS = {"featured", "is_customizable"}


def clamp(value: Optional[int], default: int, low: int, high: int) -> int:
    if value is None:
        return default
    return max(low, min(int(value), high))


def parse_price(value: Any) -> Optional[float]:
    """Return a positive finite price or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


class ProductService:

    @staticmethod
    def _filtered_query(
        db: Session,
        category: Optional[str] = None,
        featured: Optional[bool] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ):
        query = db.query(Product)
        if category:
            query = query.filter(Product.category == category)
        if featured is not None:
            query = query.filter(Product.featured.is_(featured))
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                Product.title.ilike(term),
                Product.category.ilike(term),
                Product.tag.ilike(term),
            ))
        if min_price is not None:
            query = query.filter(Product.price >= min_price)
        if max_price is not None:
            query = query.filter(Product.price <= max_price)
        return query

    @staticmethod
    def list_products(
        db: Session,
        category: Optional[str] = None,
        featured: Optional[bool] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        include_count: bool = False,
    ):
        """
        Filtered, newest-first product listing.

        Returns a list, or with ``include_count`` a dict holding the page and
        its pagination block (``hasMore`` is true while rows remain past this page).
        """
        limit = clamp(limit, DEFAULT_LIMIT, 1, MAX_LIMIT)
        offset = max(int(offset or 0), 0)

        query = ProductService._filtered_query(db, category, featured, search, min_price, max_price)
        products = query.order_by(Product.id.desc()).offset(offset).limit(limit).all()
        if not include_count:
            return products

        total = query.order_by(None).count()
        return {
            "products": products,
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": offset + len(products) < total,
            },
        }

    @staticmethod
    def get_product(db: Session, product_id: int) -> Product:
        product = db.get(Product, product_id)
        if product is None:
            raise ResourceNotFoundError("Product")
        return product

    @staticmethod
    def list_categories(db: Session) -> List[str]:
        rows = (
            db.query(Product.category)
            .filter(Product.category.isnot(None), Product.category != "")
            .distinct()
            .order_by(Product.category)
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def list_featured(db: Session, limit: Optional[int] = None, offset: Optional[int] = None) -> List[Product]:
        limit = clamp(limit, FEATURED_LIMIT, 1, MAX_LIMIT)
        offset = max(int(offset or 0), 0)
        return (
            db.query(Product)
            .filter(Product.featured.is_(True))
            .order_by(Product.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def list_trending(db: Session, limit: Optional[int] = None, offset: Optional[int] = None) -> List[Product]:
        """Rank by 0.6 * rating + 0.4 * (reviews / 100), newest first on ties."""
        limit = clamp(limit, TRENDING_LIMIT, 1, TRENDING_MAX_LIMIT)
        offset = max(int(offset or 0), 0)
        score = (
            func.coalesce(Product.rating, 0) * 0.6
            + (func.coalesce(Product.reviews, 0) / 100.0) * 0.4
        )
        return db.query(Product).order_by(score.desc(), Product.id.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def list_by_category(
        db: Session, category: str, limit: Optional[int] = None, offset: Optional[int] = None
    ) -> List[Product]:
        limit = clamp(limit, DEFAULT_LIMIT, 1, MAX_LIMIT)
        offset = max(int(offset or 0), 0)
        return (
            db.query(Product)
            .filter(Product.category == category)
            .order_by(Product.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def _ensure_unique_title(db: Session, title: str, exclude_id: Optional[int] = None):
        query = db.query(Product.id).filter(Product.title == title)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first() is not None:
            raise DuplicateResourceError(TITLE_EXISTS)

    @staticmethod
    def create_product(db: Session, data: ProductCreate) -> Product:
        title = (data.title or "").strip()
        price = parse_price(data.price)
        errors = []
        if not title:
            errors.append(TITLE_REQUIRED)
        if price is None:
            errors.append(PRICE_REQUIRED)
        if errors:
            raise ValidationFailedError(errors, prefix=None)

        ProductService._ensure_unique_title(db, title)

        fields: Dict[str, Any] = data.model_dump(exclude={"title", "price"}, exclude_none=True)
        product = Product(title=title, price=price, **fields)
        db.add(product)
        db.commit()
        db.refresh(product)
        logger.info(f"Product {product.id} created: {product.title}")
        return product

    @staticmethod
    def update_product(db: Session, product_id: int, data: ProductUpdate) -> Product:
        product = ProductService.get_product(db, product_id)
        changes = data.model_dump(exclude_unset=True)

        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise ValidationFailedError([TITLE_REQUIRED], prefix=None)
            ProductService._ensure_unique_title(db, title, exclude_id=product.id)
            changes["title"] = title
        if "price" in changes:
            price = parse_price(changes["price"])
            if price is None:
                raise ValidationFailedError([PRICE_REQUIRED], prefix=None)
            changes["price"] = price

        for field, value in changes.items():
            if value is None and field in NON_NULLABLE_FLAGS:
                continue
            setattr(product, field, value)

        db.commit()
        db.refresh(product)
        logger.info(f"Product {product.id} updated: {sorted(changes)}")
        return product

    @staticmethod
    def delete_product(db: Session, product_id: int) -> None:
        product = ProductService.get_product(db, product_id)
        db.delete(product)
        db.commit()
        logger.info(f"Product {product_id} deleted")
