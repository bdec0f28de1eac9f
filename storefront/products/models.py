from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, JSON

from ..database.core import Base
from ..users.models import utcnow


class Product(Base):
    __tablename__ = "product"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), unique=True, nullable=False)
    img = Column(String(500), nullable=True)
    rating = Column(Float, nullable=True, default=0)
    price = Column(Float, nullable=False)
    original_price = Column(Float, nullable=True)
    color = Column(String(50), nullable=True)
    category = Column(String(100), nullable=True, index=True)
    sizes = Column(JSON, nullable=True)
    print_type = Column(String(100), nullable=True)
    material = Column(String(100), nullable=True)
    reviews = Column(Integer, nullable=True, default=0)
    is_customizable = Column(Boolean, nullable=False, default=False)
    colors = Column(JSON, nullable=True)
    tag = Column(String(100), nullable=True)
    fabric_type = Column(String(100), nullable=True)
    production_time = Column(String(100), nullable=True)
    featured = Column(Boolean, nullable=False, default=False, index=True)
    base_price = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Product(id={self.id}, title='{self.title}', price={self.price})>"
