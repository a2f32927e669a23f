# backend/core/menu_models.py

from sqlalchemy import Column, Integer, String, Float, Text, Boolean
from core.database import Base
from core.mixins import TimestampMixin


class MenuItem(Base, TimestampMixin):
    """Individual menu items offered by the restaurant"""
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    price = Column(Float, nullable=False)
    image_url = Column(String(500), nullable=True)

    # Status and availability
    is_available = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<MenuItem(id={self.id}, name='{self.name}', price={self.price})>"
