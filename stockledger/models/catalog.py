"""Read-only views of the product catalog and location registry.

Both tables are owned by other subsystems; the stock ledger only looks rows up
by id and never writes to them.
"""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.database import Base


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    sku: Mapped[str] = mapped_column(String, unique=True, index=True)
    product_code: Mapped[str] = mapped_column(String, default="", index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, default="")

    # Catalog-wide defaults used when an inventory record has no override
    min_stock_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_stock_level: Mapped[int | None] = mapped_column(Integer, nullable=True)

    cost_price: Mapped[float] = mapped_column(Float, default=0.0)
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String, nullable=False)
    location_code: Mapped[str] = mapped_column(String, unique=True, index=True)
    location_type: Mapped[str] = mapped_column(String, default="branch")  # branch, warehouse
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
