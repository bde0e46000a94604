import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.database import Base
from stockledger.services.stock_level import StockStatus, classify


class InventoryRecord(Base):
    """Current stock of one product at one location.

    A materialized cache of the movement ledger: ``quantity`` only changes
    together with an appended StockMovement. ``version`` is bumped on every
    UPDATE and checked by the ORM (optimistic locking).
    """

    __tablename__ = "inventory_records"
    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="ux_inventory_product_location"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Overrides; None falls back to the product defaults
    min_stock_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_stock_level: Mapped[int | None] = mapped_column(Integer, nullable=True)

    warehouse_location: Mapped[str] = mapped_column(String, default="")  # shelf / bin
    zone: Mapped[str] = mapped_column(String, default="")

    average_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    last_restocked: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_stock_check: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    product = relationship(
        "Product",
        primaryjoin="foreign(InventoryRecord.product_id) == Product.id",
        viewonly=True,
        lazy="selectin",
    )
    location = relationship(
        "Location",
        primaryjoin="foreign(InventoryRecord.location_id) == Location.id",
        viewonly=True,
        lazy="selectin",
    )

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    @property
    def status(self) -> StockStatus:
        return classify(self)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
