from datetime import datetime

from pydantic import BaseModel

from stockledger.services.stock_level import StockStatus


class InventoryCreate(BaseModel):
    product_id: str
    location_id: str
    quantity: int = 0
    min_stock_level: int | None = None
    max_stock_level: int | None = None
    location: str = ""  # shelf / bin inside the location
    zone: str = ""
    unit_cost: float | None = None


class InventoryUpdate(BaseModel):
    min_stock_level: int | None = None
    max_stock_level: int | None = None
    location: str | None = None
    zone: str | None = None


class ProductSummary(BaseModel):
    id: str
    sku: str
    product_code: str
    name: str
    category: str

    model_config = {"from_attributes": True}


class LocationSummary(BaseModel):
    id: str
    name: str
    location_code: str
    location_type: str

    model_config = {"from_attributes": True}


class InventoryOut(BaseModel):
    id: str
    product_id: str
    location_id: str
    quantity: int
    reserved_quantity: int
    available_quantity: int
    min_stock_level: int | None = None
    max_stock_level: int | None = None
    warehouse_location: str
    zone: str
    average_cost: float
    total_value: float
    status: StockStatus
    last_restocked: datetime | None = None
    last_stock_check: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime
    product: ProductSummary | None = None
    location: LocationSummary | None = None

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class InventoryPage(BaseModel):
    data: list[InventoryOut]
    pagination: Pagination


class StockAdjust(BaseModel):
    quantity: int  # positive; signed for ADJUSTMENT
    movement_type: str
    notes: str = ""
    reference_id: str | None = None
    reference_type: str | None = None
    unit_cost: float | None = None


class StockAdjustByKey(StockAdjust):
    product_id: str
    location_id: str


class StockCheck(BaseModel):
    counted_quantity: int
    notes: str = ""


class ReservationChange(BaseModel):
    quantity: int


class InventoryStats(BaseModel):
    total_items: int
    total_quantity: int
    total_value: float
    in_stock_items: int
    low_stock_items: int
    out_of_stock_items: int
    overstocked_items: int
    category_breakdown: dict[str, int]
