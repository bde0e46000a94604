from datetime import datetime

from pydantic import BaseModel

from stockledger.schemas.inventory import InventoryOut, Pagination


class StockMovementOut(BaseModel):
    id: str
    inventory_record_id: str
    product_id: str
    location_id: str
    movement_type: str
    direction: int
    quantity: int
    quantity_before: int
    quantity_after: int
    unit_cost: float | None = None
    record_version: int
    reference_id: str | None = None
    reference_type: str | None = None
    notes: str
    created_at: datetime
    created_by: str

    model_config = {"from_attributes": True}


class StockMovementPage(BaseModel):
    data: list[StockMovementOut]
    pagination: Pagination


class AdjustmentOut(BaseModel):
    movement: StockMovementOut | None = None
    inventory: InventoryOut
    replayed: bool = False

    model_config = {"from_attributes": True}


class TransferCreate(BaseModel):
    product_id: str
    from_location_id: str
    to_location_id: str
    quantity: int
    notes: str = ""
    reference_id: str | None = None


class TransferOut(BaseModel):
    transfer_id: str
    product_id: str
    from_location_id: str
    to_location_id: str
    quantity: int
    out_movement: StockMovementOut
    in_movement: StockMovementOut
    source: InventoryOut
    destination: InventoryOut
    replayed: bool = False

    model_config = {"from_attributes": True}


class TransferSummaryOut(BaseModel):
    transfer_id: str
    product_id: str
    from_location_id: str
    to_location_id: str
    quantity: int
    notes: str
    created_at: datetime
    created_by: str
    out_movement: StockMovementOut
    in_movement: StockMovementOut

    model_config = {"from_attributes": True}


class TransferPage(BaseModel):
    data: list[TransferSummaryOut]
    pagination: Pagination


class TransferStats(BaseModel):
    total_transfers: int
    total_items_transferred: int
