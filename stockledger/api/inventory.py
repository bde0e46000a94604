from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.api.deps import PageParams, get_actor
from stockledger.database import get_db
from stockledger.schemas.inventory import (
    InventoryCreate,
    InventoryOut,
    InventoryPage,
    InventoryStats,
    InventoryUpdate,
    ReservationChange,
    StockAdjust,
    StockAdjustByKey,
    StockCheck,
)
from stockledger.schemas.stock_movement import (
    AdjustmentOut,
    StockMovementPage,
    TransferCreate,
    TransferOut,
    TransferPage,
    TransferStats,
)
from stockledger.services import adjustment_service, inventory_service, ledger_service, transfer_service
from stockledger.services.stock_level import StockStatus

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.get("", response_model=InventoryPage)
def list_inventory(
    location_id: str | None = None,
    product_id: str | None = None,
    category: str | None = None,
    status: StockStatus | None = None,
    low_stock: bool = False,
    search: str | None = None,
    sort_by: str = Query("created_at", pattern="^(quantity|product_code|name|created_at)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    paging: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    records, total = inventory_service.list_inventory(
        db,
        location_id=location_id,
        product_id=product_id,
        category=category,
        status=status,
        low_stock=low_stock,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        skip=paging.skip,
        limit=paging.limit,
    )
    return InventoryPage(
        data=[InventoryOut.model_validate(r) for r in records],
        pagination=paging.pagination(total),
    )


@router.post("", response_model=InventoryOut, status_code=201)
def create_inventory(data: InventoryCreate, actor: str = Depends(get_actor), db: Session = Depends(get_db)):
    return inventory_service.create_inventory(db, data, actor=actor)


@router.get("/stats", response_model=InventoryStats)
def inventory_stats(location_id: str | None = None, db: Session = Depends(get_db)):
    return inventory_service.inventory_stats(db, location_id=location_id)


@router.get("/low-stock", response_model=list[InventoryOut])
def low_stock(location_id: str | None = None, db: Session = Depends(get_db)):
    return inventory_service.get_low_stock(db, location_id=location_id)


@router.get("/movements", response_model=StockMovementPage)
def get_stock_movements(
    product_id: str | None = None,
    location_id: str | None = None,
    inventory_id: str | None = None,
    movement_types: list[str] | None = Query(None),
    reference_id: str | None = None,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    paging: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    movements, total = ledger_service.query_movements(
        db,
        product_id=product_id,
        location_id=location_id,
        inventory_id=inventory_id,
        movement_types=movement_types,
        reference_id=reference_id,
        start_date=start_date,
        end_date=end_date,
        skip=paging.skip,
        limit=paging.limit,
    )
    return {"data": movements, "pagination": paging.pagination(total)}


@router.get("/transfers", response_model=TransferPage)
def list_transfers(
    product_id: str | None = None,
    from_location_id: str | None = None,
    to_location_id: str | None = None,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    paging: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    transfers, total = transfer_service.list_transfers(
        db,
        product_id=product_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        start_date=start_date,
        end_date=end_date,
        sort_order=sort_order,
        skip=paging.skip,
        limit=paging.limit,
    )
    return {"data": transfers, "pagination": paging.pagination(total)}


@router.get("/transfers/stats", response_model=TransferStats)
def transfer_stats(
    product_id: str | None = None,
    from_location_id: str | None = None,
    to_location_id: str | None = None,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    db: Session = Depends(get_db),
):
    return transfer_service.transfer_stats(
        db,
        product_id=product_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.post("/transfer", response_model=TransferOut, status_code=201)
def transfer_stock(data: TransferCreate, actor: str = Depends(get_actor), db: Session = Depends(get_db)):
    return transfer_service.transfer_stock(
        db,
        product_id=data.product_id,
        from_location_id=data.from_location_id,
        to_location_id=data.to_location_id,
        quantity=data.quantity,
        notes=data.notes,
        reference_id=data.reference_id,
        actor=actor,
    )


@router.post("/adjust", response_model=AdjustmentOut)
def adjust_stock_by_key(data: StockAdjustByKey, actor: str = Depends(get_actor), db: Session = Depends(get_db)):
    return adjustment_service.adjust_stock(
        db,
        data.product_id,
        data.location_id,
        data.quantity,
        data.movement_type,
        notes=data.notes,
        reference_id=data.reference_id,
        reference_type=data.reference_type,
        unit_cost=data.unit_cost,
        actor=actor,
    )


@router.get("/{inventory_id}", response_model=InventoryOut)
def get_inventory(inventory_id: str, db: Session = Depends(get_db)):
    return inventory_service.get_inventory(db, inventory_id)


@router.put("/{inventory_id}", response_model=InventoryOut)
def update_inventory(inventory_id: str, data: InventoryUpdate, db: Session = Depends(get_db)):
    return inventory_service.update_inventory(db, inventory_id, data)


@router.delete("/{inventory_id}")
def delete_inventory(inventory_id: str, db: Session = Depends(get_db)):
    inventory_service.delete_inventory(db, inventory_id)
    return {"ok": True}


@router.post("/{inventory_id}/adjust", response_model=AdjustmentOut)
def adjust_stock(
    inventory_id: str, data: StockAdjust, actor: str = Depends(get_actor), db: Session = Depends(get_db)
):
    return adjustment_service.adjust_stock_by_id(
        db,
        inventory_id,
        data.quantity,
        data.movement_type,
        notes=data.notes,
        reference_id=data.reference_id,
        reference_type=data.reference_type,
        unit_cost=data.unit_cost,
        actor=actor,
    )


@router.post("/{inventory_id}/stock-check", response_model=AdjustmentOut)
def stock_check(
    inventory_id: str, data: StockCheck, actor: str = Depends(get_actor), db: Session = Depends(get_db)
):
    return adjustment_service.stock_check(db, inventory_id, data.counted_quantity, notes=data.notes, actor=actor)


@router.post("/{inventory_id}/reserve", response_model=InventoryOut)
def reserve_stock(inventory_id: str, data: ReservationChange, db: Session = Depends(get_db)):
    return adjustment_service.reserve_stock(db, inventory_id, data.quantity)


@router.post("/{inventory_id}/release", response_model=InventoryOut)
def release_stock(inventory_id: str, data: ReservationChange, db: Session = Depends(get_db)):
    return adjustment_service.release_stock(db, inventory_id, data.quantity)


@router.get("/{inventory_id}/movements", response_model=StockMovementPage)
def get_inventory_movements(inventory_id: str, paging: PageParams = Depends(), db: Session = Depends(get_db)):
    inventory_service.get_inventory(db, inventory_id)
    movements, total = ledger_service.query_movements(
        db, inventory_id=inventory_id, skip=paging.skip, limit=paging.limit
    )
    return {"data": movements, "pagination": paging.pagination(total)}
