"""Stock level classification.

Pure functions: nothing here touches the session. ``classify`` is used when a
record is serialized; ``status_expression`` is the same rule as a SQL CASE so
listings can filter and paginate on status inside the database.
"""
from enum import Enum as PyEnum

from sqlalchemy import case, func


class StockStatus(str, PyEnum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    OVERSTOCKED = "overstocked"


def effective_min_stock(record, product=None) -> int:
    product = product if product is not None else getattr(record, "product", None)
    if record.min_stock_level is not None:
        return record.min_stock_level
    if product is not None and product.min_stock_level is not None:
        return product.min_stock_level
    return 0


def effective_max_stock(record, product=None) -> int | None:
    """Maximum stock level, or None when no positive level is configured."""
    product = product if product is not None else getattr(record, "product", None)
    if record.max_stock_level is not None and record.max_stock_level > 0:
        return record.max_stock_level
    if product is not None and product.max_stock_level is not None and product.max_stock_level > 0:
        return product.max_stock_level
    return None


def classify(record, product=None) -> StockStatus:
    quantity = record.quantity
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= effective_min_stock(record, product):
        return StockStatus.LOW_STOCK
    max_stock = effective_max_stock(record, product)
    if max_stock is not None and quantity > max_stock:
        return StockStatus.OVERSTOCKED
    return StockStatus.IN_STOCK


def status_expression(record_cls, product_cls):
    """SQL equivalent of ``classify``; the query must outer-join ``product_cls``."""
    min_level = func.coalesce(record_cls.min_stock_level, product_cls.min_stock_level, 0)
    max_level = case(
        (record_cls.max_stock_level > 0, record_cls.max_stock_level),
        (product_cls.max_stock_level > 0, product_cls.max_stock_level),
        else_=None,
    )
    return case(
        (record_cls.quantity <= 0, StockStatus.OUT_OF_STOCK.value),
        (record_cls.quantity <= min_level, StockStatus.LOW_STOCK.value),
        (record_cls.quantity > max_level, StockStatus.OVERSTOCKED.value),
        else_=StockStatus.IN_STOCK.value,
    )
