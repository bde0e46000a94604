from sqlalchemy.orm import Session

from stockledger.errors import LocationNotFound, ProductNotFound
from stockledger.models.catalog import Location, Product


def get_product(db: Session, product_id: str) -> Product | None:
    return db.query(Product).filter(Product.id == product_id).first()


def get_location(db: Session, location_id: str) -> Location | None:
    return db.query(Location).filter(Location.id == location_id).first()


def require_product(db: Session, product_id: str) -> Product:
    product = get_product(db, product_id)
    if not product:
        raise ProductNotFound(f"Product {product_id} not found")
    return product


def require_location(db: Session, location_id: str) -> Location:
    """Location must exist and be active to hold stock."""
    location = get_location(db, location_id)
    if not location or not location.is_active:
        raise LocationNotFound(f"Location {location_id} not found or inactive")
    return location
