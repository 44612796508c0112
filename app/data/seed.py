# app/data/seed.py
from decimal import Decimal

from app.data.database import Base, SessionLocal, engine
from app.data.models import ProductModel
from app.utils.logging import get_logger

logger = get_logger(__name__)

# demo katalog - w produkcji produkty przychodza z serwisu katalogu
DEMO_PRODUCTS = [
    {"id": "block-print-dupatta", "name": "Block Print Dupatta", "price": Decimal("100.00"), "stock_quantity": 25},
    {"id": "brass-diya", "name": "Brass Diya", "price": Decimal("50.00"), "stock_quantity": 40},
    {"id": "madhubani-panel", "name": "Madhubani Panel", "price": Decimal("899.00"), "stock_quantity": 3},
]


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        # not forcing: only seed if empty
        if db.query(ProductModel).first():
            return
        db.add_all(ProductModel(**p) for p in DEMO_PRODUCTS)
        db.commit()
        logger.info(f"Seeded {len(DEMO_PRODUCTS)} demo products")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
