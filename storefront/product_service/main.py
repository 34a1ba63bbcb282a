# storefront/product_service/main.py
"""
Development catalog service.

Serves product snapshots and applies stock adjustments with a single
conditional UPDATE, so concurrent decrements never lose updates and never
push stock below zero.
"""
from contextlib import asynccontextmanager
from decimal import Decimal

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel
from sqlalchemy import Column, Integer, Numeric, String, create_engine, update
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from storefront.utils.settings import CATALOG_DATABASE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

CatalogBase = declarative_base()

_connect_args = {"check_same_thread": False} if CATALOG_DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(CATALOG_DATABASE_URL, connect_args=_connect_args)
CatalogSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class ProductModel(CatalogBase):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="active")
    seller_id = Column(Integer, nullable=True)


SEED_PRODUCTS = [
    {"id": 1, "name": "Keyboard", "price": Decimal("199.99"), "stock": 25, "seller_id": 10},
    {"id": 2, "name": "Mouse", "price": Decimal("49.50"), "stock": 100, "seller_id": 10},
    {"id": 3, "name": "Monitor", "price": Decimal("899.00"), "stock": 5, "seller_id": 11},
]


class StockAdjustIn(BaseModel):
    # negative to decrement
    quantity: int


def get_catalog_db():
    db = CatalogSession()
    try:
        yield db
    finally:
        db.close()


def seed(db: Session):
    # only seed if empty
    if db.query(ProductModel).first():
        return
    for data in SEED_PRODUCTS:
        db.add(ProductModel(status="active", **data))
    db.commit()
    logger.info(f"Seeded {len(SEED_PRODUCTS)} catalog products")


def _as_dict(product: ProductModel) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "price": str(product.price),
        "stock": product.stock,
        "status": product.status,
        "seller_id": product.seller_id,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    CatalogBase.metadata.create_all(bind=engine)
    db = CatalogSession()
    try:
        seed(db)
    finally:
        db.close()
    yield


app = FastAPI(title="Product Service (dev catalog)", lifespan=lifespan)


@app.get("/products/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_catalog_db)):
    product = db.get(ProductModel, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return _as_dict(product)


@app.patch("/products/{product_id}/stock")
def adjust_stock(product_id: int, payload: StockAdjustIn, db: Session = Depends(get_catalog_db)):
    if not db.get(ProductModel, product_id):
        raise HTTPException(status_code=404, detail="Product not found")

    # UPDATE products SET stock = stock + :delta WHERE id = :id AND stock + :delta >= 0
    result = db.execute(
        update(ProductModel)
        .where(ProductModel.id == product_id, ProductModel.stock + payload.quantity >= 0)
        .values(stock=ProductModel.stock + payload.quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise HTTPException(status_code=409, detail="Insufficient stock")
    db.commit()

    product = db.get(ProductModel, product_id, populate_existing=True)
    logger.info(f"Stock of product {product_id} adjusted by {payload.quantity} to {product.stock}")
    return {"id": product.id, "stock": product.stock}
