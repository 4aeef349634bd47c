# models/orders.py

from sqlalchemy import Column, Date, Integer, Numeric, String
from db.base import Base


class Order(Base):
    """
    Fact table: one row per order line.

    customer_id -> customers.customer_id
    postal_code -> locations.postal_code
    product_id  -> products.product_id

    The references are not declared as foreign keys. Orphaned rows are
    reported by services.integrity instead of being rejected on load.
    """

    __tablename__ = "orders"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(20), index=True)
    order_date = Column(Date, index=True)
    ship_date = Column(Date)
    ship_mode = Column(String(20))
    customer_id = Column(String(20), index=True)
    segment = Column(String(20))
    postal_code = Column(Integer, index=True)
    product_id = Column(String(20), index=True)
    sales = Column(Numeric(14, 4, asdecimal=False))
    quantity = Column(Integer)
    discount = Column(Numeric(6, 4, asdecimal=False))
    profit = Column(Numeric(14, 4, asdecimal=False))
