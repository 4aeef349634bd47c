# models/products.py

from sqlalchemy import Column, String
from db.base import Base


class Product(Base):
    __tablename__ = "products"

    product_id = Column(String(50), primary_key=True)
    category = Column(String(70))
    sub_category = Column(String(50))
    product_name = Column(String(250))
