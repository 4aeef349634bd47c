# models/customers.py

from sqlalchemy import Column, String
from db.base import Base


class Customer(Base):
    __tablename__ = "customers"

    customer_id = Column(String(30), primary_key=True)
    customer_name = Column(String(100))
