# models/locations.py

from sqlalchemy import Column, Integer, String
from db.base import Base


class Location(Base):
    __tablename__ = "locations"

    postal_code = Column(Integer, primary_key=True, autoincrement=False)
    city = Column(String(50))
    state = Column(String(50))
    region = Column(String(50), index=True)
    country_region = Column(String(50))
