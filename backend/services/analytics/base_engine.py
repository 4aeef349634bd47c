from abc import ABC, abstractmethod
from sqlalchemy.orm import Session
import pandas as pd


class BaseAnalyticsEngine(ABC):
    def __init__(self, db: Session):
        self.db = db

    @abstractmethod
    def load_data(self) -> dict[str, pd.DataFrame]:
        """
        Must return:
        {
            "customers": DataFrame,
            "orders": DataFrame,
            "locations": DataFrame,
            "products": DataFrame,
        }
        """
        ...

    @abstractmethod
    def compute(self) -> dict:
        """
        Must return JSON-serializable analytics
        """
        ...
