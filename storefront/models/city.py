"""City model."""
from sqlalchemy import Column, String
from storefront.database import Base, BigIntPK, JSONType


class City(Base):
    """Destination city, grouped into shipping zones."""

    __tablename__ = 'cities'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(JSONType, nullable=False)
    country_code = Column(String(2), nullable=False)

    def __repr__(self):
        return f"<City(id={self.id}, country='{self.country_code}')>"
