"""Currency model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK


class Currency(Base):
    """
    Currency with an exchange rate relative to the default (base) currency.

    The default currency has exchange_rate = 1.
    """

    __tablename__ = 'currencies'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    code = Column(String(3), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    symbol = Column(String(10), nullable=False)
    exchange_rate = Column(Numeric(12, 4), nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Currency(code='{self.code}', rate={self.exchange_rate})>"

    def to_dict(self):
        return {
            'code': self.code,
            'name': self.name,
            'symbol': self.symbol,
            'exchange_rate': str(self.exchange_rate),
            'is_default': self.is_default,
        }
