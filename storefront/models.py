# storefront/models.py
from enum import Enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    BigInteger,
    String,
    DateTime,
    ForeignKey,
    Boolean,
    Text,
)
from sqlalchemy.orm import relationship

# Single shared Base so every model lives on the same metadata
from storefront.database import Base


def _as_utc(value):
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OrderType(str, Enum):
    PURCHASE = "purchase"
    RENTAL = "rental"


class Product(Base):
    __tablename__ = 'Product'
    productID = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    game_title = Column(String(255))
    # IDR has no minor unit; prices are whole rupiah
    price = Column(BigInteger, nullable=False)
    _original_price = Column('original_price', BigInteger)
    _is_flash_sale = Column('is_flash_sale', Boolean, default=False, nullable=False)
    _flash_sale_end_time = Column('flash_sale_end_time', DateTime(timezone=True))
    _is_active = Column('is_active', Boolean, default=True, nullable=False)
    _created_at = Column('created_at', DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    rental_options = relationship(
        "RentalOption",
        back_populates="product",
        order_by="RentalOption.rentalOptionID",
    )
    flash_sales = relationship("FlashSale", back_populates="product")

    @property
    def original_price(self):
        return self._original_price

    @original_price.setter
    def original_price(self, value):
        self._original_price = value

    @property
    def is_flash_sale(self) -> bool:
        return bool(self._is_flash_sale)

    @is_flash_sale.setter
    def is_flash_sale(self, value):
        self._is_flash_sale = value

    @property
    def flash_sale_end_time(self):
        return _as_utc(self._flash_sale_end_time)

    @flash_sale_end_time.setter
    def flash_sale_end_time(self, value):
        self._flash_sale_end_time = value

    @property
    def is_active(self) -> bool:
        return bool(self._is_active)

    @is_active.setter
    def is_active(self, value):
        self._is_active = value

    @property
    def created_at(self):
        return _as_utc(self._created_at)


class FlashSale(Base):
    __tablename__ = 'FlashSale'
    flashSaleID = Column(Integer, primary_key=True, autoincrement=True)
    productID = Column(Integer, ForeignKey('Product.productID'), nullable=False)
    _sale_price = Column('sale_price', BigInteger, nullable=False)
    _original_price = Column('original_price', BigInteger)
    _start_time = Column('start_time', DateTime(timezone=True), nullable=False)
    _end_time = Column('end_time', DateTime(timezone=True), nullable=False)
    _is_active = Column('is_active', Boolean, default=True, nullable=False)
    product = relationship("Product", back_populates="flash_sales")

    @property
    def sale_price(self):
        return self._sale_price

    @sale_price.setter
    def sale_price(self, value):
        self._sale_price = value

    @property
    def original_price(self):
        return self._original_price

    @original_price.setter
    def original_price(self, value):
        self._original_price = value

    @property
    def start_time(self):
        return _as_utc(self._start_time)

    @start_time.setter
    def start_time(self, value):
        self._start_time = value

    @property
    def end_time(self):
        return _as_utc(self._end_time)

    @end_time.setter
    def end_time(self, value):
        self._end_time = value

    @property
    def is_active(self) -> bool:
        return bool(self._is_active)

    @is_active.setter
    def is_active(self, value):
        self._is_active = value

    def has_started(self, now: datetime) -> bool:
        return self.start_time <= now


class RentalOption(Base):
    __tablename__ = 'RentalOption'
    rentalOptionID = Column(Integer, primary_key=True, autoincrement=True)
    productID = Column(Integer, ForeignKey('Product.productID'), nullable=False)
    duration = Column(String(100), nullable=False)
    price = Column(BigInteger, nullable=False)
    product = relationship("Product", back_populates="rental_options")
