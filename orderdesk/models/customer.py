"""Customer model."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from orderdesk.database import Base, IdType

# Fields copied onto an order when it is assigned a customer
PERSONAL_FIELDS = ('company', 'first_name', 'surname', 'email', 'phone_number')
ADDRESS_FIELDS = ('address1', 'address2', 'city', 'county', 'post_code', 'country')


class Customer(Base):
    """Customer account an order can be linked to."""

    __tablename__ = 'customer'

    id = Column(IdType, primary_key=True, autoincrement=True)
    company = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=True)
    surname = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    address1 = Column(String(255), nullable=True)
    address2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    county = Column(String(100), nullable=True)
    post_code = Column(String(20), nullable=True)
    country = Column(String(2), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Customer(id={self.id}, email='{self.email}')>"

    @property
    def full_name(self):
        return ' '.join(part for part in (self.first_name, self.surname) if part)
