"""Selectable product options (size, colour...) and their values."""
from sqlalchemy import Column, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from orderdesk.database import Base, IdType


class ProductOption(Base):
    """An option group a customer picks from, e.g. 'Size'."""

    __tablename__ = 'product_option'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String(100), nullable=False)

    # Relationships
    product = relationship('Product', back_populates='options')
    values = relationship(
        'ProductOptionValue', back_populates='option',
        cascade='all, delete-orphan', order_by='ProductOptionValue.id'
    )

    def __repr__(self):
        return f"<ProductOption(id={self.id}, title='{self.title}')>"


class ProductOptionValue(Base):
    """One choice within an option; ``modify_price`` is added per unit."""

    __tablename__ = 'product_option_value'

    id = Column(IdType, primary_key=True, autoincrement=True)
    option_id = Column(IdType, ForeignKey('product_option.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String(100), nullable=False)
    modify_price = Column(Numeric(12, 4), nullable=False, default=0)

    option = relationship('ProductOption', back_populates='values')

    def __repr__(self):
        return f"<ProductOptionValue(id={self.id}, title='{self.title}', modify_price={self.modify_price})>"
