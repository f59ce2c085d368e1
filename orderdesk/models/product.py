"""Product model and its immutable version snapshots."""
from sqlalchemy import (
    Column, BigInteger, Integer, String, Boolean, Numeric, DateTime, ForeignKey,
    event, insert, select
)
from sqlalchemy.orm import relationship, object_session
from sqlalchemy.sql import func
from orderdesk.database import Base, IdType
from orderdesk.models.tax import default_tax_rate

# Columns copied into product_version every time the version changes
SNAPSHOT_FIELDS = (
    'type', 'title', 'stock_id', 'base_price', 'stocked', 'stock_level',
    'deliverable', 'tax_rate_id', 'tax_category_id',
)


class Product(Base):
    """
    Product sold through estimates and invoices.

    ``version`` starts at 1 and increases on every change to a column,
    each version is copied into ``product_version`` so line items can be
    traced back to the exact product they were priced from.
    """

    __tablename__ = 'product'

    id = Column(IdType, primary_key=True, autoincrement=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    stock_id = Column(String(100), nullable=False, default='')
    base_price = Column(Numeric(12, 4), nullable=True)
    stocked = Column(Boolean, nullable=False, default=False)
    stock_level = Column(Integer, nullable=False, default=0)
    deliverable = Column(Boolean, nullable=False, default=True)
    tax_rate_id = Column(IdType, ForeignKey('tax_rate.id'), nullable=True)
    tax_category_id = Column(IdType, ForeignKey('tax_category.id'), nullable=True)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tax_rate = relationship('TaxRate', foreign_keys=[tax_rate_id])
    tax_category = relationship('TaxCategory', foreign_keys=[tax_category_id])
    options = relationship(
        'ProductOption', back_populates='product',
        cascade='all, delete-orphan', order_by='ProductOption.id'
    )

    __mapper_args__ = {
        'polymorphic_on': type,
        'polymorphic_identity': 'Product',
    }

    def __repr__(self):
        return f"<Product(id={self.id}, title='{self.title}', stock_id='{self.stock_id}', version={self.version})>"

    def get_tax_rate(self):
        """Product's own default rate (zero rate if it has none)."""
        if self.tax_rate is not None:
            return self.tax_rate
        return default_tax_rate()

    def check_stock_level(self, quantity, committed=0):
        """Units left after ``quantity`` plus units already committed elsewhere."""
        return (self.stock_level or 0) - (committed or 0) - quantity


class ProductVersion(Base):
    """Read-only copy of a product as it was at a given version."""

    __tablename__ = 'product_version'

    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), primary_key=True)
    version = Column(Integer, primary_key=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    stock_id = Column(String(100), nullable=False, default='')
    base_price = Column(Numeric(12, 4), nullable=True)
    stocked = Column(Boolean, nullable=False, default=False)
    stock_level = Column(Integer, nullable=False, default=0)
    deliverable = Column(Boolean, nullable=False, default=True)
    tax_rate_id = Column(BigInteger, nullable=True)
    tax_category_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    product = relationship('Product')

    def __repr__(self):
        return f"<ProductVersion(product_id={self.product_id}, version={self.version}, base_price={self.base_price})>"

    @property
    def id(self):
        return self.product_id


@event.listens_for(Product, 'before_insert', propagate=True)
def _start_version(mapper, connection, target):
    target.version = 1


@event.listens_for(Product, 'before_update', propagate=True)
def _bump_version(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        target.version = (target.version or 0) + 1


@event.listens_for(Product, 'after_insert', propagate=True)
@event.listens_for(Product, 'after_update', propagate=True)
def _snapshot_version(mapper, connection, target):
    table = ProductVersion.__table__
    exists = connection.execute(
        select(table.c.version).where(
            table.c.product_id == target.id,
            table.c.version == target.version
        )
    ).first()
    if exists:
        return

    values = {field: getattr(target, field) for field in SNAPSHOT_FIELDS}
    connection.execute(
        insert(table).values(product_id=target.id, version=target.version, **values)
    )
