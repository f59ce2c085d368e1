"""Line item model."""
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import Column, BigInteger, Integer, String, Text, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from orderdesk.database import Base, IdType

PRICE_PLACES = Decimal('0.0001')


def round_price(value):
    """Round to 4 decimal places, half up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value or 0))
    return value.quantize(PRICE_PLACES, rounding=ROUND_HALF_UP)


class LineItem(Base):
    """
    One priced, quantified entry on an estimate or invoice.

    Product details are copied onto the item when it is built so later
    product edits do not change existing orders. ``key`` identifies the
    product + customisation combination and is used to merge duplicates,
    it is not unique at the database level.
    """

    __tablename__ = 'line_item'

    id = Column(IdType, primary_key=True, autoincrement=True)
    parent_id = Column(IdType, ForeignKey('estimate.id', ondelete='CASCADE'), nullable=False, index=True)
    key = Column(Text, nullable=False, default='', index=True)
    title = Column(String(255), nullable=False, default='')
    unmodified_price = Column(Numeric(12, 4), nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=1)
    tax_rate_id = Column(BigInteger, nullable=True)  # -1 = default (no tax)
    tax_percentage = Column(Numeric(6, 3), nullable=False, default=0)
    locked = Column(Boolean, nullable=False, default=False)
    deliverable = Column(Boolean, nullable=False, default=True)
    stocked = Column(Boolean, nullable=False, default=False)
    product_class = Column(String(50), nullable=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='SET NULL'), nullable=True, index=True)
    product_version = Column(Integer, nullable=True)
    stock_id = Column(String(100), nullable=False, default='', index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    parent = relationship('Estimate', back_populates='items')
    product = relationship('Product')
    customisations = relationship(
        'LineItemCustomisation', back_populates='line_item',
        cascade='all, delete-orphan', order_by='LineItemCustomisation.id'
    )
    price_modifiers = relationship(
        'PriceModifier', back_populates='line_item',
        cascade='all, delete-orphan', order_by='PriceModifier.id'
    )

    def __repr__(self):
        return f"<LineItem(id={self.id}, key='{self.key}', quantity={self.quantity}, price={self.unmodified_price})>"

    @property
    def base_price(self):
        """Unit price copied from the product."""
        return round_price(self.unmodified_price)

    @property
    def modifications_total(self):
        total = sum(
            (Decimal(str(modifier.modify_price or 0)) for modifier in self.price_modifiers),
            Decimal('0')
        )
        return round_price(total)

    @property
    def no_tax_price(self):
        """Unit price including modifiers, before tax."""
        return round_price(self.base_price + self.modifications_total)

    @property
    def unit_tax(self):
        rate = Decimal(str(self.tax_percentage or 0))
        return round_price(self.no_tax_price * rate / Decimal('100'))

    @property
    def unit_total(self):
        return round_price(self.no_tax_price + self.unit_tax)

    @property
    def sub_total(self):
        return round_price(self.no_tax_price * (self.quantity or 0))

    @property
    def tax_total(self):
        return round_price(self.unit_tax * (self.quantity or 0))

    @property
    def total(self):
        return round_price(self.sub_total + self.tax_total)

    def customisation_list(self):
        """Customisations as an ordered ``{title: value}`` dict."""
        return {c.title: c.value for c in self.customisations}

    def find_stock_item(self, session):
        """
        Return the product this item was priced from.

        Prefers the pinned ``ProductVersion`` snapshot and falls back to
        the live product when no snapshot exists.
        """
        from orderdesk.models.product import Product, ProductVersion

        if self.product_id is None:
            return None

        if self.product_version:
            snapshot = session.get(ProductVersion, (self.product_id, self.product_version))
            if snapshot is not None:
                return snapshot

        return session.get(Product, self.product_id)

    def to_dict(self):
        return {
            'id': self.id,
            'key': self.key,
            'title': self.title,
            'quantity': self.quantity,
            'stock_id': self.stock_id,
            'locked': self.locked,
            'deliverable': self.deliverable,
            'unit_price': str(self.no_tax_price),
            'unit_tax': str(self.unit_tax),
            'tax_rate': str(self.tax_percentage),
            'sub_total': str(self.sub_total),
            'total': str(self.total),
            'customisations': [
                {'title': c.title, 'value': c.value, 'extra': c.extra or {}}
                for c in self.customisations
            ],
            'price_modifiers': [
                {'name': m.name, 'amount': str(m.modify_price)}
                for m in self.price_modifiers
            ],
        }
