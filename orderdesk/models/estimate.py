"""Estimate and Invoice models (single table, ``class_name`` discriminator)."""
import enum
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from orderdesk.database import Base, IdType
from orderdesk.models.line_item import round_price


class InvoiceStatus(enum.Enum):
    """Invoice status enum."""
    UNPAID = "unpaid"
    PART_PAID = "part-paid"
    PAID = "paid"
    PROCESSING = "processing"
    DISPATCHED = "dispatched"
    COLLECTED = "collected"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


# Invoices in these states still hold stock that has not left the building
PENDING_STOCK_STATUSES = (
    InvoiceStatus.UNPAID.value,
    InvoiceStatus.PART_PAID.value,
    InvoiceStatus.PAID.value,
    InvoiceStatus.PROCESSING.value,
)


class Estimate(Base):
    """
    Estimate (quote) sent to a customer.

    ``ref`` is allocated on first write and is unique per order type.
    An estimate can be converted into an :class:`Invoice`, which keeps
    the same row and items but takes a ref from the invoice sequence.
    """

    __tablename__ = 'estimate'
    __table_args__ = (
        UniqueConstraint('class_name', 'ref', name='uq_estimate_class_ref'),
    )

    # Estimates carry a validity window, invoices do not
    has_validity_window = True

    id = Column(IdType, primary_key=True, autoincrement=True)
    class_name = Column(String(32), nullable=False)
    ref = Column(Integer, nullable=True)
    prefix = Column(String(20), nullable=False, default='')
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=True)
    access_key = Column(String(40), nullable=True, unique=True)
    disable_negative = Column(Boolean, nullable=False, default=False)

    # Personal details
    company = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=True)
    surname = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)

    # Billing address
    address1 = Column(String(255), nullable=True)
    address2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    county = Column(String(100), nullable=True)
    post_code = Column(String(20), nullable=True)
    country = Column(String(2), nullable=True)

    # Delivery address (delivery_county doubles as the tax region)
    delivery_company = Column(String(255), nullable=True)
    delivery_first_name = Column(String(100), nullable=True)
    delivery_surname = Column(String(100), nullable=True)
    delivery_address1 = Column(String(255), nullable=True)
    delivery_address2 = Column(String(255), nullable=True)
    delivery_city = Column(String(100), nullable=True)
    delivery_county = Column(String(100), nullable=True)
    delivery_post_code = Column(String(20), nullable=True)
    delivery_country = Column(String(2), nullable=True)

    customer_id = Column(IdType, ForeignKey('customer.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('Customer')
    items = relationship(
        'LineItem', back_populates='parent',
        cascade='all, delete-orphan', order_by='LineItem.id'
    )

    __mapper_args__ = {
        'polymorphic_on': class_name,
        'polymorphic_identity': 'Estimate',
    }

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, ref={self.ref}, items={len(self.items)})>"

    # -- Totals ----------------------------------------------------------

    def can_have_negative_value(self):
        return not self.disable_negative

    def set_allow_negative_value(self, allow_negative):
        """Allow (or forbid) totals below zero. Stored inverted as ``disable_negative``."""
        self.disable_negative = not allow_negative
        return self

    @property
    def total_items(self):
        return sum((item.quantity or 1) for item in self.items)

    @property
    def sub_total(self):
        return round_price(sum((item.sub_total for item in self.items), Decimal('0')))

    @property
    def tax_total(self):
        total = round_price(sum((item.tax_total for item in self.items), Decimal('0')))
        if total < 0 and not self.can_have_negative_value():
            return round_price(0)
        return total

    @property
    def total(self):
        total = round_price(self.sub_total + self.tax_total)
        if total < 0 and not self.can_have_negative_value():
            return round_price(0)
        return total

    @property
    def tax_list(self):
        """
        Tax totals grouped by rate.

        Returns a list of ``{'id', 'rate', 'total'}`` dicts in the order
        each rate first appears on the order.
        """
        taxes = {}
        for item in self.items:
            group = (item.tax_rate_id, Decimal(str(item.tax_percentage or 0)))
            if group not in taxes:
                taxes[group] = {'id': item.tax_rate_id, 'rate': group[1], 'total': Decimal('0')}
            taxes[group]['total'] = round_price(taxes[group]['total'] + item.tax_total)
        return list(taxes.values())

    @property
    def item_summary(self):
        return '\n'.join(f"{item.quantity} x {item.title}" for item in self.items)

    @property
    def is_deliverable(self):
        """True when at least one item needs delivering."""
        return any(item.deliverable for item in self.items)

    @property
    def is_locked(self):
        """True when every item is locked."""
        return bool(self.items) and all(item.locked for item in self.items)

    # -- Reference and contact details -----------------------------------

    def format_ref(self, length=0):
        number = str(self.ref or 0).zfill(length or 0)
        if self.prefix:
            return f"{self.prefix}-{number}"
        return number

    @property
    def full_ref(self):
        return self.format_ref()

    @property
    def personal_details(self):
        parts = [self.company, self.first_name, self.surname, self.email, self.phone_number]
        return ',\n'.join(part for part in parts if part)

    @property
    def billing_address(self):
        parts = [self.address1, self.address2, self.city, self.post_code, self.country]
        return ',\n'.join(part for part in parts if part)

    @property
    def delivery_address(self):
        parts = [
            self.delivery_address1, self.delivery_address2, self.delivery_city,
            self.delivery_post_code, self.delivery_country
        ]
        return ',\n'.join(part for part in parts if part)

    def to_dict(self, number_length=0):
        return {
            'id': self.id,
            'type': self.class_name,
            'ref': self.ref,
            'full_ref': self.format_ref(number_length),
            'prefix': self.prefix,
            'status': self.status,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'access_key': self.access_key,
            'customer_id': self.customer_id,
            'delivery_country': self.delivery_country,
            'delivery_county': self.delivery_county,
            'total_items': self.total_items,
            'sub_total': str(self.sub_total),
            'tax_total': str(self.tax_total),
            'total': str(self.total),
            'tax_list': [
                {'id': tax['id'], 'rate': str(tax['rate']), 'total': str(tax['total'])}
                for tax in self.tax_list
            ],
            'items': [item.to_dict() for item in self.items],
        }


class Invoice(Estimate):
    """Confirmed order. Shares the estimate table."""

    has_validity_window = False

    __mapper_args__ = {
        'polymorphic_identity': 'Invoice',
    }

    @property
    def is_pending(self):
        """Check if the invoice still holds stock (calculated, not stored)."""
        return self.status in PENDING_STOCK_STATUSES
