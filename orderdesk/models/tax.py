"""Tax rate and tax category models."""
from decimal import Decimal

from sqlalchemy import Column, String, Numeric, ForeignKey, Table
from sqlalchemy.orm import relationship
from orderdesk.database import Base, IdType

DEFAULT_TAX_RATE_ID = -1


tax_category_rate = Table(
    'tax_category_rate',
    Base.metadata,
    Column('tax_category_id', IdType, ForeignKey('tax_category.id', ondelete='CASCADE'), primary_key=True),
    Column('tax_rate_id', IdType, ForeignKey('tax_rate.id', ondelete='CASCADE'), primary_key=True),
)


class TaxRate(Base):
    """A tax percentage, optionally limited to geographic zones."""

    __tablename__ = 'tax_rate'

    id = Column(IdType, primary_key=True, autoincrement=True)
    title = Column(String(100), nullable=False)
    rate = Column(Numeric(6, 3), nullable=False, default=0)

    zones = relationship('TaxZone', back_populates='tax_rate', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<TaxRate(id={self.id}, title='{self.title}', rate={self.rate})>"

    def match_score(self, country, region):
        """
        Score how well this rate applies to a delivery location.

        2 = a zone names this exact country and region,
        1 = a zone covers the whole country,
        0 = no zone applies.
        """
        country = (country or '').upper()
        region = (region or '').upper()
        score = 0

        for zone in self.zones:
            if zone.country.upper() != country:
                continue
            if zone.region and zone.region.upper() == region:
                return 2
            if not zone.region or zone.region == '*':
                score = 1

        return score


class TaxZone(Base):
    """Country (and optional region) a tax rate applies to."""

    __tablename__ = 'tax_zone'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tax_rate_id = Column(IdType, ForeignKey('tax_rate.id', ondelete='CASCADE'), nullable=False, index=True)
    country = Column(String(2), nullable=False)
    region = Column(String(10), nullable=True)  # NULL or '*' = whole country

    tax_rate = relationship('TaxRate', back_populates='zones')

    def __repr__(self):
        return f"<TaxZone(id={self.id}, country='{self.country}', region='{self.region}')>"


class TaxCategory(Base):
    """Group of regional rates a product can opt into (e.g. 'Standard', 'Books')."""

    __tablename__ = 'tax_category'

    id = Column(IdType, primary_key=True, autoincrement=True)
    title = Column(String(100), nullable=False)

    rates = relationship('TaxRate', secondary=tax_category_rate, order_by='TaxRate.id')

    def __repr__(self):
        return f"<TaxCategory(id={self.id}, title='{self.title}')>"

    def valid_tax(self, country, region):
        """Return the best rate for this location, or None if nothing matches."""
        best = None
        best_score = 0

        for rate in self.rates:
            score = rate.match_score(country, region)
            if score > best_score:
                best, best_score = rate, score

        return best


def default_tax_rate():
    """Unsaved zero rate used whenever no applicable rate can be found."""
    return TaxRate(id=DEFAULT_TAX_RATE_ID, title='Default Tax', rate=Decimal('0'))
