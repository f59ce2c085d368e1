"""Price modifier model."""
from sqlalchemy import Column, String, Boolean, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from orderdesk.database import Base, IdType
from orderdesk.models.related import RelatedObjectMixin


class PriceModifier(RelatedObjectMixin, Base):
    """Named, signed amount added to a line item's unit price."""

    __tablename__ = 'price_modifier'

    id = Column(IdType, primary_key=True, autoincrement=True)
    line_item_id = Column(IdType, ForeignKey('line_item.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    modify_price = Column(Numeric(12, 4), nullable=False, default=0)
    # Added by a pricing plugin, replaced each time the plugins run again
    from_plugin = Column(Boolean, nullable=False, default=False)

    line_item = relationship('LineItem', back_populates='price_modifiers')

    def __repr__(self):
        return f"<PriceModifier(id={self.id}, name='{self.name}', modify_price={self.modify_price})>"
