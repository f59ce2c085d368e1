"""Line item customisation model."""
from sqlalchemy import Column, String, ForeignKey, JSON
from sqlalchemy.orm import relationship
from orderdesk.database import Base, IdType
from orderdesk.models.related import RelatedObjectMixin


class LineItemCustomisation(RelatedObjectMixin, Base):
    """
    Title/value pair describing how an item was customised
    (e.g. Colour: Red). ``extra`` holds allow-listed fields taken from
    the data the customisation was created with.
    """

    __tablename__ = 'line_item_customisation'

    id = Column(IdType, primary_key=True, autoincrement=True)
    line_item_id = Column(IdType, ForeignKey('line_item.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    value = Column(String(255), nullable=False, default='')
    extra = Column(JSON, nullable=True)

    line_item = relationship('LineItem', back_populates='customisations')

    def __repr__(self):
        return f"<LineItemCustomisation(id={self.id}, title='{self.title}', value='{self.value}')>"
