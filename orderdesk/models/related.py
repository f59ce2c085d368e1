"""Weak (class name, id) reference shared by modifiers and customisations."""
from sqlalchemy import Column, BigInteger, String


def related_key(obj):
    """Return the ``(class name, id)`` pair used to point at ``obj``."""
    if obj is None:
        return None, None
    return type(obj).__name__, getattr(obj, 'id', None)


class RelatedObjectMixin:
    """Columns and helpers for an optional link back to an originating row."""

    related_class = Column(String(100), nullable=True)
    related_id = Column(BigInteger, nullable=True)

    def set_related(self, obj):
        self.related_class, self.related_id = related_key(obj)

    def is_related_to(self, obj):
        if obj is None or self.related_class is None:
            return False
        return (self.related_class, self.related_id) == related_key(obj)
