"""Stock availability checks for line items."""
import logging
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from orderdesk.models import LineItem, Invoice, PENDING_STOCK_STATUSES

logger = logging.getLogger(__name__)


def attribute_flag(param: str, default: bool = False) -> Callable[[object], bool]:
    """Accessor returning ``bool(obj.<param>)``, or ``default`` when the attribute is missing."""
    def accessor(obj) -> bool:
        return bool(getattr(obj, param, default))
    return accessor


class StockChecker:
    """
    Advisory stock check run before an item is added or its quantity changed.

    Quantities on other pending invoices with the same ``stock_id`` count
    as committed. Nothing is reserved, two concurrent checks can both pass.
    """

    def __init__(
        self,
        session: Session,
        force_check_stock: bool = False,
        should_check: Optional[Callable[[object], bool]] = None
    ):
        self.session = session
        self.force_check_stock = force_check_stock
        self.should_check = should_check or attribute_flag('stock_level')

    def committed_quantity(self, item: LineItem) -> int:
        """Units of the same stock id held by other pending invoices."""
        if not item.stock_id:
            return 0

        query = self.session.query(func.coalesce(func.sum(LineItem.quantity), 0)).select_from(LineItem).join(
            Invoice, LineItem.parent_id == Invoice.id
        ).filter(
            LineItem.stock_id == item.stock_id,
            Invoice.class_name == 'Invoice',
            Invoice.status.in_(PENDING_STOCK_STATUSES)
        )

        if item.id is not None:
            query = query.filter(LineItem.id != item.id)

        return int(query.scalar() or 0)

    def check(self, item: LineItem, quantity: int) -> bool:
        """Return True when ``quantity`` of ``item`` can be supplied."""
        stock_item = item.find_stock_item(self.session)

        if stock_item is None:
            return True

        # The live product holds the current stock level, not the snapshot
        live = getattr(stock_item, 'product', None) or stock_item

        if not self.force_check_stock and not self.should_check(live):
            return True

        committed = self.committed_quantity(item)
        remaining = live.check_stock_level(quantity, committed)

        if remaining < 0:
            logger.warning(
                f"[STOCK] Not enough '{item.title}' ({item.stock_id}): "
                f"requested={quantity}, committed={committed}, remaining={remaining}"
            )
            return False

        return True
