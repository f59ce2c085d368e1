"""
Line item builder.

Turns a product, quantity and caller-supplied extra data into a priced
:class:`LineItem`: copies product details onto the item, resolves its
tax rate, then runs the pricing and customisation plugin chains.
"""
import base64
import enum
import json
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from orderdesk.exceptions import ValidationError, LogicError
from orderdesk.models import LineItem, LineItemCustomisation, PriceModifier, Product
from orderdesk.services.extra_data import ExtraDataMixin
from orderdesk.services.options import OrderOptions
from orderdesk.services.plugin_registry import LineItemContext, PluginRegistry, default_registry
from orderdesk.services.stock_service import StockChecker, attribute_flag
from orderdesk.services.tax_service import TaxResolver

logger = logging.getLogger(__name__)


class BuildState(enum.Enum):
    """Where the builder is in assembling its item."""
    DRAFT = "draft"
    FIRST_PASS = "first_pass"
    SECOND_PASS = "second_pass"
    FINAL = "final"


CHAIN_STATES = (BuildState.FIRST_PASS, BuildState.SECOND_PASS)


class LineItemBuilder(ExtraDataMixin):
    """
    Builds and re-prices a single line item.

    A customisation added with additional data during the first plugin
    pass asks for the whole assembly to run once more, so plugins can
    react to each other. There is never more than one extra pass.
    """

    def __init__(
        self,
        session: Session,
        options: Optional[OrderOptions] = None,
        registry: Optional[PluginRegistry] = None,
        tax_resolver: Optional[TaxResolver] = None,
        stock_checker: Optional[StockChecker] = None,
        stocked_accessor: Optional[Callable[[Any], bool]] = None,
        deliverable_accessor: Optional[Callable[[Any], bool]] = None
    ):
        self.session = session
        self.options = options or OrderOptions()
        self.registry = registry if registry is not None else default_registry
        self.tax_resolver = tax_resolver or TaxResolver()
        self.stocked_accessor = stocked_accessor or attribute_flag(self.options.product_stocked_param)
        self.deliverable_accessor = deliverable_accessor or attribute_flag(
            self.options.product_deliverable_param, default=True
        )
        self.stock_checker = stock_checker or StockChecker(
            session,
            force_check_stock=self.options.force_check_stock,
            should_check=attribute_flag(self.options.product_stock_param)
        )

        self.item: Optional[LineItem] = None
        self.product = None
        self.parent = None
        self.quantity = 1
        self.lock = False
        self.deliverable = None
        self.state = BuildState.DRAFT
        self._rerun_requested = False

    # -- Assembly -----------------------------------------------------------

    def build(
        self,
        product,
        quantity: int = 1,
        lock: bool = False,
        deliverable: Optional[bool] = None,
        extra_data: Optional[Dict[str, Any]] = None,
        parent=None
    ) -> LineItem:
        """
        Create a new item for ``product``.

        ``deliverable=None`` reads the flag from the product. The item is
        not added to the session, see :meth:`write`.
        """
        self.product = product
        self.quantity = quantity
        self.lock = lock
        self.deliverable = deliverable
        if parent is not None:
            self.parent = parent
        if extra_data is not None:
            self.set_extra_data(extra_data)

        self.item = LineItem(**self._item_fields())
        self._assemble(refresh=False)

        logger.info(f"[ORDERS] Built line item '{self.item.title}' x{self.item.quantity} key={self.item.key}")
        return self.item

    def update(self) -> LineItem:
        """Re-run the full assembly against the current product."""
        self._require_item()
        self._assemble()
        return self.item

    def load_item(self, item: LineItem):
        """Take over an existing item so it can be updated."""
        self.item = item
        self.quantity = item.quantity
        self.lock = item.locked
        self.deliverable = item.deliverable
        self.state = BuildState.FINAL

        if item.parent is not None:
            self.parent = item.parent

        product = None
        if item.product_id is not None:
            product = self.session.get(Product, item.product_id)
        if product is None:
            product = item.find_stock_item(self.session)
        if product is not None:
            self.product = product

        return self

    def _item_fields(self) -> Dict[str, Any]:
        product = self.product

        if product is None:
            raise ValidationError("No product set")

        if getattr(product, 'base_price', None) is None:
            raise ValidationError("Product needs a 'base_price' attribute")

        try:
            quantity = int(self.quantity)
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be a whole number")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        deliverable = self.deliverable
        if deliverable is None:
            deliverable = self.deliverable_accessor(product)

        tax_rate = self.find_best_tax_rate()

        return {
            'title': product.title,
            'unmodified_price': Decimal(str(product.base_price)),
            'tax_rate_id': tax_rate.id,
            'tax_percentage': Decimal(str(tax_rate.rate or 0)),
            'quantity': quantity,
            'stocked': self.stocked_accessor(product),
            'deliverable': bool(deliverable),
            'locked': bool(self.lock),
            'product_class': getattr(product, 'type', None) or type(product).__name__,
            'product_id': getattr(product, 'id', None),
            'product_version': getattr(product, 'version', None),
            'stock_id': getattr(product, 'stock_id', None) or '',
        }

    def _apply_fields(self):
        for name, value in self._item_fields().items():
            setattr(self.item, name, value)

    def _assemble(self, refresh: bool = True, allow_rerun: bool = True):
        self._rerun_requested = False
        self.state = BuildState.FIRST_PASS if allow_rerun else BuildState.SECOND_PASS

        try:
            if refresh:
                self._apply_fields()
            self._run_plugins()

            if self._rerun_requested:
                self._rerun_requested = False
                self.state = BuildState.SECOND_PASS
                logger.debug(f"[PLUGINS] Re-running plugins for '{self.item.title}'")
                self._apply_fields()
                self._run_plugins()
        finally:
            self._rerun_requested = False
            self.state = BuildState.FINAL

        self.item.key = self.generate_key()

    def _clear_plugin_modifiers(self):
        item = self.item
        stale = [m for m in item.price_modifiers if m.from_plugin and m.related_class is None]
        for modifier in stale:
            item.price_modifiers.remove(modifier)

    def _run_plugins(self):
        context = LineItemContext(self)
        data = self.get_extra_data()

        self._clear_plugin_modifiers()

        for plugin in self.registry.pricers:
            plugin.modify_item_price(context, data)

        for plugin in self.registry.customisers:
            plugin.customise_line_item(context, data)

        self.item.key = self.generate_key()

    # -- Plugin callbacks ----------------------------------------------------

    def customise(
        self,
        name: str,
        value,
        additional_data: Optional[Dict[str, Any]] = None,
        related=None
    ) -> LineItemCustomisation:
        """
        Add a customisation to the item, or update the matching one.

        Matches on ``related`` when given, otherwise on title and value.
        Keys of ``additional_data`` listed in ``custom_map`` are stored in
        the customisation's ``extra``. Non-empty ``additional_data``
        re-runs the assembly (once).
        """
        item = self._require_item()
        value = '' if value is None else str(value)
        customisation = None

        if related is not None:
            customisation = next((c for c in item.customisations if c.is_related_to(related)), None)
        else:
            customisation = next(
                (c for c in item.customisations
                 if c.related_class is None and c.title == name and c.value == value),
                None
            )

        if customisation is None:
            customisation = LineItemCustomisation()
            item.customisations.append(customisation)

        customisation.title = name
        customisation.value = value
        if related is not None:
            customisation.set_related(related)

        additional_data = additional_data or {}
        mapped = {key: val for key, val in additional_data.items() if key in self.options.custom_map}
        if mapped:
            customisation.extra = {**(customisation.extra or {}), **mapped}

        item.key = self.generate_key()

        if additional_data:
            if self.state == BuildState.FIRST_PASS:
                self._rerun_requested = True
            elif self.state not in CHAIN_STATES:
                self._assemble(allow_rerun=False)

        return customisation

    def modify_price(self, name: str, amount, related=None) -> PriceModifier:
        """
        Add a price modifier to the item.

        With ``related`` the modifier for that entity is updated in place,
        otherwise a new modifier is always added. Unrelated modifiers
        added by plugins are dropped at the start of the next plugin pass.
        """
        item = self._require_item()
        modifier = None

        if related is not None:
            modifier = next((m for m in item.price_modifiers if m.is_related_to(related)), None)

        if modifier is None:
            modifier = PriceModifier()
            item.price_modifiers.append(modifier)

        modifier.name = name
        modifier.modify_price = Decimal(str(amount))
        modifier.from_plugin = self.state in CHAIN_STATES
        if related is not None:
            modifier.set_related(related)

        return modifier

    # -- Helpers -------------------------------------------------------------

    def find_best_tax_rate(self):
        return self.tax_resolver.resolve(self.product, self.parent)

    def generate_key(self) -> str:
        """``stock_id`` alone, or ``stock_id:base64(json(customisations))``."""
        item = self.item
        stock_id = (item.stock_id if item is not None else None) or getattr(self.product, 'stock_id', '') or ''

        if item is None or not item.customisations:
            return stock_id

        payload = json.dumps(item.customisation_list(), separators=(',', ':'))
        encoded = base64.b64encode(payload.encode('utf-8')).decode('ascii')
        return f"{stock_id}:{encoded}"

    @property
    def key(self) -> str:
        if self.item is not None and self.item.key:
            return self.item.key
        return ''

    def check_stock_level(self, quantity: Optional[int] = None) -> bool:
        item = self._require_item()
        return self.stock_checker.check(item, quantity if quantity is not None else item.quantity)

    def write(self):
        """Persist the item, attaching it to ``parent`` first if needed."""
        item = self._require_item()

        if item.parent is None:
            if self.parent is None:
                raise LogicError("Line item has no parent order to be written to")
            self.parent.items.append(item)

        self.session.add(item)
        self.session.commit()
        return self

    def delete(self):
        """Remove the item from the session (and database) and forget it."""
        item = self.item

        if item is not None:
            state = inspect(item)
            if state.persistent:
                if item.parent is not None and item in item.parent.items:
                    item.parent.items.remove(item)
                self.session.delete(item)
                self.session.commit()
            elif state.pending:
                self.session.expunge(item)

        self.item = None
        return self

    def _require_item(self) -> LineItem:
        if self.item is None:
            raise LogicError("No line item available, call build() or load_item() first")
        return self.item
