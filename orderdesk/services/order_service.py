"""
Order assembler.

Finds or creates an estimate/invoice, adds, merges, updates and removes
its line items, allocates references and converts estimates into
invoices.
"""
import logging
import secrets
import string
from datetime import date, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func, inspect, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderdesk.exceptions import OrderDeskError, ValidationError, InsufficientStockError, LogicError
from orderdesk.models import Estimate, Invoice, InvoiceStatus, LineItem
from orderdesk.models.customer import PERSONAL_FIELDS, ADDRESS_FIELDS
from orderdesk.services.extra_data import ExtraDataMixin
from orderdesk.services.line_item_service import LineItemBuilder
from orderdesk.services.options import OrderOptions, REF_MAX_RETRIES
from orderdesk.services.plugin_registry import PluginRegistry

logger = logging.getLogger(__name__)

ACCESS_KEY_LENGTH = 40
ACCESS_KEY_CHARS = string.ascii_letters + string.digits

# Billing fields copied to the matching delivery_* field when no delivery address is set
DELIVERY_FIELDS = (
    'company', 'first_name', 'surname', 'address1', 'address2',
    'city', 'county', 'post_code', 'country',
)


class OrderAssembler(ExtraDataMixin):
    """
    Works on a single estimate (or invoice when ``invoice=True``).

    The order is looked up by ``id`` or ``ref`` and created when neither
    matches. Every mutating call commits on success and rolls back on
    failure.
    """

    def __init__(
        self,
        session: Session,
        invoice: bool = False,
        id: Optional[int] = None,
        ref: Optional[int] = None,
        options: Optional[OrderOptions] = None,
        registry: Optional[PluginRegistry] = None
    ):
        self.session = session
        self.invoice = invoice
        self.id = id
        self.ref = ref
        self.options = options or OrderOptions()
        self.registry = registry
        self._order = None

        self.find_or_make()

    # -- Order lookup --------------------------------------------------------

    @property
    def order_class(self):
        return Invoice if self.invoice else Estimate

    @property
    def order(self):
        return self._order

    @order.setter
    def order(self, order):
        self.set_order(order)

    def set_order(self, order):
        expected = self.order_class
        # Invoice subclasses Estimate, so compare the stored type tag
        if not isinstance(order, Estimate) or self._identity(order) != self._identity(expected):
            raise LogicError(f"Order must be an instance of {expected.__name__}")
        self._order = order
        return self

    def find_or_make(self):
        """Load the order by id or ref, or start a new unsaved one."""
        order_class = self.order_class
        identity = self._identity(order_class)
        order = None

        if self.id:
            order = self.session.query(order_class).filter(
                order_class.id == self.id,
                order_class.class_name == identity
            ).first()

        if self.ref:
            ref_column = getattr(order_class, self.options.order_ref_param)
            order = self.session.query(order_class).filter(
                ref_column == self.ref,
                order_class.class_name == identity
            ).first()

        if order is None:
            order = order_class()
            if self.invoice:
                order.status = InvoiceStatus.UNPAID.value

        self.set_order(order)
        return self

    @staticmethod
    def _identity(order_or_class) -> str:
        return inspect(order_or_class).mapper.polymorphic_identity

    def _get_items(self):
        """The order's line item collection."""
        order = self.order
        for relationship in inspect(type(order)).relationships:
            if relationship.uselist and issubclass(relationship.mapper.class_, LineItem):
                return getattr(order, relationship.key)

        raise ValidationError(f"The class '{type(order).__name__}' has no item association")

    def find_item(self, key: str) -> Optional[LineItem]:
        return next((item for item in self._get_items() if item.key == key), None)

    def _is_saved(self) -> bool:
        return inspect(self.order).persistent

    # -- Line items ----------------------------------------------------------

    def make_builder(self, extra_data: Optional[Dict[str, Any]] = None) -> LineItemBuilder:
        """Builder bound to this order, carrying its extra data."""
        builder = LineItemBuilder(self.session, options=self.options, registry=self.registry)
        builder.parent = self.order
        builder.set_extra_data({**self.get_extra_data(), **(extra_data or {})})
        return builder

    def add_item(
        self,
        product,
        quantity: int = 1,
        lock: bool = False,
        deliverable: Optional[bool] = None,
        extra_data: Optional[Dict[str, Any]] = None
    ):
        """Build an item for ``product`` and add it, merging with an existing item of the same key."""
        builder = self.make_builder(extra_data)
        builder.build(product, quantity, lock, deliverable)
        return self.add_from_builder(builder)

    def add_from_builder(self, builder: LineItemBuilder):
        item = builder.item
        if item is None:
            raise LogicError("Builder has no line item, call build() first")

        existing = self.find_item(builder.key)

        if existing is not None and existing is not item:
            if not self._is_saved():
                self.write()
            logger.info(f"[ORDERS] Merging '{item.title}' into existing item key={existing.key}")
            self.update_item(existing.key, item.quantity, extra_data=builder.get_extra_data())
            builder.delete()
            return self

        # Checked before a new order is written so a failure leaves nothing behind
        if not builder.check_stock_level(item.quantity):
            raise InsufficientStockError(item.title, item.quantity)

        if not self._is_saved():
            self.write()

        savepoint = self.session.begin_nested()
        try:
            self._get_items().append(item)
            self.session.commit()
            logger.info(f"[ORDERS] Added '{item.title}' x{item.quantity} to {self._identity(self.order)} {self.order.id}")
            return self
        except OrderDeskError:
            savepoint.rollback()
            raise
        except Exception:
            savepoint.rollback()
            raise

    def update_item(
        self,
        key: str,
        quantity: int,
        increment: bool = True,
        extra_data: Optional[Dict[str, Any]] = None
    ):
        """
        Change the quantity of the item with ``key``.

        ``increment=True`` adds ``quantity`` to the current amount,
        otherwise it replaces it. Unknown keys are ignored. When stock
        runs out nothing is changed and InsufficientStockError is raised.
        """
        item = self.find_item(key)
        if item is None:
            return self

        if item.locked:
            raise ValidationError(f"'{item.title}' is locked and cannot be changed")

        new_quantity = (item.quantity + quantity) if increment else quantity
        if new_quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        builder = self.make_builder(extra_data)
        builder.load_item(item)

        title = item.title
        savepoint = self.session.begin_nested()
        try:
            builder.quantity = new_quantity
            builder.update()
            self.session.flush()

            if not builder.check_stock_level(new_quantity):
                raise InsufficientStockError(title, new_quantity)

            self.session.commit()
            logger.info(f"[ORDERS] Updated '{title}' quantity to {new_quantity}")
            return self

        except OrderDeskError:
            savepoint.rollback()
            raise
        except Exception:
            savepoint.rollback()
            raise

    def remove_item(self, key: str):
        item = self.find_item(key)
        if item is None:
            return self

        savepoint = self.session.begin_nested()
        try:
            self._get_items().remove(item)
            self.session.commit()
            logger.info(f"[ORDERS] Removed item key={key} from order {self.order.id}")
            return self
        except Exception:
            savepoint.rollback()
            raise

    # -- References ----------------------------------------------------------

    def find_last_ref(self) -> int:
        """Highest ref used by orders of the same type (0 if none)."""
        last = self.session.query(func.max(Estimate.ref)).filter(
            Estimate.class_name == self._identity(self.order)
        ).scalar()
        return int(last or 0)

    def valid_order_ref(self, number: int, class_name: str) -> bool:
        existing = self.session.query(Estimate.id).filter(
            Estimate.class_name == class_name,
            Estimate.ref == number
        ).first()
        return existing is None

    def calculate_next_ref(self) -> int:
        """First free ref for this order type, counting up from the last one used."""
        class_name = self._identity(self.order)
        number = max(self.find_last_ref(), 1)

        while not self.valid_order_ref(number, class_name):
            number += 1

        return number

    @staticmethod
    def generate_random_string(length: int = ACCESS_KEY_LENGTH) -> str:
        return ''.join(secrets.choice(ACCESS_KEY_CHARS) for _ in range(length))

    def valid_access_key(self, key: str) -> bool:
        existing = self.session.query(Estimate.id).filter(Estimate.access_key == key).first()
        return existing is None

    def find_best_prefix(self, order=None) -> str:
        order = order if order is not None else self.order
        if isinstance(order, Invoice):
            return self.options.invoice_prefix
        return self.options.estimate_prefix

    # -- Order details -------------------------------------------------------

    def set_customer(self, customer):
        order = self.order
        if order is not None:
            order.customer = customer
            order.customer_id = getattr(customer, 'id', None)
        return self

    def _prepare_for_write(self, order):
        if not order.access_key:
            key = self.generate_random_string()
            while not self.valid_access_key(key):
                key = self.generate_random_string()
            order.access_key = key

        if not order.prefix:
            order.prefix = self.find_best_prefix(order)

        customer = order.customer
        if customer is not None:
            if not order.personal_details:
                for field in PERSONAL_FIELDS:
                    setattr(order, field, getattr(customer, field))
            if not order.billing_address:
                for field in ADDRESS_FIELDS:
                    setattr(order, field, getattr(customer, field))

        if not order.delivery_address and order.billing_address:
            for field in DELIVERY_FIELDS:
                setattr(order, f'delivery_{field}', getattr(order, field))

        if order.has_validity_window:
            if not order.start_date:
                order.start_date = date.today()
            if not order.end_date and order.start_date:
                order.end_date = order.start_date + timedelta(days=self.options.default_validity_days)

    def write(self):
        """
        Save the order, filling in access key, prefix, contact and
        delivery details and (first time round) a ref.
        """
        order = self.order
        if order is None:
            return self

        was_new = not self._is_saved()

        for attempt in range(1, REF_MAX_RETRIES + 1):
            savepoint = self.session.begin_nested()
            try:
                self._prepare_for_write(order)
                self.session.add(order)
                self.session.flush()

                if order.ref is None:
                    order.ref = self.calculate_next_ref()
                    self.session.flush()

                self.session.commit()
                logger.info(f"[ORDERS] Saved {self._identity(order)} {order.id} ref={order.full_ref}")
                return self

            except IntegrityError as e:
                savepoint.rollback()
                logger.warning(f"[ORDERS] Ref/access key collision on attempt {attempt}: {e.orig}")
                if was_new:
                    order.id = None
                order.ref = None
                order.access_key = None

        raise OrderDeskError("Could not allocate a unique reference for this order", 503)

    def delete(self):
        order = self.order
        if order is not None and self._is_saved():
            self.session.delete(order)
            self.session.commit()
            logger.info(f"[ORDERS] Deleted {self._identity(order)} {order.id}")
        return self

    def duplicate(self) -> 'OrderAssembler':
        """Copy the order and its items into a new order of the same type."""
        source = self.order
        copy = type(source)()

        skip = {
            'id', 'class_name', 'ref', 'prefix', 'access_key',
            'start_date', 'end_date', 'created_at', 'updated_at',
        }
        for column in inspect(type(source)).columns:
            if column.key not in skip:
                setattr(copy, column.key, getattr(source, column.key))

        for item in self._get_items():
            clone = LineItem()
            for column in inspect(LineItem).columns:
                if column.key not in ('id', 'parent_id', 'created_at', 'updated_at'):
                    setattr(clone, column.key, getattr(item, column.key))
            for modifier in item.price_modifiers:
                clone.price_modifiers.append(type(modifier)(
                    name=modifier.name, modify_price=modifier.modify_price, from_plugin=modifier.from_plugin,
                    related_class=modifier.related_class, related_id=modifier.related_id
                ))
            for customisation in item.customisations:
                clone.customisations.append(type(customisation)(
                    title=customisation.title, value=customisation.value,
                    extra=dict(customisation.extra or {}),
                    related_class=customisation.related_class, related_id=customisation.related_id
                ))
            copy.items.append(clone)

        assembler = OrderAssembler(
            self.session, invoice=isinstance(copy, Invoice),
            options=self.options, registry=self.registry
        )
        assembler.set_extra_data(self.get_extra_data())
        assembler.set_order(copy)
        assembler.write()
        return assembler

    # -- Conversion ----------------------------------------------------------

    def convert_estimate_to_invoice(self):
        """
        Turn the estimate into an invoice (same row, same items).

        The invoice takes a ref from the invoice sequence and loses the
        estimate's validity window. Already an invoice: returned as is.
        """
        order = self.order
        if isinstance(order, Invoice):
            return order

        if not self._is_saved():
            self.write()
            order = self.order

        order_id = order.id
        invoice = None

        savepoint = self.session.begin_nested()
        try:
            self.session.flush()
            self.session.execute(
                update(Estimate.__table__)
                .where(Estimate.__table__.c.id == order_id)
                .values(class_name=self._identity(Invoice), ref=None)
            )
            self.session.expunge(order)

            invoice = self.session.get(Invoice, order_id)
            self.invoice = True
            self.set_order(invoice)

            invoice.start_date = None
            invoice.end_date = None
            invoice.status = invoice.status or InvoiceStatus.UNPAID.value
            invoice.ref = self.calculate_next_ref()
            invoice.prefix = self.find_best_prefix(invoice)

            self.session.commit()
            logger.info(f"[ORDERS] Converted estimate {order_id} to invoice ref={invoice.full_ref}")
            return invoice

        except Exception:
            savepoint.rollback()
            self.invoice = False
            # The row is an Estimate again, reload it in place of the expunged instance
            if invoice is not None and invoice in self.session:
                self.session.expunge(invoice)
            self._order = self.session.get(Estimate, order_id)
            raise
