"""Estimates and invoices JSON blueprint."""
from flask import Blueprint, request, jsonify, current_app

from orderdesk.database import get_session
from orderdesk.exceptions import ValidationError, NotFoundError
from orderdesk.models import Product, Customer
from orderdesk.services.order_service import OrderAssembler

estimates_bp = Blueprint('estimates', __name__, url_prefix='/estimates')
invoices_bp = Blueprint('invoices', __name__, url_prefix='/invoices')

# Order fields a client may set when creating an estimate
EDITABLE_FIELDS = (
    'company', 'first_name', 'surname', 'email', 'phone_number',
    'address1', 'address2', 'city', 'county', 'post_code', 'country',
    'delivery_company', 'delivery_first_name', 'delivery_surname',
    'delivery_address1', 'delivery_address2', 'delivery_city',
    'delivery_county', 'delivery_post_code', 'delivery_country',
)


def _assembler(invoice=False, order_id=None):
    """Order assembler configured from the app's order options and plugins."""
    ext = current_app.extensions['orderdesk']
    return OrderAssembler(
        get_session(),
        invoice=invoice,
        id=order_id,
        options=ext['options'],
        registry=ext['registry']
    )


def _load_estimate(estimate_id):
    assembler = _assembler(order_id=estimate_id)
    order = assembler.order
    if order.id is None:
        raise NotFoundError(f'Estimate {estimate_id} not found')
    return assembler


def _order_response(order, status=200):
    number_length = current_app.extensions['orderdesk']['options'].number_length
    return jsonify(order.to_dict(number_length=number_length)), status


def _parse_quantity(value, default=1):
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError('quantity must be a whole number')


@estimates_bp.route('', methods=['POST'])
def create_estimate():
    """Create an estimate, optionally for a customer."""
    db_session = get_session()
    payload = request.get_json(silent=True) or {}

    assembler = _assembler()
    order = assembler.order

    for field in EDITABLE_FIELDS:
        if field in payload:
            setattr(order, field, payload[field])

    if 'allow_negative' in payload:
        order.set_allow_negative_value(bool(payload['allow_negative']))

    customer_id = payload.get('customer_id')
    if customer_id is not None:
        customer = db_session.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError(f'Customer {customer_id} not found')
        assembler.set_customer(customer)

    assembler.write()
    current_app.logger.info(f"[ORDERS] Created estimate id={order.id} ref={order.ref}")

    return _order_response(assembler.order, 201)


@estimates_bp.route('/<int:estimate_id>', methods=['GET'])
def show_estimate(estimate_id):
    assembler = _load_estimate(estimate_id)
    return _order_response(assembler.order)


@estimates_bp.route('/<int:estimate_id>/items', methods=['POST'])
def add_item(estimate_id):
    """Add a product to an estimate. Items with the same key are merged."""
    db_session = get_session()
    payload = request.get_json(silent=True) or {}

    product_id = payload.get('product_id')
    if product_id is None:
        raise ValidationError('product_id is required')

    product = db_session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f'Product {product_id} not found')

    assembler = _load_estimate(estimate_id)
    assembler.add_item(
        product,
        quantity=_parse_quantity(payload.get('quantity')),
        lock=bool(payload.get('lock', False)),
        deliverable=payload.get('deliverable'),
        extra_data=payload.get('extra_data') or {}
    )

    current_app.logger.info(
        f"[ORDERS] add_item estimate_id={estimate_id}, product_id={product_id}, "
        f"items={len(assembler.order.items)}"
    )
    return _order_response(assembler.order, 201)


@estimates_bp.route('/<int:estimate_id>/items/<path:key>', methods=['PATCH'])
def update_item(estimate_id, key):
    """Change an item's quantity (``increment`` adds instead of replacing)."""
    payload = request.get_json(silent=True) or {}

    if 'quantity' not in payload:
        raise ValidationError('quantity is required')

    assembler = _load_estimate(estimate_id)
    if assembler.find_item(key) is None:
        raise NotFoundError(f"Item '{key}' not found")

    assembler.update_item(
        key,
        _parse_quantity(payload['quantity']),
        increment=bool(payload.get('increment', False))
    )
    return _order_response(assembler.order)


@estimates_bp.route('/<int:estimate_id>/items/<path:key>', methods=['DELETE'])
def remove_item(estimate_id, key):
    assembler = _load_estimate(estimate_id)
    assembler.remove_item(key)
    return _order_response(assembler.order)


@estimates_bp.route('/<int:estimate_id>/convert', methods=['POST'])
def convert_estimate(estimate_id):
    """Convert an estimate into an invoice."""
    assembler = _load_estimate(estimate_id)
    invoice = assembler.convert_estimate_to_invoice()
    current_app.logger.info(f"[ORDERS] Estimate {estimate_id} converted, invoice ref={invoice.ref}")
    return _order_response(invoice)


@invoices_bp.route('/<int:invoice_id>', methods=['GET'])
def show_invoice(invoice_id):
    assembler = _assembler(invoice=True, order_id=invoice_id)
    if assembler.order.id is None:
        raise NotFoundError(f'Invoice {invoice_id} not found')
    return _order_response(assembler.order)
