"""Models package - exports all SQLAlchemy models."""
# Catalogue
from orderdesk.models.tax import TaxRate, TaxZone, TaxCategory, default_tax_rate, DEFAULT_TAX_RATE_ID
from orderdesk.models.product import Product, ProductVersion
from orderdesk.models.product_option import ProductOption, ProductOptionValue
from orderdesk.models.customer import Customer

# Orders
from orderdesk.models.estimate import Estimate, Invoice, InvoiceStatus, PENDING_STOCK_STATUSES
from orderdesk.models.line_item import LineItem, round_price
from orderdesk.models.line_item_customisation import LineItemCustomisation
from orderdesk.models.price_modifier import PriceModifier

__all__ = [
    # Catalogue
    'TaxRate', 'TaxZone', 'TaxCategory', 'default_tax_rate', 'DEFAULT_TAX_RATE_ID',
    'Product', 'ProductVersion', 'ProductOption', 'ProductOptionValue', 'Customer',
    # Orders
    'Estimate', 'Invoice', 'InvoiceStatus', 'PENDING_STOCK_STATUSES',
    'LineItem', 'round_price', 'LineItemCustomisation', 'PriceModifier',
]
