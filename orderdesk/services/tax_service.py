"""Tax rate resolution for line items."""
import logging

from orderdesk.models.tax import default_tax_rate

logger = logging.getLogger(__name__)


class TaxResolver:
    """
    Pick the tax rate for a product, optionally in the context of an order.

    Products without a tax category always use their own default rate.
    Products with a category are matched against the order's delivery
    country and region (``delivery_country``/``delivery_county``). When
    the location is known but no regional rate matches, the zero-rate
    default is returned, never the product's own rate.
    """

    def resolve(self, product, order=None):
        if product is None:
            return default_tax_rate()

        category = getattr(product, 'tax_category', None)
        if category is None:
            return self._product_rate(product)

        if order is None:
            return self._product_rate(product)

        country = order.delivery_country or ''
        region = order.delivery_county or ''

        if len(country) < 2 or len(region) < 2:
            return self._product_rate(product)

        rate = category.valid_tax(country, region)
        if rate is None:
            logger.info(f"[TAX] No rate in '{category.title}' for {country}/{region}, using default")
            return default_tax_rate()

        return rate

    @staticmethod
    def _product_rate(product):
        get_rate = getattr(product, 'get_tax_rate', None)
        if get_rate is None:
            return default_tax_rate()
        return get_rate()
