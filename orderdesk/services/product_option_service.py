"""Plugin pricing and customising items from selected product options."""
import logging

from orderdesk.services.plugin_registry import LineItemPricable, LineItemCustomisable

logger = logging.getLogger(__name__)


class ProductOptionsPlugin(LineItemPricable, LineItemCustomisable):
    """
    Reads ``extra_data['options']`` as ``{option_id: value_id}``.

    Each valid selection adds a customisation ("Size: Large") and, when
    the value changes the price, a modifier linked to that value.
    Unknown option or value ids are skipped.
    """

    data_key = 'options'

    def selections(self, context, data):
        selected = (data or {}).get(self.data_key) or {}
        if not isinstance(selected, dict):
            return []

        product = context.product
        options = {option.id: option for option in getattr(product, 'options', None) or []}
        result = []

        for option_id, value_id in selected.items():
            try:
                option = options.get(int(option_id))
                value_id = int(value_id)
            except (TypeError, ValueError):
                logger.debug(f"[PLUGINS] Ignoring malformed option selection {option_id!r}={value_id!r}")
                continue

            if option is None:
                logger.debug(f"[PLUGINS] Option {option_id} not found on product {getattr(product, 'id', None)}")
                continue

            value = next((v for v in option.values if v.id == value_id), None)
            if value is None:
                logger.debug(f"[PLUGINS] Value {value_id} not found for option {option.id}")
                continue

            result.append((option, value))

        return result

    def modify_item_price(self, context, data):
        for option, value in self.selections(context, data):
            if value.modify_price:
                context.modify_price(f"{option.title}: {value.title}", value.modify_price, related=value)

    def customise_line_item(self, context, data):
        for option, value in self.selections(context, data):
            context.customise(option.title, value.title, related=value)
