"""Order options shared by the builder, stock checker and assembler."""
from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Tuple

# Retries when a ref or access key collides with a concurrent write
REF_MAX_RETRIES = 5


def _as_tuple(value) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(',') if part.strip())
    return tuple(value)


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


@dataclass(frozen=True)
class OrderOptions:
    """
    Typed view of the ``ORDERS_*`` configuration keys.

    ``*_param`` values name the product attribute read for that flag,
    so hosts can map them onto their own product columns.
    """

    custom_map: Tuple[str, ...] = ()
    force_check_stock: bool = False
    product_stocked_param: str = 'stocked'
    product_stock_param: str = 'stock_level'
    product_deliverable_param: str = 'deliverable'
    order_ref_param: str = 'ref'
    default_validity_days: int = 30
    estimate_prefix: str = ''
    invoice_prefix: str = ''
    number_length: int = 0
    plugins: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'OrderOptions':
        """Build options from a Flask config (or any mapping of ``ORDERS_*`` keys)."""
        values = {}
        for option in fields(cls):
            config_key = f"ORDERS_{option.name.upper()}"
            if config_key in config and config[config_key] is not None:
                values[option.name] = config[config_key]

        if 'custom_map' in values:
            values['custom_map'] = _as_tuple(values['custom_map'])
        if 'plugins' in values:
            values['plugins'] = _as_tuple(values['plugins'])
        if 'force_check_stock' in values:
            values['force_check_stock'] = _as_bool(values['force_check_stock'])
        for int_option in ('default_validity_days', 'number_length'):
            if int_option in values:
                values[int_option] = int(values[int_option])

        return cls(**values)
