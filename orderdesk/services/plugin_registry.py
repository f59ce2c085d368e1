"""
Line item plugins.

Pricing plugins adjust an item's unit price, customisation plugins
attach descriptive customisations. Both are registered explicitly and
run in registration order, pricing first.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from werkzeug.utils import import_string

logger = logging.getLogger(__name__)


class LineItemPricable(ABC):
    """Plugin that may add price modifiers to an item being built."""

    @abstractmethod
    def modify_item_price(self, context: 'LineItemContext', data: Dict[str, Any]) -> None:
        ...


class LineItemCustomisable(ABC):
    """Plugin that may add customisations to an item being built."""

    @abstractmethod
    def customise_line_item(self, context: 'LineItemContext', data: Dict[str, Any]) -> None:
        ...


class LineItemContext:
    """
    What a plugin sees while an item is being built.

    Read access to the product, item, parent order and extra data;
    the only mutations allowed are :meth:`modify_price` and
    :meth:`customise`.
    """

    def __init__(self, builder):
        self._builder = builder

    @property
    def product(self):
        return self._builder.product

    @property
    def item(self):
        return self._builder.item

    @property
    def parent(self):
        return self._builder.parent

    @property
    def session(self):
        return self._builder.session

    @property
    def extra_data(self) -> Dict[str, Any]:
        return dict(self._builder.get_extra_data())

    def modify_price(self, name: str, amount, related=None):
        return self._builder.modify_price(name, amount, related)

    def customise(self, name: str, value, additional_data: Optional[Dict[str, Any]] = None, related=None):
        return self._builder.customise(name, value, additional_data, related)


class PluginRegistry:
    """Ordered collection of line item plugins."""

    def __init__(self, plugins: Optional[Iterable[Any]] = None):
        self._plugins: List[Any] = []
        for plugin in plugins or ():
            self.register(plugin)

    def __iter__(self):
        return iter(list(self._plugins))

    def __len__(self):
        return len(self._plugins)

    def __contains__(self, plugin):
        return plugin in self._plugins

    def register(self, plugin):
        """Add a plugin instance (or class, which is instantiated)."""
        if isinstance(plugin, type):
            plugin = plugin()

        if not isinstance(plugin, (LineItemPricable, LineItemCustomisable)):
            raise TypeError(
                f"{type(plugin).__name__} must implement LineItemPricable or LineItemCustomisable"
            )

        if plugin not in self._plugins:
            self._plugins.append(plugin)
            logger.info(f"[PLUGINS] Registered {type(plugin).__name__}")

        return plugin

    def unregister(self, plugin):
        if plugin in self._plugins:
            self._plugins.remove(plugin)

    def clear(self):
        self._plugins = []

    def register_from_paths(self, paths: Iterable[str]):
        """Import and register plugins named by dotted path ('pkg.module:Class' or 'pkg.module.Class')."""
        for path in paths:
            self.register(import_string(path))
        return self

    @property
    def pricers(self) -> List[LineItemPricable]:
        return [plugin for plugin in self._plugins if isinstance(plugin, LineItemPricable)]

    @property
    def customisers(self) -> List[LineItemCustomisable]:
        return [plugin for plugin in self._plugins if isinstance(plugin, LineItemCustomisable)]


# Registry used when a builder is not given one explicitly
default_registry = PluginRegistry()
