"""Free-form data carried from callers down to line item plugins."""
from typing import Any, Dict


class ExtraDataMixin:
    """
    Holds a dict of caller-supplied data.

    The assembler passes its extra data on to every builder it creates,
    and the builder hands it to each plugin unchanged.
    """

    _extra_data: Dict[str, Any] = None

    def get_extra_data(self) -> Dict[str, Any]:
        if self._extra_data is None:
            self._extra_data = {}
        return self._extra_data

    def set_extra_data(self, data: Dict[str, Any]):
        self._extra_data = dict(data or {})
        return self

    def add_extra_data_item(self, key: str, value: Any):
        self.get_extra_data()[key] = value
        return self

    def remove_extra_data_item(self, key: str):
        self.get_extra_data().pop(key, None)
        return self

    extra_data = property(get_extra_data, set_extra_data)
