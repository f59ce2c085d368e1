"""
Unit tests for LineItemBuilder.
"""

import base64
import json
from decimal import Decimal

import pytest

from orderdesk.exceptions import ValidationError, LogicError
from orderdesk.models import LineItem, Product, DEFAULT_TAX_RATE_ID
from orderdesk.services.line_item_service import LineItemBuilder, BuildState
from orderdesk.services.options import OrderOptions
from orderdesk.services.plugin_registry import PluginRegistry, LineItemCustomisable, LineItemPricable


class EngravingPlugin(LineItemCustomisable):
    """Adds an engraving customisation with extra data, counting its calls."""

    def __init__(self):
        self.calls = 0

    def customise_line_item(self, context, data):
        self.calls += 1
        if 'engraving' in data:
            context.customise('Engraving', data['engraving'], {'notes': 'gift wrap', 'secret': 'x'})


class GiftWrapPricer(LineItemPricable):
    """Charges for gift wrap and records what it saw on the item."""

    def __init__(self):
        self.seen_customisations = []

    def modify_item_price(self, context, data):
        self.seen_customisations.append(len(context.item.customisations))
        if data.get('gift_wrap'):
            context.modify_price('Gift wrap', Decimal('2.00'))


class SurchargePricer(LineItemPricable):
    """Adds two separate surcharges with the same name."""

    def modify_item_price(self, context, data):
        context.modify_price('Surcharge', Decimal('1.00'))
        context.modify_price('Surcharge', Decimal('2.00'))


def _expected_key(stock_id, customisations):
    payload = json.dumps(customisations, separators=(',', ':'))
    return f"{stock_id}:{base64.b64encode(payload.encode('utf-8')).decode('ascii')}"


class TestBuild:
    """Tests for building a new item."""

    def test_snapshot_fields(self, session, socks, estimate, options):
        builder = LineItemBuilder(session, options=options, registry=PluginRegistry())
        builder.parent = estimate.order

        item = builder.build(socks, 3, lock=True)

        assert item.title == 'Socks'
        assert item.unmodified_price == Decimal('5.99')
        assert item.quantity == 3
        assert item.locked is True
        assert item.stocked is True
        assert item.deliverable is True
        assert item.product_class == 'Product'
        assert item.product_id == socks.id
        assert item.product_version == 1
        assert item.stock_id == 'SOCKS-1'
        assert item.tax_percentage == Decimal('20')
        assert builder.state == BuildState.FINAL

    def test_five_ninety_nine_times_three_at_twenty_percent(self, session, socks, estimate, options):
        builder = LineItemBuilder(session, options=options, registry=PluginRegistry())
        builder.parent = estimate.order

        item = builder.build(socks, 3)

        assert item.sub_total == Decimal('17.97')
        assert item.unit_tax == Decimal('1.198')
        assert item.total == Decimal('21.564')

    def test_without_parent_uses_product_rate(self, session, socks, options):
        item = LineItemBuilder(session, options=options, registry=PluginRegistry()).build(socks)
        assert item.tax_rate_id == DEFAULT_TAX_RATE_ID
        assert item.tax_percentage == 0

    def test_deliverable_read_from_product_unless_given(self, session, ebook, options):
        builder = LineItemBuilder(session, options=options, registry=PluginRegistry())
        assert builder.build(ebook).deliverable is False
        assert builder.build(ebook, deliverable=True).deliverable is True

    def test_stocked_param_is_configurable(self, session, socks):
        options = OrderOptions(product_stocked_param='is_stocked')
        item = LineItemBuilder(session, options=options, registry=PluginRegistry()).build(socks)
        assert item.stocked is False

    def test_no_product(self, session):
        with pytest.raises(ValidationError):
            LineItemBuilder(session).build(None)

    def test_product_without_price(self, session):
        product = Product(title='Mystery', stock_id='MYSTERY')
        with pytest.raises(ValidationError):
            LineItemBuilder(session).build(product)

    def test_quantity_below_one(self, session, socks):
        with pytest.raises(ValidationError):
            LineItemBuilder(session).build(socks, 0)

    def test_built_item_is_not_added_to_session(self, session, socks):
        item = LineItemBuilder(session, registry=PluginRegistry()).build(socks)
        assert item not in session


class TestKeys:
    """Tests for line item key generation."""

    def test_key_without_customisations_is_stock_id(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry())
        builder.build(socks)
        assert builder.key == 'SOCKS-1'

    def test_key_encodes_customisations_in_order(self, session, tshirt, registry, option_value):
        large = option_value(tshirt, 'Size', 'Large')
        red = option_value(tshirt, 'Colour', 'Red')
        data = {'options': {str(large.option.id): large.id, str(red.option.id): red.id}}

        item = LineItemBuilder(session, registry=registry).build(tshirt, extra_data=data)

        assert item.key == _expected_key('TSHIRT-1', {'Size': 'Large', 'Colour': 'Red'})

    def test_same_input_gives_same_key(self, session, tshirt, registry, option_value):
        large = option_value(tshirt, 'Size', 'Large')
        data = {'options': {large.option.id: large.id}}

        first = LineItemBuilder(session, registry=registry).build(tshirt, 1, extra_data=data)
        second = LineItemBuilder(session, registry=registry).build(tshirt, 5, extra_data=data)

        assert first.key == second.key

    def test_different_customisation_gives_different_key(self, session, tshirt, registry, option_value):
        large = option_value(tshirt, 'Size', 'Large')
        small = option_value(tshirt, 'Size', 'Small')

        first = LineItemBuilder(session, registry=registry).build(
            tshirt, extra_data={'options': {large.option.id: large.id}}
        )
        second = LineItemBuilder(session, registry=registry).build(
            tshirt, extra_data={'options': {small.option.id: small.id}}
        )

        assert first.key != second.key

    def test_direct_customise_updates_key(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry())
        item = builder.build(socks)

        builder.customise('Colour', 'Red')

        assert item.key == _expected_key('SOCKS-1', {'Colour': 'Red'})


class TestCustomise:
    """Tests for customisations and the plugin re-run."""

    def test_additional_data_triggers_one_rerun(self, session, socks, options):
        plugin = EngravingPlugin()
        builder = LineItemBuilder(session, options=options, registry=PluginRegistry([plugin]))

        item = builder.build(socks, extra_data={'engraving': 'For Ada'})

        assert plugin.calls == 2
        assert len(item.customisations) == 1
        assert item.customisations[0].title == 'Engraving'
        assert item.customisations[0].value == 'For Ada'

    def test_only_mapped_keys_are_kept(self, session, socks, options):
        builder = LineItemBuilder(session, options=options, registry=PluginRegistry([EngravingPlugin()]))

        item = builder.build(socks, extra_data={'engraving': 'For Ada'})

        assert item.customisations[0].extra == {'notes': 'gift wrap'}

    def test_no_rerun_without_additional_data(self, session, socks):
        plugin = EngravingPlugin()
        LineItemBuilder(session, registry=PluginRegistry([plugin])).build(socks)
        assert plugin.calls == 1

    def test_direct_customise_with_data_reassembles_once(self, session, socks, options):
        plugin = EngravingPlugin()
        builder = LineItemBuilder(session, options=options, registry=PluginRegistry([plugin]))
        builder.build(socks)

        builder.customise('Gift message', 'Happy birthday', {'notes': 'card'})

        assert plugin.calls == 2
        assert builder.state == BuildState.FINAL

    def test_same_title_and_value_is_not_duplicated(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry())
        item = builder.build(socks)

        builder.customise('Colour', 'Red')
        builder.customise('Colour', 'Red')

        assert len(item.customisations) == 1

    def test_related_customisation_is_updated_in_place(self, session, tshirt, option_value):
        large = option_value(tshirt, 'Size', 'Large')
        builder = LineItemBuilder(session, registry=PluginRegistry())
        item = builder.build(tshirt)

        builder.customise('Size', 'L', related=large)
        builder.customise('Size', 'Large', related=large)

        assert len(item.customisations) == 1
        assert item.customisations[0].value == 'Large'
        assert item.customisations[0].related_class == 'ProductOptionValue'
        assert item.customisations[0].related_id == large.id

    def test_pricers_run_before_customisers(self, session, socks):
        pricer = GiftWrapPricer()
        builder = LineItemBuilder(session, registry=PluginRegistry([EngravingPlugin(), pricer]))

        builder.build(socks, extra_data={'engraving': 'Hi'})

        # first pass sees no customisations, the re-run sees the engraving
        assert pricer.seen_customisations == [0, 1]

    def test_customise_without_item(self, session):
        with pytest.raises(LogicError):
            LineItemBuilder(session).customise('Colour', 'Red')


class TestModifyPrice:
    """Tests for price modifiers."""

    def test_related_modifier_is_upserted(self, session, tshirt, option_value):
        large = option_value(tshirt, 'Size', 'Large')
        builder = LineItemBuilder(session, registry=PluginRegistry())
        item = builder.build(tshirt)

        builder.modify_price('Size', Decimal('1.50'), related=large)
        builder.modify_price('Size', Decimal('2.00'), related=large)

        assert len(item.price_modifiers) == 1
        assert item.price_modifiers[0].modify_price == Decimal('2.00')
        assert item.no_tax_price == Decimal('12.00')

    def test_unrelated_modifiers_are_always_added(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry())
        item = builder.build(socks)

        builder.modify_price('Discount', Decimal('-0.50'))
        builder.modify_price('Discount', Decimal('-0.50'))

        assert len(item.price_modifiers) == 2
        assert item.modifications_total == Decimal('-1.00')

    def test_plugin_modifier_not_stacked_on_rerun(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry([GiftWrapPricer(), EngravingPlugin()]))

        item = builder.build(socks, extra_data={'gift_wrap': True, 'engraving': 'Hi'})

        assert len(item.price_modifiers) == 1
        assert item.no_tax_price == Decimal('7.99')

    def test_plugin_adds_same_name_twice(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry([SurchargePricer()]))

        item = builder.build(socks)

        assert len(item.price_modifiers) == 2
        assert item.no_tax_price == Decimal('8.99')
        assert all(m.from_plugin for m in item.price_modifiers)

    def test_same_name_modifiers_survive_rerun(self, session, socks, options):
        registry = PluginRegistry([SurchargePricer(), EngravingPlugin()])
        builder = LineItemBuilder(session, options=options, registry=registry)

        item = builder.build(socks, extra_data={'engraving': 'Hi'})

        assert len(item.price_modifiers) == 2
        assert item.modifications_total == Decimal('3.00')

    def test_update_replaces_plugin_modifiers(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry([GiftWrapPricer()]))
        item = builder.build(socks, extra_data={'gift_wrap': True})
        builder.modify_price('Discount', Decimal('-0.50'))

        builder.update()
        builder.update()

        names = sorted(m.name for m in item.price_modifiers)
        assert names == ['Discount', 'Gift wrap']
        assert item.no_tax_price == Decimal('7.49')

    def test_reloaded_item_does_not_stack(self, session, socks, estimate):
        registry = PluginRegistry([GiftWrapPricer()])
        builder = LineItemBuilder(session, registry=registry)
        builder.parent = estimate.order
        builder.build(socks, extra_data={'gift_wrap': True})
        builder.write()
        item_id = builder.item.id

        loader = LineItemBuilder(session, registry=registry)
        loader.set_extra_data({'gift_wrap': True})
        loader.load_item(session.get(LineItem, item_id))
        item = loader.update()
        session.commit()

        assert len(item.price_modifiers) == 1
        assert item.price_modifiers[0].from_plugin is True

    def test_direct_modifier_is_not_from_plugin(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry())
        builder.build(socks)

        modifier = builder.modify_price('Discount', Decimal('-0.50'))

        assert modifier.from_plugin is False

    def test_modify_price_without_item(self, session):
        with pytest.raises(LogicError):
            LineItemBuilder(session).modify_price('Discount', 1)


class TestUpdateAndPersistence:
    """Tests for update, load_item, write and delete."""

    def test_update_uses_current_product(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry())
        item = builder.build(socks)

        socks.base_price = Decimal('6.49')
        session.commit()
        builder.update()

        assert item.unmodified_price == Decimal('6.49')
        assert item.product_version == 2

    def test_update_without_item(self, session):
        with pytest.raises(LogicError):
            LineItemBuilder(session).update()

    def test_write_attaches_to_parent(self, session, socks, estimate):
        builder = LineItemBuilder(session, registry=PluginRegistry())
        builder.parent = estimate.order
        item = builder.build(socks, 2)

        builder.write()

        assert item.id is not None
        assert item in estimate.order.items

    def test_write_without_parent(self, session, socks):
        builder = LineItemBuilder(session, registry=PluginRegistry())
        builder.build(socks)
        with pytest.raises(LogicError):
            builder.write()

    def test_load_item_and_delete(self, session, socks, estimate):
        builder = LineItemBuilder(session, registry=PluginRegistry())
        builder.parent = estimate.order
        builder.build(socks, 2)
        builder.write()
        item_id = builder.item.id

        loader = LineItemBuilder(session, registry=PluginRegistry())
        loader.load_item(session.get(LineItem, item_id))

        assert loader.product is socks
        assert loader.quantity == 2
        assert loader.parent is estimate.order

        loader.delete()

        assert loader.item is None
        assert session.get(LineItem, item_id) is None
        assert estimate.order.items == []
