import pytest
from decimal import Decimal

from orderdesk import create_app
from orderdesk.database import db_session, get_session, create_all, drop_all
from orderdesk.models import (
    TaxRate, TaxZone, TaxCategory, Product, ProductOption, ProductOptionValue, Customer
)
from orderdesk.services.options import OrderOptions
from orderdesk.services.plugin_registry import PluginRegistry
from orderdesk.services.product_option_service import ProductOptionsPlugin
from orderdesk.services.order_service import OrderAssembler


@pytest.fixture(scope='function')
def app():
    """Create application instance with a fresh in-memory database."""
    app = create_app('config.TestingConfig')
    with app.app_context():
        create_all()
        yield app
        db_session.remove()
        drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def options(app):
    """Order options as configured for the test app."""
    return OrderOptions.from_config(app.config)


@pytest.fixture(scope='function')
def registry():
    """Plugin registry with only the product options plugin."""
    return PluginRegistry([ProductOptionsPlugin()])


@pytest.fixture(scope='function')
def standard_rate(session):
    """20% rate for England and Scotland."""
    rate = TaxRate(title='UK Standard', rate=Decimal('20'))
    rate.zones.append(TaxZone(country='GB', region='ENG'))
    rate.zones.append(TaxZone(country='GB', region='SCT'))
    session.add(rate)
    session.commit()
    return rate


@pytest.fixture(scope='function')
def reduced_rate(session):
    """5% rate covering the whole of GB."""
    rate = TaxRate(title='UK Reduced', rate=Decimal('5'))
    rate.zones.append(TaxZone(country='GB', region=None))
    session.add(rate)
    session.commit()
    return rate


@pytest.fixture(scope='function')
def tax_category(session, standard_rate, reduced_rate):
    category = TaxCategory(title='Clothing', rates=[reduced_rate, standard_rate])
    session.add(category)
    session.commit()
    return category


@pytest.fixture(scope='function')
def socks(session, tax_category):
    """Stocked product, 10 in stock."""
    product = Product(
        title='Socks',
        stock_id='SOCKS-1',
        base_price=Decimal('5.99'),
        stocked=True,
        stock_level=10,
        tax_category=tax_category
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def ebook(session, standard_rate):
    """Non-deliverable product with its own rate and no tax category."""
    product = Product(
        title='E-Book',
        stock_id='EBOOK-1',
        base_price=Decimal('9.99'),
        deliverable=False,
        tax_rate=standard_rate
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def tshirt(session, tax_category):
    """Unstocked product with Size and Colour options."""
    product = Product(
        title='T-Shirt',
        stock_id='TSHIRT-1',
        base_price=Decimal('10.00'),
        tax_category=tax_category
    )
    size = ProductOption(title='Size')
    size.values.append(ProductOptionValue(title='Small', modify_price=Decimal('0')))
    size.values.append(ProductOptionValue(title='Large', modify_price=Decimal('1.50')))
    colour = ProductOption(title='Colour')
    colour.values.append(ProductOptionValue(title='Red', modify_price=Decimal('0')))
    colour.values.append(ProductOptionValue(title='Blue', modify_price=Decimal('0')))
    product.options.extend([size, colour])
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def customer(session):
    customer = Customer(
        first_name='Ada',
        surname='Lovelace',
        email='ada@example.com',
        address1='12 St James Square',
        city='London',
        county='ENG',
        post_code='SW1Y 4JH',
        country='GB'
    )
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def estimate(session, options, registry):
    """Saved estimate delivering to England."""
    assembler = OrderAssembler(session, options=options, registry=registry)
    order = assembler.order
    order.first_name = 'Jane'
    order.surname = 'Doe'
    order.email = 'jane@example.com'
    order.delivery_address1 = '1 High Street'
    order.delivery_city = 'Leeds'
    order.delivery_country = 'GB'
    order.delivery_county = 'ENG'
    assembler.write()
    return assembler


@pytest.fixture(scope='function')
def option_value():
    """Look up an option value on a product by option and value title."""
    def lookup(product, option_title, value_title):
        option = next(o for o in product.options if o.title == option_title)
        return next(v for v in option.values if v.title == value_title)
    return lookup
