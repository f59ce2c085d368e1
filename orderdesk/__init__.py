"""Flask application factory."""
from flask import Flask, jsonify

from orderdesk.database import init_db


def init_plugins(app):
    """Build the order options and plugin registry for this app."""
    from orderdesk.services.options import OrderOptions
    from orderdesk.services.plugin_registry import PluginRegistry

    options = OrderOptions.from_config(app.config)
    registry = PluginRegistry().register_from_paths(options.plugins)

    app.extensions['orderdesk'] = {
        'options': options,
        'registry': registry,
    }
    app.logger.info(f"[PLUGINS] {len(registry)} line item plugin(s) loaded")
    return registry


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize database
    init_db(app)

    # Line item plugins
    init_plugins(app)

    # Error Handlers
    from orderdesk.exceptions import OrderDeskError

    @app.errorhandler(OrderDeskError)
    def handle_order_desk_error(error):
        """Handle custom application exceptions."""
        app.logger.error(f"OrderDeskError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    # Register blueprints
    from orderdesk.blueprints.estimates import estimates_bp, invoices_bp
    app.register_blueprint(estimates_bp)
    app.register_blueprint(invoices_bp)

    # Register CLI commands
    from orderdesk.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
