import logging

from flask import Flask, jsonify
from flask_cors import CORS
from pymongo.errors import PyMongoError

from splitbook.config import Config
from splitbook.errors import MalformedExpenseError
from splitbook.extensions import init_mongo
from splitbook.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app(config_class=Config, mongo_client=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Disable strict slashes to prevent 308 redirects that break CORS preflight
    app.url_map.strict_slashes = False

    configure_logging(app)

    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}})

    # Init database
    init_mongo(app, client=mongo_client)

    # Register blueprints
    from splitbook.auth.routes import auth_bp
    from splitbook.users.routes import users_bp
    from splitbook.expenses.routes import expenses_bp
    from splitbook.balances.routes import balances_bp
    from splitbook.payments.routes import bp as payments_bp

    app.register_blueprint(auth_bp, url_prefix='/api')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(expenses_bp, url_prefix='/api')
    app.register_blueprint(balances_bp, url_prefix='/api')
    app.register_blueprint(payments_bp, url_prefix='/api/payments')

    register_error_handlers(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(MalformedExpenseError)
    def malformed_expense(error):
        # Reaching here means a stored expense broke the creation invariants
        logger.error("Rejected balance computation: %s", error)
        return jsonify({"message": "Server error: malformed expense data"}), 500

    @app.errorhandler(PyMongoError)
    def database_error(error):
        logger.error("Database error: %s", error)
        return jsonify({"message": "Server error"}), 500
