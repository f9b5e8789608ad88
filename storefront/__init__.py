"""Flask application factory."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from storefront.database import init_db
import logging
import os


def configure_logging(app):
    """Route the package's module loggers through one handler at LOG_LEVEL."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    package_logger = logging.getLogger('storefront')
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s'))
        package_logger.addHandler(handler)
    app.logger.setLevel(level)


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Setup Prometheus metrics instrumentation
    from storefront.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Image storage: upload directory is prepared once, here
    from storefront.services.image_store import init_image_store
    init_image_store(app)

    # Error Handlers
    from storefront.exceptions import CatalogError, ValidationError, StorageError, DatabaseError

    @app.errorhandler(CatalogError)
    def handle_catalog_error(error):
        """Handle custom application exceptions."""
        if isinstance(error, StorageError):
            app.logger.error(f"StorageError [{error.status_code}]: {error.message} path={error.path} cause={error.cause!r}")
        elif isinstance(error, DatabaseError):
            app.logger.error(f"DatabaseError [{error.status_code}]: {error.message} cause={error.cause!r}")
        elif isinstance(error, ValidationError):
            app.logger.info(f"ValidationError: {error.message} {error.errors}")
        else:
            app.logger.warning(f"CatalogError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'status': 'error', 'message': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception: {error}", exc_info=error)
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from storefront.blueprints.catalog import catalog_bp
    from storefront.blueprints.uploads import uploads_bp
    from storefront.blueprints.metrics import metrics_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(uploads_bp, url_prefix=app.config.get('UPLOAD_URL_PREFIX', '/uploads'))
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from storefront.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"PRODUCT_DELETE_POLICY={app.config.get('PRODUCT_DELETE_POLICY')}")
    app.logger.info(f"UPLOAD_FOLDER={app.config.get('UPLOAD_FOLDER')}")

    return app
