"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException
from portal.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection (disabled in tests through WTF_CSRF_ENABLED)
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Sessão expirada. Recarregue a página.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache (degrades to uncached when Redis is unreachable)
    from portal.services.cache_service import init_cache
    init_cache(app)

    # Prometheus request instrumentation
    from portal.blueprints.metrics import setup_metrics_instrumentation, record_error
    setup_metrics_instrumentation(app)

    # Production: trust one reverse proxy (Nginx) for scheme/host/client IP
    if app.config.get('ENV') == 'production' or app.config.get('FLASK_ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    init_db(app)

    # Resolve user, active company and RequestContext for each request
    from portal.middleware import load_request_context

    @app.before_request
    def before_request_handler():
        load_request_context()

    # Error Handlers
    from portal.exceptions import PortalError, ScopeViolationError

    @app.errorhandler(ScopeViolationError)
    def handle_scope_violation(error):
        record_error(error)
        app.logger.warning(f"[SCOPE] {request.method} {request.path} [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(PortalError)
    def handle_portal_error(error):
        """Handle custom application exceptions."""
        record_error(error)
        app.logger.error(f"PortalError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(StaleDataError)
    def handle_stale_data(error):
        record_error(error)
        app.logger.warning(f"Concurrent update rejected on {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Pedido alterado por outro usuário. Recarregue e tente novamente.'}), 409

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'status': 'error', 'message': error.name}), error.code

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from portal.blueprints.auth import auth_bp
    from portal.blueprints.health import health_bp
    from portal.blueprints.catalog import catalog_bp
    from portal.blueprints.cart import cart_bp
    from portal.blueprints.orders import orders_bp
    from portal.blueprints.discounts import discounts_bp
    from portal.blueprints.users import users_bp
    from portal.blueprints.superadmin import superadmin_bp
    from portal.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(discounts_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(superadmin_bp)
    app.register_blueprint(metrics_bp)

    # Health checks and scrapers do not carry CSRF tokens
    csrf.exempt(health_bp)
    csrf.exempt(metrics_bp)

    from portal.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
