"""Flask application factory."""
import logging
import os

from flask import Flask, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException

from app.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    logging.getLogger('app').setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # CSRF protection (session-cookie clients send X-CSRFToken)
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired. Fetch a new CSRF token.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Flask-Mail for estimate / invoice emails
    from app.services.email_service import init_mail
    init_mail(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Load user and organization context before each request
    from app.middleware import load_user_and_organization

    @app.before_request
    def before_request_handler():
        load_user_and_organization()

    # Error Handlers
    from app.exceptions import AppError

    @app.errorhandler(AppError)
    def handle_app_error(error):
        """Handle custom application exceptions."""
        log = app.logger.error if error.status_code >= 500 else app.logger.warning
        log(f"AppError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from app.blueprints.auth import auth_bp
    from app.blueprints.settings import settings_bp
    from app.blueprints.customers import clients_bp, projects_bp
    from app.blueprints.estimates import estimates_bp
    from app.blueprints.invoices import invoices_bp
    from app.blueprints.activity import activity_bp
    from app.blueprints.public import public_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(estimates_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(activity_bp)

    # Share links are opened from email clients, no CSRF token there
    csrf.exempt(public_bp)
    app.register_blueprint(public_bp)

    # Register CLI commands
    from app.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"MAIL_SERVER={app.config.get('MAIL_SERVER')} MAIL_ENABLED={app.config.get('MAIL_ENABLED')}")

    return app
