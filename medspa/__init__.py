from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()

CONFIG_DEFAULTS = {
    'JWT_SECRET_KEY': 'dev-secret',
    'DATABASE_URL': 'sqlite:///dev.db',
    'COMMISSION_RATE': None,
    'STRIPE_SECRET_KEY': None,
    'STRIPE_WEBHOOK_SECRET': None,
    'WEBHOOK_TOLERANCE_SECONDS': None,
    'GATEWAY_TIMEOUT_SECONDS': None,
    'PAYMENT_CURRENCY': None,
    'LOG_LEVEL': 'INFO',
}


def _load_config(app: Flask, config: Optional[Dict[str, Any]]):
    from .config.payments import normalize_timeout, normalize_tolerance, normalize_currency
    from .services.commission import normalize_commission_rate

    for key, default in CONFIG_DEFAULTS.items():
        app.config[key] = os.getenv(key, default)
    if config:
        # allow tests or callers to override default config values
        app.config.update(config)
    # Bad values fail here, at startup
    app.config['COMMISSION_RATE'] = normalize_commission_rate(app.config['COMMISSION_RATE'])
    app.config['GATEWAY_TIMEOUT_SECONDS'] = normalize_timeout(app.config['GATEWAY_TIMEOUT_SECONDS'])
    app.config['WEBHOOK_TOLERANCE_SECONDS'] = normalize_tolerance(app.config['WEBHOOK_TOLERANCE_SECONDS'])
    app.config['PAYMENT_CURRENCY'] = normalize_currency(app.config['PAYMENT_CURRENCY'])


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)
    _load_config(app, config)

    level = str(app.config['LOG_LEVEL']).upper()
    logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('medspa').setLevel(level)
    app.logger.setLevel(level)

    from .services.policy import validate_policy_table
    problems = validate_policy_table()
    if problems:
        raise ValueError('Policy table inconsistent: ' + '; '.join(problems))

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .services.gateway import StripeGateway
    app.extensions['payment_gateway'] = StripeGateway(
        app.config['STRIPE_SECRET_KEY'], app.config['GATEWAY_TIMEOUT_SECONDS'],
    )

    from .routes.clients import clients_bp
    from .routes.appointments import appt_bp
    from .routes.payments import pay_bp
    from .routes.webhooks import hooks_bp
    from .routes.audit import audit_bp
    app.register_blueprint(clients_bp, url_prefix='/clients')
    app.register_blueprint(appt_bp, url_prefix='/appointments')
    app.register_blueprint(pay_bp, url_prefix='/payments')
    app.register_blueprint(hooks_bp, url_prefix='/webhooks')
    app.register_blueprint(audit_bp, url_prefix='/audit')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.teardown_appcontext
    def remove_session(exc):  # type: ignore
        SessionLocal.remove()

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            kind = getattr(e, 'kind', None)
            if kind:
                payload['error']['kind'] = kind
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()
