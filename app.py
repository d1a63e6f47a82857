import os
import logging
from datetime import datetime, timedelta
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_compress import Compress
from sqlalchemy.orm import DeclarativeBase
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)
jwt = JWTManager()
compress = Compress()


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


def _database_config(database_url):
    """SQLAlchemy settings for the configured database"""
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)
    elif database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)

    if database_url.startswith("postgresql"):
        engine_options = {
            "pool_size": 10,
            "pool_recycle": 280,  # Slightly less than 5 minutes to prevent stale connections
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "fleetdesk",
            }
        }
    else:
        engine_options = {
            "pool_pre_ping": True,
        }
    return database_url, engine_options


def create_app(config_overrides=None):
    # Create the app
    app = Flask(__name__)
    # Enforce SESSION_SECRET requirement
    app.secret_key = os.environ.get("SESSION_SECRET")
    if not app.secret_key:
        raise RuntimeError("SESSION_SECRET environment variable is required but not set")
    # Trust one proxy for client IP and scheme
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    from utils.logging_config import setup_logging, log_request_start, log_request_end
    setup_logging(app)

    from utils.config_validator import check_production_readiness
    check_production_readiness()

    database_url, engine_options = _database_config(
        os.environ.get("DATABASE_URL") or "sqlite:///fleetdesk.db"
    )
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # JWT configuration
    app.config['JWT_SECRET_KEY'] = os.environ.get('JWT_SECRET_KEY') or app.secret_key
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=int(os.environ.get('JWT_ACCESS_HOURS', '12')))
    app.config['JWT_ALGORITHM'] = 'HS256'
    app.config['JWT_TOKEN_LOCATION'] = ['headers']

    app.config['TOKEN_VERIFY_TTL'] = float(os.environ.get('TOKEN_VERIFY_TTL', '10'))
    app.config['ENABLE_BACKGROUND_TASKS'] = _env_flag('ENABLE_BACKGROUND_TASKS')
    app.config['LIFECYCLE_SWEEP_MINUTES'] = int(os.environ.get('LIFECYCLE_SWEEP_MINUTES', '60'))

    # Compression for JSON responses
    app.config['COMPRESS_MIMETYPES'] = ['application/json']
    app.config['COMPRESS_LEVEL'] = 6
    app.config['COMPRESS_MIN_SIZE'] = 500

    if config_overrides:
        app.config.update(config_overrides)

    # CORS Configuration (restricted origins)
    production_origins = os.environ.get('ALLOWED_ORIGINS', '').split(',')
    allowed_origins = [origin.strip() for origin in production_origins if origin.strip()]
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=False,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Correlation-ID"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])

    # Initialize extensions
    compress.init_app(app)
    db.init_app(app)
    jwt.init_app(app)

    from utils.token_cache import TokenVerificationCache
    app.extensions['token_cache'] = TokenVerificationCache(ttl_seconds=app.config['TOKEN_VERIFY_TTL'])

    _register_jwt_callbacks()
    _register_error_handlers(app)

    app.before_request(log_request_start)
    app.after_request(log_request_end)

    # Register blueprints
    from auth import auth_bp
    from fleet_routes import fleet_bp
    from schedule_routes import schedule_bp
    from maintenance_routes import maintenance_bp
    from payment_routes import payment_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(fleet_bp, url_prefix='/api')
    app.register_blueprint(schedule_bp, url_prefix='/api/schedules')
    app.register_blueprint(maintenance_bp, url_prefix='/api')
    app.register_blueprint(payment_bp, url_prefix='/api/payments')

    # Create tables
    with app.app_context():
        import models  # noqa: F401
        db.create_all()

    if app.config['ENABLE_BACKGROUND_TASKS'] and not app.testing:
        from utils.background_tasks import init_background_tasks
        init_background_tasks(app)

    # Health check endpoint for deployment
    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        return {'status': 'ok', 'timestamp': datetime.utcnow().isoformat()}, 200

    return app


def _register_jwt_callbacks():
    from models import RevokedToken

    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        return RevokedToken.is_revoked(jwt_payload['jti'])

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'success': False, 'error': 'AUTH_REQUIRED', 'message': reason}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'success': False, 'error': 'INVALID_TOKEN', 'message': reason}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({'success': False, 'error': 'TOKEN_EXPIRED', 'message': 'Token has expired'}), 401

    @jwt.revoked_token_loader
    def revoked_token(jwt_header, jwt_payload):
        return jsonify({'success': False, 'error': 'TOKEN_REVOKED', 'message': 'Token has been revoked'}), 401


def _register_error_handlers(app):
    from services.errors import ServiceError

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        if error.status_code == 409:
            logger.info(f"Conflict: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            'success': False,
            'error': error.name.upper().replace(' ', '_'),
            'message': error.description
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.error(f"Unhandled error: {str(error)}", exc_info=True)
        return jsonify({
            'success': False,
            'error': 'INTERNAL_ERROR',
            'message': 'Internal server error'
        }), 500
