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

# env var -> default; every key also lands in app.config under the same name
ENV_DEFAULTS = {
    'JWT_SECRET_KEY': 'dev-secret',
    'DATABASE_URL': 'sqlite:///dev.db',
    'LOG_LEVEL': 'INFO',
    'RBAC_MODULE_ORDER': None,
    'RBAC_ACTION_ORDER': None,
}


def _engine_for(db_url: str):
    if db_url.endswith(':memory:'):
        # every session must see the same in-memory database
        return create_engine(
            db_url,
            future=True,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
    return create_engine(db_url, future=True)


def _error_body(status: int, title: str, detail: str):
    return {'error': {'status': status, 'title': title, 'detail': detail}}, status


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    for key, default in ENV_DEFAULTS.items():
        app.config[key] = os.getenv(key, default)
    if config:
        app.config.update(config)

    level = app.config['LOG_LEVEL']
    app.logger.setLevel(level)
    logging.getLogger(__name__).setLevel(level)

    from .config.rbac import MatrixOrdering
    if not isinstance(app.config.get('RBAC_ORDERING'), MatrixOrdering):
        app.config['RBAC_ORDERING'] = MatrixOrdering.from_config(
            app.config['RBAC_MODULE_ORDER'], app.config['RBAC_ACTION_ORDER'],
        )

    db_engine = _engine_for(app.config['DATABASE_URL'])
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)
    # permissionsByModule relies on insertion order
    app.json.sort_keys = False

    from .routes.auth import auth_bp
    from .routes.permissions import permissions_bp
    from .routes.roles import roles_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(permissions_bp, url_prefix='/permissions')
    app.register_blueprint(roles_bp, url_prefix='/roles')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            return _error_body(e.code, e.name, e.description)
        app.logger.exception('Unhandled exception')
        return _error_body(500, 'Internal Server Error', 'Unexpected error')

    return app


def get_db():
    return SessionLocal()
