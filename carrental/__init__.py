"""Car rental contract engine.

Rental lifecycle, pricing, payments and extensions on Flask-SQLAlchemy,
exposed as a JSON blueprint under ``/api``.  Build an app with
:func:`create_app`; tables are created with ``python app.py --init-db``.
"""

import logging

from flask import Flask

from .config import Config
from .errors import register_error_handlers
from .extensions import db

__all__ = ['create_app', 'db']


def _configure_logging(app: Flask) -> None:
    """One JSON-ish line per record on stderr."""
    level = str(app.config.get('LOG_LEVEL', 'INFO')).upper()
    app.logger.setLevel(level)
    root = logging.getLogger()
    root.setLevel(level)

    # avoid duplicate handlers under the reloader
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            fmt='{"ts":"%(asctime)s","level":"%(levelname)s","msg":"%(message)s","name":"%(name)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        ))
        root.addHandler(handler)


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)
    db.init_app(app)
    register_error_handlers(app)

    from .api import bp
    app.register_blueprint(bp)

    app.logger.info("carrental app created (db=%s)", app.config['SQLALCHEMY_DATABASE_URI'])
    return app
