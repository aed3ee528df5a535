from __future__ import annotations

import logging
import sys

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .game.service import GameService
from .routes.health import bp as health_bp
from .routes.rooms import bp as rooms_bp
from .realtime.handlers import register_socketio_handlers


def _configure_logging(app: Flask) -> None:
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("tutti").setLevel(level)
    app.logger.setLevel(level)


def create_app(config_class: type = Config) -> tuple[Flask, SocketIO]:
    app = Flask(__name__)
    app.config.from_object(config_class)
    _configure_logging(app)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    async_mode = app.config.get("SOCKETIO_ASYNC_MODE", "")
    if not async_mode:
        # Default choice:
        # - Windows: threading (eventlet has known compatibility issues on newer Python)
        # - Python >= 3.13: threading (safer default)
        # - Otherwise: eventlet
        if sys.platform.startswith("win") or sys.version_info >= (3, 13):
            async_mode = "threading"
        else:
            async_mode = "eventlet"

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=async_mode,
    )

    game = GameService.from_config(app.config)
    app.extensions["tutti"] = game

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(rooms_bp, url_prefix="/api")

    register_socketio_handlers(socketio, game, app.config)
    app.logger.info("tutti ready (async_mode=%s, max_rounds=%d)", async_mode, game.max_rounds)

    return app, socketio
