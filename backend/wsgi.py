"""WSGI entry point, e.g. ``gunicorn -k eventlet -w 1 backend.wsgi:app``.

Rooms live in process memory, so run a single worker.
"""

from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[1] / ".env")

try:
    from backend.tutti.server import create_app
except ImportError:  # pragma: no cover
    from tutti.server import create_app

app, socketio = create_app()
