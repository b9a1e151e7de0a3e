"""WSGI entry point: ``flask --app app run`` or ``gunicorn app:app``."""

from __future__ import annotations

from iphey.app_factory import create_app

app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8787)
