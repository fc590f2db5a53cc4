"""WSGI entry point, e.g. ``gunicorn -c gunicorn.conf.py``."""

from .app import create_app
from .utils.serving import build_request_handler

app = create_app()


if __name__ == "__main__":
    app.run(
        host="0.0.0.0",
        port=int(app.config.get("APP_PORT", 5000)),
        request_handler=build_request_handler([app.config["ACCESS_TOKEN_NAME"]]),
    )
