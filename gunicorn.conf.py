"""Gunicorn settings for the CCG Web API host."""

import os

wsgi_app = "ccg_webapi.main:app"
bind = f"0.0.0.0:{os.getenv('APP_PORT') or os.getenv('PORT') or '5000'}"
workers = int(os.getenv("GUNICORN_WORKERS", "2"))

# Gunicorn drops headers containing "_" by default; clients send the bearer
# token in an ``access_token`` header.
header_map = "dangerous"
