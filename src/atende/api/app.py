"""ASGI application (role from APP_ROLE)."""

from atende.api.factory import create_app

app = create_app()
