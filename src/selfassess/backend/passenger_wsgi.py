"""WSGI entrypoint for deploying the selfassess backend behind Passenger."""

from selfassess.backend.app import create_app

# Passenger expects a module-level variable named ``application``.
application = create_app()
