# Overview: WSGI entrypoint; FLASK_APP=wsgi.py for the CLI.

from fashionmart import create_app

app = create_app()
