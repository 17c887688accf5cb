"""WSGI config for the shortreel project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "shortreel.settings")

application = get_wsgi_application()
