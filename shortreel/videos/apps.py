"""
Django app configuration for the videos module.

The videos app owns source resolution and the streaming endpoint. Its
signal handlers are connected in ``ready()``.
"""

from django.apps import AppConfig


class VideosConfig(AppConfig):
    name = 'videos'

    def ready(self):
        from . import signals  # noqa: F401
