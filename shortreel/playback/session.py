"""
Per-session client flags.

A SessionContext is created when a user session starts and cleared at logout.
Flags scoped to the session reset on ``clear``; the permanent dismissal of the
install prompt lives in ``store`` (any mutable mapping) and survives it.
"""

import logging

logger = logging.getLogger(__name__)

DISMISSED_KEY = "install_prompt_dismissed"


class SessionContext:
    def __init__(self, store=None, preload_enabled=True):
        self._store = store if store is not None else {}
        self._default_preload = preload_enabled
        self.preload_enabled = preload_enabled
        self.install_prompt_shown = False

    @property
    def install_prompt_dismissed(self):
        return bool(self._store.get(DISMISSED_KEY, False))

    def should_offer_install(self):
        return not self.install_prompt_shown and not self.install_prompt_dismissed

    def mark_install_prompt_shown(self):
        self.install_prompt_shown = True

    def dismiss_install_prompt(self, permanently=False):
        self.install_prompt_shown = True
        if permanently:
            self._store[DISMISSED_KEY] = True

    def clear(self):
        logger.debug("Clearing session context")
        self.preload_enabled = self._default_preload
        self.install_prompt_shown = False
