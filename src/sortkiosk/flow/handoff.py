"""Reward handoff: the redirect that ends a kiosk session.

A kiosk wired to real NFC hardware would perform the device handshake here.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class RedirectHandoff:
    """Records the outbound redirect for the frontend to follow."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.fired_count = 0

    def __call__(self) -> None:
        self.fired_count += 1
        logger.info("Redirecting to reward page %s", self.url)
