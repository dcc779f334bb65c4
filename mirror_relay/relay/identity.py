"""
Destination Identity Cache

Webhook ids of our own destinations. A message whose webhook_id is in this
set was posted by this relay and must never be relayed again.

File: mirror_relay/relay/identity.py
"""

import logging
import re
from typing import Iterable, Optional, Set

from mirror_relay.gateway.errors import DestinationError, error_handler

from .routing import Destination

logger = logging.getLogger("mirror.relay.identity")

WEBHOOK_ID_PATTERN = re.compile(r"webhooks/(\d+)/")


def extract_webhook_id(url: str) -> Optional[str]:
    """
    Extract the webhook id from a webhook URL

    Expects the format .../webhooks/{id}/{token}
    """
    match = WEBHOOK_ID_PATTERN.search(url or "")
    return match.group(1) if match else None


class DestinationIdentityCache:
    """Set of destination webhook ids, built at most once"""

    def __init__(self):
        self._ids: Set[str] = set()
        self._built = False

    @property
    def built(self) -> bool:
        return self._built

    @property
    def size(self) -> int:
        return len(self._ids)

    def __contains__(self, webhook_id: object) -> bool:
        return webhook_id in self._ids

    def build(self, destinations: Iterable[Destination]) -> bool:
        """
        Populate the cache from destination URLs

        Returns False without touching the cache if it was already built.
        URLs without a recognizable webhook id are logged and skipped; such
        destinations are not covered by loop prevention.
        """
        if self._built:
            return False

        destinations = list(destinations)
        logger.info(
            f"Extracting {len(destinations)} destination webhook IDs for loop prevention..."
        )
        for destination in destinations:
            webhook_id = extract_webhook_id(destination.url)
            if webhook_id:
                self._ids.add(webhook_id)
                logger.debug(f"Found destination webhook ID: {webhook_id}")
            else:
                error_handler.log_error(
                    DestinationError(
                        f"Failed to extract webhook ID from URL: {destination.label}",
                        url=destination.label,
                    ),
                    "Loop prevention",
                    logger,
                )

        self._built = True
        logger.info(f"Loop prevention initialized with {len(self._ids)} destination webhook IDs.")
        return True
