"""
Mirror Relay Routing and Delivery

- Routing table: source channel id -> destination webhooks
- Identity cache: our own webhook ids, for loop prevention
- Filter pipeline and relay engine
"""

from .engine import RelayEngine
from .filters import DropReason, FilterPipeline
from .identity import DestinationIdentityCache, extract_webhook_id
from .routing import Destination, RoutingTable
from .webhook import RelayPayload, WebhookClient, WebhookProfile

__all__ = [
    "RelayEngine",
    "DropReason",
    "FilterPipeline",
    "DestinationIdentityCache",
    "extract_webhook_id",
    "Destination",
    "RoutingTable",
    "RelayPayload",
    "WebhookClient",
    "WebhookProfile",
]
