"""
Source channel to destination webhook routing

File: mirror_relay/relay/routing.py
"""

import json
import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

logger = logging.getLogger("mirror.relay.routing")

_WEBHOOK_TOKEN = re.compile(r"(webhooks/\d+/)([^/?#]+)")


@dataclass(frozen=True)
class Destination:
    """A webhook URL messages are delivered to"""
    url: str

    @property
    def token(self) -> Optional[str]:
        match = _WEBHOOK_TOKEN.search(self.url)
        return match.group(2) if match else None

    @property
    def label(self) -> str:
        """URL with the webhook token masked, safe for logs"""
        return _WEBHOOK_TOKEN.sub(r"\1***", self.url)


class RoutingTable:
    """Immutable mapping of source channel id to ordered destinations"""

    def __init__(self, routes: Mapping[str, List[Destination]] = None):
        frozen = {
            str(channel_id): tuple(destinations)
            for channel_id, destinations in (routes or {}).items()
        }
        self._routes: Mapping[str, Tuple[Destination, ...]] = MappingProxyType(frozen)

    @classmethod
    def from_config(cls, raw: Union[str, Mapping[str, Any], None]) -> "RoutingTable":
        """
        Build the table from the configured mirror map

        Accepts the raw JSON string (as stored in DISCORD_MIRROR_MAP) or an
        already parsed mapping. Anything unparseable yields an empty table.
        """
        if raw is None or raw == "":
            return cls()

        data = raw
        if isinstance(raw, (str, bytes)):
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.error(f"Failed to parse mirror map, ensure it is valid JSON: {e}")
                return cls()

        if not isinstance(data, Mapping):
            logger.error("Mirror map must be a JSON object of channel id to webhook URL list")
            return cls()

        routes: Dict[str, List[Destination]] = {}
        for channel_id, urls in data.items():
            if isinstance(urls, str):
                urls = [urls]
            if not isinstance(urls, (list, tuple)):
                logger.error(f"Ignoring route for channel {channel_id}: expected a list of URLs")
                continue
            routes[str(channel_id)] = [Destination(url=str(u)) for u in urls if u]

        logger.info(
            f"Routing table loaded: {len(routes)} source channels, "
            f"{sum(len(d) for d in routes.values())} destinations"
        )
        return cls(routes)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def destinations_for(self, channel_id: str) -> Tuple[Destination, ...]:
        return self._routes.get(channel_id, ())

    def all_destinations(self) -> List[Destination]:
        """Every configured destination, flattened in table order"""
        return [d for destinations in self._routes.values() for d in destinations]
