"""
Relay Engine

Shapes one webhook payload per destination and delivers them concurrently.
Each destination is isolated: a failed lookup or delivery is logged and does
not affect the others.

File: mirror_relay/relay/engine.py
"""

import asyncio
import logging
import time
from typing import List, Optional, Sequence, TYPE_CHECKING

from mirror_relay.gateway.deduplicator import MessageDeduplicator
from mirror_relay.gateway.errors import DestinationError, error_handler
from mirror_relay.gateway.protocol import MessageCreate, Ready
from mirror_relay.helpers.log_config import log_duration

from .filters import FilterPipeline
from .identity import DestinationIdentityCache
from .routing import Destination, RoutingTable
from .webhook import RelayPayload, WebhookClient

if TYPE_CHECKING:
    from mirror_relay.gateway.config import MirrorConfig
    from mirror_relay.gateway.metrics import MetricsCollector

logger = logging.getLogger("mirror.relay")

# Webhooks reject a payload with neither content nor files
EMPTY_CONTENT_PLACEHOLDER = "** **\n"
DEFAULT_ATTACHMENT_LIMIT = 8 * 1024 * 1024


class RelayEngine:
    """Routes admitted messages to their destination webhooks"""

    def __init__(
        self,
        routing: RoutingTable,
        client: WebhookClient,
        identity_cache: Optional[DestinationIdentityCache] = None,
        filters: Optional[FilterPipeline] = None,
        enable_bot_indicator: bool = False,
        use_webhook_profile: bool = False,
        use_webhook_avatar: bool = False,
        attachment_size_limit: int = DEFAULT_ATTACHMENT_LIMIT,
        deduplicator: Optional[MessageDeduplicator] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.routing = routing
        self.client = client
        self.identity_cache = identity_cache or DestinationIdentityCache()
        self.filters = filters or FilterPipeline(self.identity_cache)
        self.enable_bot_indicator = enable_bot_indicator
        self.use_webhook_profile = use_webhook_profile
        self.use_webhook_avatar = use_webhook_avatar
        self.attachment_size_limit = attachment_size_limit
        self.deduplicator = deduplicator or MessageDeduplicator()
        self.metrics = metrics

    @classmethod
    def from_config(
        cls,
        config: "MirrorConfig",
        client: Optional[WebhookClient] = None,
        metrics: Optional["MetricsCollector"] = None,
    ) -> "RelayEngine":
        routing = RoutingTable.from_config(config.mirror_map)
        identity_cache = DestinationIdentityCache()
        filters = FilterPipeline(
            identity_cache,
            blocked_user_ids=config.blocked_user_ids,
            command_prefixes=config.command_prefixes,
        )
        return cls(
            routing=routing,
            client=client or WebhookClient(
                timeout=config.delivery_timeout, lookup_headers=config.headers
            ),
            identity_cache=identity_cache,
            filters=filters,
            enable_bot_indicator=config.enable_bot_indicator,
            use_webhook_profile=config.use_webhook_profile,
            use_webhook_avatar=config.use_webhook_avatar,
            attachment_size_limit=config.attachment_size_limit,
            metrics=metrics,
        )

    def handle_ready(self, ready: Ready):
        """Remember our own user id and build loop prevention once"""
        self.filters.self_id = ready.user.id
        if not self.identity_cache.built and self.routing.all_destinations():
            self.identity_cache.build(self.routing.all_destinations())

    async def handle_message(self, message: MessageCreate) -> List[bool]:
        """
        Filter and relay one MESSAGE_CREATE event

        Returns:
            One delivery outcome per destination, empty if the message was dropped
        """
        if message.channel_id not in self.routing:
            return []

        if self.metrics:
            self.metrics.record_message_received()

        reason = self.filters.check(message)
        if reason is not None:
            self._record_drop(reason.value)
            return []

        if self.deduplicator.is_duplicate(message.id, message.channel_id):
            logger.info(f"Skipping message {message.id}, already relayed.")
            self._record_drop("duplicate")
            return []

        destinations = self.routing.destinations_for(message.channel_id)
        if not destinations:
            logger.warning(
                f"No destination webhooks found for source channel ID {message.channel_id}. Skipping."
            )
            self._record_drop("no_destinations")
            return []

        results = await self.relay(message, destinations)
        if self.metrics and any(results):
            self.metrics.record_relayed()
        return results

    async def relay(self, message: MessageCreate, destinations: Sequence[Destination]) -> List[bool]:
        """Deliver to every destination concurrently and wait for all of them"""
        outcomes = await asyncio.gather(
            *[self._deliver(message, d) for d in destinations],
            return_exceptions=True
        )

        results = []
        for destination, outcome in zip(destinations, outcomes):
            if isinstance(outcome, BaseException):
                error_handler.log_error(outcome, f"Relay to {destination.label} failed", logger)
                if self.metrics:
                    self.metrics.record_error(destination.label, str(outcome))
                results.append(False)
            else:
                results.append(outcome)
        return results

    def build_payload(self, message: MessageCreate) -> RelayPayload:
        """Payload impersonating the original author"""
        author = message.author
        username = author.tag
        if self.enable_bot_indicator:
            username += " [BOT]" if author.bot else " [USER]"

        payload = RelayPayload(
            content=message.content or EMPTY_CONTENT_PLACEHOLDER,
            username=username,
            avatar_url=author.avatar_url,
        )

        if message.embeds:
            payload.embeds = list(message.embeds)
        elif message.sticker_items:
            payload.files = [sticker.media_url for sticker in message.sticker_items]
        elif message.attachments:
            urls = [a.url for a in message.attachments]
            largest = max(a.size for a in message.attachments)
            if largest < self.attachment_size_limit:
                payload.files = urls
            else:
                # Too large to upload, link instead
                if not payload.content.endswith("\n"):
                    payload.content += "\n"
                payload.content += "\n".join(urls)

        return payload

    async def _deliver(self, message: MessageCreate, destination: Destination) -> bool:
        logger.info(
            f"=> MIRRORING message ID {message.id} from {message.channel_id} "
            f"to webhook: {destination.label}"
        )
        payload = self.build_payload(message)
        start_time = time.time()

        try:
            if self.use_webhook_profile:
                profile = await self.client.fetch_profile(destination.url)
                payload.username = profile.name
                if self.use_webhook_avatar:
                    payload.avatar_url = profile.avatar_url

            with log_duration(logger, f"Delivery to {destination.label}"):
                await self.client.execute(destination.url, payload)
        except DestinationError as e:
            error_handler.log_error(e, f"Destination {destination.label}", logger)
            if self.metrics:
                self.metrics.record_error(destination.label, str(e))
            return False

        if self.metrics:
            self.metrics.record_delivery(destination.label, (time.time() - start_time) * 1000)
        return True

    def _record_drop(self, reason: str):
        if self.metrics:
            self.metrics.record_dropped(reason)

    async def close(self):
        await self.client.close()
