"""
Inbound Message Filter Pipeline

Checks run in order and stop at the first match:
1. messages from the bot itself
2. messages posted by one of our own destination webhooks (loop prevention)
3. blocked authors posting directly (not through a webhook)
4. noise from direct posts: bracket proxy commands, prefixed commands,
   empty residue left behind when a proxy bot deletes the command

Messages posted through a foreign webhook only go through check 2.

File: mirror_relay/relay/filters.py
"""

import logging
from enum import Enum
from typing import Callable, Iterable, List, Optional

from mirror_relay.gateway.config import DEFAULT_COMMAND_PREFIXES
from mirror_relay.gateway.protocol import MessageCreate

from .identity import DestinationIdentityCache

logger = logging.getLogger("mirror.filter")


class DropReason(str, Enum):
    SELF = "self"
    LOOP = "loop"
    BLOCKED = "blocked"
    BRACKET = "bracket_command"
    COMMAND = "prefixed_command"
    EMPTY = "empty"


Check = Callable[[MessageCreate], Optional[DropReason]]


class FilterPipeline:
    """Admission checks for messages on routed channels"""

    def __init__(
        self,
        identity_cache: DestinationIdentityCache,
        blocked_user_ids: Iterable[str] = (),
        command_prefixes: Iterable[str] = DEFAULT_COMMAND_PREFIXES,
        self_id: Optional[str] = None,
    ):
        self.identity_cache = identity_cache
        self.blocked_user_ids = frozenset(str(u) for u in blocked_user_ids)
        self.command_prefixes = tuple(p.lower() for p in command_prefixes if p)
        self.self_id = self_id
        self._checks: List[Check] = [
            self._check_self,
            self._check_loop,
            self._check_blocked,
            self._check_noise,
        ]

    def check(self, message: MessageCreate) -> Optional[DropReason]:
        """
        Run all checks

        Returns:
            The reason the message is dropped, or None if it may be relayed
        """
        for check in self._checks:
            reason = check(message)
            if reason is not None:
                return reason
        return None

    def _check_self(self, message: MessageCreate) -> Optional[DropReason]:
        if self.self_id and message.author.id == self.self_id:
            logger.debug(f"Skipping message from self ({message.author.username}).")
            return DropReason.SELF
        return None

    def _check_loop(self, message: MessageCreate) -> Optional[DropReason]:
        if message.webhook_id and message.webhook_id in self.identity_cache:
            logger.info(f"LOOP PREVENTION: Skipping message from own webhook ID {message.webhook_id}.")
            return DropReason.LOOP

        self._log_received(message)
        return None

    def _log_received(self, message: MessageCreate):
        preview = message.content[:50].replace("\n", "\\n")
        logger.info("--- Message Received ---")
        logger.info(f"ID: {message.id} | Channel: {message.channel_id}")
        logger.info(
            f"Author ID: {message.author.id} "
            f"(Blocked? {message.author.id in self.blocked_user_ids})"
        )
        logger.info(f"Is Webhook: {message.is_webhook}")
        logger.info(f'Content Start: "{preview}..."')
        if message.is_webhook:
            logger.info(
                f"PROXY/WEBHOOK DETECTED: Allowing message from external webhook ID "
                f"{message.webhook_id} to be mirrored."
            )

    def _check_blocked(self, message: MessageCreate) -> Optional[DropReason]:
        if message.author.id in self.blocked_user_ids and not message.is_webhook:
            logger.info(
                f"TARGETED BLOCK HIT: Skipping non-webhook message from {message.author.username}."
            )
            return DropReason.BLOCKED
        return None

    def _check_noise(self, message: MessageCreate) -> Optional[DropReason]:
        if message.is_webhook:
            return None

        trimmed = message.content.strip()
        if trimmed.startswith("["):
            logger.info("BRACKET-FILTER: Skipping likely bracket proxy command.")
            return DropReason.BRACKET

        if trimmed and trimmed.lower().startswith(self.command_prefixes):
            logger.info("COMMAND-FILTER: Skipping likely prefixed command.")
            return DropReason.COMMAND

        if not trimmed and not message.attachments and not message.embeds:
            logger.info("EMPTY CONTENT GUARD: Skipping message with no content (likely a deleted command).")
            return DropReason.EMPTY

        return None
