"""
Filter Pipeline Tests

File: tests/relay/test_filters.py
"""

import pytest

from fakes import WEBHOOK_URL
from mirror_relay.relay.filters import DropReason, FilterPipeline
from mirror_relay.relay.identity import DestinationIdentityCache
from mirror_relay.relay.routing import Destination

OWN_WEBHOOK_ID = "111111111111111111"


@pytest.fixture
def pipeline():
    cache = DestinationIdentityCache()
    cache.build([Destination(WEBHOOK_URL)])
    return FilterPipeline(cache, blocked_user_ids=["666"], self_id="42")


def author(user_id="999", **extra):
    return {"id": user_id, "username": "alice", "discriminator": "0", **extra}


class TestFilterPipeline:
    """Admission checks"""

    def test_plain_message_is_admitted(self, pipeline, make_message):
        assert pipeline.check(make_message()) is None

    def test_own_messages_are_dropped(self, pipeline, make_message):
        message = make_message(author=author("42"))
        assert pipeline.check(message) == DropReason.SELF

    def test_self_unknown_before_ready(self, make_message):
        pipeline = FilterPipeline(DestinationIdentityCache())
        assert pipeline.check(make_message(author=author("42"))) is None

    def test_own_webhook_is_never_relayed(self, pipeline, make_message):
        """Loop prevention applies whatever the content"""
        for content in ("hello", "[bracket", "!cmd", ""):
            message = make_message(webhook_id=OWN_WEBHOOK_ID, content=content)
            assert pipeline.check(message) == DropReason.LOOP

    def test_foreign_webhook_bypasses_noise_filters(self, pipeline, make_message):
        for content in ("[proxied text", "!not a command here", "t?x"):
            message = make_message(webhook_id="555", content=content)
            assert pipeline.check(message) is None

    def test_foreign_webhook_with_blocked_author_is_admitted(self, pipeline, make_message):
        message = make_message(webhook_id="555", author=author("666"))
        assert pipeline.check(message) is None

    def test_blocked_author_direct_post_is_dropped(self, pipeline, make_message):
        message = make_message(author=author("666"))
        assert pipeline.check(message) == DropReason.BLOCKED

    @pytest.mark.parametrize("content", ["[text", "  [text", "[ ]"])
    def test_bracket_commands_are_dropped(self, pipeline, make_message, content):
        assert pipeline.check(make_message(content=content)) == DropReason.BRACKET

    @pytest.mark.parametrize("content", ["!ping", "  !ping", "t!help", "T!HELP", "t?status"])
    def test_prefixed_commands_are_dropped(self, pipeline, make_message, content):
        assert pipeline.check(make_message(content=content)) == DropReason.COMMAND

    def test_prefix_elsewhere_is_admitted(self, pipeline, make_message):
        assert pipeline.check(make_message(content="what!")) is None

    @pytest.mark.parametrize("content", ["", "   ", "\n"])
    def test_empty_messages_are_dropped(self, pipeline, make_message, content):
        assert pipeline.check(make_message(content=content)) == DropReason.EMPTY

    def test_empty_message_with_attachment_is_admitted(self, pipeline, make_message):
        message = make_message(content="", attachments=[{"url": "https://cdn.example/a.png", "size": 10}])
        assert pipeline.check(message) is None

    def test_empty_message_with_embed_is_admitted(self, pipeline, make_message):
        message = make_message(content="", embeds=[{"title": "link"}])
        assert pipeline.check(message) is None

    def test_custom_prefixes(self, make_message):
        pipeline = FilterPipeline(DestinationIdentityCache(), command_prefixes=["?"])
        assert pipeline.check(make_message(content="?roll")) == DropReason.COMMAND
        assert pipeline.check(make_message(content="!roll")) is None

    def test_self_check_runs_first(self, pipeline, make_message):
        message = make_message(author=author("42"), webhook_id=OWN_WEBHOOK_ID)
        assert pipeline.check(message) == DropReason.SELF
