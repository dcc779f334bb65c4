"""
Mirror Relay

Mirrors messages posted in Discord source channels to destination webhooks.

Architecture:
- One gateway websocket session with heartbeat and resume
- Filter pipeline drops self, looped, blocked and command messages
- Relay engine fans each admitted message out to its destination webhooks
"""

__version__ = "1.0.0"
