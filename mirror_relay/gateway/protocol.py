"""
Discord Gateway Protocol

Frame format for the gateway websocket and the typed events the relay consumes.
Inbound frames are {op, d, s, t}; only the subset of opcodes and dispatch
events the relay needs is modelled.
"""

import json
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Union

from .errors import ProtocolError

CDN_URL = "https://cdn.discordapp.com"
MEDIA_URL = "https://media.discordapp.net"
RESUME_QUERY = "?v=10&encoding=json"

IDENTIFY_PROPERTIES = {"os": "android", "browser": "dcm", "device": "dcm"}


class Opcode(IntEnum):
    """Gateway opcodes"""
    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    RESUME = 6
    RECONNECT = 7
    INVALID_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11


class DispatchEvent(str, Enum):
    """Dispatch event names (the `t` field)"""
    READY = "READY"
    RESUMED = "RESUMED"
    MESSAGE_CREATE = "MESSAGE_CREATE"


@dataclass
class GatewayFrame:
    """Gateway websocket frame"""
    op: int
    d: Any = None
    s: Optional[int] = None
    t: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({"op": int(self.op), "d": self.d})

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "GatewayFrame":
        try:
            obj = json.loads(data)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Frame is not valid JSON: {e}") from e
        if not isinstance(obj, dict) or not isinstance(obj.get("op"), int):
            raise ProtocolError("Frame has no integer op field")

        seq = obj.get("s")
        return cls(
            op=obj["op"],
            d=obj.get("d"),
            s=seq if isinstance(seq, int) else None,
            t=obj.get("t"),
        )


# Outbound frames

def heartbeat(sequence: Optional[int]) -> GatewayFrame:
    return GatewayFrame(op=Opcode.HEARTBEAT, d=sequence)


def identify(token: str, intents: int, properties: Dict[str, str] = None) -> GatewayFrame:
    return GatewayFrame(op=Opcode.IDENTIFY, d={
        "token": bot_token(token),
        "properties": dict(properties or IDENTIFY_PROPERTIES),
        "intents": intents,
    })


def resume(token: str, session_id: str, sequence: Optional[int]) -> GatewayFrame:
    return GatewayFrame(op=Opcode.RESUME, d={
        "token": bot_token(token),
        "session_id": session_id,
        "seq": sequence,
    })


def bot_token(token: str) -> str:
    """Gateway requires the Bot prefix on bot credentials"""
    return token if token.startswith("Bot ") else f"Bot {token}"


# Inbound events

@dataclass
class Hello:
    heartbeat_interval: float  # milliseconds

    @classmethod
    def from_payload(cls, d: Any) -> "Hello":
        interval = d.get("heartbeat_interval") if isinstance(d, dict) else None
        if not isinstance(interval, (int, float)) or interval <= 0:
            raise ProtocolError("Hello frame has no heartbeat_interval")
        return cls(heartbeat_interval=interval)


@dataclass
class Author:
    id: str
    username: str = ""
    discriminator: Optional[str] = None
    avatar: Optional[str] = None
    bot: bool = False

    @classmethod
    def from_payload(cls, d: Dict[str, Any]) -> "Author":
        return cls(
            id=str(d.get("id", "")),
            username=d.get("username") or "",
            discriminator=d.get("discriminator"),
            avatar=d.get("avatar"),
            bot=bool(d.get("bot", False)),
        )

    @property
    def tag(self) -> str:
        """username#1234, or the bare username for accounts without a discriminator"""
        return f"{self.username}{discriminator_suffix(self.discriminator)}"

    @property
    def avatar_url(self) -> str:
        if self.avatar:
            ext = "gif" if self.avatar.startswith("a_") else "jpg"
            return f"{CDN_URL}/avatars/{self.id}/{self.avatar}.{ext}"
        return default_avatar_url(self.id)


def discriminator_suffix(discriminator: Optional[str]) -> str:
    try:
        if discriminator and int(discriminator) != 0:
            return f"#{discriminator}"
    except ValueError:
        pass
    return ""


def default_avatar_url(user_id: str) -> str:
    try:
        index = (int(user_id) >> 22) % 6
    except ValueError:
        index = 0
    return f"{CDN_URL}/embed/avatars/{index}.png"


@dataclass
class Ready:
    session_id: str
    resume_gateway_url: str
    user: Author

    @classmethod
    def from_payload(cls, d: Any) -> "Ready":
        if not isinstance(d, dict) or not d.get("session_id") or not isinstance(d.get("user"), dict):
            raise ProtocolError("READY event is missing session_id or user")
        return cls(
            session_id=d["session_id"],
            resume_gateway_url=d.get("resume_gateway_url") or "",
            user=Author.from_payload(d["user"]),
        )

    @property
    def resume_url(self) -> str:
        if not self.resume_gateway_url:
            return ""
        return f"{self.resume_gateway_url}{RESUME_QUERY}"


@dataclass
class Resumed:
    @classmethod
    def from_payload(cls, d: Any) -> "Resumed":
        return cls()


@dataclass
class MessageAttachment:
    url: str
    size: int = 0
    id: Optional[str] = None
    filename: Optional[str] = None

    @classmethod
    def from_payload(cls, d: Dict[str, Any]) -> "MessageAttachment":
        return cls(
            url=d.get("url", ""),
            size=int(d.get("size") or 0),
            id=d.get("id"),
            filename=d.get("filename"),
        )


@dataclass
class StickerItem:
    id: str
    name: Optional[str] = None

    @property
    def media_url(self) -> str:
        return f"{MEDIA_URL}/stickers/{self.id}.webp"


@dataclass
class MessageCreate:
    """Inbound message envelope"""
    id: str
    channel_id: str
    author: Author
    content: str = ""
    attachments: List[MessageAttachment] = field(default_factory=list)
    embeds: List[Dict[str, Any]] = field(default_factory=list)
    sticker_items: List[StickerItem] = field(default_factory=list)
    webhook_id: Optional[str] = None

    @classmethod
    def from_payload(cls, d: Any) -> "MessageCreate":
        if not isinstance(d, dict) or not isinstance(d.get("author"), dict):
            raise ProtocolError("MESSAGE_CREATE event is missing author")
        return cls(
            id=str(d.get("id", "")),
            channel_id=str(d.get("channel_id", "")),
            author=Author.from_payload(d["author"]),
            content=d.get("content") or "",
            attachments=[MessageAttachment.from_payload(a) for a in d.get("attachments") or []],
            embeds=list(d.get("embeds") or []),
            sticker_items=[
                StickerItem(id=str(s["id"]), name=s.get("name"))
                for s in d.get("sticker_items") or [] if s.get("id")
            ],
            webhook_id=d.get("webhook_id") or None,
        )

    @property
    def is_webhook(self) -> bool:
        return self.webhook_id is not None


DispatchPayload = Union[Ready, Resumed, MessageCreate]

DISPATCH_TYPES = {
    DispatchEvent.READY.value: Ready,
    DispatchEvent.RESUMED.value: Resumed,
    DispatchEvent.MESSAGE_CREATE.value: MessageCreate,
}


def parse_dispatch(frame: GatewayFrame) -> Optional[DispatchPayload]:
    """Typed payload for a dispatch frame, None for event types the relay ignores"""
    event_type = DISPATCH_TYPES.get(frame.t)
    if event_type is None:
        return None
    try:
        return event_type.from_payload(frame.d)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed {frame.t} payload: {e!r}") from e
