"""Wire format of the live-data WebSocket channel.

Outbound frames are JSON objects rendered from :class:`RealtimeMessage`;
``None`` fields are omitted. Inbound frames must be JSON objects; their
``type`` field selects the handler and anything unrecognized is echoed back.
"""

import json
from collections.abc import Mapping, Sequence
from typing import Any

from app.domain.enums import RealtimeMessageType
from app.infra.realtime.errors import MalformedMessageError
from app.schemas.realtime import RealtimeMessage

WELCOME_TEXT = "Connected to Swiss Railway Network WebSocket"


def encode_message(message: RealtimeMessage) -> str:
    return message.model_dump_json(exclude_none=True)


def decode_client_message(frame: str | bytes) -> dict[str, Any]:
    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessageError("frame is not valid UTF-8") from exc

    try:
        payload = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise MalformedMessageError(exc.msg) from exc

    if not isinstance(payload, dict):
        raise MalformedMessageError("expected a JSON object")
    return payload


def client_message_type(payload: Mapping[str, Any]) -> str:
    raw_type = payload.get("type")
    if isinstance(raw_type, str):
        return raw_type
    return ""


def welcome_message(gtfs_loaded: bool) -> RealtimeMessage:
    return RealtimeMessage(
        type=RealtimeMessageType.CONNECTION,
        message=WELCOME_TEXT,
        gtfs_loaded=gtfs_loaded,
    )


def live_update_message(snapshot: Sequence[Any]) -> RealtimeMessage:
    return RealtimeMessage(type=RealtimeMessageType.LIVE_TRAINS_UPDATE, data=list(snapshot))


def live_reply_message(snapshot: Sequence[Any]) -> RealtimeMessage:
    return RealtimeMessage(type=RealtimeMessageType.LIVE_TRAINS, data=list(snapshot))


def pong_message() -> RealtimeMessage:
    return RealtimeMessage(type=RealtimeMessageType.PONG)


def echo_message(payload: Mapping[str, Any]) -> RealtimeMessage:
    return RealtimeMessage(type=RealtimeMessageType.ECHO, data=dict(payload))


def heartbeat_message() -> RealtimeMessage:
    return RealtimeMessage(type=RealtimeMessageType.HEARTBEAT)
