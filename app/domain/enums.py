from enum import Enum


class RealtimeMessageType(str, Enum):
    CONNECTION = "connection"
    LIVE_TRAINS_UPDATE = "live_trains_update"
    LIVE_TRAINS = "live_trains"
    PONG = "pong"
    ECHO = "echo"
    HEARTBEAT = "heartbeat"


class ClientMessageType(str, Enum):
    REQUEST_LIVE_DATA = "request_live_data"
    PING = "ping"
