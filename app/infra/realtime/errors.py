class TransportClosedError(ConnectionError):
    def __init__(self, code: int = 1000, reason: str = "") -> None:
        detail = f"WebSocket transport closed with code {code}"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)
        self.code = code
        self.reason = reason


class FrameTooLargeError(ValueError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Inbound frame of {size} bytes exceeds the {limit} byte limit")
        self.size = size
        self.limit = limit


class MalformedMessageError(ValueError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Malformed client message: {reason}")
        self.reason = reason


class BufferClosedError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("Outbound buffer is closed")
