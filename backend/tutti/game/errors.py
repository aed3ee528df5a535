from __future__ import annotations


class GameError(Exception):
    """Base class for recoverable game errors.

    ``code`` is stable and safe to send to clients.
    """

    code = "GAME_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class RoomNotFound(GameError):
    code = "ROOM_NOT_FOUND"

    def __init__(self, room_code: str) -> None:
        super().__init__(f"Room not found: {room_code}")
        self.room_code = room_code


class GameAlreadyStarted(GameError):
    code = "GAME_ALREADY_STARTED"

    def __init__(self, room_code: str) -> None:
        super().__init__("Game already started")
        self.room_code = room_code


class InvalidPhaseTransition(GameError):
    code = "INVALID_PHASE"

    def __init__(self, operation: str, phase: str) -> None:
        super().__init__(f"{operation} not allowed in phase {phase}")
        self.operation = operation
        self.phase = phase


class UnknownConnection(GameError):
    code = "UNKNOWN_CONNECTION"

    def __init__(self, connection_ref: str) -> None:
        super().__init__(f"Unknown connection: {connection_ref}")
        self.connection_ref = connection_ref
