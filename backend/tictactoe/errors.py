"""
Ошибки игровых запросов.
Каждая ошибка несёт code — строку, которая уходит клиенту в сообщении error.
"""


class GameError(Exception):
    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)


class InvalidRequest(GameError):
    code = "invalid_request"


class SessionNotFound(GameError):
    code = "session_not_found"


UnknownSession = SessionNotFound


class NotAParticipant(GameError):
    code = "not_a_participant"


class NotYourTurn(GameError):
    code = "not_your_turn"


class InvalidCell(GameError):
    code = "invalid_cell"


class GameNotActive(GameError):
    code = "game_not_active"


class AlreadyQueued(GameError):
    code = "already_queued"


class TimeoutExpired(GameError):
    """Часы ходящего истекли. Клиенту не отправляется: превращается в поражение по времени."""
    code = "timeout"
