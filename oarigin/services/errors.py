"""
Erreurs métier levées par les services room/partie.

Les routes les traduisent en réponses HTTP (voir `oarigin.routes.rooms.raise_http`).
`code` est stable: c'est ce que le client affiche ou associe à un message.
"""


class GameError(ValueError):
    code = "game_error"
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class RoomNotFoundError(GameError):
    code = "room_not_found"
    status_code = 404


class PlayerNotFoundError(GameError):
    code = "player_not_found"
    status_code = 404


class RoomFullError(GameError):
    code = "room_full"
    status_code = 409


class NotHostError(GameError):
    code = "not_host"
    status_code = 403


class NotYourTurnError(GameError):
    code = "not_your_turn"
    status_code = 409


class GameNotActiveError(GameError):
    code = "game_not_active"
    status_code = 409


class GenerationPendingError(GameError):
    code = "generation_pending"
    status_code = 409


class RoomLockedError(GameError):
    code = "room_locked"
    status_code = 409


class InvalidInputError(GameError):
    code = "invalid_input"
    status_code = 422
