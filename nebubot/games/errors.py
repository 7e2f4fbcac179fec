class GameError(Exception):
    """Base class for rejected game and challenge actions."""


class NotYourTurn(GameError):
    def __init__(self, message: str = "It's not your turn!"):
        super().__init__(message)


class IllegalMove(GameError):
    pass


class AlreadyActive(GameError):
    def __init__(
        self, message: str = "There's already a game in progress in this channel!"
    ):
        super().__init__(message)


class InvalidOpponent(GameError):
    pass


class GameNotFound(GameError):
    def __init__(self, message: str = "This game is no longer active."):
        super().__init__(message)
