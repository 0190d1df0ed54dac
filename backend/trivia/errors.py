class TriviaError(Exception):
    pass


class GameNotFound(TriviaError, LookupError):
    """The game record does not exist (never created, or torn down)."""

    def __init__(self, game_id: str):
        super().__init__(f"Game {game_id} not found")
        self.game_id = game_id


class GameAlreadyStarted(TriviaError, ValueError):
    def __init__(self, game_id: str):
        super().__init__(f"Game {game_id} has already started")
        self.game_id = game_id
