import secrets
import string
import time
import uuid
from typing import Iterable, List

from .models import Player

GAME_ID_ALPHABET = string.ascii_uppercase + string.digits


def now_ts() -> float:
    return time.time()


def new_game_id(length: int = 6) -> str:
    return "".join(secrets.choice(GAME_ID_ALPHABET) for _ in range(length))


def new_player_id() -> str:
    return uuid.uuid4().hex


def sort_leaderboard(players: Iterable[Player]) -> List[Player]:
    # sorted() is stable: equal scores keep their record order
    return sorted(players, key=lambda p: -p.score)


def rank_of(players: Iterable[Player], player_id: str) -> int:
    """1-based position in the leaderboard, 0 if the player is not in it."""
    for idx, player in enumerate(sort_leaderboard(players)):
        if player.id == player_id:
            return idx + 1
    return 0


def standings(players: Iterable[Player]) -> List[dict]:
    return [
        {"rank": idx + 1, "id": p.id, "name": p.name, "score": p.score}
        for idx, p in enumerate(sort_leaderboard(players))
    ]


def normalize_game_id(game_id: str) -> str:
    """Game ids are typed by people; accept them in any case and with stray spaces."""
    return game_id.strip().upper()
