from typing import Iterable, List, Optional

from rakgame.core.models import Game


def _normalize(title: str) -> str:
    return title.strip().lower()


def find_duplicates(title: str, platform: str, games: Iterable[Game], exclude_id: Optional[str] = None) -> List[Game]:
    """
    Find games that look like the one being entered

    A duplicate has the same title (case-insensitive, surrounding whitespace
    ignored) on exactly the same platform. ``exclude_id`` skips the game being
    edited.
    """
    wanted = _normalize(title)
    return [
        game for game in games
        if game.id != exclude_id and game.platform == platform and _normalize(game.title) == wanted
    ]


def has_duplicates(game: Game, games: Iterable[Game]) -> bool:
    return bool(find_duplicates(game.title, game.platform, games, exclude_id=game.id))
