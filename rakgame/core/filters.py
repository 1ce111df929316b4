from dataclasses import dataclass
from typing import Iterable, List

from rakgame.core.models import Game

ALL = 'all'
# condition filter value selecting games with no condition recorded
ANY_CONDITION = 'any'

SORT_FIELDS = ('title', 'date', 'price', 'platform')


@dataclass
class GameFilters:
    search: str = ''
    platform: str = ALL
    type: str = ALL
    region: str = ALL
    condition: str = ALL
    sort_by: str = 'date'
    sort_order: str = 'desc'


def _sort_key(sort_by: str):
    if sort_by == 'title':
        return lambda game: game.title.lower()
    if sort_by == 'price':
        return lambda game: game.price
    if sort_by == 'platform':
        return lambda game: game.platform.lower()
    return lambda game: str(game.purchase_date)


def filter_and_sort_games(games: Iterable[Game], filters: GameFilters) -> List[Game]:
    """Apply the collection page filters, then sort"""
    filtered = list(games)

    search = filters.search.strip().lower()
    if search:
        filtered = [game for game in filtered if search in game.title.lower()]

    if filters.platform != ALL:
        filtered = [game for game in filtered if game.platform == filters.platform]

    if filters.type != ALL:
        filtered = [game for game in filtered if game.type == filters.type]

    if filters.region != ALL:
        filtered = [game for game in filtered if game.region and game.region == filters.region]

    if filters.condition == ANY_CONDITION:
        filtered = [game for game in filtered if not game.condition]
    elif filters.condition != ALL:
        filtered = [game for game in filtered if game.condition == filters.condition]

    if filters.sort_by not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field: {filters.sort_by}")
    filtered.sort(key=_sort_key(filters.sort_by), reverse=filters.sort_order != 'asc')
    return filtered
