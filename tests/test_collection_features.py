import pytest

from rakgame.core.analytics import (
    UNKNOWN_SELLER,
    calculate_spending,
    monthly_chart_data,
    platform_chart_data,
    seller_chart_data,
)
from rakgame.core.duplicates import find_duplicates, has_duplicates
from rakgame.core.filters import ANY_CONDITION, GameFilters, filter_and_sort_games
from rakgame.core.models import Game, Seller
from rakgame.core.regions import OTHER_REGIONS, POPULAR_REGIONS, REGIONS, get_region, region_display


def make_game(game_id, title, platform='Switch', price=100, purchase_date='2024-01-01', seller=None, **extra):
    return Game.from_dict({
        'id': game_id,
        'title': title,
        'platform': platform,
        'price': price,
        'purchase_date': purchase_date,
        'seller': seller,
        **extra
    })


@pytest.fixture
def collection():
    shopee = Seller(id='s1', name='Shopee')
    return [
        make_game('g1', 'Hades', 'PC', 300, '2024-01-15', region='Asia', condition='New'),
        make_game('g2', 'Celeste', 'Switch', 200, '2024-03-02', seller=shopee, type='Digital'),
        make_game('g3', 'Zelda', 'Switch', 1590, '2024-03-20', seller=shopee, region='Japan', condition='Used'),
    ]


# duplicates

def test_duplicates_match_title_and_platform(collection):
    assert [game.id for game in find_duplicates('  hades ', 'PC', collection)] == ['g1']
    assert find_duplicates('Hades', 'Switch', collection) == []
    assert find_duplicates('Hades', 'PC', collection, exclude_id='g1') == []


def test_has_duplicates(collection):
    copy = make_game('g4', 'ZELDA', 'Switch')
    assert has_duplicates(copy, collection + [copy])
    assert not has_duplicates(collection[0], collection)


# filters

def test_default_filters_sort_newest_first(collection):
    assert [game.id for game in filter_and_sort_games(collection, GameFilters())] == ['g3', 'g2', 'g1']


def test_filters_combine(collection):
    filters = GameFilters(search='el', platform='Switch', sort_by='title', sort_order='asc')
    assert [game.id for game in filter_and_sort_games(collection, filters)] == ['g2']

    assert [game.id for game in filter_and_sort_games(collection, GameFilters(type='Digital'))] == ['g2']
    assert [game.id for game in filter_and_sort_games(collection, GameFilters(region='Japan'))] == ['g3']


def test_condition_filter(collection):
    assert [game.id for game in filter_and_sort_games(collection, GameFilters(condition='New'))] == ['g1']
    assert [game.id for game in filter_and_sort_games(collection, GameFilters(condition=ANY_CONDITION))] == ['g2']


def test_price_sort_and_unknown_field(collection):
    filters = GameFilters(sort_by='price', sort_order='asc')
    assert [game.price for game in filter_and_sort_games(collection, filters)] == [200, 300, 1590]

    with pytest.raises(ValueError):
        filter_and_sort_games(collection, GameFilters(sort_by='rating'))


# regions

def test_regions():
    assert POPULAR_REGIONS[0].code == 'Thailand'
    assert len(POPULAR_REGIONS) + len(OTHER_REGIONS) == len(REGIONS)
    assert get_region('Japan').flag == '🇯🇵'
    assert get_region('Atlantis') is None
    assert region_display('Japan') == '🇯🇵 Japan'
    assert region_display('Atlantis') == 'Atlantis'


# analytics

def test_spending_breakdown(collection):
    analytics = calculate_spending(collection, 'THB')

    assert analytics.total == 2090
    assert analytics.game_count == 3
    assert analytics.by_platform == {'PC': 300.0, 'Switch': 1790.0}
    assert analytics.by_seller == {UNKNOWN_SELLER: 300.0, 'Shopee': 1790.0}
    assert analytics.by_month == {'2024-01': 300.0, '2024-03': 1790.0}


def test_chart_data_ordering(collection):
    analytics = calculate_spending(collection)

    assert list(platform_chart_data(analytics)['platform']) == ['Switch', 'PC']
    assert list(seller_chart_data(analytics)['seller']) == ['Shopee', UNKNOWN_SELLER]
    assert list(monthly_chart_data(analytics)['month']) == ['2024-01', '2024-03']


def test_spending_of_empty_collection():
    analytics = calculate_spending([], 'USD')

    assert analytics.total == 0
    assert analytics.currency == 'USD'
    assert analytics.by_platform == {}
    assert platform_chart_data(analytics).empty
