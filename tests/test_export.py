import json
from datetime import date
from unittest.mock import MagicMock

import pytest

from config.feature_flags import disable_feature, enable_feature
from rakgame.core.error_handler import AuthenticationError, ValidationError
from rakgame.core.models import Game, Seller, UserIdentity, UserProfile
from rakgame.services.export import ExportService, generate_filename


def make_games(count):
    seller = Seller(id='s1', name='Shopee')
    return [
        Game.from_dict({
            'id': f'g{i}',
            'title': f'Game {i}',
            'platform': 'Switch',
            'price': 100 + i,
            'purchase_date': '2024-01-01',
            'seller': seller if i % 2 else None,
        })
        for i in range(count)
    ]


@pytest.fixture
def manager():
    manager = MagicMock()
    manager.get_current_user.return_value = UserIdentity(id='user-1', email='player@example.com')
    manager.get_user_profile.return_value = UserProfile(id='user-1', email='player@example.com', currency='USD')
    return manager


@pytest.fixture
def exporter(manager):
    games = MagicMock()
    games.records = make_games(3)
    return ExportService(games, manager, max_games=1000, filename_prefix='rakgame-collection')


def test_filename():
    assert generate_filename('csv', today=date(2024, 5, 12)) == 'rakgame-collection-2024-05-12.csv'


def test_csv_export(exporter):
    export = exporter.export('csv')

    lines = export.content.decode('utf-8').split('\n')
    assert export.mime_type == 'text/csv'
    assert export.filename.endswith('.csv')
    assert lines[1] == 'User Email,player@example.com'
    assert lines[2] == 'Total Games,3'
    assert lines[3] == 'Currency,USD'
    assert lines[4] == ''
    assert lines[5].startswith('Title,Platform,Type,Price,Purchase Date')
    assert lines[6].startswith('Game 0,Switch,Disc,100')
    assert 'Shopee' in lines[7]


def test_json_export(exporter):
    export = exporter.export('json')

    data = json.loads(export.content)
    assert data['metadata']['userEmail'] == 'player@example.com'
    assert data['metadata']['totalGames'] == 3
    assert data['games'][0]['purchaseDate'] == '2024-01-01'
    assert data['games'][0]['seller'] is None
    assert data['games'][1]['seller']['name'] == 'Shopee'


def test_pdf_export(exporter):
    export = exporter.export('pdf')

    assert export.mime_type == 'application/pdf'
    assert export.content.startswith(b'%PDF')


def test_pdf_export_can_be_disabled(exporter):
    try:
        disable_feature('pdf_export')
        with pytest.raises(ValidationError) as exc_info:
            exporter.export('pdf')
        assert exc_info.value.error_code == 'FEATURE_DISABLED'
    finally:
        enable_feature('pdf_export')


def test_invalid_format(exporter):
    with pytest.raises(ValidationError) as exc_info:
        exporter.export('xlsx')
    assert exc_info.value.error_code == 'INVALID_FORMAT'


def test_export_requires_sign_in(exporter, manager):
    manager.get_current_user.return_value = None
    with pytest.raises(AuthenticationError):
        exporter.export('json')


def test_export_limit_and_profile_fallback(manager):
    games = MagicMock()
    games.records = make_games(5)
    manager.get_user_profile.side_effect = RuntimeError('offline')
    exporter = ExportService(games, manager, max_games=2)

    data = json.loads(exporter.export('json').content)

    assert data['metadata']['totalGames'] == 2
    assert [game['id'] for game in data['games']] == ['g0', 'g1']
    assert data['metadata']['userEmail'] == 'player@example.com'
