import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from config.feature_flags import FeatureFlags
from rakgame.core.error_handler import (
    AuthenticationError,
    DatabaseError,
    NetworkError,
    RemoteError,
    ValidationError,
)
from rakgame.core.models import is_temp_id


async def go_offline(connectivity):
    connectivity.set_online(False)


async def reconnect(connectivity):
    connectivity.set_online(True)
    return await connectivity.wait_for_sync()


# online writes

@pytest.mark.asyncio
async def test_create_shows_record_before_server_confirms(games, remote, game_fields):
    remote.delay_next('create', 0.05)

    task = asyncio.create_task(games.create(game_fields))
    await asyncio.sleep(0.01)

    assert len(games.records) == 1
    assert games.records[0].is_temporary

    created = await task
    assert [game.id for game in games.records] == [created.id]
    assert not is_temp_id(created.id)
    assert created.id in remote.data['games']


@pytest.mark.asyncio
async def test_create_keeps_values_returned_by_server(games, remote, notifier, game_fields):
    server_record = {**game_fields, 'id': 'g-server', 'price': 1490.0, 'user_id': 'user-1'}
    remote.create = AsyncMock(return_value=server_record)

    created = await games.create(game_fields)

    assert created.id == 'g-server'
    assert created.price == 1490.0
    assert [game.id for game in games.records] == ['g-server']
    assert games.records[0].price == 1490.0
    assert notifier.last().title == 'Game added successfully'


@pytest.mark.asyncio
async def test_update_replaces_record_with_server_copy(games, remote):
    remote.seed('games', 'g1', {'title': 'Hades', 'platform': 'PC', 'price': 300, 'purchase_date': '2024-01-02'})
    await games.refresh()

    updated = await games.update('g1', {'price': 250})

    assert updated.price == 250
    assert games.get('g1').price == 250
    assert remote.data['games']['g1']['price'] == 250


@pytest.mark.asyncio
async def test_updates_to_one_record_reach_server_in_call_order(games, remote):
    remote.seed('games', 'g1', {'title': 'Hades', 'platform': 'PC', 'price': 300, 'purchase_date': '2024-01-02'})
    await games.refresh()
    remote.delay_next('update', 0.05)

    await asyncio.gather(
        games.update('g1', {'price': 1}),
        games.update('g1', {'price': 2}),
    )

    prices = [call[3]['price'] for call in remote.calls if call[0] == 'update']
    assert prices == [1, 2]
    assert remote.data['games']['g1']['price'] == 2
    assert games.get('g1').price == 2


@pytest.mark.asyncio
async def test_update_issued_during_create_targets_permanent_id(games, remote, game_fields):
    remote.delay_next('create', 0.05)
    creating = asyncio.create_task(games.create(game_fields))
    await asyncio.sleep(0.01)
    temp_id = games.records[0].id

    await games.update(temp_id, {'price': 999})
    created = await creating

    update_calls = [call for call in remote.calls if call[0] == 'update']
    assert update_calls[0][2] == created.id
    assert remote.data['games'][created.id]['price'] == 999
    assert [game.id for game in games.records] == [created.id]
    assert games.get(temp_id).price == 999


@pytest.mark.asyncio
async def test_delete_issued_during_create_removes_server_record(games, remote, game_fields):
    remote.delay_next('create', 0.05)
    creating = asyncio.create_task(games.create(game_fields))
    await asyncio.sleep(0.01)
    temp_id = games.records[0].id

    await games.delete(temp_id)
    await creating

    assert games.records == []
    assert remote.data['games'] == {}


@pytest.mark.asyncio
async def test_failed_delete_reports_error_and_refetches(games, remote, notifier):
    remote.seed('games', 'g1', {'title': 'Hades', 'platform': 'PC', 'price': 300, 'purchase_date': '2024-01-02'})
    await games.refresh()
    remote.fail_next('delete', DatabaseError('rejected', error_code='PERMISSION_DENIED'))
    list_calls_before = len([call for call in remote.calls if call[0] == 'list'])

    with pytest.raises(DatabaseError):
        await games.delete('g1')

    error = [message for message in notifier.messages if message.level == 'error'][-1]
    assert error.title == 'Database Error'
    assert error.description == 'You do not have permission to perform this action'
    assert len([call for call in remote.calls if call[0] == 'list']) > list_calls_before
    assert [game.id for game in games.records] == ['g1']


@pytest.mark.asyncio
async def test_failed_update_restores_server_state(games, remote):
    remote.seed('games', 'g1', {'title': 'Hades', 'platform': 'PC', 'price': 300, 'purchase_date': '2024-01-02'})
    await games.refresh()
    remote.fail_next('update', NetworkError('timeout', error_code='UNAVAILABLE'))

    with pytest.raises(NetworkError):
        await games.update('g1', {'price': 1})

    assert games.get('g1').price == 300


@pytest.mark.asyncio
async def test_failed_create_removes_temporary_record(games, remote, game_fields):
    remote.fail_next('create', RuntimeError('boom'))

    with pytest.raises(RemoteError):
        await games.create(game_fields)

    assert games.records == []


# guards

@pytest.mark.asyncio
async def test_signed_out_write_changes_nothing(games, remote, queue, game_fields):
    remote.user = None

    with pytest.raises(AuthenticationError):
        await games.create(game_fields)

    assert games.records == []
    assert queue.length() == 0
    assert remote.calls == []


@pytest.mark.asyncio
async def test_invalid_fields_rejected_before_any_change(games, sellers, remote, game_fields):
    with pytest.raises(ValidationError):
        await games.create({**game_fields, 'price': -5})
    with pytest.raises(ValidationError):
        await sellers.create({'name': '   '})

    assert games.records == []
    assert sellers.records == []
    assert remote.calls == []


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(games, remote):
    remote.seed('games', 'g1', {'title': 'Hades', 'platform': 'PC', 'price': 300, 'purchase_date': '2024-01-02'})
    await games.refresh()

    with pytest.raises(ValidationError):
        await games.update('g1', {'user_id': 'someone-else'})


# offline writes

@pytest.mark.asyncio
async def test_offline_create_is_queued_and_replayed(games, remote, queue, notifier, connectivity, game_fields):
    await go_offline(connectivity)

    created = await games.create(game_fields)

    assert created.is_temporary
    assert [game.id for game in games.records] == [created.id]
    assert queue.length() == 1
    assert queue.peek()[0].operation.client_id == created.id
    assert notifier.last().title == 'Game will be synced when online'
    assert remote.calls == []

    result = await reconnect(connectivity)

    assert (result.succeeded, result.failed) == (1, 0)
    assert queue.length() == 0
    assert len(games.records) == 1
    assert not games.records[0].is_temporary
    assert games.records[0].id in remote.data['games']
    assert games.get(created.id).id == games.records[0].id


@pytest.mark.asyncio
async def test_offline_edit_is_replayed_on_reconnect(games, remote, queue, connectivity):
    remote.seed('games', 'g1', {'title': 'Hades', 'platform': 'PC', 'price': 100, 'purchase_date': '2024-01-02'})
    await games.refresh()
    await go_offline(connectivity)

    await games.update('g1', {'price': 80})

    assert games.get('g1').price == 80
    assert queue.length() == 1

    await reconnect(connectivity)

    assert remote.data['games']['g1']['price'] == 80
    assert queue.length() == 0
    assert games.get('g1').price == 80


@pytest.mark.asyncio
async def test_offline_edits_of_new_record_follow_its_create(games, remote, connectivity, game_fields):
    await go_offline(connectivity)
    created = await games.create(game_fields)
    await games.update(created.id, {'price': 10})

    await reconnect(connectivity)

    assert len(remote.data['games']) == 1
    server_id, stored = next(iter(remote.data['games'].items()))
    assert stored['price'] == 10
    assert [game.id for game in games.records] == [server_id]
    assert games.records[0].price == 10


@pytest.mark.asyncio
async def test_offline_delete_is_replayed(games, remote, queue, connectivity):
    remote.seed('games', 'g1', {'title': 'Hades', 'platform': 'PC', 'price': 100, 'purchase_date': '2024-01-02'})
    await games.refresh()
    await go_offline(connectivity)

    await games.delete('g1')

    assert games.records == []
    assert queue.peek()[0].operation.id == 'g1'

    await reconnect(connectivity)
    assert remote.data['games'] == {}
    assert games.records == []


@pytest.mark.asyncio
async def test_refresh_keeps_unconfirmed_records(games, remote, connectivity, game_fields):
    remote.seed('games', 'g1', {'title': 'Hades', 'platform': 'PC', 'price': 100, 'purchase_date': '2024-01-02'})
    await go_offline(connectivity)
    created = await games.create(game_fields)

    await games.refresh()

    assert {game.id for game in games.records} == {created.id, 'g1'}


@pytest.mark.asyncio
async def test_dropped_create_disappears_on_next_refresh(games, remote, queue, connectivity, game_fields):
    await go_offline(connectivity)
    created = await games.create(game_fields)
    remote.fail_next('create', NetworkError('still down'), times=3)

    for _ in range(3):
        await queue.drain()
    await games.refresh()

    assert games.get(created.id) is None
    assert games.records == []


@pytest.mark.asyncio
async def test_offline_write_rejected_when_offline_sync_disabled(games, queue, connectivity, game_fields):
    await go_offline(connectivity)

    with patch.dict(FeatureFlags.CORE_FEATURES, {'offline_sync': False}):
        with pytest.raises(NetworkError):
            await games.create(game_fields)

    assert games.records == []
    assert queue.length() == 0


# reads, ordering and realtime

@pytest.mark.asyncio
async def test_sellers_are_kept_sorted_by_name(sellers):
    for name in ('shopee', 'Amazon', 'lazada'):
        await sellers.create({'name': name})

    assert [seller.name for seller in sellers.records] == ['Amazon', 'lazada', 'shopee']


@pytest.mark.asyncio
async def test_games_are_newest_first_with_seller_joined(games, sellers, remote):
    remote.seed('sellers', 's1', {'name': 'Shopee'})
    remote.seed('games', 'g1', {'title': 'Old', 'platform': 'PC', 'price': 1, 'purchase_date': '2023-01-01', 'seller_id': 's1'})
    remote.seed('games', 'g2', {'title': 'New', 'platform': 'PC', 'price': 2, 'purchase_date': '2024-06-01'})

    await games.refresh()

    assert [game.id for game in games.records] == ['g2', 'g1']
    assert games.get('g1').seller.name == 'Shopee'
    assert games.get('g2').seller is None


@pytest.mark.asyncio
async def test_new_game_is_shown_first(games, remote, game_fields):
    remote.seed('games', 'g1', {'title': 'Hades', 'platform': 'PC', 'price': 100, 'purchase_date': '2025-01-02'})
    await games.refresh()

    created = await games.create(game_fields)

    assert games.records[0].id == created.id


@pytest.mark.asyncio
async def test_remote_change_triggers_refetch(games, remote):
    await games.start()
    assert remote.subscribers['games']

    remote.seed('games', 'g9', {'title': 'Elden Ring', 'platform': 'PS5', 'price': 1800, 'purchase_date': '2024-02-25'})
    remote.emit_change('games')
    await asyncio.sleep(0.05)

    assert [game.id for game in games.records] == ['g9']

    games.stop()
    assert remote.subscribers['games'] == []


@pytest.mark.asyncio
async def test_find_duplicates_ignores_case_and_edited_game(games, remote):
    remote.seed('games', 'g1', {'title': ' Hades ', 'platform': 'PC', 'price': 100, 'purchase_date': '2024-01-02'})
    remote.seed('games', 'g2', {'title': 'Hades', 'platform': 'Switch', 'price': 100, 'purchase_date': '2024-01-02'})
    await games.refresh()

    assert [game.id for game in games.find_duplicates('hades', 'PC')] == ['g1']
    assert games.find_duplicates('hades', 'PC', exclude_id='g1') == []


# cover images

@pytest.mark.asyncio
async def test_cover_image_uploaded_before_create(games, remote, game_fields):
    games.images = AsyncMock()
    games.images.upload_image.return_value = 'https://storage.test/zelda.png'

    created = await games.create(game_fields, image=object())

    assert created.image_url == 'https://storage.test/zelda.png'
    assert remote.data['games'][created.id]['image_url'] == 'https://storage.test/zelda.png'


@pytest.mark.asyncio
async def test_failed_upload_still_saves_game(games, remote, notifier, game_fields):
    games.images = AsyncMock()
    games.images.upload_image.side_effect = NetworkError('upload failed', error_code='UPLOAD_FAILED')

    created = await games.create(game_fields, image=object())

    assert created.image_url is None
    assert any(message.title == 'Network Error' for message in notifier.messages)
    assert created.id in remote.data['games']


@pytest.mark.asyncio
async def test_cover_image_skipped_offline(games, connectivity, game_fields):
    games.images = AsyncMock()
    await go_offline(connectivity)

    created = await games.create(game_fields, image=object())

    games.images.upload_image.assert_not_called()
    assert created.image_url is None


# online writes behind queued ones

async def leave_edit_queued(games, remote, connectivity):
    """Seed g1, edit it offline and let the replay fail once so the edit stays queued"""
    remote.seed('games', 'g1', {'title': 'Foo', 'platform': 'PC', 'price': 300, 'purchase_date': '2024-01-02'})
    await games.refresh()
    await go_offline(connectivity)
    await games.update('g1', {'title': 'Bar'})
    remote.fail_next('update', NetworkError('flaky'))
    await reconnect(connectivity)


@pytest.mark.asyncio
async def test_online_update_waits_for_queued_edit(games, remote, queue, connectivity, notifier):
    await leave_edit_queued(games, remote, connectivity)
    assert queue.length() == 1

    await games.update('g1', {'title': 'Baz'})

    assert queue.length() == 2
    assert remote.data['games']['g1']['title'] == 'Foo'
    assert notifier.last().title == 'Changes will be synced when online'

    await queue.drain()

    assert remote.data['games']['g1']['title'] == 'Baz'
    assert queue.length() == 0


@pytest.mark.asyncio
async def test_online_delete_waits_for_queued_edit(games, remote, queue, connectivity, notifier):
    await leave_edit_queued(games, remote, connectivity)

    await games.delete('g1')

    assert 'g1' in remote.data['games']
    assert notifier.last().title == 'Deletion will be synced when online'

    await queue.drain()

    assert 'g1' not in remote.data['games']
    assert queue.length() == 0


@pytest.mark.asyncio
async def test_record_locks_released_after_writes(games, remote):
    remote.seed('games', 'g1', {'title': 'Foo', 'platform': 'PC', 'price': 300, 'purchase_date': '2024-01-02'})
    await games.refresh()

    await asyncio.gather(games.update('g1', {'price': 1}), games.update('g1', {'price': 2}))

    assert games._locks == {}
    assert remote.data['games']['g1']['price'] == 2
