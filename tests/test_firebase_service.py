import asyncio
import time
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions

from rakgame.core.error_handler import AuthenticationError, DatabaseError, NetworkError
from rakgame.core.models import UserIdentity
from rakgame.services.firebase import FirebaseService


def make_snapshot(doc_id, data, exists=True):
    snapshot = MagicMock()
    snapshot.id = doc_id
    snapshot.exists = exists
    snapshot.to_dict.return_value = dict(data) if data is not None else None
    return snapshot


@pytest.fixture
def manager():
    manager = MagicMock()
    manager.get_current_user.return_value = UserIdentity(id='user-1', email='player@example.com')
    return manager


@pytest.fixture
def service(manager):
    return FirebaseService(manager)


@pytest.mark.asyncio
async def test_create_stamps_owner(service, manager):
    doc_ref = manager.db.collection.return_value.document.return_value
    doc_ref.id = 'g1'

    record = await service.create('games', {'id': 'temp-1', 'title': 'Hades'})

    stored = doc_ref.set.call_args[0][0]
    assert stored['user_id'] == 'user-1'
    assert 'created_at' in stored
    assert 'id' not in stored
    assert record['id'] == 'g1'
    assert record['title'] == 'Hades'


@pytest.mark.asyncio
async def test_calls_require_sign_in(service, manager):
    manager.get_current_user.return_value = None

    with pytest.raises(AuthenticationError):
        await service.list('games')
    manager.db.collection.assert_not_called()


@pytest.mark.asyncio
async def test_update_returns_stored_document(service, manager):
    doc_ref = manager.db.collection.return_value.document.return_value
    doc_ref.get.side_effect = [
        make_snapshot('g1', {'title': 'Hades', 'user_id': 'user-1', 'price': 300}),
        make_snapshot('g1', {'title': 'Hades', 'user_id': 'user-1', 'price': 250}),
    ]

    record = await service.update('games', 'g1', {'price': 250, 'user_id': 'someone-else'})

    doc_ref.update.assert_called_once_with({'price': 250})
    assert record == {'title': 'Hades', 'user_id': 'user-1', 'price': 250, 'id': 'g1'}


@pytest.mark.asyncio
async def test_update_of_other_users_document_is_denied(service, manager):
    doc_ref = manager.db.collection.return_value.document.return_value
    doc_ref.get.return_value = make_snapshot('g1', {'user_id': 'user-2'})

    with pytest.raises(DatabaseError) as exc_info:
        await service.update('games', 'g1', {'price': 1})

    assert exc_info.value.error_code == 'PERMISSION_DENIED'
    doc_ref.update.assert_not_called()


@pytest.mark.asyncio
async def test_delete_of_missing_document(service, manager):
    doc_ref = manager.db.collection.return_value.document.return_value
    doc_ref.get.return_value = make_snapshot('g1', None, exists=False)

    with pytest.raises(DatabaseError) as exc_info:
        await service.delete('games', 'g1')

    assert exc_info.value.error_code == 'NOT_FOUND'


@pytest.mark.asyncio
async def test_get_hides_other_users_documents(service, manager):
    doc_ref = manager.db.collection.return_value.document.return_value
    doc_ref.get.return_value = make_snapshot('g1', {'user_id': 'user-2'})
    assert await service.get('games', 'g1') is None

    doc_ref.get.return_value = make_snapshot('g1', {'user_id': 'user-1', 'title': 'Hades'})
    assert (await service.get('games', 'g1'))['title'] == 'Hades'


@pytest.mark.asyncio
async def test_backend_errors_are_classified(service, manager):
    manager.db.collection.return_value.where.side_effect = google_exceptions.ServiceUnavailable('offline')
    with pytest.raises(NetworkError) as exc_info:
        await service.list('games')
    assert exc_info.value.error_code == 'UNAVAILABLE'

    manager.db.collection.return_value.where.side_effect = google_exceptions.PermissionDenied('rules')
    with pytest.raises(DatabaseError) as exc_info:
        await service.list('games')
    assert exc_info.value.error_code == 'PERMISSION_DENIED'


@pytest.mark.asyncio
async def test_list_orders_results(service, manager):
    query = manager.db.collection.return_value.where.return_value
    query.order_by.return_value.stream.return_value = [
        make_snapshot('g2', {'title': 'New'}),
        make_snapshot('g1', {'title': 'Old'}),
    ]

    records = await service.list('games', order_by='purchase_date', descending=True)

    assert [record['id'] for record in records] == ['g2', 'g1']
    field, kwargs = query.order_by.call_args[0][0], query.order_by.call_args[1]
    assert field == 'purchase_date'
    assert kwargs['direction'] == 'DESCENDING'


@pytest.mark.asyncio
async def test_subscription_skips_initial_snapshot(service, manager):
    query = manager.db.collection.return_value.where.return_value
    changes = []

    unsubscribe = service.subscribe_to_changes('games', lambda: changes.append(1))
    on_snapshot = query.on_snapshot.call_args[0][0]

    on_snapshot([], [], None)
    on_snapshot([], [], None)
    await asyncio.sleep(0)

    assert changes == [1]
    assert unsubscribe is query.on_snapshot.return_value.unsubscribe


@pytest.mark.asyncio
async def test_firestore_calls_leave_event_loop_free(service, manager):
    doc_ref = manager.db.collection.return_value.document.return_value
    doc_ref.id = 'g1'
    doc_ref.set.side_effect = lambda data: time.sleep(0.2)
    ticks = 0

    async def tick():
        nonlocal ticks
        while True:
            ticks += 1
            await asyncio.sleep(0.01)

    ticker = asyncio.create_task(tick())
    try:
        await service.create('games', {'title': 'Hades'})
    finally:
        ticker.cancel()

    assert ticks > 1
