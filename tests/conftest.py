import pytest

from mocks.firebase_service import MockFirebaseService
from rakgame.core.repositories import GameRepository, SellerRepository
from rakgame.sync.connectivity import ConnectivityObserver
from rakgame.sync.local_storage import LocalStorage
from rakgame.sync.queue import SyncQueue
from rakgame.ui.notifications import Notifier


@pytest.fixture
def storage_path(tmp_path):
    return tmp_path / 'local_storage.json'


@pytest.fixture
def storage(storage_path):
    return LocalStorage(storage_path)


@pytest.fixture
def remote():
    return MockFirebaseService()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def queue(storage, remote):
    return SyncQueue(storage, remote)


@pytest.fixture
def connectivity(queue, notifier):
    return ConnectivityObserver(queue, notifier, settle_delay=0)


@pytest.fixture
def sellers(remote, queue, connectivity, notifier):
    return SellerRepository(remote, queue, connectivity, notifier)


@pytest.fixture
def games(remote, queue, connectivity, notifier, sellers):
    repository = GameRepository(remote, queue, connectivity, notifier, sellers=sellers)
    connectivity.add_reconnect_listener(sellers.on_reconnected)
    connectivity.add_reconnect_listener(repository.on_reconnected)
    return repository


@pytest.fixture
def game_fields():
    return {
        'title': 'Zelda: Tears of the Kingdom',
        'platform': 'Switch',
        'type': 'Disc',
        'price': 1590,
        'purchase_date': '2024-05-12',
    }
