import logging
import os
from typing import Any, Dict, Optional

from config.environment import Environment
from rakgame.core.firebase_manager import FirebaseManager
from rakgame.core.repositories import GameRepository, SellerRepository
from rakgame.services.export import ExportService
from rakgame.services.firebase import FirebaseService
from rakgame.services.storage import ImageStorageService
from rakgame.sync.connectivity import ConnectivityObserver
from rakgame.sync.local_storage import LocalStorage
from rakgame.sync.queue import SyncQueue
from rakgame.ui.notifications import Notifier

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Builds and holds the application's services.

    One container is created at startup and passed to whoever needs it; the
    Streamlit app caches it per process.
    """

    def __init__(
        self,
        manager: Optional[FirebaseManager] = None,
        remote=None,
        notifier: Optional[Notifier] = None,
        storage: Optional[LocalStorage] = None,
        online: bool = True
    ):
        self._services: Dict[str, Any] = {}
        self._initialize_services(manager, remote, notifier, storage, online)

    def _initialize_services(self, manager, remote, notifier, storage, online):
        """Initialize all services"""
        sync_settings = Environment.get_sync_settings()
        collections = Environment.get_collections()

        manager = manager or FirebaseManager()
        remote = remote or FirebaseService(manager)
        notifier = notifier or Notifier()
        storage = storage or LocalStorage(os.path.expanduser(sync_settings['storage_path']))

        queue = SyncQueue(
            storage,
            remote,
            collections={'games': collections['games'], 'sellers': collections['sellers']},
            queue_key=sync_settings['queue_key'],
            max_retries=sync_settings['max_retries']
        )
        connectivity = ConnectivityObserver(
            queue,
            notifier,
            settle_delay=sync_settings['settle_delay'],
            probe_url=sync_settings['probe_url'],
            probe_timeout=sync_settings['probe_timeout'],
            online=online
        )
        images = ImageStorageService(manager)
        sellers = SellerRepository(remote, queue, connectivity, notifier, collection=collections['sellers'])
        games = GameRepository(
            remote, queue, connectivity, notifier,
            collection=collections['games'],
            sellers=sellers,
            images=images,
            seller_collection=collections['sellers']
        )
        connectivity.add_reconnect_listener(sellers.on_reconnected)
        connectivity.add_reconnect_listener(games.on_reconnected)

        self._services['firebase_manager'] = manager
        self._services['firebase'] = remote
        self._services['notifier'] = notifier
        self._services['local_storage'] = storage
        self._services['sync_queue'] = queue
        self._services['connectivity'] = connectivity
        self._services['images'] = images
        self._services['sellers'] = sellers
        self._services['games'] = games
        self._services['export'] = ExportService(games, manager)
        logger.info("Services initialized")

    def get_service(self, service_name: str) -> Any:
        """Get a service by name"""
        if service_name not in self._services:
            raise ValueError(f"Service {service_name} not found")
        return self._services[service_name]

    @property
    def firebase_manager(self) -> FirebaseManager:
        return self.get_service('firebase_manager')

    @property
    def firebase(self) -> FirebaseService:
        return self.get_service('firebase')

    @property
    def notifier(self) -> Notifier:
        return self.get_service('notifier')

    @property
    def sync_queue(self) -> SyncQueue:
        return self.get_service('sync_queue')

    @property
    def connectivity(self) -> ConnectivityObserver:
        return self.get_service('connectivity')

    @property
    def sellers(self) -> SellerRepository:
        return self.get_service('sellers')

    @property
    def games(self) -> GameRepository:
        return self.get_service('games')

    @property
    def export(self) -> ExportService:
        return self.get_service('export')

    async def start(self) -> None:
        """Load both collections and subscribe to their changes; sellers first for the join"""
        await self.sellers.start()
        await self.games.start()

    def stop(self) -> None:
        self.games.stop()
        self.sellers.stop()
