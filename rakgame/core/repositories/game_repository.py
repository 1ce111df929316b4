import logging
from typing import Any, Dict, List, Optional

from config.feature_flags import is_feature_enabled
from rakgame.core.duplicates import find_duplicates
from rakgame.core.error_handler import AppError
from rakgame.core.models import Game, Platform, Seller
from rakgame.core.repository import OptimisticRepository
from rakgame.services.storage import ImageStorageService, ImageUpload

logger = logging.getLogger(__name__)


class GameRepository(OptimisticRepository[Game]):
    """
    Games of the signed-in user, newest purchase first.

    Each game carries its seller record when one is known. The join uses the
    sellers fetched alongside the games, or the seller repository's current
    list for records created locally.
    """

    model = Game
    record_kind = 'games'
    label = 'Game'
    order_by = 'purchase_date'
    descending = True

    def __init__(
        self,
        remote,
        queue,
        connectivity,
        notifier,
        collection: Optional[str] = None,
        sellers=None,
        images: Optional[ImageStorageService] = None,
        seller_collection: str = 'sellers'
    ):
        super().__init__(remote, queue, connectivity, notifier, collection)
        self.sellers = sellers
        self.images = images
        self.seller_collection = seller_collection

    def _to_model(self, data: Dict[str, Any], sellers_by_id: Optional[Dict[str, Seller]] = None) -> Game:
        seller = None
        seller_id = data.get('seller_id')
        if seller_id:
            if sellers_by_id is not None and seller_id in sellers_by_id:
                seller = sellers_by_id[seller_id]
            elif self.sellers is not None:
                seller = self.sellers.get(seller_id)
        return Game.model_validate({**data, 'seller': seller})

    async def _fetch(self) -> List[Game]:
        seller_rows = await self.remote.list(self.seller_collection)
        sellers_by_id = {row['id']: Seller.from_dict(row) for row in seller_rows}
        rows = await self.remote.list(self.collection, order_by=self.order_by, descending=self.descending)
        return [self._to_model(row, sellers_by_id) for row in rows]

    async def _with_image(self, fields: Dict[str, Any], image: Optional[ImageUpload]) -> Dict[str, Any]:
        """Upload the cover image first when online; a failed upload keeps the old URL"""
        if image is None or self.images is None:
            return fields
        if not self._is_online() or not is_feature_enabled('image_upload'):
            logger.info("Skipping image upload while offline")
            return fields
        try:
            url = await self.images.upload_image(image)
        except AppError as e:
            self.notifier.report_error(e)
            return fields
        return {**fields, 'image_url': url}

    async def create(self, fields: Dict[str, Any], image: Optional[ImageUpload] = None) -> Game:
        return await super().create(await self._with_image(fields, image))

    async def update(self, record_id: str, fields: Dict[str, Any], image: Optional[ImageUpload] = None) -> Game:
        return await super().update(record_id, await self._with_image(fields, image))

    def find_duplicates(self, title: str, platform: Platform, exclude_id: Optional[str] = None) -> List[Game]:
        """Games already in the collection with the same title on the same platform"""
        return find_duplicates(title, platform, self._records, self.resolve_id(exclude_id) if exclude_id else None)
