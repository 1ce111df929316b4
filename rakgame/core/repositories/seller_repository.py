from rakgame.core.models import Seller
from rakgame.core.repository import OptimisticRepository


class SellerRepository(OptimisticRepository[Seller]):
    """Sellers of the signed-in user, kept sorted by name"""

    model = Seller
    record_kind = 'sellers'
    label = 'Seller'
    order_by = 'name'

    def _sort(self) -> None:
        self._records.sort(key=lambda seller: seller.name.lower())
