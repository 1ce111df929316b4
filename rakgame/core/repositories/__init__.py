from .game_repository import GameRepository
from .seller_repository import SellerRepository

__all__ = ['GameRepository', 'SellerRepository']
