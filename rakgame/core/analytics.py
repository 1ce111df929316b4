from dataclasses import dataclass, field
from typing import Dict, Iterable

import pandas as pd

from rakgame.core.models import Game

UNKNOWN_SELLER = 'Unknown'


@dataclass
class SpendingAnalytics:
    total: float = 0.0
    currency: str = 'THB'
    by_platform: Dict[str, float] = field(default_factory=dict)
    by_seller: Dict[str, float] = field(default_factory=dict)
    by_month: Dict[str, float] = field(default_factory=dict)
    game_count: int = 0


def games_to_dataframe(games: Iterable[Game]) -> pd.DataFrame:
    """One row per game with the columns the spending breakdowns need"""
    df = pd.DataFrame([{
        'title': game.title,
        'platform': game.platform,
        'price': game.price,
        'purchase_date': game.purchase_date,
        'seller': game.seller.name if game.seller else UNKNOWN_SELLER,
    } for game in games], columns=['title', 'platform', 'price', 'purchase_date', 'seller'])

    df['price'] = pd.to_numeric(df['price'], errors='coerce').fillna(0.0)
    df['purchase_date'] = pd.to_datetime(df['purchase_date'], errors='coerce')
    return df


def _sum_by(df: pd.DataFrame, column: str) -> Dict[str, float]:
    if df.empty:
        return {}
    return {str(key): float(value) for key, value in df.groupby(column)['price'].sum().items()}


def calculate_spending(games: Iterable[Game], currency: str = 'THB') -> SpendingAnalytics:
    """Total spending and its breakdown by platform, seller and purchase month"""
    df = games_to_dataframe(games)
    if df.empty:
        return SpendingAnalytics(currency=currency)

    dated = df.dropna(subset=['purchase_date']).copy()
    dated['month'] = dated['purchase_date'].dt.strftime('%Y-%m')

    return SpendingAnalytics(
        total=float(df['price'].sum()),
        currency=currency,
        by_platform=_sum_by(df, 'platform'),
        by_seller=_sum_by(df, 'seller'),
        by_month=_sum_by(dated, 'month'),
        game_count=len(df)
    )


def _chart_frame(values: Dict[str, float], label: str, by_amount: bool) -> pd.DataFrame:
    df = pd.DataFrame(list(values.items()), columns=[label, 'amount'])
    if by_amount:
        return df.sort_values('amount', ascending=False, kind='stable').reset_index(drop=True)
    return df.sort_values(label).reset_index(drop=True)


def platform_chart_data(analytics: SpendingAnalytics) -> pd.DataFrame:
    """Spending per platform, largest first"""
    return _chart_frame(analytics.by_platform, 'platform', by_amount=True)


def seller_chart_data(analytics: SpendingAnalytics) -> pd.DataFrame:
    """Spending per seller, largest first"""
    return _chart_frame(analytics.by_seller, 'seller', by_amount=True)


def monthly_chart_data(analytics: SpendingAnalytics) -> pd.DataFrame:
    """Spending per month, oldest first"""
    return _chart_frame(analytics.by_month, 'month', by_amount=False)
