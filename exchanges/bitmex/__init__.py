"""
Bitmex Exchange

Bitmex is only used for its BVOL24H volatility index; none of the common
Exchange operations are implemented.

Endpoints Used:
    - GET /api/v1/trade?symbol=.BVOL24H - Index prints, newest first
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, field_validator

from core.exchange_interface import Exchange
from core.schemas import BvolPoint, ExchangeName
from core.utils.time import parse_iso
from exchanges.bitmex.options import BitmexHttpUrl, BitmexOption

BVOL_SYMBOL = ".BVOL24H"


class _TradeResponse(BaseModel):
    timestamp: datetime
    price: float
    symbol: str

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v):
        return parse_iso(v) if isinstance(v, str) else v


class Bitmex(Exchange):
    """
    Example:
        >>> async with Bitmex() as bitmex:
        ...     points = await bitmex.bvol(10)
    """

    name = ExchangeName.BITMEX
    option_class = BitmexOption

    async def bvol(self, limit: int) -> List[BvolPoint]:
        """
        Latest BVOL24H values.

        Args:
            limit: Number of points, newest first
        """
        rows: List[_TradeResponse] = await self.client.get(
            "/api/v1/trade",
            {"symbol": BVOL_SYMBOL, "count": limit, "reverse": "true"},
            [BitmexOption.default()],
            response_type=List[_TradeResponse],
        )
        return [BvolPoint(timestamp=r.timestamp, price=r.price) for r in rows]


__all__ = ["Bitmex", "BitmexOption", "BitmexHttpUrl"]
