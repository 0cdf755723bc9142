"""
Binance USD-M Orders and Income

Request and response models for the signed trading endpoints:
    - POST /fapi/v1/order - New order
    - GET /fapi/v1/income - Income history

Numbers are sent in plain decimal notation; Binance rejects "1e-05".
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.schemas import Pair


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    LIMIT = "LIMIT"
    MARKET = "MARKET"
    STOP = "STOP"
    STOP_MARKET = "STOP_MARKET"
    TAKE_PROFIT = "TAKE_PROFIT"
    TAKE_PROFIT_MARKET = "TAKE_PROFIT_MARKET"
    TRAILING_STOP_MARKET = "TRAILING_STOP_MARKET"


class PositionSide(str, Enum):
    BOTH = "BOTH"
    LONG = "LONG"
    SHORT = "SHORT"


class TimeInForce(str, Enum):
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"
    GTX = "GTX"


class WorkingType(str, Enum):
    MARK_PRICE = "MARK_PRICE"
    CONTRACT_PRICE = "CONTRACT_PRICE"


class IncomeType(str, Enum):
    TRANSFER = "TRANSFER"
    WELCOME_BONUS = "WELCOME_BONUS"
    REALIZED_PNL = "REALIZED_PNL"
    FUNDING_FEE = "FUNDING_FEE"
    COMMISSION = "COMMISSION"
    INSURANCE_CLEAR = "INSURANCE_CLEAR"
    REFERRAL_KICKBACK = "REFERRAL_KICKBACK"
    COMMISSION_REBATE = "COMMISSION_REBATE"
    API_REBATE = "API_REBATE"
    CONTEST_REWARD = "CONTEST_REWARD"
    CROSS_COLLATERAL_TRANSFER = "CROSS_COLLATERAL_TRANSFER"
    OPTIONS_PREMIUM_FEE = "OPTIONS_PREMIUM_FEE"
    OPTIONS_SETTLE_PROFIT = "OPTIONS_SETTLE_PROFIT"
    INTERNAL_TRANSFER = "INTERNAL_TRANSFER"
    AUTO_EXCHANGE = "AUTO_EXCHANGE"
    DELIVERED_SETTELMENT = "DELIVERED_SETTELMENT"
    COIN_SWAP_DEPOSIT = "COIN_SWAP_DEPOSIT"
    COIN_SWAP_WITHDRAW = "COIN_SWAP_WITHDRAW"
    POSITION_LIMIT_INCREASE_FEE = "POSITION_LIMIT_INCREASE_FEE"


def _plain(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return format(Decimal(str(value)), "f")


def _flag(value: Optional[bool]) -> Optional[str]:
    if value is None:
        return None
    return "TRUE" if value else "FALSE"


class OrderRequest(BaseModel):
    """
    A new USD-M futures order.

    Example:
        >>> OrderRequest(pair=Pair.parse("BTC-USDT"), side=OrderSide.BUY, order_type=OrderType.LIMIT,
        ...              qty=0.001, price=30000, time_in_force=TimeInForce.GTC)
    """

    pair: Pair
    side: OrderSide
    order_type: OrderType
    position_side: Optional[PositionSide] = None
    time_in_force: Optional[TimeInForce] = None
    qty: Optional[float] = Field(default=None, gt=0)
    price: Optional[float] = Field(default=None, gt=0)
    stop_price: Optional[float] = Field(default=None, gt=0)
    reduce_only: Optional[bool] = None
    close_position: Optional[bool] = None
    activation_price: Optional[float] = Field(default=None, gt=0)
    callback_rate: Optional[float] = Field(default=None, gt=0)
    working_type: Optional[WorkingType] = None
    price_protect: Optional[bool] = None
    new_client_order_id: Optional[str] = None

    @model_validator(mode="after")
    def _limit_needs_price(self) -> "OrderRequest":
        if self.order_type is OrderType.LIMIT and self.price is None:
            raise ValueError("a LIMIT order needs a price")
        return self

    def to_params(self) -> Dict[str, Optional[str]]:
        """Form parameters in Binance's spelling; None values are left out on encoding."""
        return {
            "symbol": self.pair.fmt_binance(),
            "side": self.side.value,
            "type": self.order_type.value,
            "positionSide": self.position_side.value if self.position_side else None,
            "timeInForce": self.time_in_force.value if self.time_in_force else None,
            "quantity": _plain(self.qty),
            "price": _plain(self.price),
            "stopPrice": _plain(self.stop_price),
            "reduceOnly": _flag(self.reduce_only),
            "closePosition": _flag(self.close_position),
            "activationPrice": _plain(self.activation_price),
            "callbackRate": _plain(self.callback_rate),
            "workingType": self.working_type.value if self.working_type else None,
            "priceProtect": _flag(self.price_protect),
            "newClientOrderId": self.new_client_order_id,
        }


class OrderResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: int = Field(alias="orderId")
    client_order_id: str = Field(alias="clientOrderId")
    symbol: str
    side: OrderSide
    position_side: PositionSide = Field(alias="positionSide")
    order_type: OrderType = Field(alias="type")
    status: str
    time_in_force: TimeInForce = Field(alias="timeInForce")
    price: float
    avg_price: float = Field(default=0.0, alias="avgPrice")
    orig_qty: float = Field(alias="origQty")
    executed_qty: float = Field(alias="executedQty")
    cum_qty: Optional[float] = Field(default=None, alias="cumQty")
    cum_quote: float = Field(default=0.0, alias="cumQuote")
    stop_price: Optional[float] = Field(default=None, alias="stopPrice")
    reduce_only: bool = Field(default=False, alias="reduceOnly")
    close_position: bool = Field(default=False, alias="closePosition")
    activation_price: Optional[float] = Field(default=None, alias="activatePrice")
    price_rate: Optional[float] = Field(default=None, alias="priceRate")
    working_type: Optional[WorkingType] = Field(default=None, alias="workingType")
    price_protect: bool = Field(default=False, alias="priceProtect")
    price_match: Optional[str] = Field(default=None, alias="priceMatch")
    self_trade_prevention_mode: Optional[str] = Field(default=None, alias="selfTradePreventionMode")
    good_till_date: Optional[int] = Field(default=None, alias="goodTillDate")
    update_time: int = Field(alias="updateTime")


class IncomeRecord(BaseModel):
    """
    One row of the futures income history.

    income_type stays a plain string; Binance adds new kinds without notice.
    """

    model_config = ConfigDict(populate_by_name=True)

    symbol: str = ""
    income_type: str = Field(alias="incomeType")
    income: float
    asset: str
    info: str = ""
    time: int
    tran_id: int = Field(alias="tranId")
    trade_id: str = Field(default="", alias="tradeId")

    @field_validator("trade_id", mode="before")
    @classmethod
    def _trade_id_as_str(cls, value):
        return "" if value is None else str(value)
