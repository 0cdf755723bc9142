"""
Endpoint Descriptors

Each exchange enumerates its base URLs as an EndpointUrl enum. Members carry
a mainnet URL and, when the exchange offers one, a testnet URL:

    class BybitHttpUrl(EndpointUrl):
        BYBIT = ("https://api.bybit.com", "https://api-testnet.bybit.com")
        BYTICK = ("https://api.bytick.com",)
        NONE = ("",)

Members are numbered automatically so two descriptors that share a URL stay
distinct members instead of becoming aliases.
"""

from enum import Enum
from typing import Optional

from core.errors import MissingTestnetError


class EndpointUrl(Enum):
    """Base class for per-exchange base URL enums."""

    def __new__(cls, mainnet: str, testnet: Optional[str] = None):
        obj = object.__new__(cls)
        obj._value_ = len(cls.__members__) + 1
        obj.mainnet = mainnet
        obj.testnet = testnet
        return obj

    def url_mainnet(self) -> str:
        return self.mainnet

    def url_testnet(self) -> Optional[str]:
        return self.testnet

    def url(self, is_test: bool) -> str:
        """
        Select the mainnet or testnet URL.

        Raises:
            MissingTestnetError: is_test is set and the descriptor has no testnet
        """
        if not is_test:
            return self.mainnet
        if self.testnet is None:
            raise MissingTestnetError(self.mainnet)
        return self.testnet
