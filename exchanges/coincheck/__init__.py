"""
Coincheck

HTTP and WebSocket access to Coincheck through the Client facade. There is
no Exchange implementation; use raw calls:

    rate = await client.get_no_query("/api/rate/btc_jpy", [CoincheckOption.default()])
"""

from exchanges.coincheck.options import CoincheckHttpUrl, CoincheckOption, CoincheckOptions, CoincheckWsUrl

__all__ = ["CoincheckOption", "CoincheckOptions", "CoincheckHttpUrl", "CoincheckWsUrl"]
