"""
bitFlyer

HTTP and WebSocket access to bitFlyer Lightning through the Client facade.
There is no Exchange implementation; use raw calls:

    ticker = await client.get("/v1/ticker", {"product_code": "BTC_JPY"}, [BitflyerOption.default()])
    balance = await client.get_no_query("/v1/me/getbalance", [BitflyerOption.http_auth(True)])
"""

from exchanges.bitflyer.options import BitflyerHttpUrl, BitflyerOption, BitflyerOptions, BitflyerWsUrl

__all__ = ["BitflyerOption", "BitflyerOptions", "BitflyerHttpUrl", "BitflyerWsUrl"]
