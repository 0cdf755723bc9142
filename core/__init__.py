"""
Core Package

Contains the exchange-agnostic core logic including:
- Client: facade that merges option bags and dispatches HTTP and WebSocket calls
- http / ws: request dispatch with retries, and the reconnecting WebSocket connection
- options / urls: option bags and base URL descriptors shared by all exchanges
- errors: the exception taxonomy every exchange maps onto
- Exchange: abstract base class of the high-level venue operations
- Schemas: Pydantic models for normalized data (Pair, Symbol, Kline, Balances, ...)
"""
