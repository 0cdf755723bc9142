"""
Exchange Connectors Package

Each exchange has its own subfolder with:
- options.py: base URL descriptors, auth modes and the option bag
- api_client.py: RequestHandler (request signing, response/error decoding)
- ws_client.py: WsHandler (auth/subscribe frames, inbound frame classification)
- errors.py: exchange error codes mapped onto core.errors (where the venue has codes)
- __init__.py: the Exchange implementation, when the venue has one

Adding an exchange means adding a folder; the core never imports from here.
"""
