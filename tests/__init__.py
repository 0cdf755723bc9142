"""
Test Suite

Contains unit tests for the unified exchange client.

Structure:
- tests/unit/: Tests for individual components (signing, dispatch, handlers, WebSocket manager)

Uses pytest with pytest-asyncio for testing async functionality.
"""
