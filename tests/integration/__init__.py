"""Integration tests for pygree library.

These tests talk to real air conditioners on the local network. They are
marked with @pytest.mark.integration and skipped by default.

To run integration tests:
    pytest tests/integration -v -m integration

Environment variables (in .env at the project root):
    GREE_BROADCAST_ADDRESS: Broadcast address of the segment the units are on
    GREE_TEST_MAC: Mac of the unit to control (optional, defaults to the first found)
    GREE_ALLOW_WRITES: Set to 1 to run tests that change device settings
"""
