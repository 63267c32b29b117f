"""Pytest configuration for all tests."""

import os

# Keep a developer's local .env or shell settings out of the test run
for _name in list(os.environ):
    if _name.startswith("RELAY_"):
        del os.environ[_name]
