"""Pytest configuration and shared fixtures."""

import pytest

# Load environment variables from .env file at test startup
from dotenv import load_dotenv
load_dotenv()

# Import all fixtures from the core fixture modules
pytest_plugins = [
    "tests.fixtures.core.scenarios",
    "tests.fixtures.core.sessions",
    "tests.fixtures.core.events",
    "tests.fixtures.core.managers",
]
