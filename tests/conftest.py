"""Test configuration."""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pytest import Config

from geopicker.core.logging import configure_logging

project_dir = Path(__file__).parent.parent

# Test-specific configuration
env_test_file = project_dir / ".env.test"
if env_test_file.exists():
    load_dotenv(env_test_file, override=True)

os.environ["TESTING"] = "true"

pytest_plugins: List[str] = [
    "tests.fixtures.geocoding",
    "tests.fixtures.api",
]


def pytest_configure(config: Config) -> None:
    """Configure pytest.

    Args:
        config: Pytest configuration object
    """
    # Configure logging for test environment
    configure_logging(testing=True)
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
