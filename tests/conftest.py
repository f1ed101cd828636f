"""Pytest configuration for the collector test suite."""

import os
import pathlib

import pytest

# Ensure test environment variables are set before any imports
os.environ.setdefault("CEILOMETER_LOG_LEVEL", "warning")
os.environ.setdefault("CEILOMETER_ES_ENDPOINT", "http://localhost:9200")

JSON_FILES = pathlib.Path(__file__).parent / "json_files"


@pytest.fixture
def load_json():
    """Read a fixture message body as raw bytes."""
    def _load(name: str) -> bytes:
        return (JSON_FILES / name).read_bytes()
    return _load
