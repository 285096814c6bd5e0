"""Shared fixtures."""

import pytest

from mindsync.config import Settings
from mindsync.models import Size


@pytest.fixture
def settings():
    """Default settings with a short debounce and no .env lookup."""
    return Settings(debounce_ms=20, _env_file=None)


def with_size(node, width, height):
    """Copy of `node` carrying a measured size."""
    return node.model_copy(update={"measured_size": Size(width=width, height=height)})
