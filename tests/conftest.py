"""Shared pytest fixtures for all tests."""

import io

import pytest
from PIL import Image

from fragments_service.fragments import FragmentService
from fragments_service.fragments.adapters import InMemoryStorage


@pytest.fixture
def storage():
    """Empty in-memory storage gateway."""
    return InMemoryStorage()


@pytest.fixture
def service(storage):
    """FragmentService backed by in-memory storage and the Pillow codec."""
    return FragmentService(storage=storage)


@pytest.fixture
def png_bytes():
    """A 10x10 opaque red PNG image."""
    buf = io.BytesIO()
    Image.new("RGBA", (10, 10), (255, 0, 0, 255)).save(buf, format="PNG")
    return buf.getvalue()
