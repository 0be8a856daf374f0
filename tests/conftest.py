"""Pytest configuration and fixtures for linescape tests."""

import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Add repository root to path for imports
root_path = Path(__file__).parent.parent
sys.path.insert(0, str(root_path))


@pytest.fixture
def make_png(tmp_path):
    """Write a PNG from a 2D (grey) or 3D (RGB/RGBA) uint8 array."""

    def _make(pixels, name="input.png"):
        arr = np.asarray(pixels, dtype=np.uint8)
        path = tmp_path / name
        Image.fromarray(arr).save(path)
        return path

    return _make


@pytest.fixture
def gradient_png(make_png):
    """8x6 grey image: row r holds value 40*r in every column, column 0 is black."""
    pixels = np.zeros((6, 8), dtype=np.uint8)
    for r in range(6):
        pixels[r, 1:] = 40 * r
    return make_png(pixels)
