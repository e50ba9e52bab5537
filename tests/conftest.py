"""Pytest configuration and fixtures."""
import numpy as np
import pytest


class FixedDraws:
    """Stand-in random source returning preset pixel indices for centroid seeding."""

    def __init__(self, indices):
        self.indices = list(indices)

    def integers(self, low, high, size=None):
        assert all(low <= i < high for i in self.indices)
        return np.array(self.indices[:size], dtype=np.intp)


def pixel_index(x, y, width):
    """Row-major index of (x, y) in a flattened image."""
    return y * width + x


def solid_image(width, height, color=(200, 50, 50, 255)):
    """RGBA uint8 image filled with one colour."""
    image = np.zeros((height, width, 4), dtype=np.uint8)
    image[...] = color
    return image


@pytest.fixture
def square_image():
    """100x100 red image with a 20x20 black square at (10, 10)."""
    image = solid_image(100, 100)
    image[10:30, 10:30] = (0, 0, 0, 255)
    return image


@pytest.fixture
def square_draws():
    """Seeds one centroid on the red background and one inside the square."""
    return FixedDraws([pixel_index(0, 0, 100), pixel_index(15, 15, 100)] + [0] * 6)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
