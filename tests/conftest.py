"""
Shared fixtures for the CLIPKit demo tests.

The encoders here are fakes with the same call signatures as the CLIP
encoders, so no model bundle is ever downloaded or loaded.
"""

import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).parent.parent))

from server.loader import LoadResult
from server.session import DemoSession


class FakeImageEncoder:
    """Maps an image to a vector built from its mean RGB color."""

    kind = "image"
    dimension = 3

    def __init__(self):
        self.calls = []

    def encode(self, image, desired_size=(224, 224)):
        self.calls.append(desired_size)
        rgb = np.asarray(image.convert("RGB"), dtype=np.float32).reshape(-1, 3)
        return rgb.mean(axis=0) / 255.0


class FakeTextEncoder:
    """Maps color words to fixed vectors in the same RGB space."""

    kind = "text"
    dimension = 3

    VECTORS = {
        "red": [1.0, 0.0, 0.0],
        "green": [0.0, 1.0, 0.0],
        "blue": [0.0, 0.0, 1.0],
        "magenta": [1.0, 0.0, 1.0],
        "nothing": [0.0, 0.0, 0.0],
    }

    def encode(self, text):
        return np.array(self.VECTORS.get(text, [0.3, 0.3, 0.3]), dtype=np.float32)


@pytest.fixture
def red_image():
    return Image.new("RGB", (64, 48), (255, 0, 0))


@pytest.fixture
def loaded_session():
    session = DemoSession()
    session.attach(LoadResult(kind="image", path="fake/image", loaded=True, encoder=FakeImageEncoder()))
    session.attach(LoadResult(kind="text", path="fake/text", loaded=True, encoder=FakeTextEncoder()))
    return session
