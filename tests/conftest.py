"""Shared fixtures.

Qt tests run on the offscreen platform so the suite works without a display.
"""

import io
import os

import pytest
from PIL import Image

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from quickcrop.image_io import SourceFile  # noqa: E402
from quickcrop.models import ImageItem  # noqa: E402
from quickcrop.session import Session  # noqa: E402


def image_bytes(w: int, h: int, fmt: str = "PNG", mode: str = "RGB", color=(200, 40, 40)) -> bytes:
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    buf = io.BytesIO()
    Image.new(mode, (w, h), color).save(buf, fmt)
    return buf.getvalue()


def image_source(name: str, w: int = 40, h: int = 30, **kwargs) -> SourceFile:
    return SourceFile(name=name, data=image_bytes(w, h, **kwargs))


def make_item(natural_w: int, natural_h: int, handle=None, item_id: str = "item") -> ImageItem:
    return ImageItem(id=item_id, name=item_id, natural_width=natural_w, natural_height=natural_h, handle=handle)


@pytest.fixture
def session():
    s = Session()
    yield s
    s.reset()
