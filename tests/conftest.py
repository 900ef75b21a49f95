import io
import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `meter.*`, `state.*`, `tracker.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A small landscape photo-like image encoded as JPEG."""
    from PIL import Image

    im = Image.new("RGB", (64, 32), color=(200, 180, 40))
    buf = io.BytesIO()
    im.save(buf, format="JPEG")
    return buf.getvalue()
