import os
import sys
from pathlib import Path

import pytest

from clipforge.media.service import set_media_service
from clipforge.video_render.service import set_render_service
from clipforge.video_timeline.service import set_timeline_service

# Ensure repo root on sys.path for imports from anywhere in tests tree.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("CLIPFORGE_FONT_PATH", "/tmp/clipforge-test-font.ttf")


@pytest.fixture(autouse=True)
def _fresh_services():
    set_media_service(None)
    set_timeline_service(None)
    set_render_service(None)
    yield
    set_media_service(None)
    set_timeline_service(None)
    set_render_service(None)
