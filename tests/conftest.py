"""
Pytest configuration and fixtures for Mockup Studio tests.

Provides shared fixtures, test configuration, and synthetic images
for running tests across the entire application.
"""

import io
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pytest
import yaml
from PIL import Image, ImageDraw

from mockup_studio import create_app
from mockup_studio.config import AppConfig, set_config
from mockup_studio.models import EnvironmentAsset


WALL_COLOR = (200, 190, 180)


def make_image_bytes(size: Tuple[int, int], color=(120, 80, 60), fmt: str = 'PNG', mode: str = 'RGB') -> bytes:
    """Encode a solid image of `size` in `fmt`."""
    if mode == 'RGBA' and len(color) == 3:
        color = tuple(color) + (255,)
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def make_artwork_bytes(size: Tuple[int, int] = (1000, 1500), fmt: str = 'PNG') -> bytes:
    """Artwork with a diagonal gradient and a dark cross, so crops and resizes are visible."""
    width, height = size
    xs = np.linspace(0, 255, width, dtype=np.float32)[None, :]
    ys = np.linspace(0, 255, height, dtype=np.float32)[:, None]
    rgb = np.stack(np.broadcast_arrays(xs, ys, np.full_like(xs, 128.0)), axis=-1)
    image = Image.fromarray(rgb.astype(np.uint8), 'RGB')
    draw = ImageDraw.Draw(image)
    draw.line([(0, 0), (width - 1, height - 1)], fill=(10, 10, 10), width=max(1, width // 50))
    draw.line([(width - 1, 0), (0, height - 1)], fill=(10, 10, 10), width=max(1, width // 50))
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


class FakeCatalog:
    """In-memory AssetCatalog that records what the adapters hand it."""

    def __init__(self):
        self.saved: List[Tuple[EnvironmentAsset, str, Optional[str]]] = []
        self.usage = {}

    def save_environment(self, asset: EnvironmentAsset, slug: str, user_id: Optional[str] = None) -> str:
        self.saved.append((asset, slug, user_id))
        return asset.environment_id or slug

    def record_usage(self, environment_id: str) -> None:
        self.usage[environment_id] = self.usage.get(environment_id, 0) + 1


@pytest.fixture(autouse=True)
def test_config(tmp_path):
    """Fresh default configuration for every test, logging into the temp dir."""
    config = AppConfig(LOG_FILE=str(tmp_path / 'logs' / 'app.log'))
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture(scope='session')
def artwork_bytes() -> bytes:
    """1000x1500 PNG artwork (2:3, i.e. a 24x36 in print)."""
    return make_artwork_bytes((1000, 1500))


@pytest.fixture(scope='session')
def square_artwork_bytes() -> bytes:
    return make_artwork_bytes((600, 600))


@pytest.fixture(scope='session')
def environment_bytes() -> bytes:
    """1792x1024 JPEG room with a flat wall."""
    return make_image_bytes((1792, 1024), WALL_COLOR, fmt='JPEG')


@pytest.fixture(scope='session')
def square_environment_bytes() -> bytes:
    return make_image_bytes((1024, 1024), WALL_COLOR, fmt='PNG')


@pytest.fixture
def environment(environment_bytes) -> EnvironmentAsset:
    return EnvironmentAsset(data=environment_bytes, name="Test wall")


@pytest.fixture
def template_dir(tmp_path) -> Path:
    """Templates directory with one real image and a catalog that also lists a missing one."""
    templates = tmp_path / 'environments'
    templates.mkdir()
    (templates / 'test-loft.png').write_bytes(make_image_bytes((1792, 1024), WALL_COLOR))

    catalog = {
        'templates': [
            {
                'id': 'test-loft',
                'name': 'Test Loft',
                'category': 'loft',
                'file': 'test-loft.png',
                'orientation': 'landscape',
                'wall_color': 'warm grey',
                'lighting': 'north light',
                'tags': ['industrial'],
                'wall_region': [128, 64, 1536, 700],
            },
            {
                'id': 'missing-image',
                'name': 'A Missing Room',
                'category': 'bedroom',
                'file': 'not-there.jpg',
            },
        ]
    }
    (tmp_path / 'environments.yaml').write_text(yaml.safe_dump(catalog), encoding='utf-8')
    return templates


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def app(tmp_path, template_dir, test_config):
    """Create and configure a test Flask application."""
    app = create_app('testing', {
        'SECRET_KEY': 'test-key',
        'LOG_FILE': str(tmp_path / 'logs' / 'app.log'),
        'TEMPLATES_DIR': str(template_dir),
        'TEMPLATE_CATALOG': str(tmp_path / 'environments.yaml'),
        'OPENAI_API_KEY': None,
        'MAX_WORKERS': 2,
        'REQUEST_TIMEOUT_S': 30.0,
    })
    app.config['TESTING'] = True

    yield app

    app.extensions['mockup_pool'].shutdown()


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()
