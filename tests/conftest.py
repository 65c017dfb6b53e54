"""
Pytest configuration and fixtures for Kirby tests.
"""

import os
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

# Keep test runs from writing into the project's logs/ directory
os.environ.setdefault("KIRBY_LOGS_DIR", tempfile.mkdtemp(prefix="kirby-test-logs-"))

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import pytest
import pytest_asyncio
from PIL import Image, features

from kirby.database.db_connection import ConnectionPool
from kirby.datatypes.welcome_datatypes import WelcomeContext
from kirby.settings.guild_welcome_store import GuildWelcomeStore
from kirby.util.asset_cache import AssetCache

IMAGE_NAMES = ("original", "grey", "sky")
IMAGE_COLORS = {
    "original": (44, 94, 154),
    "grey": (54, 57, 63),
    "sky": (135, 206, 235),
}


BUNDLED_FONT = Path(__file__).parent.parent / "assets" / "fonts" / "1-dejavu.ttf"


@pytest.fixture(scope="session")
def ttf_bytes() -> bytes:
    """The TrueType font bundled with the default assets."""
    if not features.check("freetype2"):
        pytest.skip("Pillow was built without FreeType support")
    return BUNDLED_FONT.read_bytes()


@pytest.fixture
def make_asset_dir(tmp_path: Path, ttf_bytes: bytes):
    """Build an assets/ tree with the given image and font names."""

    def _make(images=IMAGE_NAMES, fonts=("dejavu",), root: Path | None = None) -> Path:
        root = root or tmp_path / "assets"
        (root / "images").mkdir(parents=True, exist_ok=True)
        (root / "fonts").mkdir(parents=True, exist_ok=True)
        for index, name in enumerate(images, start=1):
            color = IMAGE_COLORS.get(name, (10 * index, 20, 30))
            Image.new("RGB", (64, 32), color).save(root / "images" / f"{index}-{name}.png")
        for index, name in enumerate(fonts, start=1):
            (root / "fonts" / f"{index}-{name}.ttf").write_bytes(ttf_bytes)
        return root

    return _make


@pytest.fixture
def assets(make_asset_dir) -> AssetCache:
    return AssetCache.load(make_asset_dir())


@pytest.fixture
def welcome_context() -> WelcomeContext:
    return WelcomeContext(
        mention="@bob",
        username="bob",
        discriminated_name="bob#0420",
        nickname="Bobby",
        avatar_url="",
        guild_name="Foo",
        member_count=12,
    )


@pytest_asyncio.fixture
async def store(tmp_path: Path):
    """An open store over a fresh database file."""
    pool = ConnectionPool(tmp_path / "kirby.db", size=3, acquire_timeout=2.0)
    welcome_store = GuildWelcomeStore(pool, image_keys=IMAGE_NAMES)
    await welcome_store.open()
    yield welcome_store
    await welcome_store.close()


class FakeMember(SimpleNamespace):
    """Member-like object with the attributes Kirby reads."""

    def __str__(self) -> str:
        return f"{self.name}#0420"


@pytest.fixture
def fake_member():
    def _make(guild_id=10, *, channel=None, member_id=42, bot=False, manage_guild=True):
        guild = SimpleNamespace(
            id=guild_id,
            name="Foo",
            member_count=12,
            get_channel=MagicMock(return_value=channel),
        )
        return FakeMember(
            id=member_id,
            bot=bot,
            name="bob",
            display_name="Bobby",
            mention=f"<@{member_id}>",
            display_avatar=SimpleNamespace(url=""),
            guild=guild,
            guild_permissions=SimpleNamespace(manage_guild=manage_guild),
        )

    return _make


@pytest.fixture
def fake_channel():
    return SimpleNamespace(id=555, send=AsyncMock(return_value=SimpleNamespace(id=1)))
