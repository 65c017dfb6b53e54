"""Loads welcome backgrounds and fonts once at startup into an immutable cache."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from PIL import Image, ImageFont, UnidentifiedImageError

from kirby.exceptions import AssetLoadError
from kirby.util.logger import get_logger

logger = get_logger("asset_cache")

IMAGES_SUBDIR = "images"
FONTS_SUBDIR = "fonts"
LARGE_FONT_SIZE = 40
SMALL_FONT_SIZE = 25
LARGE_SUFFIX = "Large"
SMALL_SUFFIX = "Small"


def logical_name(filename: str) -> str:
    """
    Strip the ordering prefix and the extension from an asset filename.

    >>> logical_name("03-beach.png")
    'beach'
    >>> logical_name("1-2-noto.sans.ttf")
    'noto'
    """
    without_prefix = filename[filename.rfind("-") + 1:]
    dot = without_prefix.find(".")
    return without_prefix if dot == -1 else without_prefix[:dot]


def font_key(family: str, large: bool) -> str:
    return family + (LARGE_SUFFIX if large else SMALL_SUFFIX)


def _list_files(directory: Path) -> List[Path]:
    if not directory.is_dir():
        raise AssetLoadError(f"Asset directory {directory} does not exist", path=str(directory))
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise AssetLoadError(f"Failed to read directory {directory}: {exc}", path=str(directory)) from exc
    return [p for p in entries if p.is_file() and not p.name.startswith(".")]


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise AssetLoadError(f"Failed to read file {path}: {exc}", path=str(path)) from exc


def _decode_image(path: Path) -> Image.Image:
    data = _read_bytes(path)
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise AssetLoadError(f"Failed to decode {path}: {exc}", path=str(path)) from exc


def _parse_font(path: Path) -> Tuple[ImageFont.FreeTypeFont, ImageFont.FreeTypeFont]:
    data = _read_bytes(path)
    try:
        large = ImageFont.truetype(BytesIO(data), LARGE_FONT_SIZE)
        small = ImageFont.truetype(BytesIO(data), SMALL_FONT_SIZE)
    except (OSError, ValueError) as exc:
        raise AssetLoadError(f"Failed to parse font {path}: {exc}", path=str(path)) from exc
    return large, small


@dataclass(frozen=True)
class AssetCache:
    """
    Background images and font faces shared by every render.

    Built once by :meth:`load` and never modified afterwards. The mappings
    are read-only views; callers that draw on an image must copy it first.

    Attributes:
        images: Logical name to RGBA background.
        fonts: ``<family>Large`` / ``<family>Small`` to font face.
        image_names: Image names in load order.
        font_families: Font family names in load order.
    """

    images: Mapping[str, Image.Image]
    fonts: Mapping[str, ImageFont.FreeTypeFont]
    image_names: Tuple[str, ...]
    font_families: Tuple[str, ...]

    @classmethod
    def load(cls, directory: Path) -> "AssetCache":
        """
        Load every image and font below ``directory``.

        Files are read in filename order, so the ``<ordinal>-`` prefix decides
        the order of ``image_names`` and ``font_families``.

        Raises:
            AssetLoadError: On any missing directory, unreadable or undecodable
                file, or two files sharing a logical name. A partial cache is
                never returned.
        """
        directory = Path(directory)
        images: Dict[str, Image.Image] = {}
        fonts: Dict[str, ImageFont.FreeTypeFont] = {}
        families: List[str] = []

        for path in _list_files(directory / IMAGES_SUBDIR):
            name = logical_name(path.name)
            if name in images:
                raise AssetLoadError(f"Duplicate image name {name!r} at {path}", path=str(path))
            images[name] = _decode_image(path)
            logger.info("[ASSET CACHE] Loaded image %s as %r", path, name)

        for path in _list_files(directory / FONTS_SUBDIR):
            name = logical_name(path.name)
            if name in families:
                raise AssetLoadError(f"Duplicate font name {name!r} at {path}", path=str(path))
            fonts[font_key(name, True)], fonts[font_key(name, False)] = _parse_font(path)
            families.append(name)
            logger.info("[ASSET CACHE] Loaded font %s as %r", path, name)

        logger.info(
            "[ASSET CACHE] Loaded %d image(s) and %d font famil%s from %s",
            len(images), len(families), "y" if len(families) == 1 else "ies", directory,
        )
        return cls(
            images=MappingProxyType(images),
            fonts=MappingProxyType(fonts),
            image_names=tuple(images),
            font_families=tuple(families),
        )
