"""Avatar downloading and shaping for welcome images."""

from io import BytesIO

import requests
from PIL import Image, ImageDraw, ImageOps
from kirby.util.logger import get_logger

logger = get_logger("image_utils")

_DOWNLOAD_TIMEOUT = 5
_MAX_BYTES = 8 * 1024 * 1024


def download_image_to_pil(url: str) -> Image.Image | None:
    """
    Download an image from a URL and return it as an RGBA PIL Image.

    This function blocks the calling thread, so call it through
    ``asyncio.to_thread`` from the event loop.

    Args:
        url (str): The URL of the image to download.

    Returns:
        Image.Image | None: The decoded image, or None if the download or
            decoding fails. A missing avatar only costs the welcome image its
            picture, so failures are logged rather than raised.
    """
    if not url:
        return None

    try:
        logger.debug(f"[DOWNLOAD] Downloading image from {url}")
        response = requests.get(url, timeout=_DOWNLOAD_TIMEOUT)
        response.raise_for_status()
        if len(response.content) > _MAX_BYTES:
            logger.warning(f"[DOWNLOAD] Image at {url} exceeds {_MAX_BYTES} bytes, skipping")
            return None

        img = Image.open(BytesIO(response.content))
        img.load()
        return img.convert("RGBA")
    except requests.RequestException as exc:
        logger.error(f"[DOWNLOAD] Request failed for {url}: {exc}")
        return None
    except (OSError, ValueError) as exc:
        logger.error(f"[DOWNLOAD] Failed to decode image from {url}: {exc}")
        return None


def circular_crop(image: Image.Image, size: int) -> Image.Image:
    """
    Return a ``size`` x ``size`` RGBA copy of ``image`` masked to a circle.

    The source image is never modified.
    """
    square = ImageOps.fit(image.convert("RGBA"), (size, size), method=Image.Resampling.LANCZOS)
    mask = Image.new("L", (size, size), 0)
    ImageDraw.Draw(mask).ellipse((0, 0, size - 1, size - 1), fill=255)

    result = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    result.paste(square, (0, 0), mask)
    return result
