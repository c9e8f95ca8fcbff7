from io import BytesIO
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from ..common.errors import TransportError
from .paths import extension

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif")
# enough for the PNG/GIF header and a JPEG SOF marker behind a full EXIF block
HEADER_LIMIT = 128 * 1024


def is_image_path(path: str) -> bool:
    return extension(path).lower() in IMAGE_EXTENSIONS


class ImageInspector:
    """Reads pixel dimensions of a remote image from the start of the file."""

    def __init__(self, client, logger=None, header_limit: int = HEADER_LIMIT):
        self.client = client
        self.log = logger
        self.header_limit = header_limit

    def dimensions(self, absolute_path: str) -> Tuple[int, int]:
        try:
            head = self.client.read_prefix(absolute_path, self.header_limit)
        except TransportError as e:
            if self.log:
                self.log.debug(f"[image] cannot read {absolute_path}: {e}")
            return 0, 0
        if not head:
            return 0, 0
        try:
            with Image.open(BytesIO(head)) as im:
                width, height = im.size
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            if self.log:
                self.log.debug(f"[image] no readable header in {absolute_path}: {e}")
            return 0, 0
        return int(width), int(height)
