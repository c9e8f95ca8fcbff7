"""
Path algebra between user-facing relative paths and server-rooted absolute paths.

Relative paths always carry one leading slash ("/" is the root itself);
absolute paths are the root prefix followed by the relative part. Nothing here
touches the network.
"""
import posixpath
import re
import unicodedata
from typing import Optional

from ..common.errors import InvalidPath


_SLASHES_RX = re.compile(r"/+")


def clean(path: Optional[str], remove_parent_segment: bool = False) -> str:
    """Normalize separators, collapse slashes and trim a trailing slash.

    With remove_parent_segment only the final component is kept, which is the
    form used to compare against a flat listing.
    """
    s = (path or "").replace("\\", "/")
    s = _SLASHES_RX.sub("/", s)
    if len(s) > 1:
        s = s.rstrip("/")
    if remove_parent_segment:
        s = posixpath.basename(s)
    return s


def basename(path: str) -> str:
    return posixpath.basename(clean(path))


def dirname(path: str) -> str:
    d = posixpath.dirname(clean(path))
    return d or "/"


def extension(path: str) -> str:
    """Extension of the last segment without the dot ('' when none)."""
    name = basename(path)
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1]


def stem(path: str) -> str:
    name = basename(path)
    ext = extension(name)
    return name[: -(len(ext) + 1)] if ext else name


def join(*parts: str) -> str:
    return clean("/".join(p for p in parts if p))


def is_valid(path: str) -> bool:
    if "\x00" in (path or ""):
        return False
    return ".." not in clean(path).split("/")


def normalize_name(name: Optional[str]) -> str:
    """Validate a single user-supplied item name (no separators allowed)."""
    n = unicodedata.normalize("NFKC", (name or "")).strip().strip("/").strip()
    if not n or n in (".", "..") or "/" in n or "\\" in n or "\x00" in n:
        raise InvalidPath("INVALID_FILE_PATH", [name or ""])
    return n


class PathResolver:
    """Converts between relative and absolute forms for one fixed root."""

    def __init__(self, root: str):
        root = clean(root or "/")
        if not root.startswith("/"):
            root = "/" + root
        self._root = root
        self._prefix = "" if root == "/" else root

    @property
    def root(self) -> str:
        return self._root

    def is_absolute(self, path: str) -> bool:
        p = clean(path)
        if not self._prefix:
            return p.startswith("/")
        return p == self._prefix or p.startswith(self._prefix + "/")

    def is_root(self, path: str) -> bool:
        return clean(self.to_absolute(path)) == self._root

    def to_relative(self, path: str) -> str:
        if not self.is_absolute(path):
            return path
        rest = clean(path)[len(self._prefix):]
        return clean("/" + rest)

    def to_absolute(self, path: str) -> str:
        if self.is_absolute(path):
            return clean(path)
        return clean(self._root + "/" + (path or ""))

    # convenience wrappers so callers need only the resolver
    clean = staticmethod(clean)
    basename = staticmethod(basename)
    dirname = staticmethod(dirname)
    extension = staticmethod(extension)
    join = staticmethod(join)
