"""
Long-format listing parsing and the permission/directory capabilities built on it.

FTP has no structured stat call, so read/write/execute and (optionally)
directory-ness are reconstructed from `LIST` lines of the parent directory:

    -rw-r--r--   1 user group   120 Jan 01 00:00 report.txt
"""
from typing import Iterable, List, Optional

from ..common.errors import ListingUnavailable, TransportError
from ..common.models import DirectoryEntry, PermissionTriple, PERMIT_ALL, PERMIT_NONE
from .paths import basename, clean, dirname, extension

LISTING_FIELDS = 9
MODE_LEN = 10


def decode_mode(mode: str) -> PermissionTriple:
    """OR the user/group/other bits of a 10-char mode string."""
    if len(mode) < MODE_LEN:
        return PERMIT_NONE
    return PermissionTriple(
        read=mode[1] == "r" or mode[4] == "r" or mode[7] == "r",
        write=mode[2] == "w" or mode[5] == "w" or mode[8] == "w",
        execute=mode[3] == "x" or mode[6] == "x" or mode[9] == "x",
    )


def parse_listing_line(line: str) -> Optional[DirectoryEntry]:
    if not line:
        return None
    fields = line.split(None, LISTING_FIELDS - 1)
    if not fields or fields[0] == "total" or len(fields) < LISTING_FIELDS:
        return None
    mode = fields[0]
    name = fields[8].rstrip("\r\n")
    if mode.startswith("l") and " -> " in name:
        name = name.split(" -> ", 1)[0]
    size = int(fields[4]) if fields[4].isdigit() else None
    return DirectoryEntry(filename=name, mode=mode, permissions=decode_mode(mode), size=size)


def parse_listing(lines: Iterable[str]) -> List[DirectoryEntry]:
    out = []
    for ln in lines:
        entry = parse_listing_line(ln)
        if entry is not None:
            out.append(entry)
    return out


def find_entry(lines: Iterable[str], name: str) -> Optional[DirectoryEntry]:
    """Exact, case-sensitive match of the 9th field against name."""
    for entry in parse_listing(lines):
        if entry.filename == name:
            return entry
    return None


class PermissionSource:
    """Answers the read/write/execute triple for an absolute path."""

    def triple(self, absolute_path: str) -> PermissionTriple:
        raise NotImplementedError


class ListingPermissionSource(PermissionSource):
    """Permission triple reconstructed from the parent directory's raw listing.

    The root is always fully permitted. Any other path gets its own listing bits
    AND-ed with the triple of its parent, so a child never exceeds its parent.
    """

    def __init__(self, client, resolver):
        self.client = client
        self.resolver = resolver

    def triple(self, absolute_path: str) -> PermissionTriple:
        path = clean(absolute_path)
        if self.resolver.is_root(path):
            return PERMIT_ALL
        if not self.resolver.is_absolute(path):
            return PERMIT_NONE
        parent = dirname(path)
        try:
            lines = self.client.raw_list(parent)
        except TransportError as e:
            raise ListingUnavailable(parent, str(e)) from e
        entry = find_entry(lines, basename(path))
        own = entry.permissions if entry is not None else PERMIT_NONE
        return self.triple(parent) & own


class DirectoryClassifier:
    def is_directory(self, absolute_path: str) -> bool:
        raise NotImplementedError


class ExtensionDirectoryClassifier(DirectoryClassifier):
    """Heuristic: a last segment with an extension is a file, anything else a directory."""

    def is_directory(self, absolute_path: str) -> bool:
        return extension(absolute_path) == ""


class ListingDirectoryClassifier(DirectoryClassifier):
    """Uses the listing type flag; falls back to the extension rule when no entry matches."""

    def __init__(self, client, fallback: Optional[DirectoryClassifier] = None):
        self.client = client
        self.fallback = fallback or ExtensionDirectoryClassifier()

    def is_directory(self, absolute_path: str) -> bool:
        path = clean(absolute_path)
        try:
            entry = find_entry(self.client.raw_list(dirname(path)), basename(path))
        except TransportError:
            entry = None
        if entry is None:
            return self.fallback.is_directory(path)
        return entry.is_directory
