"""
Listing-line parsing, permission inference and directory classification.
"""
from __future__ import annotations

import ftplib
import itertools

import pytest

from conftest import FakeTransport
from remotefm.common.errors import ListingUnavailable
from remotefm.common.models import PermissionTriple, PERMIT_ALL
from remotefm.storage.ftp import RemoteFilesystemClient
from remotefm.storage.listing import (
    ExtensionDirectoryClassifier,
    ListingDirectoryClassifier,
    ListingPermissionSource,
    decode_mode,
    find_entry,
    parse_listing_line,
)
from remotefm.storage.paths import PathResolver

REPORT_LINE = "-rw-r--r--   1 user group   120 Jan 01 00:00 report.txt"


def test_report_line_permissions() -> None:
    entry = find_entry([REPORT_LINE], "report.txt")
    assert entry is not None
    assert entry.permissions == PermissionTriple(read=True, write=True, execute=False)
    assert entry.size == 120
    assert not entry.is_directory


def test_total_line_is_skipped() -> None:
    assert parse_listing_line("total 24") is None
    assert find_entry(["total 24", REPORT_LINE], "report.txt") is not None


def test_short_lines_are_ignored() -> None:
    assert parse_listing_line("-rw-r--r-- 1 user") is None
    assert parse_listing_line("") is None


def test_filename_with_spaces_is_kept_whole() -> None:
    entry = parse_listing_line("drwxr-xr-x   2 user group  4096 Mar 10  2023 my old photos")
    assert entry.filename == "my old photos"
    assert entry.is_directory


def test_symlink_name_drops_target() -> None:
    entry = parse_listing_line("lrwxrwxrwx 1 user group 11 Jan 01 00:00 latest -> releases/v2")
    assert entry.filename == "latest"


def test_match_is_exact_and_case_sensitive() -> None:
    assert find_entry([REPORT_LINE], "Report.txt") is None
    assert find_entry([REPORT_LINE], "report") is None


def _modes():
    for r_bits in itertools.product("r-", repeat=3):
        mode = "-" + "".join(f"{r}--" for r in r_bits)
        yield mode, "r" in r_bits


@pytest.mark.parametrize("mode, readable", list(_modes()))
def test_read_bit_is_or_of_user_group_other(mode: str, readable: bool) -> None:
    assert decode_mode(mode).read is readable
    assert decode_mode(mode).write is False


@pytest.mark.parametrize(
    "mode, expected",
    [
        ("drwxrwxrwx", PERMIT_ALL),
        ("d---------", PermissionTriple(False, False, False)),
        ("-----w----", PermissionTriple(False, True, False)),
        ("---------x", PermissionTriple(False, False, True)),
        ("-r-x------", PermissionTriple(True, False, True)),
    ],
)
def test_decode_mode(mode: str, expected: PermissionTriple) -> None:
    assert decode_mode(mode) == expected


def _source(transport, root="/"):
    resolver = PathResolver(root)
    client = RemoteFilesystemClient(transport, root=resolver.root)
    return ListingPermissionSource(client, resolver), transport


def test_root_is_fully_permitted_without_listing() -> None:
    source, transport = _source(FakeTransport(modes={}))
    assert source.triple("/") == PERMIT_ALL
    assert transport.calls == []


def test_root_is_fully_permitted_even_under_nested_root() -> None:
    source, transport = _source(FakeTransport(dirs=["/srv/ftp"], modes={"/srv/ftp": "d---------"}), root="/srv/ftp")
    assert source.triple("/srv/ftp") == PERMIT_ALL
    assert transport.calls == []


def test_child_of_root_uses_its_own_entry() -> None:
    source, _ = _source(FakeTransport(files={"/report.txt": b"x"}))
    assert source.triple("/report.txt") == PermissionTriple(True, True, False)


def test_child_never_exceeds_parent() -> None:
    transport = FakeTransport(
        files={"/ro/file.txt": b"x", "/locked/file.txt": b"x"},
        modes={"/ro": "dr-xr-xr-x", "/ro/file.txt": "-rw-rw-rw-", "/locked": "d---------"},
    )
    source, _ = _source(transport)
    assert source.triple("/ro/file.txt") == PermissionTriple(True, False, False)
    assert source.triple("/locked/file.txt") == PermissionTriple(False, False, False)


def test_missing_entry_yields_no_permissions() -> None:
    source, _ = _source(FakeTransport(dirs=["/docs"]))
    assert source.triple("/docs/ghost.txt") == PermissionTriple(False, False, False)


def test_unreadable_parent_listing_fails_instead_of_defaulting() -> None:
    transport = FakeTransport(dirs=["/docs"])
    transport.fail_on["list_lines"] = ftplib.error_temp("421 service not available")
    source, _ = _source(transport)
    with pytest.raises(ListingUnavailable) as exc:
        source.triple("/docs/a.txt")
    assert exc.value.arguments == ["cannot open file list"]


def test_missing_parent_directory_is_listing_unavailable() -> None:
    source, _ = _source(FakeTransport())
    with pytest.raises(ListingUnavailable):
        source.triple("/nope/a.txt")


def test_extension_classifier() -> None:
    c = ExtensionDirectoryClassifier()
    assert c.is_directory("/docs")
    assert not c.is_directory("/docs/report.txt")
    # documented limitation of the heuristic
    assert not c.is_directory("/archive.bak")


def test_listing_classifier_uses_type_flag() -> None:
    transport = FakeTransport(dirs=["/archive.bak"], files={"/README": b"x"})
    client = RemoteFilesystemClient(transport)
    c = ListingDirectoryClassifier(client)
    assert c.is_directory("/archive.bak")
    assert not c.is_directory("/README")
    # unknown entries fall back to the extension rule
    assert c.is_directory("/not-there")
    assert not c.is_directory("/not-there.txt")
