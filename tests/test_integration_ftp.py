"""
End-to-end tests against a real pyftpdlib server running in-process.

These drive RobustFTP over a socket, so listing formats, SIZE/MDTM replies and
error codes are the server's own rather than FakeTransport's.

Tree served for each test:
    /
    +-- docs/
    |   +-- report.txt      ("quarterly numbers")
    |   +-- folder with spaces/
    |   |   +-- nested.txt  ("nested")
    |   +-- sealed.txt      (mode 000)
    +-- .htaccess
"""
from __future__ import annotations

import io
import os
import threading
import time
from pathlib import Path

import pytest
from pyftpdlib.authorizers import DummyAuthorizer
from pyftpdlib.handlers import FTPHandler
from pyftpdlib.servers import FTPServer

from conftest import make_config
from remotefm.api.actions import FileManagerApi
from remotefm.common.errors import AccessDenied, TransportError
from remotefm.common.models import FtpConfig
from remotefm.storage.ftp import RobustFTP
from remotefm.storage.storage import Storage

ADMIN = ("admin", "admin-pass")
VIEWER = ("viewer", "viewer-pass")


@pytest.fixture
def ftp_root(tmp_path: Path) -> Path:
    root = tmp_path / "ftp_root"
    docs = root / "docs"
    (docs / "folder with spaces").mkdir(parents=True)
    (docs / "report.txt").write_bytes(b"quarterly numbers")
    (docs / "folder with spaces" / "nested.txt").write_bytes(b"nested")
    sealed = docs / "sealed.txt"
    sealed.write_bytes(b"sealed")
    os.chmod(sealed, 0o000)
    (root / ".htaccess").write_bytes(b"deny from all")
    return root


@pytest.fixture
def ftp_server(ftp_root: Path):
    authorizer = DummyAuthorizer()
    authorizer.add_user(ADMIN[0], ADMIN[1], str(ftp_root), perm="elradfmw")
    authorizer.add_user(VIEWER[0], VIEWER[1], str(ftp_root), perm="elr")

    class Handler(FTPHandler):
        pass

    Handler.authorizer = authorizer
    Handler.auth_failed_timeout = 0.1

    server = FTPServer(("127.0.0.1", 0), Handler)
    port = server.socket.getsockname()[1]
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    time.sleep(0.1)
    yield {"host": "127.0.0.1", "port": port, "root": ftp_root}
    server.close_all()


def _storage(ftp_server, user=ADMIN, tmp_path=None, **overrides) -> Storage:
    cfg = make_config(
        ftp=FtpConfig(host=ftp_server["host"], port=ftp_server["port"], username=user[0], password=user[1],
                      timeout=10, op_deadline=10.0),
        staging_dir=str(tmp_path) if tmp_path else None,
        **overrides,
    )
    return Storage(cfg)


def test_login_failure_is_transport_error(ftp_server) -> None:
    ftp = RobustFTP(ftp_server["host"], "admin", "wrong", port=ftp_server["port"], timeout=5, op_deadline=5.0)
    with pytest.raises(TransportError) as exc:
        ftp.nlst("/")
    assert "FTP login fail" in exc.value.message
    ftp.close()


def test_read_folder_over_ftp(ftp_server) -> None:
    with _storage(ftp_server) as storage:
        docs = FileManagerApi(storage).read_folder("/docs")
    by_id = {d["id"]: d for d in docs}
    assert set(by_id) == {"/docs/folder with spaces/", "/docs/report.txt", "/docs/sealed.txt"}

    report = by_id["/docs/report.txt"]["attributes"]
    assert report["size"] == len(b"quarterly numbers")
    assert report["readable"] == 1
    assert report["modified"]
    assert by_id["/docs/sealed.txt"]["attributes"]["readable"] == 0


def test_root_listing_hides_restricted_pattern(ftp_server) -> None:
    with _storage(ftp_server) as storage:
        ids = [d["id"] for d in FileManagerApi(storage).read_folder("/")]
    assert ids == ["/docs/"]


def test_sealed_file_cannot_be_downloaded(ftp_server) -> None:
    with _storage(ftp_server) as storage:
        with pytest.raises(AccessDenied):
            FileManagerApi(storage).download("/docs/sealed.txt")


def test_download_over_ftp(ftp_server) -> None:
    with _storage(ftp_server) as storage:
        stream = FileManagerApi(storage).download("/docs/report.txt")
        buf = io.BytesIO()
        stream.write_to(buf)
    assert buf.getvalue() == b"quarterly numbers"
    assert stream.size == len(b"quarterly numbers")


def test_copy_folder_over_ftp(ftp_server, tmp_path) -> None:
    staging = tmp_path / "staging"
    staging.mkdir()
    with _storage(ftp_server, tmp_path=staging) as storage:
        assert storage.client.copy_folder("/docs/folder with spaces", "/copied")
    root = ftp_server["root"]
    assert (root / "copied" / "nested.txt").read_bytes() == b"nested"
    assert list(staging.iterdir()) == []


def test_rename_and_add_folder_over_ftp(ftp_server) -> None:
    with _storage(ftp_server) as storage:
        api = FileManagerApi(storage)
        doc = api.rename("/docs/report.txt", "summary.txt")
        assert doc["id"] == "/docs/summary.txt"
        assert api.add_folder("/docs", "drafts")["id"] == "/docs/drafts/"
    root = ftp_server["root"]
    assert (root / "docs" / "summary.txt").exists()
    assert (root / "docs" / "drafts").is_dir()


def test_nested_root(ftp_server) -> None:
    with _storage(ftp_server, root="/docs") as storage:
        ids = [d["id"] for d in FileManagerApi(storage).read_folder("/")]
    assert "/folder with spaces/" in ids
    assert "/report.txt" in ids


def test_server_refusal_is_reported_not_raised(ftp_server) -> None:
    with _storage(ftp_server, user=VIEWER) as storage:
        assert storage.client.make_directory("/docs/nope") is False
        assert storage.client.rename("/docs/report.txt", "x.txt") is False
    assert (ftp_server["root"] / "docs" / "report.txt").exists()
