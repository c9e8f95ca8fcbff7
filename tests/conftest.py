"""
pytest configuration and shared fixtures.

Unit tests run against FakeTransport, an in-memory stand-in for RobustFTP that
answers the same calls and raises the same ftplib errors. Integration tests
(test_integration_ftp.py) use a real pyftpdlib server instead.
"""
from __future__ import annotations

import ftplib
import posixpath
from typing import Dict, Iterable, Optional

import pytest

from remotefm.common.models import AppConfig, FtpConfig, SecurityPolicy
from remotefm.storage.ftp import RemoteFilesystemClient
from remotefm.storage.storage import Storage

MUTATING_OPS = {"mkd", "rmd", "delete", "rename", "storbinary"}

DIR_MODE = "drwxr-xr-x"
FILE_MODE = "-rw-r--r--"


class FakeTransport:
    """In-memory FTP tree with the RobustFTP call surface."""

    def __init__(
        self,
        files: Optional[Dict[str, bytes]] = None,
        dirs: Iterable[str] = (),
        modes: Optional[Dict[str, str]] = None,
        mtime: str = "20240102030405",
    ):
        self.files: Dict[str, bytes] = dict(files or {})
        self.dirs = {"/"}
        for d in dirs:
            self._add_dir_chain(d)
        for f in self.files:
            self._add_dir_chain(posixpath.dirname(f))
        self.modes = dict(modes or {})
        self.mtime = mtime
        self.cwd_path = "/"
        self.calls = []
        self.closed = False
        self.fail_on: Dict[str, BaseException] = {}

    def _add_dir_chain(self, d: str):
        while d and d != "/":
            self.dirs.add(d)
            d = posixpath.dirname(d)

    def _record(self, op: str, *args):
        self.calls.append((op,) + args)
        err = self.fail_on.get(op)
        if err is not None:
            raise err

    def mutations(self):
        return [c for c in self.calls if c[0] in MUTATING_OPS]

    def _children(self, d: str):
        names = set()
        for p in list(self.dirs) + list(self.files):
            if p != "/" and posixpath.dirname(p) == d:
                names.add(posixpath.basename(p))
        return sorted(names)

    def nlst(self, path):
        self._record("nlst", path)
        if path not in self.dirs:
            raise ftplib.error_perm(f"550 No such directory: {path}")
        return self._children(path)

    def list_lines(self, path):
        self._record("list_lines", path)
        if path not in self.dirs:
            raise ftplib.error_perm(f"550 No such directory: {path}")
        lines = ["total 8"]
        for name in self._children(path):
            full = posixpath.join(path, name)
            is_dir = full in self.dirs
            mode = self.modes.get(full, DIR_MODE if is_dir else FILE_MODE)
            size = 4096 if is_dir else len(self.files[full])
            lines.append(f"{mode}   1 user     group    {size:>8} Jan 01 00:00 {name}")
        return lines

    def mkd(self, path):
        self._record("mkd", path)
        if path in self.dirs or path in self.files:
            raise ftplib.error_perm(f"550 {path}: exists")
        if posixpath.dirname(path) not in self.dirs:
            raise ftplib.error_perm(f"550 {path}: no parent")
        self.dirs.add(path)
        return path

    def rmd(self, path):
        self._record("rmd", path)
        if path not in self.dirs or self._children(path):
            raise ftplib.error_perm(f"550 cannot remove {path}")
        self.dirs.discard(path)

    def delete(self, path):
        self._record("delete", path)
        if path not in self.files:
            raise ftplib.error_perm(f"550 {path}: no such file")
        del self.files[path]

    def rename(self, src, dest):
        self._record("rename", src, dest)
        if src not in self.files and src not in self.dirs:
            raise ftplib.error_perm(f"550 {src}: no such file")
        if posixpath.dirname(dest) not in self.dirs:
            raise ftplib.error_perm(f"550 {dest}: no parent")
        if src in self.files:
            self.files[dest] = self.files.pop(src)
            return
        prefix = src + "/"
        self.dirs = {dest + d[len(src):] if d == src or d.startswith(prefix) else d for d in self.dirs}
        self.files = {(dest + f[len(src):] if f.startswith(prefix) else f): b for f, b in self.files.items()}

    def size(self, path):
        self._record("size", path)
        if path not in self.files:
            raise ftplib.error_perm(f"550 {path} is not retrievable")
        return len(self.files[path])

    def mdtm(self, path):
        self._record("mdtm", path)
        if path not in self.files:
            raise ftplib.error_perm(f"550 {path} is not retrievable")
        return self.mtime

    def cwd(self, path):
        self._record("cwd", path)
        if path not in self.dirs:
            raise ftplib.error_perm(f"550 {path}: not a directory")
        self.cwd_path = path

    def pwd(self):
        return self.cwd_path

    def retrbinary(self, path, cb, blocksize=8192):
        self._record("retrbinary", path)
        if path not in self.files:
            raise ftplib.error_perm(f"550 {path}: no such file")
        data = self.files[path]
        for i in range(0, len(data), blocksize):
            cb(data[i:i + blocksize])

    def storbinary(self, path, fp, blocksize=8192):
        self._record("storbinary", path)
        if posixpath.dirname(path) not in self.dirs:
            raise ftplib.error_perm(f"553 {path}: no parent")
        self.files[path] = fp.read()

    def close(self):
        self.closed = True


def make_config(**overrides) -> AppConfig:
    cfg = AppConfig(
        ftp=FtpConfig(host="127.0.0.1", port=2121, username="FTP_TEST", password="FTP_TEST"),
        root="/",
        extensions=SecurityPolicy(policy="DISALLOW_LIST", ignore_case=True, restrictions=["exe", "bat"]),
        patterns=SecurityPolicy(policy="DISALLOW_LIST", ignore_case=True, restrictions=[".htaccess"]),
        image_dimensions=False,
    )
    for k, v in overrides.items():
        setattr(cfg, k, v)
    return cfg


@pytest.fixture
def transport() -> FakeTransport:
    """
    /
    +-- docs/
    |   +-- report.txt
    |   +-- notes.md
    |   +-- .htaccess
    |   +-- tool.exe
    +-- photos/
    |   +-- cat.png        (empty)
    +-- locked/            (d---------)
    |   +-- secret.txt
    +-- src/
        +-- a.txt
        +-- sub/
    """
    return FakeTransport(
        files={
            "/docs/report.txt": b"quarterly numbers",
            "/docs/notes.md": b"# notes",
            "/docs/.htaccess": b"deny from all",
            "/docs/tool.exe": b"MZ",
            "/photos/cat.png": b"",
            "/locked/secret.txt": b"s3cr3t",
            "/src/a.txt": b"alpha",
        },
        dirs=["/src/sub"],
        modes={"/locked": "d---------"},
    )


@pytest.fixture
def client(transport, tmp_path) -> RemoteFilesystemClient:
    return RemoteFilesystemClient(transport, root="/", staging_dir=str(tmp_path))


@pytest.fixture
def storage(client) -> Storage:
    return Storage(make_config(staging_dir=client.staging_dir), client=client)
