import ftplib
import posixpath
import socket
import tempfile
import threading
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Tuple

from ..common.errors import FTPDeadlineTimeout, TransportError
from .listing import DirectoryClassifier, ExtensionDirectoryClassifier
from .paths import basename, clean, dirname, join

MDTM_FORMAT = "%Y%m%d%H%M%S"
BLOCKSIZE = 8192


class RobustFTP:
    """FTP wrapper with lazy connect, per-operation deadline and keepalive.

    Every method takes absolute paths; the working directory is never relied on.
    """

    def __init__(self, host, user, passwd, port=21, timeout=90, op_deadline=120.0, passive=True, logger=None):
        self.host = host
        self.user = user
        self.passwd = passwd
        self.port = port
        self.timeout = timeout
        self.op_deadline = op_deadline
        self.passive = passive
        self.log = logger
        self.ftp: Optional[ftplib.FTP] = None

    @classmethod
    def from_config(cls, cfg, logger=None) -> "RobustFTP":
        return cls(
            cfg.host,
            cfg.username,
            cfg.password,
            port=cfg.port,
            timeout=cfg.timeout,
            op_deadline=cfg.op_deadline,
            passive=cfg.passive,
            logger=logger,
        )

    def connect(self):
        if self.ftp is not None:
            return
        ftp = ftplib.FTP()
        try:
            ftp.connect(self.host, self.port, timeout=self.timeout)
        except ftplib.all_errors as e:
            raise TransportError(f"FTP connect fail: {e}") from e
        try:
            ftp.login(self.user, self.passwd)
        except ftplib.all_errors as e:
            try:
                ftp.close()
            except Exception:
                pass
            raise TransportError(f"FTP login fail: {e}") from e
        ftp.set_pasv(self.passive)
        try:
            ftp.sock.settimeout(self.timeout)
            ftp.sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        except Exception:
            pass
        if self.log:
            self.log.debug(f"[ftp] connected {self.host}:{self.port} as {self.user or 'anonymous'}")
        self.ftp = ftp

    def close(self):
        if self.ftp:
            try:
                self.ftp.quit()
            except Exception:
                try:
                    self.ftp.close()
                except Exception:
                    pass
        self.ftp = None

    def _deadline(self, fn: Callable, *args, **kwargs):
        out = {}
        err = {}

        def run():
            try:
                out["v"] = fn(*args, **kwargs)
            except Exception as e:
                err["e"] = e

        t = threading.Thread(target=run, daemon=True)
        t.start()
        t.join(self.op_deadline)
        if t.is_alive():
            try:
                if self.ftp:
                    self.ftp.close()
            except Exception:
                pass
            self.ftp = None
            t.join(0.05)
            raise FTPDeadlineTimeout("FTP op deadline exceeded")
        if "e" in err:
            raise err["e"]
        return out.get("v")

    def _run(self, name: str, *args, **kwargs):
        self.connect()
        return self._deadline(getattr(self.ftp, name), *args, **kwargs)

    def nlst(self, path: str) -> List[str]:
        out: List[str] = []
        self._run("retrlines", f"NLST {path}", out.append)
        return out

    def list_lines(self, path: str) -> List[str]:
        out: List[str] = []
        self._run("retrlines", f"LIST {path}", out.append)
        return out

    def mkd(self, path: str):
        return self._run("mkd", path)

    def rmd(self, path: str):
        return self._run("rmd", path)

    def delete(self, path: str):
        return self._run("delete", path)

    def rename(self, from_name: str, to_name: str):
        return self._run("rename", from_name, to_name)

    def size(self, path: str) -> Optional[int]:
        # SIZE is refused by many servers in ASCII mode
        self._run("voidcmd", "TYPE I")
        return self._run("size", path)

    def mdtm(self, path: str) -> str:
        resp = self._run("sendcmd", f"MDTM {path}")
        return resp[4:].strip()

    def cwd(self, path: str):
        return self._run("cwd", path)

    def pwd(self) -> str:
        return self._run("pwd")

    def retrbinary(self, path: str, cb: Callable, blocksize=BLOCKSIZE):
        return self._run("retrbinary", f"RETR {path}", cb, blocksize=blocksize)

    def storbinary(self, path: str, fp, blocksize=BLOCKSIZE):
        return self._run("storbinary", f"STOR {path}", fp, blocksize=blocksize)


class RemoteFilesystemClient:
    """Filesystem operations over one FTP session, all on absolute paths.

    Listings are memoised for the life of the client (one request) and
    dropped on every mutation.
    """

    def __init__(
        self,
        transport,
        root: str = "/",
        classifier: Optional[DirectoryClassifier] = None,
        staging_dir: Optional[str] = None,
        max_copy_depth: int = 32,
        logger=None,
    ):
        self.transport = transport
        self.root = clean(root) or "/"
        self.classifier = classifier or ExtensionDirectoryClassifier()
        self.staging_dir = staging_dir
        self.max_copy_depth = max_copy_depth
        self.log = logger
        self._names_cache = {}
        self._raw_cache = {}

    def close(self):
        self.transport.close()

    def _invalidate(self):
        self._names_cache.clear()
        self._raw_cache.clear()

    def _fail(self, what: str, e: BaseException) -> TransportError:
        if self.log:
            self.log.warning(f"[ftp] {what} failed: {e}")
        return TransportError(f"{what}: {e}")

    def _warn(self, msg: str):
        if self.log:
            self.log.warning(msg)

    def is_root(self, absolute_path: str) -> bool:
        return clean(absolute_path) == self.root

    # -- listings --------------------------------------------------------

    def list_names(self, absolute_dir: str) -> List[str]:
        d = clean(absolute_dir)
        if d not in self._names_cache:
            try:
                raw = self.transport.nlst(d)
            except ftplib.all_errors as e:
                raise self._fail(f"list {d}", e) from e
            names = [posixpath.basename(n.rstrip("/")) for n in raw if n]
            self._names_cache[d] = [n for n in names if n and n not in (".", "..")]
        return list(self._names_cache[d])

    def raw_list(self, absolute_dir: str) -> List[str]:
        d = clean(absolute_dir)
        if d not in self._raw_cache:
            try:
                self._raw_cache[d] = self.transport.list_lines(d)
            except ftplib.all_errors as e:
                raise self._fail(f"raw list {d}", e) from e
        return list(self._raw_cache[d])

    # -- inspection ------------------------------------------------------

    def exists(self, absolute_path: str) -> bool:
        p = clean(absolute_path)
        if self.is_root(p):
            return True
        try:
            names = self.list_names(dirname(p))
        except TransportError:
            return False
        return basename(p) in names

    def is_directory(self, absolute_path: str) -> bool:
        p = clean(absolute_path)
        if self.is_root(p):
            return True
        return self.classifier.is_directory(p)

    def probe_directory(self, absolute_path: str) -> bool:
        """True if the server lets us enter the path; the previous directory is restored."""
        p = clean(absolute_path)
        try:
            previous = self.transport.pwd()
        except ftplib.all_errors as e:
            raise self._fail("pwd", e) from e
        try:
            self.transport.cwd(p)
        except ftplib.error_perm:
            return False
        except ftplib.all_errors as e:
            raise self._fail(f"cwd {p}", e) from e
        try:
            self.transport.cwd(previous)
        except ftplib.all_errors as e:
            raise self._fail(f"cwd {previous}", e) from e
        return True

    def size(self, absolute_path: str) -> int:
        p = clean(absolute_path)
        try:
            value = self.transport.size(p)
        except ftplib.all_errors as e:
            raise self._fail(f"size {p}", e) from e
        if value is None:
            raise TransportError(f"size {p}: no size reported")
        return int(value)

    def modify_time(self, absolute_path: str, fmt: Optional[str] = None):
        """Epoch seconds, or a strftime-formatted string when fmt is given."""
        p = clean(absolute_path)
        try:
            raw = self.transport.mdtm(p)
        except ftplib.all_errors as e:
            raise self._fail(f"mdtm {p}", e) from e
        try:
            dt = datetime.strptime(raw[:14], MDTM_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError as e:
            raise TransportError(f"mdtm {p}: unparsable reply {raw!r}") from e
        if fmt is None:
            return int(dt.timestamp())
        return dt.strftime(fmt)

    # -- mutations -------------------------------------------------------

    def make_directory(self, absolute_path: str) -> bool:
        p = clean(absolute_path)
        try:
            self.transport.mkd(p)
        except ftplib.error_perm as e:
            self._warn(f"[ftp] mkdir {p} refused: {e}")
            return False
        except ftplib.all_errors as e:
            raise self._fail(f"mkdir {p}", e) from e
        finally:
            self._invalidate()
        return True

    def _rename(self, src: str, dest: str):
        try:
            self.transport.rename(src, dest)
        except ftplib.error_perm as e:
            self._warn(f"[ftp] rename {src} -> {dest} refused: {e}")
            return False
        except ftplib.all_errors as e:
            raise self._fail(f"rename {src}", e) from e
        finally:
            self._invalidate()
        return dest

    def rename(self, absolute_path: str, new_basename: str):
        """Rename within the same parent; returns the new absolute path or False."""
        src = clean(absolute_path)
        return self._rename(src, join(dirname(src), new_basename))

    def move(self, absolute_path: str, dest_absolute_path: str):
        return self._rename(clean(absolute_path), clean(dest_absolute_path))

    def delete(self, absolute_path: str) -> bool:
        p = clean(absolute_path)
        if self.is_root(p):
            return False
        try:
            if not self.probe_directory(p):
                self.transport.delete(p)
                return True
            entries = list(self.walk(p))
            for child, is_dir in reversed(entries):
                if is_dir:
                    self.transport.rmd(child)
                else:
                    self.transport.delete(child)
            self.transport.rmd(p)
        except ftplib.error_perm as e:
            self._warn(f"[ftp] delete {p} refused: {e}")
            return False
        except ftplib.all_errors as e:
            raise self._fail(f"delete {p}", e) from e
        finally:
            self._invalidate()
        return True

    # -- transfers -------------------------------------------------------

    def stream_download(self, absolute_path: str, sink) -> None:
        p = clean(absolute_path)
        write = sink.write if hasattr(sink, "write") else sink
        try:
            self.transport.retrbinary(p, write)
        except ftplib.all_errors as e:
            raise self._fail(f"download {p}", e) from e

    def read_prefix(self, absolute_path: str, limit: int) -> bytes:
        """First `limit` bytes of a remote file; RETR is abandoned once they arrived."""
        p = clean(absolute_path)
        buf = bytearray()

        class _Stop(Exception):
            pass

        def cb(chunk):
            buf.extend(chunk)
            if len(buf) >= limit:
                raise _Stop()

        try:
            self.transport.retrbinary(p, cb)
        except _Stop:
            # the aborted transfer leaves a reply pending on the control connection
            self.transport.close()
        except ftplib.all_errors as e:
            raise self._fail(f"read {p}", e) from e
        return bytes(buf[:limit])

    def upload(self, fp, dest_absolute_path: str) -> bool:
        """STOR fp at the destination; False when the server refuses it."""
        p = clean(dest_absolute_path)
        try:
            self.transport.storbinary(p, fp)
        except ftplib.error_perm as e:
            self._warn(f"[ftp] upload {p} refused: {e}")
            return False
        except ftplib.all_errors as e:
            raise self._fail(f"upload {p}", e) from e
        finally:
            self._invalidate()
        return True

    def copy_file(self, src_absolute_path: str, dest_absolute_path: str) -> bool:
        """Download into a local staging file, then upload it to the destination."""
        src = clean(src_absolute_path)
        dest = clean(dest_absolute_path)
        with tempfile.TemporaryFile(prefix="remotefm_", suffix=".part", dir=self.staging_dir) as staging:
            try:
                self.transport.retrbinary(src, staging.write)
            except ftplib.error_perm as e:
                self._warn(f"[copy] {src} -> {dest} failed: {e}")
                return False
            except ftplib.all_errors as e:
                raise self._fail(f"download {src}", e) from e
            staging.seek(0)
            if not self.upload(staging, dest):
                return False
        if self.log:
            self.log.debug(f"[copy] {src} -> {dest}")
        return True

    def copy_folder(self, src_absolute_path: str, dest_absolute_path: str, max_depth: Optional[int] = None) -> bool:
        """Mirror a directory tree depth-first; stops at the first failure (no rollback)."""
        src = clean(src_absolute_path)
        dest = clean(dest_absolute_path)
        limit = max_depth if max_depth is not None else self.max_copy_depth
        if dest == src or dest.startswith(src.rstrip("/") + "/"):
            self._warn(f"[copy] refusing to copy {src} into itself ({dest})")
            return False

        stack: List[Tuple[str, str, int]] = [(src, dest, 0)]
        while stack:
            s, d, depth = stack.pop()
            if depth > limit:
                self._warn(f"[copy] max depth {limit} exceeded at {s}")
                return False
            if not self.make_directory(d):
                return False
            try:
                names = self.list_names(s)
            except TransportError as e:
                self._warn(f"[copy] cannot list {s}: {e}")
                return False
            for name in names:
                s_child = join(s, name)
                d_child = join(d, name)
                if self.probe_directory(s_child):
                    stack.append((s_child, d_child, depth + 1))
                elif not self.copy_file(s_child, d_child):
                    return False
        return True

    def walk(self, absolute_dir: str, max_depth: Optional[int] = None) -> Iterator[Tuple[str, bool]]:
        """Yield (absolute_path, is_dir) for every item below absolute_dir, parents first."""
        limit = max_depth if max_depth is not None else self.max_copy_depth
        stack: List[Tuple[str, int]] = [(clean(absolute_dir), 0)]
        while stack:
            d, depth = stack.pop()
            for name in self.list_names(d):
                child = join(d, name)
                is_dir = self.probe_directory(child)
                yield child, is_dir
                if is_dir:
                    if depth + 1 > limit:
                        self._warn(f"[walk] max depth {limit} reached at {child}")
                        continue
                    stack.append((child, depth + 1))
