import json
import socketserver
import traceback
import urllib.parse
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Dict, Optional

from ..common.errors import FileManagerError
from ..common.models import AppConfig
from ..common.utils import now_utc_iso
from ..storage.storage import Storage
from .actions import FileManagerApi, FileStream
from .events import EventDispatcher

CONNECTOR_PATH = "/filemanager"
INLINE_MODES = ("readfile", "getimage")


def _sanitize_download_filename(name: str, *, default: str = "download") -> str:
    """Sanitize filename for Content-Disposition header (prevent header injection)."""
    s = (name or "").strip()
    s = s.replace("\r", "").replace("\n", "").replace('"', "")
    if not s:
        s = default
    if len(s) > 180:
        s = s[:180]
    return s


def _content_disposition(filename: str, inline: bool = False) -> str:
    fn = _sanitize_download_filename(filename)
    fn_star = urllib.parse.quote(fn, safe="")
    kind = "inline" if inline else "attachment"
    return f"{kind}; filename=\"{fn}\"; filename*=UTF-8''{fn_star}"


def _flatten(qs: Dict[str, list]) -> Dict[str, str]:
    return {k: v[-1] for k, v in qs.items() if v}


def create_handler(
    cfg: AppConfig,
    logger,
    events: Optional[EventDispatcher] = None,
    storage_factory: Optional[Callable[[], Storage]] = None,
):
    """Factory function to create handler class with captured configuration."""
    events = events or EventDispatcher(logger)

    def new_storage() -> Storage:
        if storage_factory is not None:
            return storage_factory()
        return Storage(cfg, logger=logger)

    class APIHandler(BaseHTTPRequestHandler):
        def log_message(self, format, *args):
            if logger:
                logger.debug(f"[http] {format % args}")

        def _cors(self):
            self.send_header("Access-Control-Allow-Origin", "*")
            self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
            self.send_header("Access-Control-Allow-Headers", "*")

        def _json(self, code: int, obj: dict):
            body = json.dumps(obj, ensure_ascii=False).encode("utf-8")
            self.send_response(code)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self._cors()
            self.end_headers()
            self.wfile.write(body)

        def _stream(self, stream: FileStream, mode: str):
            self.send_response(200)
            self.send_header("Content-Type", stream.mimetype)
            if stream.size is not None:
                self.send_header("Content-Length", str(stream.size))
            self.send_header("Content-Disposition", _content_disposition(stream.name, inline=mode in INLINE_MODES))
            self._cors()
            self.end_headers()
            try:
                stream.write_to(self.wfile)
            except FileManagerError as e:
                # headers are already out; the client sees a truncated body
                if logger:
                    logger.error(f"[http] transfer of {stream.absolute_path} aborted: {e}")

        def do_OPTIONS(self):
            self.send_response(200)
            self._cors()
            self.end_headers()

        def _parse_body(self) -> dict:
            try:
                ln = int(self.headers.get("Content-Length", "0"))
                raw = self.rfile.read(ln) if ln > 0 else b""
            except ValueError:
                return {}
            if not raw:
                return {}
            ctype = self.headers.get("Content-Type", "")
            try:
                if "application/json" in ctype:
                    doc = json.loads(raw.decode("utf-8"))
                    return doc if isinstance(doc, dict) else {}
                return _flatten(urllib.parse.parse_qs(raw.decode("utf-8")))
            except (ValueError, UnicodeDecodeError):
                return {}

        def _handle(self, params: dict):
            mode = params.get("mode", "")
            try:
                with new_storage() as storage:
                    api = FileManagerApi(storage, events=events, logger=logger)
                    result = api.dispatch(mode, params)
                    if isinstance(result, FileStream):
                        return self._stream(result, mode)
                    return self._json(200, {"data": result})
            except FileManagerError as e:
                if logger:
                    logger.info(f"[http] {mode} rejected: {e}")
                return self._json(e.http_status, {"errors": [e.to_json_api()]})
            except Exception as e:
                if logger:
                    logger.error(f"[http] {mode} failed: {e}\n{traceback.format_exc()}")
                return self._json(500, {"errors": [{"id": "server", "code": "500", "title": "ERROR_SERVER", "meta": {"arguments": [str(e)]}}]})

        def do_GET(self):
            url = urllib.parse.urlsplit(self.path)
            if url.path == "/health":
                return self._json(200, {"ok": True, "time": now_utc_iso()})
            if url.path.rstrip("/") != CONNECTOR_PATH:
                return self._json(404, {"error": "not found"})
            return self._handle(_flatten(urllib.parse.parse_qs(url.query)))

        def do_POST(self):
            url = urllib.parse.urlsplit(self.path)
            if url.path.rstrip("/") != CONNECTOR_PATH:
                return self._json(404, {"error": "not found"})
            params = _flatten(urllib.parse.parse_qs(url.query))
            params.update(self._parse_body())
            return self._handle(params)

    return APIHandler


def make_server(cfg: AppConfig, logger, addr="127.0.0.1", port=8081, events: Optional[EventDispatcher] = None):
    """Create and return HTTP server instance."""
    handler_class = create_handler(cfg, logger, events=events)

    class ThreadingHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
        daemon_threads = True
        allow_reuse_address = True

    srv = ThreadingHTTPServer((addr, port), handler_class)
    if logger:
        logger.info(f"[http] serving {CONNECTOR_PATH} on http://{addr}:{srv.server_address[1]} (root={cfg.root})")
    return srv
