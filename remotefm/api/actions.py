"""
File-manager actions on top of the storage core.

Each action validates (existence, permissions, policy, read-only mode) before
any mutation reaches the FTP server, then re-reads the affected items and
returns their JSON:API resource objects.
"""
import mimetypes
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..common.errors import (
    AccessDenied,
    AlreadyExists,
    FileManagerError,
    InvalidPath,
    OperationFailed,
    OperationNotAllowed,
    PathNotFound,
    TransportError,
)
from ..common.utils import match_text
from ..storage import paths
from ..storage.item import VirtualItem
from . import events as ev

DEFAULT_MIMETYPE = "application/octet-stream"


@dataclass
class FileStream:
    """A validated remote file ready to be written to a sink."""
    name: str
    size: Optional[int]
    mimetype: str
    absolute_path: str
    client: Any

    def write_to(self, sink) -> None:
        self.client.stream_download(self.absolute_path, sink)


class FileManagerApi:
    def __init__(self, storage, events: Optional[ev.EventDispatcher] = None, logger=None):
        self.storage = storage
        self.client = storage.client
        self.events = events or ev.EventDispatcher(logger)
        self.log = logger

    def _item(self, path: str) -> VirtualItem:
        return self.storage.item(path)

    def _guard_read_only(self):
        if self.storage.config.read_only:
            raise OperationNotAllowed("NOT_ALLOWED")

    @staticmethod
    def _already_exists(item: VirtualItem):
        code = "DIRECTORY_ALREADY_EXISTS" if item.is_directory() else "FILE_ALREADY_EXISTS"
        return AlreadyExists(code, [item.relative_path])

    def _info(self, msg: str):
        if self.log:
            self.log.info(msg)

    # -- read actions ----------------------------------------------------

    def initiate(self) -> Dict[str, Any]:
        cfg = self.storage.config
        shared = {
            "security": {
                "readOnly": cfg.read_only,
                "extensions": {
                    "policy": cfg.extensions.policy,
                    "ignoreCase": cfg.extensions.ignore_case,
                    "restrictions": list(cfg.extensions.restrictions),
                },
            },
            "viewer": dict(cfg.viewer),
        }
        return {"id": "/", "type": "initiate", "attributes": {"config": shared}}

    def get_info(self, path: str) -> Dict[str, Any]:
        model = self._item(path)
        model.check_path()
        model.check_read_permission()
        return model.compile_snapshot().format_json_api()

    def read_folder(self, path: str) -> List[Dict[str, Any]]:
        model = self._item(path)
        model.check_path()
        model.check_read_permission()
        if not model.is_directory():
            raise PathNotFound("DIRECTORY_NOT_EXIST", [model.relative_path])

        try:
            names = self.client.list_names(model.absolute_path)
        except TransportError:
            raise OperationFailed("UNABLE_TO_OPEN_DIRECTORY", [model.relative_path])

        files_paths = []
        response = []
        for name in names:
            child = self._item(paths.join(model.relative_path, name))
            if child.is_unrestricted():
                files_paths.append(child.absolute_path)
                response.append(child.compile_snapshot().format_json_api())

        self.events.dispatch(ev.AFTER_FOLDER_READ, folder=model.compile_snapshot(), paths=files_paths)
        return response

    def seek_folder(self, path: str, string: str) -> List[Dict[str, Any]]:
        model = self._item(path)
        model.check_path()
        model.check_read_permission()
        if not model.is_directory():
            raise PathNotFound("DIRECTORY_NOT_EXIST", [model.relative_path])

        files_paths = []
        response = []
        try:
            for abs_path, _is_dir in self.client.walk(model.absolute_path):
                if not match_text(paths.basename(abs_path), [string or ""]):
                    continue
                item = self._item(self.storage.resolver.to_relative(abs_path))
                if item.is_unrestricted():
                    files_paths.append(item.absolute_path)
                    response.append(item.compile_snapshot().format_json_api())
        except TransportError:
            raise OperationFailed("UNABLE_TO_OPEN_DIRECTORY", [model.relative_path])

        self.events.dispatch(ev.AFTER_FOLDER_SEEK, folder=model.compile_snapshot(), search=string, paths=files_paths)
        return response

    def _stream(self, path: str) -> FileStream:
        model = self._item(path)
        if model.is_directory():
            raise OperationNotAllowed("FORBIDDEN_ACTION_DIR")
        model.check_path()
        model.check_read_permission()
        if not model.is_unrestricted():
            raise AccessDenied("NOT_ALLOWED")
        try:
            size = self.client.size(model.absolute_path)
        except TransportError:
            size = None
        mimetype = mimetypes.guess_type(model.basename)[0] or DEFAULT_MIMETYPE
        return FileStream(model.basename, size, mimetype, model.absolute_path, self.client)

    def download(self, path: str) -> FileStream:
        return self._stream(path)

    def read_file(self, path: str) -> FileStream:
        return self._stream(path)

    def get_image(self, path: str, thumbnail: bool = False) -> FileStream:
        # thumbnails are not generated for remote storage; the original is served
        stream = self._stream(path)
        if not stream.mimetype.startswith("image/"):
            raise OperationNotAllowed("NOT_ALLOWED")
        return stream

    # -- mutating actions ------------------------------------------------

    def rename(self, old: str, new: str) -> Dict[str, Any]:
        self._guard_read_only()
        model_old = self._item(old)
        if model_old.is_directory() and model_old.is_root():
            raise OperationNotAllowed("NOT_ALLOWED")
        if "/" in (new or ""):
            raise InvalidPath("FORBIDDEN_CHAR_SLASH")
        filename = paths.normalize_name(new)

        model_old.check_path()
        model_old.check_write_permission()
        target = self._item(paths.join(paths.dirname(model_old.relative_path), filename))
        if target.is_exists():
            raise self._already_exists(target)

        try:
            new_path = self.client.rename(model_old.absolute_path, filename)
        except TransportError as e:
            raise OperationFailed("ERROR", [e.message])
        if not new_path:
            code = "ERROR_RENAMING_DIRECTORY" if model_old.is_directory() else "ERROR_RENAMING_FILE"
            raise OperationFailed(code, [model_old.relative_path, filename])

        model_new = self._item(self.storage.resolver.to_relative(new_path))
        snapshot = model_new.compile_snapshot()
        self._info(f"[api] renamed {model_old.relative_path} -> {model_new.relative_path}")
        self.events.dispatch(ev.AFTER_ITEM_RENAME, item=snapshot, original=model_old.compile_snapshot())
        return snapshot.format_json_api()

    def copy(self, source: str, target: str) -> Dict[str, Any]:
        self._guard_read_only()
        model_source = self._item(source)
        model_target = self._item(target)

        if model_source.is_directory() and model_source.is_root():
            raise OperationNotAllowed("NOT_ALLOWED")
        if not model_target.is_directory():
            raise PathNotFound("DIRECTORY_NOT_EXIST", [model_target.relative_path])

        model_source.check_path()
        model_source.check_read_permission()
        model_target.check_path()
        model_target.check_write_permission()

        stamp = int(time.time())
        if model_source.is_directory():
            basename = f"{model_source.basename}_copy_{stamp}"
        else:
            ext = paths.extension(model_source.basename)
            basename = f"{paths.stem(model_source.basename)}_copy_{stamp}" + (f".{ext}" if ext else "")
        model_new = self._item(paths.join(model_target.relative_path, basename))
        if model_new.is_exists():
            raise self._already_exists(model_new)

        if model_source.is_directory():
            try:
                copied = self.client.copy_folder(model_source.absolute_path, model_new.absolute_path)
            except TransportError as e:
                raise OperationFailed("ERROR_COPYING_DIRECTORY", [e.message])
            if not copied:
                raise OperationFailed("ERROR_COPYING_DIRECTORY", [basename, model_target.relative_path])
        else:
            try:
                copied = self.client.copy_file(model_source.absolute_path, model_new.absolute_path)
            except TransportError as e:
                raise OperationFailed("ERROR_COPYING_FILE", [e.message])
            if not copied:
                raise OperationFailed("ERROR_COPYING_FILE", [basename, model_target.relative_path])

        snapshot = self._item(model_new.relative_path).compile_snapshot()
        self._info(f"[api] copied {model_source.relative_path} -> {snapshot.path_relative}")
        self.events.dispatch(ev.AFTER_ITEM_COPY, item=snapshot, original=model_source.compile_snapshot())
        return snapshot.format_json_api()

    def move(self, old: str, new: str) -> Dict[str, Any]:
        self._guard_read_only()
        model_source = self._item(old)
        model_target = self._item(new)

        if model_source.is_directory() and model_source.is_root():
            raise OperationNotAllowed("NOT_ALLOWED")
        if not model_target.is_directory():
            raise PathNotFound("DIRECTORY_NOT_EXIST", [model_target.relative_path])
        src = model_source.absolute_path
        if model_target.absolute_path == src or model_target.absolute_path.startswith(src + "/"):
            raise OperationNotAllowed("NOT_ALLOWED")

        model_source.check_path()
        model_source.check_write_permission()
        model_target.check_path()
        model_target.check_write_permission()

        basename = model_source.basename
        model_new = self._item(paths.join(model_target.relative_path, basename))
        if model_new.is_exists():
            raise self._already_exists(model_new)

        try:
            moved = self.client.move(src, model_new.absolute_path)
        except TransportError as e:
            raise OperationFailed("ERROR", [e.message])
        if not moved:
            code = "ERROR_MOVING_DIRECTORY" if model_source.is_directory() else "ERROR_MOVING_FILE"
            raise OperationFailed(code, [basename, model_target.relative_path])

        snapshot = self._item(model_new.relative_path).compile_snapshot()
        self._info(f"[api] moved {model_source.relative_path} -> {snapshot.path_relative}")
        self.events.dispatch(ev.AFTER_ITEM_MOVE, item=snapshot, original=model_source.compile_snapshot())
        return snapshot.format_json_api()

    def delete(self, path: str) -> Dict[str, Any]:
        self._guard_read_only()
        model = self._item(path)
        if model.is_root():
            raise OperationNotAllowed("NOT_ALLOWED")
        model.check_path()
        model.check_write_permission()

        snapshot = model.compile_snapshot()
        try:
            deleted = self.client.delete(model.absolute_path)
        except TransportError as e:
            raise OperationFailed("ERROR", [e.message])
        if not deleted:
            raise OperationFailed("ERROR_SERVER", [model.relative_path])

        self._info(f"[api] deleted {model.relative_path}")
        self.events.dispatch(ev.AFTER_ITEM_DELETE, item=snapshot)
        return snapshot.format_json_api()

    def add_folder(self, path: str, name: str) -> Dict[str, Any]:
        self._guard_read_only()
        model_target = self._item(path)
        model_target.check_path()
        model_target.check_write_permission()

        dir_name = paths.normalize_name(name)
        model = self._item(paths.join(model_target.relative_path, dir_name))
        if model.is_exists():
            raise self._already_exists(model)

        try:
            created = self.client.make_directory(model.absolute_path)
        except TransportError as e:
            raise OperationFailed("ERROR", [e.message])
        if not created:
            raise OperationFailed("UNABLE_TO_CREATE_DIRECTORY", [dir_name])

        snapshot = self._item(model.relative_path).compile_snapshot()
        self._info(f"[api] created folder {snapshot.path_relative}")
        self.events.dispatch(ev.AFTER_FOLDER_CREATE, item=snapshot)
        return snapshot.format_json_api()

    # -- dispatch --------------------------------------------------------

    def dispatch(self, mode: str, params: Dict[str, Any]):
        """Run one action by name; returns a resource dict, a list, or a FileStream."""

        def p(name: str) -> str:
            val = params.get(name)
            if val is None:
                raise FileManagerError("INVALID_ACTION", [name])
            return str(val)

        handlers = {
            "initiate": lambda: self.initiate(),
            "getinfo": lambda: self.get_info(p("path")),
            "readfolder": lambda: self.read_folder(p("path")),
            "seekfolder": lambda: self.seek_folder(p("path"), p("string")),
            "rename": lambda: self.rename(p("old"), p("new")),
            "copy": lambda: self.copy(p("source"), p("target")),
            "move": lambda: self.move(p("old"), p("new")),
            "delete": lambda: self.delete(p("path")),
            "addfolder": lambda: self.add_folder(p("path"), p("name")),
            "download": lambda: self.download(p("path")),
            "readfile": lambda: self.read_file(p("path")),
            "getimage": lambda: self.get_image(p("path"), str(params.get("thumbnail", "")).lower() == "true"),
        }
        handler = handlers.get((mode or "").lower())
        if handler is None:
            raise FileManagerError("MODE_ERROR", [mode or ""])
        return handler()
