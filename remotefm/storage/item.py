"""
VirtualItem: one remote path as seen by the file manager.

Relative/absolute forms, existence, directory-ness and the permission triple
are resolved once at construction; every other query is answered from them
(plus, for snapshots, fresh SIZE/MDTM calls).
"""
from typing import Optional

from ..common.errors import AccessDenied, InvalidPath, PathNotFound, TransportError
from ..common.models import ItemSnapshot, PermissionTriple, PERMIT_NONE
from . import paths
from .images import is_image_path
from .policy import is_allowed_extension, is_allowed_pattern, is_unrestricted


class VirtualItem:
    def __init__(self, path: str, storage):
        self.storage = storage
        resolver = storage.resolver
        client = storage.client

        self.absolute_path = resolver.to_absolute(path or "/")
        self.relative_path = resolver.to_relative(self.absolute_path)
        self._valid = paths.is_valid(path or "/")
        self._parent: Optional["VirtualItem"] = None

        if self._valid:
            self.is_dir = client.is_directory(self.absolute_path)
            self.permission: PermissionTriple = storage.permissions.triple(self.absolute_path)
            self.exists = client.exists(self.absolute_path)
        else:
            # never probe the server with a path that may escape the root
            self.is_dir = paths.extension(self.absolute_path) == ""
            self.permission = PERMIT_NONE
            self.exists = False

    def __repr__(self):
        return f"VirtualItem({self.relative_path!r})"

    @property
    def basename(self) -> str:
        return paths.basename(self.absolute_path)

    def is_root(self) -> bool:
        return self.absolute_path == self.storage.root

    def is_directory(self) -> bool:
        return self.is_dir

    def is_exists(self) -> bool:
        return self.exists

    def is_valid_path(self) -> bool:
        return self._valid

    def is_image(self) -> bool:
        return not self.is_dir and is_image_path(self.absolute_path)

    def get_thumbnail_path(self) -> str:
        return paths.clean(f"/{self.storage.config.thumbnail_dir}/{self.relative_path}")

    def get_original_path(self) -> str:
        return paths.basename(self.relative_path)

    # -- security policy -------------------------------------------------

    def is_allowed_extension(self) -> bool:
        return is_allowed_extension(self.relative_path, self.storage.config.extensions)

    def is_allowed_pattern(self) -> bool:
        return is_allowed_pattern(self.relative_path, self.storage.config.patterns)

    def is_unrestricted(self) -> bool:
        cfg = self.storage.config
        return is_unrestricted(self.relative_path, self.is_dir, cfg.extensions, cfg.patterns)

    # -- checks ----------------------------------------------------------

    def has_read_permission(self) -> bool:
        return self.permission.read

    def has_write_permission(self) -> bool:
        return self.permission.write

    def check_path(self) -> bool:
        if not self._valid:
            code = "INVALID_DIRECTORY_PATH" if self.is_dir else "INVALID_FILE_PATH"
            raise InvalidPath(code, [self.relative_path])
        if not self.exists:
            code = "DIRECTORY_NOT_EXIST" if self.is_dir else "FILE_DOES_NOT_EXIST"
            raise PathNotFound(code, [self.relative_path])
        return True

    def check_read_permission(self) -> None:
        if not self.permission.read:
            raise AccessDenied("NOT_ALLOWED_SYSTEM")
        callback = self.storage.read_permission_callback
        if callback is not None and callback(self.absolute_path) is False:
            raise AccessDenied("NOT_ALLOWED")

    def check_write_permission(self) -> None:
        if not self.permission.write:
            raise AccessDenied("NOT_ALLOWED_SYSTEM")
        callback = self.storage.write_permission_callback
        if callback is not None and callback(self.absolute_path) is False:
            raise AccessDenied("NOT_ALLOWED")

    # -- navigation ------------------------------------------------------

    def closest(self) -> Optional["VirtualItem"]:
        """Parent item, resolved on first use; None for the root."""
        if self.is_root():
            return None
        if self._parent is None:
            self._parent = VirtualItem(paths.dirname(self.relative_path), self.storage)
        return self._parent

    # -- snapshot --------------------------------------------------------

    def _optional_meta(self, what: str, fn, *args):
        try:
            return fn(*args)
        except TransportError as e:
            log = self.storage.log
            if log:
                log.debug(f"[item] {what} unavailable for {self.absolute_path}: {e}")
            return None

    def compile_snapshot(self) -> ItemSnapshot:
        client = self.storage.client
        cfg = self.storage.config
        readable = self.permission.read
        has_meta = self.exists and not self.is_dir

        modified = None
        size = None
        if has_meta:
            modified = self._optional_meta("mtime", client.modify_time, self.absolute_path, cfg.date_format)
            if readable:
                size = self._optional_meta("size", client.size, self.absolute_path)

        image_data = None
        is_image = self.is_image()
        if is_image:
            width, height = 0, 0
            inspector = self.storage.image_inspector
            if inspector is not None and readable and size:
                width, height = inspector.dimensions(self.absolute_path)
            image_data = {
                "is_thumbnail": True,
                "path_original": self.get_original_path(),
                "path_thumbnail": self.get_thumbnail_path(),
                "width": width,
                "height": height,
            }

        return ItemSnapshot(
            path_relative=self.relative_path,
            path_absolute=self.absolute_path,
            path_dynamic=self.absolute_path,
            basename=self.basename,
            is_directory=self.is_dir,
            is_exists=self.exists,
            is_root=self.is_root(),
            is_image=is_image,
            is_readable=readable,
            is_writable=self.permission.write,
            time_modified=modified,
            time_created=modified,
            size=size,
            image_data=image_data,
        )
