from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any


ALLOW_LIST = "ALLOW_LIST"
DISALLOW_LIST = "DISALLOW_LIST"


@dataclass
class FtpConfig:
    """Connection settings for the remote FTP server."""
    host: str
    port: int = 21
    username: str = ""
    password: str = ""
    timeout: int = 90
    op_deadline: float = 120.0
    passive: bool = True


@dataclass
class SecurityPolicy:
    """Allow/deny list for extensions or filename patterns."""
    policy: str = DISALLOW_LIST  # "ALLOW_LIST" | "DISALLOW_LIST"
    ignore_case: bool = True
    restrictions: List[str] = field(default_factory=list)


@dataclass
class AppConfig:
    ftp: FtpConfig
    root: str = "/"
    read_only: bool = False
    extensions: SecurityPolicy = field(default_factory=SecurityPolicy)
    patterns: SecurityPolicy = field(default_factory=SecurityPolicy)
    directory_detection: str = "extension"  # "extension" | "listing"
    thumbnail_dir: str = "_thumbs"
    date_format: str = "%Y-%m-%d"
    max_copy_depth: int = 32
    staging_dir: Optional[str] = None
    image_dimensions: bool = True
    viewer: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PermissionTriple:
    read: bool = False
    write: bool = False
    execute: bool = False

    def __and__(self, other: "PermissionTriple") -> "PermissionTriple":
        return PermissionTriple(
            read=self.read and other.read,
            write=self.write and other.write,
            execute=self.execute and other.execute,
        )


PERMIT_ALL = PermissionTriple(True, True, True)
PERMIT_NONE = PermissionTriple(False, False, False)


@dataclass(frozen=True)
class DirectoryEntry:
    """One parsed line of a long-format listing."""
    filename: str
    mode: str
    permissions: PermissionTriple
    size: Optional[int] = None

    @property
    def is_directory(self) -> bool:
        return self.mode.startswith("d")


@dataclass(frozen=True)
class ItemSnapshot:
    """Compiled metadata for one path at one point in time."""
    path_relative: str
    path_absolute: str
    path_dynamic: str
    basename: str
    is_directory: bool
    is_exists: bool
    is_root: bool
    is_image: bool
    is_readable: bool
    is_writable: bool
    time_modified: Optional[Any] = None
    time_created: Optional[Any] = None
    size: Optional[int] = None
    image_data: Optional[Dict[str, Any]] = None

    @property
    def id(self) -> str:
        if self.is_directory and not self.path_relative.endswith("/"):
            return self.path_relative + "/"
        return self.path_relative

    def format_json_api(self) -> Dict[str, Any]:
        attrs: Dict[str, Any] = {
            "name": self.basename,
            "path": self.id,
            "readable": int(self.is_readable),
            "writable": int(self.is_writable),
            "created": self.time_created,
            "modified": self.time_modified,
        }
        if not self.is_directory:
            attrs["size"] = self.size
            attrs["extension"] = self.basename.rsplit(".", 1)[-1] if "." in self.basename else ""
        if self.image_data is not None:
            attrs["width"] = self.image_data.get("width", 0)
            attrs["height"] = self.image_data.get("height", 0)
        return {
            "id": self.id,
            "type": "folder" if self.is_directory else "file",
            "attributes": attrs,
        }
