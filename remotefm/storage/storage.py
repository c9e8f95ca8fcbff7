from typing import Callable, Optional

from ..common.models import AppConfig
from .ftp import RemoteFilesystemClient, RobustFTP
from .images import ImageInspector
from .item import VirtualItem
from .listing import ExtensionDirectoryClassifier, ListingDirectoryClassifier, ListingPermissionSource
from .paths import PathResolver

PermissionCallback = Callable[[str], bool]


class Storage:
    """Request-scoped bundle of config, path resolver, FTP client and capabilities."""

    def __init__(
        self,
        config: AppConfig,
        client: Optional[RemoteFilesystemClient] = None,
        logger=None,
        image_inspector=None,
        read_permission_callback: Optional[PermissionCallback] = None,
        write_permission_callback: Optional[PermissionCallback] = None,
    ):
        self.config = config
        self.log = logger
        self.resolver = PathResolver(config.root)
        if client is None:
            client = RemoteFilesystemClient(
                RobustFTP.from_config(config.ftp, logger=logger),
                root=self.resolver.root,
                staging_dir=config.staging_dir,
                max_copy_depth=config.max_copy_depth,
                logger=logger,
            )
        if config.directory_detection == "listing":
            client.classifier = ListingDirectoryClassifier(client, fallback=ExtensionDirectoryClassifier())
        self.client = client
        self.permissions = ListingPermissionSource(client, self.resolver)
        if image_inspector is None and config.image_dimensions:
            image_inspector = ImageInspector(client, logger=logger)
        self.image_inspector = image_inspector
        self.read_permission_callback = read_permission_callback
        self.write_permission_callback = write_permission_callback

    @property
    def root(self) -> str:
        return self.resolver.root

    def item(self, path: str) -> VirtualItem:
        return VirtualItem(path, self)

    def close(self):
        try:
            self.client.close()
        except Exception as e:
            if self.log:
                self.log.debug(f"[ftp] close failed: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
