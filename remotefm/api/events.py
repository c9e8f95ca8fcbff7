from collections import defaultdict
from typing import Callable, Dict, List

AFTER_FOLDER_READ = "after_folder_read"
AFTER_FOLDER_SEEK = "after_folder_seek"
AFTER_FOLDER_CREATE = "after_folder_create"
AFTER_ITEM_RENAME = "after_item_rename"
AFTER_ITEM_COPY = "after_item_copy"
AFTER_ITEM_MOVE = "after_item_move"
AFTER_ITEM_DELETE = "after_item_delete"


class EventDispatcher:
    """Named hooks fired after an action succeeded. Listener errors are logged, not raised."""

    def __init__(self, logger=None):
        self.log = logger
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)

    def add_listener(self, name: str, fn: Callable) -> None:
        self._listeners[name].append(fn)

    def dispatch(self, name: str, **payload) -> None:
        for fn in list(self._listeners.get(name, ())):
            try:
                fn(**payload)
            except Exception as e:
                if self.log:
                    self.log.error(f"[event] listener for {name} failed: {e}")
