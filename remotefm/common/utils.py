import json
import os
import re
import unicodedata
from datetime import datetime, timezone
from typing import Optional, List, Any


def load_json(path: str, default: Any = None) -> Any:
    if not os.path.isfile(path):
        return default
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


_WS_RX = re.compile(r"\s+", re.UNICODE)


def normalize_spaces(s: Optional[str]) -> str:
    s = unicodedata.normalize("NFKC", s or "")
    s = _WS_RX.sub(" ", s).strip()
    return s


def match_text(
    val: Optional[str],
    patterns: List[str],
    *,
    exact: bool = False,
    case_sensitive: bool = False,
) -> bool:
    """Substring (or exact) match of val against any pattern."""
    if not patterns:
        return True
    if val is None:
        return False
    val = normalize_spaces(val)
    valc = val if case_sensitive else val.casefold()
    normalized = []
    for p in patterns:
        p = normalize_spaces(p)
        normalized.append(p if case_sensitive else p.casefold())
    if exact:
        return any(valc == p for p in normalized)
    return any(p in valc for p in normalized)
