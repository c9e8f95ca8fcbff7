import os
from typing import Any, Dict, List, Optional

from ..storage.paths import clean
from .models import AppConfig, FtpConfig, SecurityPolicy, ALLOW_LIST, DISALLOW_LIST
from .utils import load_json


DEFAULT_PORT = 21
DEFAULT_TIMEOUT = 90
DEFAULT_OP_DEADLINE = 120.0
DEFAULT_ROOT = "/"
DEFAULT_DATE_FORMAT = "%Y-%m-%d"
DEFAULT_THUMBNAIL_DIR = "_thumbs"
DEFAULT_MAX_COPY_DEPTH = 32
DEFAULT_PATTERN_RESTRICTIONS = [".htaccess", "web.config"]

DIRECTORY_DETECTION_MODES = ("extension", "listing")

ENV_HOST = "REMOTEFM_FTP_HOST"
ENV_USER = "REMOTEFM_FTP_USER"
ENV_PASSWORD = "REMOTEFM_FTP_PASSWORD"


def _int_or_default(val, default):
    try:
        return int(val)
    except Exception:
        return default


def _bool(val, default: bool) -> bool:
    if val is None:
        return default
    if isinstance(val, str):
        return val.strip().lower() in ("1", "true", "yes", "on")
    return bool(val)


def _read_policy(raw: Optional[Dict[str, Any]], section: str, default_restrictions: List[str]) -> SecurityPolicy:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ValueError(f"security.{section}: must be an object")
    restrictions = raw.get("restrictions", default_restrictions)
    if not isinstance(restrictions, list):
        raise ValueError(f"security.{section}.restrictions: must be a list")
    # Unknown policy values are kept as-is; the evaluator denies them.
    policy = str(raw.get("policy") or DISALLOW_LIST).strip()
    return SecurityPolicy(
        policy=policy,
        ignore_case=_bool(raw.get("ignoreCase"), True),
        restrictions=[str(r) for r in restrictions],
    )


def _clean_root(root: str) -> str:
    root = clean((root or DEFAULT_ROOT).strip())
    return root if root.startswith("/") else "/" + root


def parse_config(doc: Dict[str, Any]) -> AppConfig:
    """Validate a config document (already decoded JSON) into an AppConfig."""
    if not isinstance(doc, dict):
        raise ValueError("config: top level must be an object")
    ftp_raw = doc.get("ftp")
    if not isinstance(ftp_raw, dict):
        raise ValueError("FTP connection info isn't set")

    host = os.environ.get(ENV_HOST) or ftp_raw.get("host")
    if not host:
        raise ValueError("ftp.host is required")
    ftp = FtpConfig(
        host=str(host),
        port=_int_or_default(ftp_raw.get("port"), DEFAULT_PORT),
        username=os.environ.get(ENV_USER) or str(ftp_raw.get("username") or ""),
        password=os.environ.get(ENV_PASSWORD) or str(ftp_raw.get("password") or ""),
        timeout=_int_or_default(ftp_raw.get("timeout"), DEFAULT_TIMEOUT),
        op_deadline=float(ftp_raw.get("op_deadline") or DEFAULT_OP_DEADLINE),
        passive=_bool(ftp_raw.get("passive"), True),
    )

    security = doc.get("security") or {}
    options = doc.get("options") or {}
    images = doc.get("images") or {}
    thumb = images.get("thumbnail") or {}

    detection = str(options.get("directoryDetection") or "extension").lower()
    if detection not in DIRECTORY_DETECTION_MODES:
        raise ValueError(f"options.directoryDetection must be one of {'|'.join(DIRECTORY_DETECTION_MODES)}")

    max_depth = _int_or_default(options.get("maxCopyDepth"), DEFAULT_MAX_COPY_DEPTH)
    if max_depth < 1:
        raise ValueError("options.maxCopyDepth must be >= 1")

    return AppConfig(
        ftp=ftp,
        root=_clean_root(doc.get("root") or DEFAULT_ROOT),
        read_only=_bool(security.get("readOnly"), False),
        extensions=_read_policy(security.get("extensions"), "extensions", []),
        patterns=_read_policy(security.get("patterns"), "patterns", DEFAULT_PATTERN_RESTRICTIONS),
        directory_detection=detection,
        thumbnail_dir=str(thumb.get("dir") or DEFAULT_THUMBNAIL_DIR).strip("/"),
        date_format=str(options.get("dateFormat") or DEFAULT_DATE_FORMAT),
        max_copy_depth=max_depth,
        staging_dir=options.get("stagingDir") or None,
        image_dimensions=_bool(images.get("dimensions"), True),
        viewer=dict(doc.get("viewer") or {}),
    )


def read_config(path: str) -> AppConfig:
    """Load and validate the JSON config file."""
    if not os.path.isfile(path):
        raise FileNotFoundError(f"config file not found: {path}")
    return parse_config(load_json(path, {}))


__all__ = [
    "read_config",
    "parse_config",
    "ALLOW_LIST",
    "DISALLOW_LIST",
    "DEFAULT_PORT",
    "DEFAULT_TIMEOUT",
    "DEFAULT_OP_DEADLINE",
    "DEFAULT_ROOT",
    "DEFAULT_MAX_COPY_DEPTH",
]
