"""
Extension and filename-pattern security policies.

Any policy value other than ALLOW_LIST / DISALLOW_LIST denies access.
"""
import fnmatch
from typing import List

from ..common.models import SecurityPolicy, ALLOW_LIST, DISALLOW_LIST
from .paths import basename, extension


def _apply(policy: str, matched: bool) -> bool:
    if policy == ALLOW_LIST:
        return matched
    if policy == DISALLOW_LIST:
        return not matched
    return False


def _fold(values: List[str], ignore_case: bool) -> List[str]:
    return [v.lower() for v in values] if ignore_case else list(values)


def is_allowed_extension(relative_path: str, policy: SecurityPolicy) -> bool:
    ext = extension(relative_path)
    restrictions = _fold(policy.restrictions, policy.ignore_case)
    if policy.ignore_case:
        ext = ext.lower()
    return _apply(policy.policy, ext in restrictions)


def is_allowed_pattern(relative_path: str, policy: SecurityPolicy) -> bool:
    name = basename(relative_path)
    patterns = _fold(policy.restrictions, policy.ignore_case)
    if policy.ignore_case:
        name = name.lower()
    matched = any(fnmatch.fnmatchcase(name, p) for p in patterns)
    return _apply(policy.policy, matched)


def is_unrestricted(
    relative_path: str,
    is_directory: bool,
    extensions: SecurityPolicy,
    patterns: SecurityPolicy,
) -> bool:
    if not is_directory and not is_allowed_extension(relative_path, extensions):
        return False
    return is_allowed_pattern(relative_path, patterns)
