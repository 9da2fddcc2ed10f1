"""
Identifier helpers.

Child resources are stored under namespaced ids joined with ``:``
(``org:project:branch:element``); the API only ever shows the last segment.
"""
import re
from typing import List, Optional

ID_DELIMITER = ":"

ORG_ID_MAX_LENGTH = 36
PROJECT_ID_MAX_LENGTH = 36
BRANCH_ID_MAX_LENGTH = 36
ELEMENT_ID_MAX_LENGTH = 64
ARTIFACT_ID_MAX_LENGTH = 64
USERNAME_MAX_LENGTH = 36

_RESOURCE_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
_ELEMENT_ID_RE = re.compile(r"^[a-zA-Z0-9_][a-zA-Z0-9_-]*$")
_USERNAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")

RESERVED_IDS = frozenset({
    "css", "js", "img", "doc", "docs", "webfonts", "login", "about", "assets",
    "static", "public", "api", "organizations", "orgs", "projects", "users",
    "plugins", "ext", "extension", "search", "whoami", "profile", "edit",
    "proj", "elements", "branch", "anonymous", "blank", "settings", "admin",
    "enable", "disable", "undefined",
})

MASTER_BRANCH = "master"
ROOT_ELEMENT = "model"
MBEE_ELEMENT = "__mbee__"
HOLDING_BIN_ELEMENT = "holding_bin"
UNDEFINED_ELEMENT = "undefined"
ROOT_ELEMENTS = frozenset({ROOT_ELEMENT, MBEE_ELEMENT, HOLDING_BIN_ELEMENT, UNDEFINED_ELEMENT})


def create_id(*parts: str) -> str:
    """Join id segments into a namespaced id."""
    return ID_DELIMITER.join(parts)


def parse_id(namespaced_id: Optional[str]) -> List[str]:
    """Split a namespaced id into its segments."""
    if not namespaced_id:
        return []
    return namespaced_id.split(ID_DELIMITER)


def last_segment(namespaced_id: Optional[str]) -> Optional[str]:
    if namespaced_id is None:
        return None
    return parse_id(namespaced_id)[-1]


def _valid(value, pattern, max_length: int) -> bool:
    if not isinstance(value, str) or not value or len(value) > max_length:
        return False
    return bool(pattern.match(value))


def is_valid_org_id(value) -> bool:
    return _valid(value, _RESOURCE_ID_RE, ORG_ID_MAX_LENGTH) and value not in RESERVED_IDS


def is_valid_project_id(value) -> bool:
    return _valid(value, _RESOURCE_ID_RE, PROJECT_ID_MAX_LENGTH) and value not in RESERVED_IDS


def is_valid_branch_id(value) -> bool:
    return _valid(value, _RESOURCE_ID_RE, BRANCH_ID_MAX_LENGTH) and value not in RESERVED_IDS


def is_valid_element_id(value) -> bool:
    return _valid(value, _ELEMENT_ID_RE, ELEMENT_ID_MAX_LENGTH)


def is_valid_artifact_id(value) -> bool:
    return _valid(value, _ELEMENT_ID_RE, ARTIFACT_ID_MAX_LENGTH) and len(value) >= 2


def is_valid_username(value) -> bool:
    return _valid(value, _USERNAME_RE, USERNAME_MAX_LENGTH) and value not in RESERVED_IDS


def is_valid_password(value) -> bool:
    """Local passwords need 8+ characters with a digit, a lowercase and an uppercase letter."""
    if not isinstance(value, str) or len(value) < 8:
        return False
    return (
        any(c.isdigit() for c in value)
        and any(c.islower() for c in value)
        and any(c.isupper() for c in value)
    )
