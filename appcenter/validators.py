"""
Field validators for the upload build step.

Each validator is a pure ``str -> bool`` predicate keyed by field name.
They are used by the CLI adapter before an UploadRequest is built; the
upload workflow itself never calls them.
"""

import re
from typing import Callable, Dict, Optional

from appcenter.upload.distribution import parse_distribution_groups

API_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
GROUP_NAME_PATTERN = re.compile(r"^[^/\\?#%]+$")


def is_valid_api_token(value: str) -> bool:
    return bool(API_TOKEN_PATTERN.match(value))


def is_valid_owner_name(value: str) -> bool:
    return bool(NAME_PATTERN.match(value))


def is_valid_app_name(value: str) -> bool:
    return bool(NAME_PATTERN.match(value))


def is_valid_distribution_groups(value: str) -> bool:
    names = parse_distribution_groups(value)
    return bool(names) and all(GROUP_NAME_PATTERN.match(name) for name in names)


def is_valid_path_to_app(value: str) -> bool:
    if value != value.strip():
        return False
    return not value.endswith(("/", "\\"))


FIELD_VALIDATORS: Dict[str, Callable[[str], bool]] = {
    "api_token": is_valid_api_token,
    "owner_name": is_valid_owner_name,
    "app_name": is_valid_app_name,
    "distribution_groups": is_valid_distribution_groups,
    "path_to_app": is_valid_path_to_app,
}


def validate_field(field: str, value: Optional[str]) -> Optional[str]:
    """Return an error message for field, or None when the value is valid"""
    if value is None or not value.strip():
        return f"{field} is required"
    if not FIELD_VALIDATORS[field](value):
        return f"{field} is invalid"
    return None


def validate_fields(values: Dict[str, Optional[str]]) -> Dict[str, str]:
    """Validate every known field present in values; returns field -> error"""
    errors = {}
    for field, value in values.items():
        if field not in FIELD_VALIDATORS:
            continue
        error = validate_field(field, value)
        if error:
            errors[field] = error
    return errors
