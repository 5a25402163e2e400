"""
Field value transforms between the canonical and remote representations.

Each transform converts in two directions:

- ``to_remote``: canonical value -> remote field value
- ``from_remote``: remote field value -> canonical value

The raw conversions raise MappingError on malformed input. Callers go
through ``apply_transform``, which recovers the error, records a
MappingWarning, logs it and returns the transform's documented default, so
from the outside every transform is total.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type

from ..core.exceptions import MappingError, SyncConfigError
from ..core.models import Status
from .status_map import StatusMap


logger = logging.getLogger(__name__)


TO_REMOTE = "to_remote"
FROM_REMOTE = "from_remote"


@dataclass
class MappingWarning:
    """
    Non-fatal problem found while transforming a field.

    Attributes:
        field: Canonical field name
        transform: Transform name
        direction: 'to_remote' or 'from_remote'
        value: The offending input value
        message: What was wrong
        default: The value substituted
    """
    field: str
    transform: str
    direction: str
    value: Any
    message: str
    default: Any = None


class Transform:
    """Base transform: identity in both directions."""

    name = "preserve"
    canonical_default: Any = None
    remote_default: Any = None

    def to_remote(self, value: Any) -> Any:
        return value

    def from_remote(self, value: Any) -> Any:
        return value


class PreserveTransform(Transform):
    name = "preserve"


class StatusTransform(Transform):
    """Status names via a StatusMap. Unknown remote names become ToDo."""

    name = "status_map"
    canonical_default = Status.TODO

    def __init__(self, status_map: Optional[StatusMap] = None):
        self.status_map = status_map or StatusMap()
        self.remote_default = self.status_map.to_remote(Status.TODO)

    def to_remote(self, value: Any) -> str:
        if isinstance(value, Status):
            return self.status_map.to_remote(value)
        try:
            return self.status_map.to_remote(Status(value))
        except ValueError:
            raise MappingError(f"Not a canonical status: {value!r}", value=value)

    def from_remote(self, value: Any) -> Status:
        if isinstance(value, dict):
            value = value.get("name")
        if not self.status_map.is_known_remote(value):
            raise MappingError(f"Unknown remote status: {value!r}", value=value)
        return self.status_map.from_remote(value)


def parse_percentage(value: Any) -> int:
    """
    Parse 50, "50" or "50%" into an int within [0, 100].

    Raises:
        MappingError: If the value is not a whole number in range
    """
    if isinstance(value, bool):
        raise MappingError(f"Invalid percentage: {value!r}", value=value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not value.is_integer():
            raise MappingError(f"Invalid percentage: {value!r}", value=value)
        number = int(value)
    else:
        text = str(value).strip()
        if text.endswith("%"):
            text = text[:-1].strip()
        if not text.isdigit():
            raise MappingError(f"Invalid percentage: {value!r}", value=value)
        number = int(text)
    if not 0 <= number <= 100:
        raise MappingError(f"Percentage out of range: {value!r}", value=value)
    return number


class PercentageTransform(Transform):
    """
    Completion percentage.

    Accepts ``50``, ``"50"`` and ``"50%"``; anything outside 0-100 or not a
    whole number becomes 0. Both sides carry a plain int.
    """

    name = "percentage"
    canonical_default = 0
    remote_default = 0

    def to_remote(self, value: Any) -> int:
        if value is None or value == "":
            return 0
        return parse_percentage(value)

    def from_remote(self, value: Any) -> int:
        if value is None or value == "":
            return 0
        return parse_percentage(value)


_ISO_DATETIME = re.compile(
    r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$"
)
_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_datetime(value: Any) -> datetime:
    """
    Parse an ISO 8601 timestamp into an aware UTC datetime.

    Accepts the Jira form ``2024-01-15T10:30:00.000+0000`` as well as
    ``Z`` suffixes and naive values (assumed UTC).

    Raises:
        MappingError: If the value is not an ISO 8601 timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not _ISO_DATETIME.match(text):
            raise MappingError(f"Invalid datetime format: {value!r}", value=value)
        text = text.replace("Z", "+00:00")
        text = _COMPACT_OFFSET.sub(r"\1:\2", text)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise MappingError(f"Invalid datetime: {value!r} ({e})", value=value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class DatetimeTransform(Transform):
    """ISO 8601 timestamps. Canonical side holds aware UTC datetimes."""

    name = "datetime"
    canonical_default = None
    remote_default = None

    def to_remote(self, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return parse_datetime(value).isoformat()

    def from_remote(self, value: Any) -> Optional[datetime]:
        if value is None or value == "":
            return None
        return parse_datetime(value)


_TRUE_STRINGS = ("true", "True", "TRUE", "1", "yes", "Yes", "YES")
_FALSE_STRINGS = ("false", "False", "FALSE", "0", "no", "No", "NO", "")


def _parse_boolean(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise MappingError(f"Invalid boolean: {value!r}", value=value)


class BooleanTransform(Transform):
    name = "boolean"
    canonical_default = False
    remote_default = False

    def to_remote(self, value: Any) -> bool:
        return _parse_boolean(value)

    def from_remote(self, value: Any) -> bool:
        return _parse_boolean(value)


def _parse_array(value: Any) -> List[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError as e:
                raise MappingError(f"Invalid array: {value!r} ({e})", value=value)
            if not isinstance(parsed, list):
                raise MappingError(f"Invalid array: {value!r}", value=value)
            return parsed
        return [part.strip() for part in text.split(",") if part.strip()]
    raise MappingError(f"Invalid array: {value!r}", value=value)


class ArrayTransform(Transform):
    """
    Lists. Comma-separated strings and JSON array strings are accepted on
    input; both sides carry a list.
    """

    name = "array"

    @property
    def canonical_default(self) -> List[Any]:
        return []

    @property
    def remote_default(self) -> List[Any]:
        return []

    def to_remote(self, value: Any) -> List[Any]:
        return _parse_array(value)

    def from_remote(self, value: Any) -> List[Any]:
        return _parse_array(value)


_URL = re.compile(r"^https?://")


def _validate_url(value: Any) -> str:
    if value is None or value == "":
        return ""
    text = str(value).strip()
    if not _URL.match(text):
        raise MappingError(f"Invalid URL format: {value!r}", value=value)
    return text


class UrlTransform(Transform):
    name = "url"
    canonical_default = ""
    remote_default = ""

    def to_remote(self, value: Any) -> str:
        return _validate_url(value)

    def from_remote(self, value: Any) -> str:
        return _validate_url(value)


SIZE_TO_POINTS: Dict[str, int] = {
    "XS": 1,
    "S": 3,
    "M": 5,
    "L": 8,
    "XL": 13,
    "XXL": 21,
}


def points_to_size(points: int) -> str:
    """Map story points back to the nearest T-shirt size range."""
    if points <= 1:
        return "XS"
    if points <= 3:
        return "S"
    if points <= 5:
        return "M"
    if points <= 8:
        return "L"
    if points <= 13:
        return "XL"
    return "XXL"


class SizeTransform(Transform):
    """
    T-shirt size (canonical) <-> story points (remote).

    Unknown sizes and non-numeric points fall back to M / 5.
    """

    name = "size"
    canonical_default = "M"
    remote_default = SIZE_TO_POINTS["M"]

    def to_remote(self, value: Any) -> int:
        if value is None or value == "":
            return self.remote_default
        size = str(value).strip().upper()
        if size not in SIZE_TO_POINTS:
            raise MappingError(f"Unknown size: {value!r}", value=value)
        return SIZE_TO_POINTS[size]

    def from_remote(self, value: Any) -> str:
        if value is None or value == "":
            return self.canonical_default
        if isinstance(value, bool):
            raise MappingError(f"Invalid story points: {value!r}", value=value)
        try:
            points = float(value)
        except (TypeError, ValueError):
            raise MappingError(f"Invalid story points: {value!r}", value=value)
        return points_to_size(int(points))


TRANSFORMS: Dict[str, Type[Transform]] = {
    "preserve": PreserveTransform,
    "status_map": StatusTransform,
    "percentage": PercentageTransform,
    "datetime": DatetimeTransform,
    "boolean": BooleanTransform,
    "array": ArrayTransform,
    "url": UrlTransform,
    "size": SizeTransform,
}


def get_transform(name: str, status_map: Optional[StatusMap] = None) -> Transform:
    """
    Instantiate a transform by name.

    Raises:
        SyncConfigError: If the name is not a known transform
    """
    if name not in TRANSFORMS:
        raise SyncConfigError(
            f"Unknown transform '{name}'. Known: {', '.join(sorted(TRANSFORMS))}"
        )
    if name == "status_map":
        return StatusTransform(status_map)
    return TRANSFORMS[name]()


def apply_transform(
    transform: Transform,
    value: Any,
    direction: str,
    field: str,
    warnings: Optional[List[MappingWarning]] = None,
) -> Any:
    """
    Run a transform, recovering malformed input.

    Args:
        transform: The transform to run
        value: Input value
        direction: TO_REMOTE or FROM_REMOTE
        field: Canonical field name (for the warning)
        warnings: List that receives a MappingWarning on recovery

    Returns:
        The transformed value, or the transform's default for the target side
    """
    convert = transform.to_remote if direction == TO_REMOTE else transform.from_remote
    try:
        return convert(value)
    except MappingError as e:
        default = (
            transform.remote_default if direction == TO_REMOTE
            else transform.canonical_default
        )
        logger.warning(
            f"Mapping {field} ({transform.name}, {direction}) failed: {e}; "
            f"using default {default!r}"
        )
        if warnings is not None:
            warnings.append(MappingWarning(
                field=field,
                transform=transform.name,
                direction=direction,
                value=value,
                message=str(e),
                default=default,
            ))
        return default
