"""
Field mapping between the local canonical schema and the remote tracker schema.
"""

from .status_map import StatusMap
from .transforms import MappingWarning, Transform, get_transform, apply_transform
from .field_mapper import FieldMapper, FieldSpec, DEFAULT_FIELD_SPECS

__all__ = [
    "StatusMap",
    "MappingWarning",
    "Transform",
    "get_transform",
    "apply_transform",
    "FieldMapper",
    "FieldSpec",
    "DEFAULT_FIELD_SPECS",
]
