"""
Translation between canonical records and remote field dictionaries.

Field mappings are declared per entity kind as a list of FieldSpec entries
(canonical name, remote name, transform). Declared custom fields are shared
by every kind and are compared by the conflict detector alongside the core
fields.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.exceptions import SyncConfigError
from ..core.models import CORE_FIELDS, CanonicalRecord, EntityKind
from .status_map import StatusMap
from .transforms import (
    FROM_REMOTE,
    TO_REMOTE,
    MappingWarning,
    Transform,
    apply_transform,
    get_transform,
)


logger = logging.getLogger(__name__)


@dataclass
class FieldSpec:
    """
    Declaration of one mapped field.

    Attributes:
        canonical: Canonical field name (core field or custom field key)
        remote: Remote field name
        transform: Transform name (see transforms.TRANSFORMS)
        read_only: Never pushed to the remote side (e.g. 'updated')
    """
    canonical: str
    remote: str
    transform: str = "preserve"
    read_only: bool = False

    @classmethod
    def from_dict(cls, canonical: str, data: Any) -> "FieldSpec":
        """
        Create from a config entry.

        Accepts either a bare remote name or a mapping with ``remote``,
        ``transform`` and ``read_only`` keys.
        """
        if isinstance(data, str):
            return cls(canonical=canonical, remote=data)
        if not isinstance(data, dict) or "remote" not in data:
            raise SyncConfigError(
                f"Field mapping for '{canonical}' must be a remote name or "
                f"a mapping with a 'remote' key"
            )
        return cls(
            canonical=canonical,
            remote=data["remote"],
            transform=data.get("transform", "preserve"),
            read_only=bool(data.get("read_only", False)),
        )


DEFAULT_FIELD_SPECS: List[FieldSpec] = [
    FieldSpec("name", "summary"),
    FieldSpec("status", "status", "status_map"),
    FieldSpec("description", "description"),
    FieldSpec("assignee", "assignee"),
    FieldSpec("progress", "customfield_progress", "percentage"),
    FieldSpec("updated_at", "updated", "datetime", read_only=True),
]


class FieldMapper:
    """
    Maps canonical records to remote fields and back.

    Every transform is total: malformed values are replaced by the
    transform's default and reported through the optional ``warnings``
    list (and the log).

    Args:
        mappings: Field specs per entity kind (defaults for missing kinds)
        custom_fields: Custom field specs shared by all kinds
        status_map: Status tables used by 'status_map' transforms

    Example:
        >>> mapper = FieldMapper()
        >>> fields = mapper.to_remote(record)
        >>> fields["summary"]
        'Implement login'
    """

    def __init__(
        self,
        mappings: Optional[Dict[EntityKind, List[FieldSpec]]] = None,
        custom_fields: Optional[List[FieldSpec]] = None,
        status_map: Optional[StatusMap] = None,
    ):
        self.status_map = status_map or StatusMap()
        self.custom_fields = list(custom_fields or [])
        self._specs: Dict[EntityKind, List[FieldSpec]] = {}
        for kind in EntityKind:
            specs = (mappings or {}).get(kind) or DEFAULT_FIELD_SPECS
            self._specs[kind] = list(specs) + self.custom_fields
        self._transforms: Dict[str, Transform] = {}
        for specs in self._specs.values():
            for spec in specs:
                if spec.transform not in self._transforms:
                    self._transforms[spec.transform] = get_transform(
                        spec.transform, self.status_map
                    )

    def specs_for(self, kind: EntityKind) -> List[FieldSpec]:
        return list(self._specs[EntityKind(kind)])

    def compared_fields(self, kind: EntityKind) -> List[str]:
        """Core fields plus every declared custom field, in report order."""
        return list(CORE_FIELDS) + [
            spec.canonical for spec in self.custom_fields
            if spec.canonical not in CORE_FIELDS
        ]

    def _spec(self, kind: EntityKind, canonical: str) -> Optional[FieldSpec]:
        for spec in self._specs[EntityKind(kind)]:
            if spec.canonical == canonical:
                return spec
        return None

    def to_remote(
        self,
        record: CanonicalRecord,
        warnings: Optional[List[MappingWarning]] = None,
    ) -> Dict[str, Any]:
        """
        Map a full canonical record to remote fields.

        Args:
            record: Record to map
            warnings: Optional list receiving MappingWarning entries

        Returns:
            Dictionary of remote field name to value
        """
        fields = {}
        for spec in self._specs[record.kind]:
            value = record.get_field(spec.canonical)
            fields[spec.remote] = apply_transform(
                self._transforms[spec.transform], value, TO_REMOTE,
                spec.canonical, warnings,
            )
        return fields

    def from_remote(
        self,
        fields: Dict[str, Any],
        entity_id: str,
        kind: EntityKind = EntityKind.TASK,
        warnings: Optional[List[MappingWarning]] = None,
    ) -> CanonicalRecord:
        """
        Map remote fields to a canonical record.

        Remote fields that are absent leave the canonical default in place.

        Args:
            fields: Remote field dictionary (as returned by RemoteClient.fetch)
            entity_id: Entity identifier for the record
            kind: Entity kind, selects the field mapping
            warnings: Optional list receiving MappingWarning entries

        Returns:
            CanonicalRecord built from the remote fields
        """
        kind = EntityKind(kind)
        core: Dict[str, Any] = {}
        custom: Dict[str, Any] = {}
        for spec in self._specs[kind]:
            if spec.remote not in fields:
                continue
            value = apply_transform(
                self._transforms[spec.transform], fields[spec.remote], FROM_REMOTE,
                spec.canonical, warnings,
            )
            if spec.canonical in CORE_FIELDS or spec.canonical == "updated_at":
                core[spec.canonical] = value
            else:
                custom[spec.canonical] = value

        for text_field in ("name", "description"):
            if core.get(text_field) is None:
                core.pop(text_field, None)

        return CanonicalRecord(id=entity_id, kind=kind, custom_fields=custom, **core)

    def delta_to_remote(
        self,
        delta: Dict[str, Any],
        kind: EntityKind = EntityKind.TASK,
        warnings: Optional[List[MappingWarning]] = None,
    ) -> Dict[str, Any]:
        """
        Map a partial canonical delta to remote field updates.

        Read-only fields and fields without a mapping are dropped.
        """
        updates = {}
        for canonical, value in delta.items():
            spec = self._spec(kind, canonical)
            if spec is None:
                logger.warning(f"No remote mapping for field '{canonical}', not pushed")
                continue
            if spec.read_only:
                continue
            updates[spec.remote] = apply_transform(
                self._transforms[spec.transform], value, TO_REMOTE, canonical, warnings,
            )
        return updates
