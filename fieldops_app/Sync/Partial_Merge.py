# Partial_Merge.py
# Description: Merge of partially-populated server records onto local rows.
#
"""
Partial_Merge.py
----------------

The server may send back a record holding only the fields that changed. A
field missing from such a payload must never overwrite the local value, so
each decoded field is either `ABSENT` or a concrete value.

Wire conventions decoded by `PartialPayload.from_wire`:

- missing key: absent, for every field type
- TEXT: ``None`` or ``''`` is absent
- INT: ``-2`` is absent, ``None`` means explicitly unset and becomes ``-1``
- REAL / NULLABLE: ``None`` is absent

`merge()` then takes every present field from the payload and keeps
everything else, including the local key, from the existing row.
"""
# Imports
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from fieldops_app.Constants import NOT_PRESENT_INT, UNASSIGNED_ID
from fieldops_app.DB.FieldOps_DB import InputError
from fieldops_app.DB.Identity_Map import IdentityMap
from fieldops_app.Sync.entities import EntityKind, FieldSpec, FieldType, new_record
#
########################################################################################################################
#
# Functions:


class _Absent:
    """Marker for a field the payload did not carry."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "ABSENT"

    def __bool__(self):
        return False

    def __reduce__(self):
        return (_Absent, ())


ABSENT = _Absent()


def _decode_value(spec: FieldSpec, raw: Any) -> Any:
    """Decodes one wire value into ABSENT or a typed value."""
    if spec.field_type is FieldType.TEXT:
        if raw is None or raw == '':
            return ABSENT
        return str(raw)
    if spec.field_type is FieldType.INT:
        if raw is None:
            return UNASSIGNED_ID
        try:
            value = int(raw)
        except (TypeError, ValueError) as e:
            raise InputError(f"Field '{spec.json_key}' expects an integer, got {raw!r}") from e
        return ABSENT if value == NOT_PRESENT_INT else value
    if spec.field_type is FieldType.REAL:
        if raw is None:
            return ABSENT
        try:
            return float(raw)
        except (TypeError, ValueError) as e:
            raise InputError(f"Field '{spec.json_key}' expects a number, got {raw!r}") from e
    # NULLABLE
    return ABSENT if raw is None else raw


def is_present(spec: FieldSpec, value: Any) -> bool:
    """Applies the per-type presence rule to an already-decoded (or raw) value."""
    if value is ABSENT:
        return False
    if spec.field_type is FieldType.TEXT:
        return value not in (None, '')
    if spec.field_type is FieldType.INT:
        return value != NOT_PRESENT_INT
    return value is not None


@dataclass(frozen=True)
class PartialPayload:
    kind: EntityKind
    values: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, kind: EntityKind, data: Mapping[str, Any]) -> 'PartialPayload':
        """
        Decodes one server record.

        Raises:
            InputError: If `data` is not a mapping or a value cannot be coerced to its column type.
        """
        if not isinstance(data, Mapping):
            raise InputError(f"{kind.table} record must be an object, got {type(data).__name__}")
        values: Dict[str, Any] = {}
        for spec in kind.fields:
            raw = ABSENT
            for key in spec.json_keys:
                if key in data:
                    raw = data[key]
                    break
            values[spec.column] = ABSENT if raw is ABSENT else _decode_value(spec, raw)
        return cls(kind=kind, values=values)

    @classmethod
    def from_record(cls, kind: EntityKind, record: Mapping[str, Any]) -> 'PartialPayload':
        """Every synced column of a stored row, as present values."""
        return cls(kind=kind, values={column: record.get(column, ABSENT) for column in kind.columns})

    def get(self, column: str) -> Any:
        return self.values.get(column, ABSENT)

    def present_columns(self) -> Iterator[str]:
        for spec in self.kind.fields:
            if is_present(spec, self.get(spec.column)):
                yield spec.column

    @property
    def server_key(self) -> Optional[int]:
        """The server key carried by the payload, or None when absent or unassigned."""
        value = self.get(self.kind.server_key)
        if value is ABSENT or value in (None, UNASSIGNED_ID, NOT_PRESENT_INT):
            return None
        return int(value)

    def to_wire_sentinels(self) -> Dict[str, Any]:
        """
        Renders the payload back to the wire form, where absence is spelled with
        sentinels: '' for text, -2 for integers and null for the rest.
        """
        wire: Dict[str, Any] = {}
        for spec in self.kind.fields:
            value = self.get(spec.column)
            if is_present(spec, value):
                wire[spec.json_key] = value
            elif spec.field_type is FieldType.TEXT:
                wire[spec.json_key] = ''
            elif spec.field_type is FieldType.INT:
                wire[spec.json_key] = NOT_PRESENT_INT
            else:
                wire[spec.json_key] = None
        return wire


def merge(partial: PartialPayload, existing: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Overlays the present fields of `partial` on `existing`.

    The local key (``id``) always comes from `existing`. A payload carrying a
    different assigned server key than the existing row is rejected.

    Raises:
        InputError: On a server key mismatch.
    """
    kind = partial.kind
    existing_key = existing.get(kind.server_key, UNASSIGNED_ID)
    incoming_key = partial.server_key
    if incoming_key is not None and existing_key not in (None, UNASSIGNED_ID) and incoming_key != existing_key:
        raise InputError(f"{kind.table}: cannot merge server key {incoming_key} onto row with key {existing_key}")

    merged = dict(existing)
    for spec in kind.fields:
        value = partial.get(spec.column)
        if is_present(spec, value):
            merged[spec.column] = value
    if 'id' in existing:
        merged['id'] = existing['id']
    else:
        merged.pop('id', None)
    return merged


def apply_partial(identity_map: IdentityMap, partial: PartialPayload) -> int:
    """
    Merges one decoded server record into the store and returns its local key.

    The existing row is found by server key; a record seen for the first time
    is merged onto the table defaults.

    Raises:
        InputError: If the payload carries no server key.
    """
    kind = partial.kind
    server_key = partial.server_key
    if server_key is None:
        raise InputError(f"{kind.table} record has no server id")
    existing = identity_map.find_by_server_key(kind, server_key)
    if existing is None:
        existing = new_record(kind)
    merged = merge(partial, existing)
    local_key = identity_map.upsert(kind, merged)
    logger.trace(f"Merged {kind.table} server key {server_key} into local row {local_key}")
    return local_key

#
# End of Partial_Merge.py
########################################################################################################################
