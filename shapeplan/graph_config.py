"""
shapeplan.graph_config — How RDF vocabulary is projected onto the property graph.

A GraphConfig can be built from the properties passed by a caller
(from_props), or read back from the flat mapping it was persisted as
(from_storage). Instances are frozen; add() returns a merged copy.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from shapeplan.errors import InvalidParamError
from shapeplan.uris import is_correct_uri_split

DEFAULT_BASE_SCHEMA_NAMESPACE = "neo4j://graph.schema#"
DEFAULT_BASE_SCHEMA_PREFIX = "n4sch"

PREFIX_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_\-]*$")


# ─── Modes ───────────────────────────────────────────────────────────


class _CodedEnum(str, Enum):
    """String enum persisted as its position in the declaration order."""

    @property
    def code(self) -> int:
        return list(type(self)).index(self)

    @classmethod
    def from_code(cls, code: int):
        return list(cls)[code]

    @classmethod
    def parse(cls, param: str, value):
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        raise InvalidParamError(param, value)


class VocabUriMode(_CodedEnum):
    SHORTEN = "SHORTEN"
    SHORTEN_STRICT = "SHORTEN_STRICT"
    IGNORE = "IGNORE"
    MAP = "MAP"
    KEEP = "KEEP"


class MultivalMode(_CodedEnum):
    OVERWRITE = "OVERWRITE"
    ARRAY = "ARRAY"


class RdfTypesMode(_CodedEnum):
    LABELS = "LABELS"
    NODES = "NODES"
    LABELS_AND_NODES = "LABELS_AND_NODES"

    @property
    def as_labels(self) -> bool:
        return self in (RdfTypesMode.LABELS, RdfTypesMode.LABELS_AND_NODES)

    @property
    def as_nodes(self) -> bool:
        return self in (RdfTypesMode.NODES, RdfTypesMode.LABELS_AND_NODES)


class GraphMode(str, Enum):
    RDF = "RDF"
    LPG = "LPG"


_RDF_VOCAB_MODES = {VocabUriMode.SHORTEN, VocabUriMode.SHORTEN_STRICT, VocabUriMode.KEEP}


# ─── Config ──────────────────────────────────────────────────────────

# external key -> (field name, default) for the plain string settings
_NAME_SETTINGS = {
    "classLabel": ("class_label", "Class"),
    "subClassOfRel": ("subclass_of_rel", "SCO"),
    "dataTypePropertyLabel": ("datatype_property_label", "Property"),
    "objectPropertyLabel": ("object_property_label", "Relationship"),
    "subPropertyOfRel": ("subproperty_of_rel", "SPO"),
    "domainRel": ("domain_rel", "DOMAIN"),
    "rangeRel": ("range_rel", "RANGE"),
}

_FLAGS = {
    "keepLangTag": "keep_lang_tag",
    "applyNeo4jNaming": "apply_neo4j_naming",
    "keepCustomDataTypes": "keep_custom_datatypes",
}

_URI_LISTS = {
    "multivalPropList": "multival_prop_list",
    "customDataTypePropList": "custom_datatype_prop_list",
}

_ENUMS = {
    "handleVocabUris": ("vocab_uri_mode", VocabUriMode),
    "handleMultival": ("multival_mode", MultivalMode),
    "handleRDFTypes": ("rdf_types_mode", RdfTypesMode),
}

NODE_PROPERTIES_KEY = "forciblyAssignedOnImportNodeProperties"


@dataclass(frozen=True)
class GraphConfig:
    vocab_uri_mode: VocabUriMode = VocabUriMode.SHORTEN
    multival_mode: MultivalMode = MultivalMode.OVERWRITE
    rdf_types_mode: RdfTypesMode = RdfTypesMode.LABELS
    keep_lang_tag: bool = False
    apply_neo4j_naming: bool = False
    keep_custom_datatypes: bool = False
    multival_prop_list: Optional[frozenset[str]] = None
    custom_datatype_prop_list: Optional[frozenset[str]] = None
    base_schema_ns: Optional[str] = None
    base_schema_prefix: Optional[str] = None
    class_label: str = "Class"
    subclass_of_rel: str = "SCO"
    datatype_property_label: str = "Property"
    object_property_label: str = "Relationship"
    subproperty_of_rel: str = "SPO"
    domain_rel: str = "DOMAIN"
    range_rel: str = "RANGE"
    forcibly_assigned_properties: dict[str, Any] = field(default_factory=dict, hash=False)

    # ── Construction ─────────────────────────────────────────────

    @classmethod
    def from_props(cls, props: dict[str, Any]) -> GraphConfig:
        """Build a config from caller-supplied properties.

        Unknown keys are ignored. Enum values outside their closed set raise
        InvalidParamError; an invalid base namespace or prefix is dropped.
        """
        values: dict[str, Any] = {}
        for key, (name, enum_cls) in _ENUMS.items():
            if key in props:
                values[name] = enum_cls.parse(key, props[key])
        for key, name in _FLAGS.items():
            values[name] = _flag(key, props.get(key))
        for key, name in _URI_LISTS.items():
            values[name] = _uri_set(props.get(key))
        values["base_schema_ns"] = _valid_namespace(props.get("baseSchemaNamespace"))
        values["base_schema_prefix"] = _valid_prefix(props.get("baseSchemaPrefix"))
        for key, (name, default) in _NAME_SETTINGS.items():
            values[name] = props.get(key, default)
        values["forcibly_assigned_properties"] = dict(props.get(NODE_PROPERTIES_KEY) or {})
        return cls(**values)

    @classmethod
    def from_storage(
        cls,
        stored: dict[str, Any],
        node_properties: Optional[dict[str, Any]] = None,
    ) -> GraphConfig:
        """Rebuild a config from the flat mapping produced by to_storage().

        The forcibly-assigned node properties may come embedded in `stored`
        or, as persisted in the graph, as a separate sibling mapping.
        """
        values: dict[str, Any] = {}
        for key, (name, enum_cls) in _ENUMS.items():
            raw = stored.get(f"_{key}")
            if raw is None:
                continue
            if isinstance(raw, int) and not isinstance(raw, bool):
                try:
                    values[name] = enum_cls.from_code(raw)
                except IndexError:
                    raise InvalidParamError(key, raw) from None
            else:
                values[name] = enum_cls.parse(key, raw)
        for key, name in _FLAGS.items():
            values[name] = _flag(key, stored.get(f"_{key}"))
        for key, name in _URI_LISTS.items():
            values[name] = _uri_set(stored.get(f"_{key}"))
        values["base_schema_ns"] = stored.get("_baseSchemaNamespace")
        values["base_schema_prefix"] = stored.get("_baseSchemaPrefix")
        for key, (name, default) in _NAME_SETTINGS.items():
            stored_value = stored.get(f"_{key}")
            values[name] = stored_value if stored_value is not None else default

        if node_properties is None:
            node_properties = stored.get(f"_{NODE_PROPERTIES_KEY}")
        node_properties = dict(node_properties or {})
        node_properties.pop("identity", None)
        values["forcibly_assigned_properties"] = node_properties
        return cls(**values)

    def add(self, props: dict[str, Any]) -> GraphConfig:
        """Return a copy with `props` merged in.

        Booleans are only ever switched on: a false value never clears a
        flag that is already set.
        """
        changes: dict[str, Any] = {}
        for key, (name, enum_cls) in _ENUMS.items():
            if key in props:
                changes[name] = enum_cls.parse(key, props[key])
        for key, name in _FLAGS.items():
            if _flag(key, props.get(key)):
                changes[name] = True
        for key, name in _URI_LISTS.items():
            if key in props:
                changes[name] = _uri_set(props[key])
        if _valid_namespace(props.get("baseSchemaNamespace")) is not None:
            changes["base_schema_ns"] = props["baseSchemaNamespace"]
        if _valid_prefix(props.get("baseSchemaPrefix")) is not None:
            changes["base_schema_prefix"] = props["baseSchemaPrefix"]
        for key, (name, _) in _NAME_SETTINGS.items():
            if key in props:
                changes[name] = props[key]
        if NODE_PROPERTIES_KEY in props:
            changes["forcibly_assigned_properties"] = dict(props[NODE_PROPERTIES_KEY] or {})
        return replace(self, **changes)

    # ── Derived values ───────────────────────────────────────────

    @property
    def graph_mode(self) -> GraphMode:
        if self.vocab_uri_mode in _RDF_VOCAB_MODES:
            return GraphMode.RDF
        return GraphMode.LPG

    @property
    def base_schema_namespace(self) -> str:
        return self.base_schema_ns or DEFAULT_BASE_SCHEMA_NAMESPACE

    @property
    def base_schema_namespace_prefix(self) -> str:
        return self.base_schema_prefix or DEFAULT_BASE_SCHEMA_PREFIX

    @property
    def related_concept_rel(self) -> str:
        return "RELATED"

    # ── Serialisation ────────────────────────────────────────────

    def to_storage(self, include_node_properties: bool = True) -> dict[str, Any]:
        """Flat mapping with every field under its '_'-prefixed storage key."""
        stored: dict[str, Any] = {}
        for key, (name, _) in _ENUMS.items():
            stored[f"_{key}"] = getattr(self, name).code
        for key, name in _FLAGS.items():
            stored[f"_{key}"] = getattr(self, name)
        for key, name in _URI_LISTS.items():
            value = getattr(self, name)
            stored[f"_{key}"] = sorted(value) if value is not None else None
        stored["_baseSchemaNamespace"] = self.base_schema_ns
        stored["_baseSchemaPrefix"] = self.base_schema_prefix
        for key, (name, _) in _NAME_SETTINGS.items():
            stored[f"_{key}"] = getattr(self, name)
        if include_node_properties:
            stored[f"_{NODE_PROPERTIES_KEY}"] = dict(self.forcibly_assigned_properties)
        return stored

    def as_items(self) -> list[tuple[str, Any]]:
        """External view: unprefixed keys, canonical enum names, absent options omitted."""
        items: list[tuple[str, Any]] = [
            ("handleVocabUris", self.vocab_uri_mode.value),
            ("handleMultival", self.multival_mode.value),
            ("handleRDFTypes", self.rdf_types_mode.value),
            ("keepLangTag", self.keep_lang_tag),
        ]
        if self.multival_prop_list is not None:
            items.append(("multivalPropList", sorted(self.multival_prop_list)))
        items.append(("keepCustomDataTypes", self.keep_custom_datatypes))
        if self.custom_datatype_prop_list is not None:
            items.append(("customDataTypePropList", sorted(self.custom_datatype_prop_list)))
        items.append(("applyNeo4jNaming", self.apply_neo4j_naming))
        if self.base_schema_ns is not None:
            items.append(("baseSchemaNamespace", self.base_schema_ns))
        if self.base_schema_prefix is not None:
            items.append(("baseSchemaPrefix", self.base_schema_prefix))
        for key, (name, _) in _NAME_SETTINGS.items():
            items.append((key, getattr(self, name)))
        items.append((NODE_PROPERTIES_KEY, dict(self.forcibly_assigned_properties)))
        return items


# ── Helpers ──────────────────────────────────────────────────────


def _flag(key: str, value) -> bool:
    """A boolean setting: absent is false, anything but a bool is rejected."""
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidParamError(key, value)
    return value


def _uri_set(value) -> Optional[frozenset[str]]:
    if value is None:
        return None
    return frozenset(value)


def _valid_namespace(value) -> Optional[str]:
    if isinstance(value, str) and is_correct_uri_split(value, "someLocalName"):
        return value
    return None


def _valid_prefix(value) -> Optional[str]:
    if isinstance(value, str) and PREFIX_PATTERN.match(value):
        return value
    return None
