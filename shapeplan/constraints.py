"""
shapeplan.constraints — Typed constraint model.

A raw record from shapeplan.shapes is a grab bag of optional facets.
constraints_from_record() lifts it into one variant per constraint it
carries, each sharing a ShapeTarget header. The plan builder decides
which query templates a variant lowers to; this module only models.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from rdflib.namespace import SH

from shapeplan.shapes import CLOSED_DEFINITION
from shapeplan.uris import RDF_TYPE, SH_VIOLATION

logger = logging.getLogger(__name__)


# ─── Kinds ───────────────────────────────────────────────────────────


class ConstraintKind(str, Enum):
    DATATYPE = "Datatype"
    HAS_VALUE = "HasValue"
    NODE_KIND = "NodeKind"
    CLASS = "Class"
    IN = "In"
    PATTERN = "Pattern"
    MIN_COUNT = "MinCount"
    MAX_COUNT = "MaxCount"
    MIN_LENGTH = "MinLength"
    MAX_LENGTH = "MaxLength"
    MIN_INCLUSIVE = "MinInclusive"
    MAX_INCLUSIVE = "MaxInclusive"
    MIN_EXCLUSIVE = "MinExclusive"
    MAX_EXCLUSIVE = "MaxExclusive"
    IGNORED_PROPERTIES = "IgnoredProperties"
    NOT = "Not"


class NodeKind(str, Enum):
    LITERAL = str(SH.Literal)
    BLANK_NODE_OR_IRI = str(SH.BlankNodeOrIRI)
    IRI = str(SH.IRI)
    BLANK_NODE = str(SH.BlankNode)

    @property
    def is_literal(self) -> bool:
        return self is NodeKind.LITERAL


# ─── Variants ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ShapeTarget:
    target_class: str
    path: Optional[str]  # predicate IRI, None for node-level constraints
    inverse: bool
    severity: str
    shape_uid: str

    @property
    def on_type(self) -> bool:
        return self.path == RDF_TYPE


@dataclass(frozen=True)
class Datatype:
    target: ShapeTarget
    datatype: str


@dataclass(frozen=True)
class HasValue:
    target: ShapeTarget
    values: list[str]
    literal: bool


@dataclass(frozen=True)
class NodeKindConstraint:
    target: ShapeTarget
    node_kind: NodeKind


@dataclass(frozen=True)
class ClassRange:
    target: ShapeTarget
    range_class: str


@dataclass(frozen=True)
class In:
    target: ShapeTarget
    values: list[str]
    literal: bool


@dataclass(frozen=True)
class Pattern:
    target: ShapeTarget
    regex: str


@dataclass(frozen=True)
class MinCount:
    target: ShapeTarget
    count: int


@dataclass(frozen=True)
class MaxCount:
    target: ShapeTarget
    count: int


@dataclass(frozen=True)
class StringLength:
    target: ShapeTarget
    min_length: Optional[int] = None
    max_length: Optional[int] = None


@dataclass(frozen=True)
class ValueRange:
    target: ShapeTarget
    min_inclusive: Any = None
    min_exclusive: Any = None
    max_inclusive: Any = None
    max_exclusive: Any = None

    @property
    def lower(self) -> Any:
        return self.min_inclusive if self.min_inclusive is not None else self.min_exclusive

    @property
    def upper(self) -> Any:
        return self.max_inclusive if self.max_inclusive is not None else self.max_exclusive


@dataclass(frozen=True)
class Closed:
    target: ShapeTarget
    defined: list[str] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NotClass:
    target: ShapeTarget
    classes: list[str]


@dataclass(frozen=True)
class RequiredClass:
    target: ShapeTarget
    classes: list[str]


Constraint = Union[
    Datatype, HasValue, NodeKindConstraint, ClassRange, In, Pattern, MinCount,
    MaxCount, StringLength, ValueRange, Closed, NotClass, RequiredClass,
]


@dataclass(frozen=True)
class ConstraintComponent:
    """Inventory entry describing one compiled constraint."""

    focus_label: str
    path: Optional[str]
    kind: ConstraintKind
    payload: Any


# ─── Lifting ─────────────────────────────────────────────────────────


def constraints_from_record(record: dict[str, Any]) -> list[Constraint]:
    """Lift a raw constraint record into typed variants.

    Variants come out in a fixed order so that plan emission is
    deterministic for a given record.
    """
    target_class = record.get("appliesToCat")
    if target_class is None:
        return []

    if record.get("constraintType") == CLOSED_DEFINITION:
        target = _node_target(record)
        return [Closed(
            target,
            defined=list(record.get("definedProps") or []),
            ignored=list(record.get("ignoredProps") or []),
        )]

    if record.get("item") is None:
        return _node_constraints(record)

    target = ShapeTarget(
        target_class=target_class,
        path=record["item"],
        inverse=bool(record.get("inverse", False)),
        severity=record.get("severity") or SH_VIOLATION,
        shape_uid=record.get("propShapeUid") or record.get("nodeShapeUid") or "",
    )
    found: list[Constraint] = []

    if record.get("dataType"):
        found.append(Datatype(target, record["dataType"]))
    if record.get("hasValueUri"):
        found.append(HasValue(target, list(record["hasValueUri"]), literal=False))
    if record.get("hasValueLiteral"):
        found.append(HasValue(target, list(record["hasValueLiteral"]), literal=True))
    if record.get("rangeKind"):
        try:
            found.append(NodeKindConstraint(target, NodeKind(record["rangeKind"])))
        except ValueError:
            logger.debug("Ignoring unsupported sh:nodeKind %s", record["rangeKind"])
    if record.get("rangeType"):
        found.append(ClassRange(target, record["rangeType"]))
    if record.get("inLiterals"):
        found.append(In(target, list(record["inLiterals"]), literal=True))
    if record.get("inUris"):
        found.append(In(target, list(record["inUris"]), literal=False))
    if record.get("pattern") is not None:
        found.append(Pattern(target, record["pattern"]))
    if record.get("minCount") is not None:
        found.append(MinCount(target, record["minCount"]))
    if record.get("maxCount") is not None:
        found.append(MaxCount(target, record["maxCount"]))
    if record.get("minStrLen") is not None or record.get("maxStrLen") is not None:
        found.append(StringLength(target, record.get("minStrLen"), record.get("maxStrLen")))
    if any(record.get(k) is not None for k in ("minInc", "minExc", "maxInc", "maxExc")):
        found.append(ValueRange(
            target,
            min_inclusive=record.get("minInc"),
            min_exclusive=record.get("minExc"),
            max_inclusive=record.get("maxInc"),
            max_exclusive=record.get("maxExc"),
        ))
    return found


def _node_target(record: dict[str, Any]) -> ShapeTarget:
    # node-level checks always report as violations
    return ShapeTarget(
        target_class=record["appliesToCat"],
        path=None,
        inverse=False,
        severity=SH_VIOLATION,
        shape_uid=record.get("nodeShapeUid") or "",
    )


def _node_constraints(record: dict[str, Any]) -> list[Constraint]:
    target = _node_target(record)
    found: list[Constraint] = []
    if record.get("disjointClass"):
        found.append(NotClass(target, list(record["disjointClass"])))
    if record.get("reqClass"):
        found.append(RequiredClass(target, list(record["reqClass"])))
    return found
