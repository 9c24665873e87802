"""
shapeplan.compiler — Lower SHACL constraints into a ValidatorPlan.

For every raw record the PlanBuilder translates the target class and path
into graph names, lifts the record into typed constraints and emits the
matching query templates. Parameter values go into parameter sets named
"<shape uid>_<SHACL constraint IRI>", and every compiled constraint is
listed in the plan inventory.

Which templates a constraint lowers to depends on the graph config:
constraints on rdf:type check labels, typed edges or both, following
handleRDFTypes. Without a config the graph is treated as a plain LPG.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Union

from rdflib.namespace import SH

from shapeplan.config_store import GraphConfigStore
from shapeplan.constraints import (
    ClassRange,
    Closed,
    ConstraintComponent,
    ConstraintKind,
    Datatype,
    HasValue,
    In,
    MaxCount,
    MinCount,
    NodeKindConstraint,
    NotClass,
    Pattern,
    RequiredClass,
    ShapeTarget,
    StringLength,
    ValueRange,
    constraints_from_record,
)
from shapeplan.graph_config import GraphConfig
from shapeplan.plan import ValidatorPlan
from shapeplan.shapes import ParserConfig, parse_constraints
from shapeplan.templates import (
    Dialect,
    TemplateId,
    TemplateLibrary,
    cypher_name,
    cypher_string,
    datatype_check,
    is_checked_datatype,
)
from shapeplan.uri_translator import NamespacePrefixes, UriTranslator
from shapeplan.uris import RDF_TYPE, local_name

logger = logging.getLogger(__name__)


class PlanBuilder:
    def __init__(
        self,
        config: Optional[GraphConfig] = None,
        translator: Optional[UriTranslator] = None,
    ):
        self.config = config
        self.translator = translator if translator is not None else UriTranslator(config=config)
        self.dialect = Dialect.for_config(config)
        self.templates = TemplateLibrary(self.dialect)

    @classmethod
    def from_transaction(cls, tx) -> PlanBuilder:
        """Builder for the graph behind `tx`: its persisted config and prefixes."""
        config = GraphConfigStore(tx).load()
        return cls(config, UriTranslator.load(tx, config))

    @property
    def types_as_labels(self) -> bool:
        return self.config is None or self.config.rdf_types_mode.as_labels

    @property
    def types_as_nodes(self) -> bool:
        return self.config is not None and self.config.rdf_types_mode.as_nodes

    # ── Entry point ──────────────────────────────────────────────

    def build(self, records: Iterable[dict[str, Any]]) -> ValidatorPlan:
        plan = ValidatorPlan(rdf_mode=self.dialect.rdf_mode)
        dispatch = {
            Datatype: self._datatype,
            HasValue: self._has_value,
            NodeKindConstraint: self._node_kind,
            ClassRange: self._class_range,
            In: self._in,
            Pattern: self._pattern,
            MinCount: self._min_count,
            MaxCount: self._max_count,
            StringLength: self._string_length,
            ValueRange: self._value_range,
            Closed: self._closed,
            NotClass: self._not_class,
            RequiredClass: self._required_class,
        }

        for record in records:
            if record.get("appliesToCat") is None:
                logger.debug(
                    "Only class-based targets (sh:targetClass) and implicit class "
                    "targets are validated, skipping %s",
                    record.get("propShapeUid") or record.get("nodeShapeUid"),
                )
                continue
            for constraint in constraints_from_record(record):
                logger.debug("Compiling %s", constraint)
                dispatch[type(constraint)](plan, constraint)

        logger.info(
            "Compiled %d queries for %d constraints", len(plan.entries), len(plan.inventory)
        )
        return plan

    # ── Emission helpers ─────────────────────────────────────────

    def _bind(self, target: ShapeTarget) -> tuple[str, Optional[str], dict[str, str]]:
        """Translate a target and return (focus label, path token, slots)."""
        focus = self.translator.translate(target.target_class)
        slots = {
            "focus": cypher_name(focus),
            "focus_lit": cypher_string(focus),
            "shape_lit": cypher_string(target.shape_uid),
            "severity_lit": cypher_string(target.severity),
        }
        path = None
        if target.path is not None:
            path = self.translator.translate(target.path)
            slots["path"] = cypher_name(path)
            slots["path_lit"] = cypher_string(path)
        return focus, path, slots

    def _emit(
        self,
        plan: ValidatorPlan,
        template_id: TemplateId,
        slots: dict[str, str],
        triggers: list[str],
        kind: ConstraintKind,
        shape_id: str,
        param_set: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        if param_set is not None:
            slots = {**slots, "params": cypher_name(param_set)}
        plan.add_query(
            self.templates.render(template_id, slots),
            self.templates.render(template_id, slots, scoped=True),
            triggers,
            kind,
            shape_id,
            param_set,
            path,
        )

    def _iri_payload(self, iri: str) -> str:
        return iri if self.dialect.rdf_mode else local_name(iri)

    @staticmethod
    def _param_set_id(target: ShapeTarget, shacl_term) -> str:
        return f"{target.shape_uid}_{shacl_term}"

    # ── Value type ───────────────────────────────────────────────

    def _datatype(self, plan: ValidatorPlan, c: Datatype) -> None:
        if c.target.on_type:
            return
        focus, path, slots = self._bind(c.target)
        if not is_checked_datatype(c.datatype):
            logger.debug("No value check for datatype %s; values are not checked", c.datatype)

        slots.update(value_check=datatype_check(c.datatype), datatype_lit=cypher_string(c.datatype))
        self._emit(
            plan, TemplateId.DATATYPE, slots, [focus], ConstraintKind.DATATYPE,
            c.target.shape_uid, path=path,
        )
        self._emit(
            plan, TemplateId.DATATYPE_NOT_RELATIONSHIP, slots, [focus],
            ConstraintKind.DATATYPE, c.target.shape_uid, path=path,
        )
        plan.add_constraint(ConstraintComponent(
            focus, path, ConstraintKind.DATATYPE, self._iri_payload(c.datatype),
        ))

    def _node_kind(self, plan: ValidatorPlan, c: NodeKindConstraint) -> None:
        if c.target.on_type:
            return
        focus, path, slots = self._bind(c.target)
        template_id = TemplateId.NODE_KIND_LITERAL if c.node_kind.is_literal else TemplateId.NODE_KIND_IRI
        self._emit(
            plan, template_id, slots, [focus], ConstraintKind.NODE_KIND, c.target.shape_uid, path=path,
        )
        plan.add_constraint(ConstraintComponent(
            focus, path, ConstraintKind.NODE_KIND, self._iri_payload(c.node_kind.value),
        ))

    def _class_range(self, plan: ValidatorPlan, c: ClassRange) -> None:
        if c.target.on_type:
            return
        focus, path, slots = self._bind(c.target)
        range_label = self.translator.translate(c.range_class)
        slots.update(cls=cypher_name(range_label), cls_lit=cypher_string(range_label))
        triggers = [focus, range_label]
        for template_id in (TemplateId.CLASS_RANGE, TemplateId.CLASS_NOT_PROPERTY):
            self._emit(
                plan, template_id, slots, triggers, ConstraintKind.CLASS, c.target.shape_uid, path=path,
            )
        plan.add_constraint(ConstraintComponent(focus, path, ConstraintKind.CLASS, range_label))

    def _pattern(self, plan: ValidatorPlan, c: Pattern) -> None:
        if c.target.on_type:
            return
        focus, path, slots = self._bind(c.target)
        param_set = self._param_set_id(c.target, SH.pattern)
        plan.new_param_set(param_set)["theRegex"] = c.regex
        self._emit(
            plan, TemplateId.PATTERN, slots, [focus], ConstraintKind.PATTERN,
            c.target.shape_uid, param_set, path,
        )
        plan.add_constraint(ConstraintComponent(focus, path, ConstraintKind.PATTERN, c.regex))

    # ── Required and enumerated values ───────────────────────────

    def _has_value(self, plan: ValidatorPlan, c: HasValue) -> None:
        target = c.target
        if c.literal and target.on_type:
            return
        if not c.literal and not (target.on_type or self.dialect.uri_ids):
            logger.debug("sh:hasValue with IRIs needs URI-identified nodes, skipping %s", target.shape_uid)
            return

        focus, path, slots = self._bind(target)
        param_set = self._param_set_id(target, SH.hasValue)
        params = plan.new_param_set(param_set)
        payload = list(c.values)

        def emit(template_id):
            self._emit(
                plan, template_id, slots, [focus], ConstraintKind.HAS_VALUE,
                target.shape_uid, param_set, path,
            )

        if c.literal:
            params["theHasValueLiteral"] = list(c.values)
            emit(TemplateId.HAS_VALUE_LITERAL)
        elif target.on_type:
            if self.types_as_labels:
                payload = self.translator.translate_all(c.values)
                params["theHasTypeTranslatedUris"] = payload
                emit(TemplateId.HAS_VALUE_TYPE_LABEL)
            # LABELS_AND_NODES gets both checks
            if self.types_as_nodes:
                params["theHasTypeUris"] = list(c.values)
                emit(TemplateId.HAS_VALUE_TYPE_NODE)
        else:
            params["theHasValueUri"] = list(c.values)
            emit(TemplateId.HAS_VALUE_URI)

        plan.add_constraint(ConstraintComponent(focus, path, ConstraintKind.HAS_VALUE, payload))

    def _in(self, plan: ValidatorPlan, c: In) -> None:
        target = c.target
        if c.literal and target.on_type:
            return

        focus, path, slots = self._bind(target)
        param_set = self._param_set_id(target, SH["in"])
        params = plan.new_param_set(param_set)
        payload = list(c.values)

        def emit(template_id):
            self._emit(
                plan, template_id, slots, [focus], ConstraintKind.IN,
                target.shape_uid, param_set, path,
            )

        if c.literal:
            params["theInLiterals"] = list(c.values)
            emit(TemplateId.IN_LITERALS)
        elif target.on_type:
            if self.types_as_labels:
                payload = self.translator.translate_all(c.values)
                params["theInTypeTranslatedUris"] = payload
                emit(TemplateId.IN_TYPE_LABEL)
            if self.types_as_nodes:
                params["theInTypeUris"] = list(c.values)
                emit(TemplateId.IN_TYPE_NODE)
        else:
            params["theInUris"] = list(c.values)
            emit(TemplateId.IN_URIS)

        plan.add_constraint(ConstraintComponent(focus, path, ConstraintKind.IN, payload))

    # ── Cardinality ──────────────────────────────────────────────

    def _min_count(self, plan: ValidatorPlan, c: MinCount) -> None:
        self._cardinality(
            plan, c.target, c.count, "minCount", SH.minCount, ConstraintKind.MIN_COUNT,
            (TemplateId.MIN_COUNT, TemplateId.MIN_COUNT_TYPE_LABEL,
             TemplateId.MIN_COUNT_TYPE_NODE, TemplateId.MIN_COUNT_INVERSE),
        )

    def _max_count(self, plan: ValidatorPlan, c: MaxCount) -> None:
        self._cardinality(
            plan, c.target, c.count, "maxCount", SH.maxCount, ConstraintKind.MAX_COUNT,
            (TemplateId.MAX_COUNT, TemplateId.MAX_COUNT_TYPE_LABEL,
             TemplateId.MAX_COUNT_TYPE_NODE, TemplateId.MAX_COUNT_INVERSE),
        )

    def _cardinality(self, plan, target, count, param, shacl_term, kind, template_ids) -> None:
        plain, as_label, as_node, inverse = template_ids
        focus, path, slots = self._bind(target)
        param_set = self._param_set_id(target, shacl_term)
        plan.new_param_set(param_set)[param] = count

        if target.inverse:
            chosen = [inverse]
        elif target.on_type:
            chosen = []
            if self.types_as_labels:
                chosen.append(as_label)
            if self.types_as_nodes:
                chosen.append(as_node)
        else:
            chosen = [plain]

        for template_id in chosen:
            self._emit(plan, template_id, slots, [focus], kind, target.shape_uid, param_set, path)
        plan.add_constraint(ConstraintComponent(focus, path, kind, count))

    # ── Bands ────────────────────────────────────────────────────

    def _string_length(self, plan: ValidatorPlan, c: StringLength) -> None:
        if c.target.on_type:
            return
        focus, path, slots = self._bind(c.target)
        param_set = self._param_set_id(c.target, SH.minLength)
        params = plan.new_param_set(param_set)
        params["minStrLen"] = c.min_length
        params["maxStrLen"] = c.max_length
        slots.update(
            lower="params.minStrLen <= " if c.min_length is not None else "",
            upper=" <= params.maxStrLen" if c.max_length is not None else "",
        )
        kind = ConstraintKind.MIN_LENGTH if c.min_length is not None else ConstraintKind.MAX_LENGTH
        self._emit(
            plan, TemplateId.STRING_LENGTH, slots, [focus], kind, c.target.shape_uid,
            param_set, path,
        )
        if c.min_length is not None:
            plan.add_constraint(ConstraintComponent(focus, path, ConstraintKind.MIN_LENGTH, c.min_length))
        if c.max_length is not None:
            plan.add_constraint(ConstraintComponent(focus, path, ConstraintKind.MAX_LENGTH, c.max_length))

    def _value_range(self, plan: ValidatorPlan, c: ValueRange) -> None:
        if c.target.on_type:
            return
        focus, path, slots = self._bind(c.target)
        param_set = self._param_set_id(c.target, SH.minExclusive)
        params = plan.new_param_set(param_set)
        params["min"] = c.lower
        params["max"] = c.upper

        if c.min_inclusive is not None:
            lower = "params.min <= "
        elif c.min_exclusive is not None:
            lower = "params.min < "
        else:
            lower = ""
        if c.max_inclusive is not None:
            upper = " <= params.max"
        elif c.max_exclusive is not None:
            upper = " < params.max"
        else:
            upper = ""
        slots.update(lower=lower, upper=upper)

        bounds = [
            (ConstraintKind.MIN_INCLUSIVE, c.min_inclusive),
            (ConstraintKind.MAX_INCLUSIVE, c.max_inclusive),
            (ConstraintKind.MIN_EXCLUSIVE, c.min_exclusive),
            (ConstraintKind.MAX_EXCLUSIVE, c.max_exclusive),
        ]
        present = [(kind, value) for kind, value in bounds if value is not None]
        self._emit(
            plan, TemplateId.VALUE_RANGE, slots, [focus], present[0][0],
            c.target.shape_uid, param_set, path,
        )
        for kind, value in present:
            plan.add_constraint(ConstraintComponent(focus, path, kind, value))

    # ── Node structure ───────────────────────────────────────────

    def _closed(self, plan: ValidatorPlan, c: Closed) -> None:
        focus, _, slots = self._bind(c.target)
        param_set = self._param_set_id(c.target, SH.closed)

        allowed = []
        if self.types_as_nodes:
            # type edges are implicitly allowed when types are stored as nodes
            allowed.append(self.translator.translate(RDF_TYPE))
        ignored = self.translator.translate_all(c.ignored)
        allowed.extend(ignored)
        allowed.extend(self.translator.translate_all(c.defined))
        plan.new_param_set(param_set)["allAllowedProps"] = list(dict.fromkeys(allowed))

        self._emit(
            plan, TemplateId.CLOSED, slots, [focus], ConstraintKind.IGNORED_PROPERTIES,
            c.target.shape_uid, param_set,
        )
        plan.add_constraint(ConstraintComponent(focus, None, ConstraintKind.IGNORED_PROPERTIES, ignored))

    def _not_class(self, plan: ValidatorPlan, c: NotClass) -> None:
        focus, _, slots = self._bind(c.target)
        for cls in c.classes:
            label = self.translator.translate(cls)
            cls_slots = {**slots, "cls": cypher_name(label), "cls_lit": cypher_string(label)}
            self._emit(
                plan, TemplateId.NOT_CLASS, cls_slots, [focus, label], ConstraintKind.NOT,
                c.target.shape_uid,
            )
            plan.add_constraint(ConstraintComponent(focus, None, ConstraintKind.NOT, label))

    def _required_class(self, plan: ValidatorPlan, c: RequiredClass) -> None:
        focus, _, slots = self._bind(c.target)
        for cls in c.classes:
            label = self.translator.translate(cls)
            cls_slots = {**slots, "cls": cypher_name(label), "cls_lit": cypher_string(label)}
            self._emit(
                plan, TemplateId.REQUIRED_CLASS, cls_slots, [focus, label], ConstraintKind.CLASS,
                c.target.shape_uid,
            )
            plan.add_constraint(ConstraintComponent(focus, None, ConstraintKind.CLASS, label))


def compile_shapes(
    source,
    rdf_format: str = "turtle",
    config: Optional[GraphConfig] = None,
    prefixes: Union[NamespacePrefixes, dict[str, str], None] = None,
    parser_config: Optional[ParserConfig] = None,
    mappings: Optional[dict[str, str]] = None,
) -> ValidatorPlan:
    """Parse a shapes document and compile it in one call."""
    if not isinstance(prefixes, NamespacePrefixes):
        prefixes = NamespacePrefixes(prefixes)
    translator = UriTranslator(config=config, prefixes=prefixes, mappings=dict(mappings or {}))
    records = parse_constraints(source, rdf_format, parser_config)
    return PlanBuilder(config, translator).build(records)
