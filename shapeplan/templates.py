"""
shapeplan.templates — Cypher query templates for SHACL constraint checks.

Every template is a MATCH prefix, a WHERE body and a RETURN tail. The
text varies along three decision bits held by a Dialect:

  uri_ids    nodes carry a `uri` property (any graph config is present)
  shorten    names are shortened IRIs, expanded back in the result rows
  rdf_mode   the graph config is in RDF graph mode

The scoped variant of a template adds `focus IN $touchedNodes AND`
right after the first WHERE; nothing else differs.

Templates are str.format strings. Slots filled by the plan builder, all
already escaped:

  focus / focus_lit       focus label as identifier / string literal
  path / path_lit         property or relationship type
  shape_lit               shape id
  severity_lit            severity IRI
  params                  parameter set id (identifier)
  value_check             datatype check over `x` (see datatype_check)
  datatype_lit            datatype IRI
  cls / cls_lit           class label (sh:class range, sh:not, node sh:class)
  lower / upper           comparator fragments for length and value bands

Every row returned has the columns nodeId, nodeType, shapeId,
propertyShape, offendingValue, propertyName, severity and message.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from rdflib.namespace import SH, XSD

from shapeplan.graph_config import GraphConfig, GraphMode, VocabUriMode
from shapeplan.uris import RDF_TYPE, WKT_LITERAL

MATCH_WHERE = "MATCH (focus:{focus}) WHERE "
MATCH_REL_WHERE = "MATCH (focus:{focus})-[r:{path}]->(x) WHERE "
WITH_PARAMS_MATCH_WHERE = "WITH ${params} AS params MATCH (focus:{focus}) WHERE "

SCOPE_PREDICATE = "focus IN $touchedNodes AND "

FULL_URI_FUNCTION = "n10s.rdf.fullUriFromShortForm"
LOCAL_NAME_FUNCTION = "n10s.rdf.getIRILocalName"
DATATYPE_CHECK_FUNCTION = "n10s.aux.dt.check"


# ─── Escaping ────────────────────────────────────────────────────────


def cypher_name(name: str) -> str:
    """Backtick-quote a label, relationship type, property or parameter name."""
    return "`" + name.replace("`", "``") + "`"


def cypher_string(value: str) -> str:
    """Single-quoted Cypher string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


# ─── Datatype checks ─────────────────────────────────────────────────

_CAST_FUNCTIONS = {
    str(XSD.boolean): "toBoolean(toString(x))",
    str(XSD.string): "toString(x)",
    str(XSD.integer): "toInteger(x)",
    str(XSD.int): "toInteger(x)",
    str(XSD.long): "toInteger(x)",
    str(XSD.short): "toInteger(x)",
    str(XSD.byte): "toInteger(x)",
    str(XSD.float): "toFloat(x)",
    str(XSD.double): "toFloat(x)",
    str(XSD.decimal): "toFloat(x)",
}

_HOST_CHECKED_DATATYPES = {
    str(XSD.date),
    str(XSD.dateTime),
    str(XSD.anyURI),
    WKT_LITERAL,
}


def datatype_check(datatype: str) -> str:
    """Boolean Cypher expression over `x`, true when x conforms to `datatype`.

    Datatypes with no known check yield `true`, so they never report.
    """
    cast = _CAST_FUNCTIONS.get(datatype)
    if cast is not None:
        return f"coalesce({cast} = x, false)"
    if datatype in _HOST_CHECKED_DATATYPES:
        return f"{DATATYPE_CHECK_FUNCTION}({cypher_string(datatype)}, x)"
    return "true"


def is_checked_datatype(datatype: str) -> bool:
    return datatype in _CAST_FUNCTIONS or datatype in _HOST_CHECKED_DATATYPES


# ─── Dialect ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Dialect:
    uri_ids: bool = False
    shorten: bool = False
    rdf_mode: bool = False

    @classmethod
    def for_config(cls, config: Optional[GraphConfig]) -> Dialect:
        if config is None:
            return cls()
        return cls(
            uri_ids=True,
            shorten=config.vocab_uri_mode in (
                VocabUriMode.SHORTEN, VocabUriMode.SHORTEN_STRICT, VocabUriMode.MAP,
            ),
            rdf_mode=config.graph_mode == GraphMode.RDF,
        )

    def node_ref(self, var: str) -> str:
        return f"{var}.uri" if self.uri_ids else f"elementId({var})"

    def full_name(self, expr: str) -> str:
        """Expression yielding the IRI behind a (possibly shortened) name."""
        return f"{FULL_URI_FUNCTION}({expr})" if self.shorten else expr

    @property
    def type_property_name(self) -> str:
        return cypher_string(RDF_TYPE) if self.rdf_mode else "'type'"

    def labels_of_focus(self) -> str:
        if self.uri_ids:
            return "[l IN labels(focus) WHERE l <> 'Resource']"
        return "labels(focus)"


# ─── Templates ───────────────────────────────────────────────────────


class TemplateId(str, Enum):
    DATATYPE = "datatype"
    DATATYPE_NOT_RELATIONSHIP = "datatype_not_relationship"
    NODE_KIND_LITERAL = "node_kind_literal"
    NODE_KIND_IRI = "node_kind_iri"
    CLASS_RANGE = "class_range"
    CLASS_NOT_PROPERTY = "class_not_property"
    PATTERN = "pattern"
    HAS_VALUE_TYPE_LABEL = "has_value_type_label"
    HAS_VALUE_TYPE_NODE = "has_value_type_node"
    HAS_VALUE_URI = "has_value_uri"
    HAS_VALUE_LITERAL = "has_value_literal"
    IN_LITERALS = "in_literals"
    IN_URIS = "in_uris"
    IN_TYPE_LABEL = "in_type_label"
    IN_TYPE_NODE = "in_type_node"
    MIN_COUNT = "min_count"
    MIN_COUNT_TYPE_LABEL = "min_count_type_label"
    MIN_COUNT_TYPE_NODE = "min_count_type_node"
    MIN_COUNT_INVERSE = "min_count_inverse"
    MAX_COUNT = "max_count"
    MAX_COUNT_TYPE_LABEL = "max_count_type_label"
    MAX_COUNT_TYPE_NODE = "max_count_type_node"
    MAX_COUNT_INVERSE = "max_count_inverse"
    STRING_LENGTH = "string_length"
    VALUE_RANGE = "value_range"
    CLOSED = "closed"
    NOT_CLASS = "not_class"
    REQUIRED_CLASS = "required_class"


@dataclass(frozen=True)
class CypherTemplate:
    id: TemplateId
    prefix: str
    body: str

    def render(self, slots: dict[str, str], scoped: bool = False) -> str:
        infix = SCOPE_PREDICATE if scoped else ""
        return (self.prefix + infix + self.body).format(**slots)


class TemplateLibrary:
    """All templates for one Dialect, built once and keyed by TemplateId."""

    def __init__(self, dialect: Dialect):
        self.dialect = dialect
        self._templates = {t.id: t for t in self._build()}

    def get(self, template_id: TemplateId) -> CypherTemplate:
        return self._templates[template_id]

    def render(self, template_id: TemplateId, slots: dict[str, str], scoped: bool = False) -> str:
        return self._templates[template_id].render(slots, scoped)

    # ── Shared fragments ─────────────────────────────────────────

    def _returning(
        self,
        component,
        offending: str,
        message: str,
        property_name: Optional[str] = None,
    ) -> str:
        d = self.dialect
        if property_name is None:
            property_name = d.full_name("{path_lit}")
        return (
            "RETURN " + d.node_ref("focus") + " AS nodeId, "
            + d.full_name("{focus_lit}") + " AS nodeType, "
            "{shape_lit} AS shapeId, "
            "'" + str(component) + "' AS propertyShape, "
            + offending + " AS offendingValue, "
            + property_name + " AS propertyName, "
            "{severity_lit} AS severity, "
            + message + " AS message"
        )

    # Cypher braces are doubled for str.format; build with plain strings, not f-strings.

    def _build(self) -> list[CypherTemplate]:
        d = self.dialect
        path_name = d.full_name("{path_lit}")
        templates = [
            # ── Value type ───────────────────────────────────────
            CypherTemplate(
                TemplateId.DATATYPE, MATCH_WHERE,
                "focus.{path} IS NOT NULL AND NOT all(x IN [] + focus.{path} WHERE {value_check}) "
                + self._returning(
                    SH.DatatypeConstraintComponent, "focus.{path}",
                    "'property value should be of type ' + "
                    + ("{datatype_lit}" if d.uri_ids else LOCAL_NAME_FUNCTION + "({datatype_lit})"),
                ),
            ),
            CypherTemplate(
                TemplateId.DATATYPE_NOT_RELATIONSHIP, MATCH_REL_WHERE,
                "true "
                + self._returning(
                    SH.DatatypeConstraintComponent,
                    "x.uri" if d.uri_ids else "'node id: ' + elementId(x)",
                    path_name + " + ' should be a property, instead it is a relationship'",
                ),
            ),
            CypherTemplate(
                TemplateId.NODE_KIND_LITERAL, MATCH_WHERE,
                "EXISTS {{ (focus)-[:{path}]->() }} "
                + self._returning(
                    SH.NodeKindConstraintComponent, "null",
                    path_name + " + ' should be a property'",
                ),
            ),
            CypherTemplate(
                TemplateId.NODE_KIND_IRI, MATCH_WHERE,
                "focus.{path} IS NOT NULL "
                + self._returning(
                    SH.NodeKindConstraintComponent, "null",
                    path_name + " + ' should be a relationship'",
                ),
            ),
            CypherTemplate(
                TemplateId.CLASS_RANGE, MATCH_REL_WHERE,
                "NOT x:{cls} "
                + self._returning(
                    SH.ClassConstraintComponent, d.node_ref("x"),
                    "'value should be of type ' + " + d.full_name("{cls_lit}"),
                ),
            ),
            CypherTemplate(
                TemplateId.CLASS_NOT_PROPERTY, MATCH_WHERE,
                "focus.{path} IS NOT NULL "
                + self._returning(
                    SH.ClassConstraintComponent, "null",
                    path_name + " + ' should be a relationship but it is a property'",
                ),
            ),
            CypherTemplate(
                TemplateId.PATTERN, WITH_PARAMS_MATCH_WHERE,
                "NOT all(x IN [] + coalesce(focus.{path}, []) WHERE toString(x) =~ params.theRegex) "
                "UNWIND [x IN [] + coalesce(focus.{path}, []) WHERE NOT toString(x) =~ params.theRegex] AS offval "
                + self._returning(
                    SH.PatternConstraintComponent, "offval",
                    "'the value of the property does not match the specified regular expression'",
                ),
            ),
            # ── Required values ──────────────────────────────────
            CypherTemplate(
                TemplateId.HAS_VALUE_TYPE_LABEL, WITH_PARAMS_MATCH_WHERE,
                "true WITH params, focus UNWIND params.theHasTypeTranslatedUris AS reqVal "
                "WITH focus, reqVal WHERE NOT reqVal IN labels(focus) "
                + self._returning(
                    SH.HasValueConstraintComponent, "null",
                    "'The required type ' + reqVal + ' could not be found as a label of the focus node'",
                    property_name=d.type_property_name,
                ),
            ),
            CypherTemplate(
                TemplateId.HAS_VALUE_TYPE_NODE, WITH_PARAMS_MATCH_WHERE,
                "true WITH params, focus UNWIND params.theHasTypeUris AS reqVal "
                "WITH focus, reqVal WHERE NOT EXISTS {{ (focus)-[:{path}]->({{uri: reqVal}}) }} "
                + self._returning(
                    SH.HasValueConstraintComponent, "null",
                    "'The required type ' + reqVal + ' could not be found as value of relationship ' + "
                    + path_name,
                ),
            ),
            CypherTemplate(
                TemplateId.HAS_VALUE_URI, WITH_PARAMS_MATCH_WHERE,
                "true WITH params, focus UNWIND params.theHasValueUri AS reqVal "
                "WITH focus, reqVal WHERE NOT EXISTS {{ (focus)-[:{path}]->({{uri: reqVal}}) }} "
                + self._returning(
                    SH.HasValueConstraintComponent, "null",
                    "'The required value ' + reqVal + ' could not be found as value of relationship ' + "
                    + path_name,
                ),
            ),
            CypherTemplate(
                TemplateId.HAS_VALUE_LITERAL, WITH_PARAMS_MATCH_WHERE,
                "true WITH params, focus UNWIND params.theHasValueLiteral AS reqVal "
                "WITH focus, reqVal WHERE NOT reqVal IN [v IN [] + coalesce(focus.{path}, []) | toString(v)] "
                + self._returning(
                    SH.HasValueConstraintComponent, "null",
                    "'The required value \"' + reqVal + '\" was not found in property ' + " + path_name,
                ),
            ),
            # ── Enumerations ─────────────────────────────────────
            CypherTemplate(
                TemplateId.IN_LITERALS, WITH_PARAMS_MATCH_WHERE,
                "true WITH params, focus UNWIND [] + coalesce(focus.{path}, []) AS val "
                "WITH focus, val WHERE NOT toString(val) IN params.theInLiterals "
                + self._returning(
                    SH.InConstraintComponent, "val",
                    "'The value \"' + toString(val) + '\" in property ' + " + path_name
                    + " + ' is not in the accepted list'",
                ),
            ),
            CypherTemplate(
                TemplateId.IN_URIS, WITH_PARAMS_MATCH_WHERE,
                "true WITH params, focus UNWIND [(focus)-[:{path}]->(x) | x] AS val "
                "WITH focus, val WHERE NOT val.uri IN params.theInUris "
                + self._returning(
                    SH.InConstraintComponent, d.node_ref("val"),
                    "'The value \"' + "
                    + (d.node_ref("val") if d.uri_ids else "'node id: ' + elementId(val)")
                    + " + '\" in property ' + " + path_name + " + ' is not in the accepted list'",
                ),
            ),
            CypherTemplate(
                TemplateId.IN_TYPE_LABEL, WITH_PARAMS_MATCH_WHERE,
                "true WITH params, focus UNWIND labels(focus) AS val "
                "WITH focus, val WHERE val <> 'Resource' AND NOT val IN params.theInTypeTranslatedUris "
                + self._returning(
                    SH.InConstraintComponent, "val",
                    "'The label \"' + val + '\" is not in the accepted list'",
                    property_name=d.type_property_name,
                ),
            ),
            CypherTemplate(
                TemplateId.IN_TYPE_NODE, WITH_PARAMS_MATCH_WHERE,
                "true WITH params, focus UNWIND [(focus)-[:{path}]->(x) | x] AS val "
                "WITH focus, val WHERE NOT val.uri IN params.theInTypeUris "
                + self._returning(
                    SH.InConstraintComponent, d.node_ref("val"),
                    "'The type \"' + coalesce(val.uri, elementId(val)) + '\" (node connected through property ' + "
                    + path_name + " + ') is not in the accepted list'",
                ),
            ),
        ]
        templates.extend(self._cardinality_templates())
        templates.extend([
            # ── Bands ────────────────────────────────────────────
            CypherTemplate(
                TemplateId.STRING_LENGTH, WITH_PARAMS_MATCH_WHERE,
                "focus.{path} IS NOT NULL AND NOT all(x IN [] + focus.{path} WHERE {lower}size(toString(x)){upper}) "
                + self._returning(
                    SH.MaxLengthConstraintComponent, "focus.{path}",
                    "'string length is outside the allowed range'",
                ),
            ),
            CypherTemplate(
                TemplateId.VALUE_RANGE, WITH_PARAMS_MATCH_WHERE,
                "focus.{path} IS NOT NULL AND NOT all(x IN [] + focus.{path} WHERE {lower}x{upper}) "
                + self._returning(
                    SH.MinExclusiveConstraintComponent, "focus.{path}",
                    "'value is outside the allowed range'",
                ),
            ),
            # ── Node structure ───────────────────────────────────
            CypherTemplate(
                TemplateId.CLOSED, WITH_PARAMS_MATCH_WHERE,
                "true "
                "UNWIND [t IN [(focus)-[r]->() | type(r)] WHERE NOT t IN params.allAllowedProps] "
                "+ [k IN keys(focus) WHERE " + ("k <> 'uri' AND " if d.uri_ids else "")
                + "NOT k IN params.allAllowedProps] AS noProp "
                + self._returning(
                    SH.ClosedConstraintComponent,
                    "substring(reduce(result = '', v IN [] + coalesce(focus[noProp], "
                    "[(focus)-[r]->(y) WHERE type(r) = noProp | " + d.node_ref("y") + "]) "
                    "| result + ', ' + toString(v)), 2)",
                    "'Closed type definition does not include this property/relationship'",
                    property_name=d.full_name("noProp"),
                ),
            ),
            CypherTemplate(
                TemplateId.NOT_CLASS, MATCH_WHERE,
                "focus:{cls} "
                + self._returning(
                    SH.NotConstraintComponent, "{cls_lit}",
                    "'type not allowed: ' + {cls_lit}",
                    property_name="'-'",
                ),
            ),
            CypherTemplate(
                TemplateId.REQUIRED_CLASS, MATCH_WHERE,
                "NOT focus:{cls} "
                + self._returning(
                    SH.ClassConstraintComponent, "null",
                    "'required type missing: ' + {cls_lit}",
                    property_name=d.type_property_name,
                ),
            ),
        ])
        return templates

    def _cardinality_templates(self) -> list[CypherTemplate]:
        d = self.dialect
        outgoing = "COUNT {{ (focus)-[:{path}]->() }}"
        incoming = "COUNT {{ (focus)<-[:{path}]-() }}"
        values = "(" + outgoing + " + size([] + coalesce(focus.{path}, [])))"
        labels = "size(" + d.labels_of_focus() + ")"

        def band(template_id, component, count, what, too, low):
            check = (
                "NOT toInteger(params.minCount) <= " + count + " "
                if low else
                "NOT " + count + " <= toInteger(params.maxCount) "
            )
            return CypherTemplate(
                template_id, WITH_PARAMS_MATCH_WHERE,
                check + self._returning(
                    component, "null",
                    "'" + what + " (' + toString(" + count + ") + ') is too " + too + "'",
                ),
            )

        low = (SH.MinCountConstraintComponent, "low", True)
        high = (SH.MaxCountConstraintComponent, "high", False)
        out = []
        for (component, too, is_min), ids in (
            (low, (TemplateId.MIN_COUNT, TemplateId.MIN_COUNT_TYPE_LABEL,
                   TemplateId.MIN_COUNT_TYPE_NODE, TemplateId.MIN_COUNT_INVERSE)),
            (high, (TemplateId.MAX_COUNT, TemplateId.MAX_COUNT_TYPE_LABEL,
                    TemplateId.MAX_COUNT_TYPE_NODE, TemplateId.MAX_COUNT_INVERSE)),
        ):
            plain, as_label, as_node, inverse = ids
            out.append(band(plain, component, values, "cardinality", too, is_min))
            out.append(band(as_label, component, labels, "number of labels", too, is_min))
            out.append(band(as_node, component, outgoing, "type cardinality", too, is_min))
            out.append(band(inverse, component, incoming, "incoming cardinality", too, is_min))
        return out
