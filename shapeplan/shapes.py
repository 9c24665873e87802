"""
shapeplan.shapes — Read a SHACL shapes document into raw constraint records.

The document is parsed with rdflib and the resulting graph is walked to
produce three record streams, in this order:

  1. one record per (property shape, target class)
  2. one record per closed node shape (sh:closed true) and target class
  3. one record per node shape with sh:not [ sh:class ... ] or sh:class

Records are plain dicts; shapeplan.constraints lifts them into typed
constraints. Only single-step paths (a predicate IRI or one
sh:inversePath) are supported, anything else is skipped.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Optional

from rdflib import BNode, Dataset, Graph, Literal, URIRef
from rdflib.collection import Collection
from rdflib.namespace import RDF, RDFS, SH

from shapeplan.errors import ShapesParseError
from shapeplan.uris import BNODE_PREFIX, SH_VIOLATION, is_valid_iri

logger = logging.getLogger(__name__)

DEFAULT_BASE_URI = "http://neo4j.com/base/"

CLOSED_DEFINITION = "closedDefinitionPropList"

# Format hints accepted by parse_constraints() -> rdflib format id
RDF_FORMATS = {
    "turtle": "turtle",
    "ttl": "turtle",
    "n3": "n3",
    "rdf/xml": "xml",
    "rdfxml": "xml",
    "xml": "xml",
    "json-ld": "json-ld",
    "jsonld": "json-ld",
    "n-triples": "nt",
    "ntriples": "nt",
    "nt": "nt",
    "trig": "trig",
    "n-quads": "nquads",
    "nquads": "nquads",
    "trix": "trix",
}

# Formats carrying named graphs; parsed into a Dataset queried as a union
_QUAD_FORMATS = {"trig", "nquads", "trix"}


@dataclass
class ParserConfig:
    verify_uri_syntax: bool = True
    base_uri: str = DEFAULT_BASE_URI

    @classmethod
    def from_props(cls, props: dict[str, Any]) -> ParserConfig:
        return cls(
            verify_uri_syntax=props.get("verifyUriSyntax", True) is not False,
            base_uri=props.get("baseUri", DEFAULT_BASE_URI),
        )


# ─── Entry points ────────────────────────────────────────────────────


def rdflib_format(hint: str) -> str:
    try:
        return RDF_FORMATS[hint.lower()]
    except KeyError:
        raise ShapesParseError(f"Unsupported RDF format: {hint}") from None


def load_shapes_graph(
    source,
    rdf_format: str = "turtle",
    parser_config: Optional[ParserConfig] = None,
) -> Graph:
    """Parse `source` (a binary stream, bytes or str) into an rdflib graph."""
    if parser_config is None:
        parser_config = ParserConfig()

    fmt = rdflib_format(rdf_format)
    g = Dataset(default_union=True) if fmt in _QUAD_FORMATS else Graph()
    try:
        if isinstance(source, (str, bytes)):
            g.parse(data=source, format=fmt, publicID=parser_config.base_uri)
        else:
            g.parse(source=source, format=fmt, publicID=parser_config.base_uri)
    except Exception as exc:
        raise ShapesParseError(f"Could not parse shapes document as {fmt}: {exc}") from exc

    if parser_config.verify_uri_syntax:
        _verify_iris(g)
    return g


def parse_constraints(
    source,
    rdf_format: str = "turtle",
    parser_config: Optional[ParserConfig] = None,
) -> list[dict[str, Any]]:
    """Parse a shapes document and return its raw constraint records."""
    g = load_shapes_graph(source, rdf_format, parser_config)
    return extract_constraints(g)


def extract_constraints(g: Graph) -> list[dict[str, Any]]:
    ids = blank_node_ids(g)
    records = property_constraint_records(g, ids)
    records.extend(closed_shape_records(g, ids))
    records.extend(node_constraint_records(g, ids))
    logger.debug("Extracted %d constraint records", len(records))
    return records


# ─── Property shapes ─────────────────────────────────────────────────


def property_constraint_records(g: Graph, ids: Optional[dict] = None) -> list[dict[str, Any]]:
    if ids is None:
        ids = blank_node_ids(g)
    records: list[dict[str, Any]] = []

    for shape in _shapes(g, ids, SH.NodeShape, SH.Shape):
        shape_uid = _uid(ids, shape)
        explicit_targets = {str(t) for t in g.objects(shape, SH.targetClass)}

        rows = []
        for prop_node in _property_nodes(g, shape):
            path = _resolve_path(g, prop_node, shape_uid)
            if path is None:
                continue
            rows.append((path, _uid(ids, prop_node), prop_node))

        for (item, inverse), prop_uid, prop_node in sorted(rows, key=lambda r: (r[0][0], r[0][1], r[1])):
            implicit_targets = {
                str(c) for c in g.subjects(SH.property, prop_node)
                if (c, RDF.type, RDFS.Class) in g
            }
            targets = sorted(explicit_targets | implicit_targets)
            if not targets:
                logger.debug(
                    "Shape %s has no class target; only sh:targetClass and "
                    "implicit class targets are validated", shape_uid,
                )
                continue

            facets = _property_facets(g, prop_node)
            for target in targets:
                record = {
                    "item": item,
                    "inverse": inverse,
                    "appliesToCat": target,
                    "propShapeUid": prop_uid,
                    "nodeShapeUid": shape_uid,
                }
                record.update(facets)
                records.append(record)

    return records


def _property_nodes(g: Graph, shape) -> list:
    """sh:property values of a shape, directly or through sh:node."""
    nodes = list(g.objects(shape, SH.property))
    for ref in g.objects(shape, SH.node):
        nodes.extend(g.objects(ref, SH.property))
    return nodes


def _resolve_path(g: Graph, prop_node, shape_uid: str) -> Optional[tuple[str, bool]]:
    """Return (predicate IRI, inverse) for a single-step path, else None."""
    path = g.value(prop_node, SH.path)
    if path is None:
        logger.debug("Property shape without sh:path in %s, skipping", shape_uid)
        return None
    if isinstance(path, URIRef):
        return str(path), False
    if isinstance(path, BNode):
        inverse = g.value(path, SH.inversePath)
        if isinstance(inverse, URIRef):
            return str(inverse), True
    logger.debug(
        "Complex sh:path in %s: current version only processes single property paths",
        shape_uid,
    )
    return None


def _property_facets(g: Graph, prop_node) -> dict[str, Any]:
    facets: dict[str, Any] = {
        "rangeType": _iri(g, prop_node, SH["class"]),
        "rangeKind": _iri(g, prop_node, SH.nodeKind),
        "dataType": _iri(g, prop_node, SH.datatype),
        "pattern": _text(g, prop_node, SH.pattern),
        "minCount": _integer(g, prop_node, SH.minCount),
        "maxCount": _integer(g, prop_node, SH.maxCount),
        "minInc": _number(g, prop_node, SH.minInclusive),
        "minExc": _number(g, prop_node, SH.minExclusive),
        "maxInc": _number(g, prop_node, SH.maxInclusive),
        "maxExc": _number(g, prop_node, SH.maxExclusive),
        "minStrLen": _integer(g, prop_node, SH.minLength),
        "maxStrLen": _integer(g, prop_node, SH.maxLength),
        "severity": _iri(g, prop_node, SH.severity) or SH_VIOLATION,
    }

    has_values = sorted(g.objects(prop_node, SH.hasValue), key=str)
    uris = [str(v) for v in has_values if isinstance(v, URIRef)]
    literals = [str(v) for v in has_values if isinstance(v, Literal)]
    if uris:
        facets["hasValueUri"] = uris
    if literals:
        facets["hasValueLiteral"] = literals

    # the kind of the first member decides how the whole list is read
    in_list = g.value(prop_node, SH["in"])
    if in_list is not None:
        members = list(Collection(g, in_list))
        if members:
            values = list(dict.fromkeys(str(m) for m in members))
            if isinstance(members[0], Literal):
                facets["inLiterals"] = values
            else:
                facets["inUris"] = values

    return facets


# ─── Node shapes ─────────────────────────────────────────────────────


def closed_shape_records(g: Graph, ids: Optional[dict] = None) -> list[dict[str, Any]]:
    if ids is None:
        ids = blank_node_ids(g)
    records: list[dict[str, Any]] = []

    for shape in _shapes(g, ids, SH.NodeShape):
        closed = g.value(shape, SH.closed)
        if closed is None or closed.toPython() is not True:
            continue
        shape_uid = _uid(ids, shape)
        targets = _node_targets(g, shape)
        if not targets:
            logger.debug("Closed shape %s has no class target, skipping", shape_uid)
            continue

        defined = sorted({
            str(path)
            for prop_node in g.objects(shape, SH.property)
            for path in g.objects(prop_node, SH.path)
            if isinstance(path, URIRef)
        })
        ignored: list[str] = []
        ignored_list = g.value(shape, SH.ignoredProperties)
        if ignored_list is not None:
            ignored = list(dict.fromkeys(
                str(item) for item in Collection(g, ignored_list) if isinstance(item, URIRef)
            ))

        for target in targets:
            records.append({
                "constraintType": CLOSED_DEFINITION,
                "appliesToCat": target,
                "nodeShapeUid": shape_uid,
                "definedProps": defined,
                "ignoredProps": ignored,
            })

    return records


def node_constraint_records(g: Graph, ids: Optional[dict] = None) -> list[dict[str, Any]]:
    """Required (sh:class) and disjoint (sh:not [ sh:class ]) classes."""
    if ids is None:
        ids = blank_node_ids(g)
    records: list[dict[str, Any]] = []

    for shape in _shapes(g, ids, SH.NodeShape):
        disjoint = sorted({
            str(cls)
            for negated in g.objects(shape, SH["not"])
            for cls in g.objects(negated, SH["class"])
            if isinstance(cls, URIRef)
        })
        required = sorted({
            str(cls) for cls in g.objects(shape, SH["class"]) if isinstance(cls, URIRef)
        })
        if not disjoint and not required:
            continue

        shape_uid = _uid(ids, shape)
        targets = _node_targets(g, shape)
        if not targets:
            logger.debug("Node shape %s has no class target, skipping", shape_uid)
            continue

        for target in targets:
            record: dict[str, Any] = {"appliesToCat": target, "nodeShapeUid": shape_uid}
            if required:
                record["reqClass"] = required
            if disjoint:
                record["disjointClass"] = disjoint
            records.append(record)

    return records


def _node_targets(g: Graph, shape) -> list[str]:
    targets = {str(t) for t in g.objects(shape, SH.targetClass)}
    if isinstance(shape, URIRef) and (shape, RDF.type, RDFS.Class) in g:
        targets.add(str(shape))
    return sorted(targets)


# ─── Helpers ─────────────────────────────────────────────────────────


def blank_node_ids(g: Graph) -> dict[BNode, str]:
    """Give every blank node of the shapes graph a stable, unique IRI.

    The id hashes the node's own triples together with the triples that
    point at it, so identical property shapes under different node shapes
    get different ids. Nodes that still cannot be told apart are numbered.
    """
    nodes = {t for triple in g.triples((None, None, None)) for t in triple if isinstance(t, BNode)}
    digests = {}
    for node in nodes:
        text = _context(g, node, frozenset()) + " " + _fingerprint(g, node, frozenset())
        digests[node] = hashlib.sha1(text.encode("utf-8")).hexdigest()[:16]

    ids: dict[BNode, str] = {}
    seen: dict[str, int] = {}
    for node, digest in sorted(digests.items(), key=lambda item: item[1]):
        seen[digest] = seen.get(digest, 0) + 1
        suffix = f"-{seen[digest]}" if seen[digest] > 1 else ""
        ids[node] = f"{BNODE_PREFIX}{digest}{suffix}"
    return ids


def _shapes(g: Graph, ids: dict, *types) -> list:
    shapes = {s for t in types for s in g.subjects(RDF.type, t)}
    return sorted(shapes, key=lambda s: _uid(ids, s))


def _uid(ids: dict, node) -> str:
    if isinstance(node, BNode):
        return ids[node]
    return str(node)


def _fingerprint(g: Graph, node, seen: frozenset) -> str:
    """The triples reachable from `node`, blank nodes expanded in place."""
    if not isinstance(node, BNode):
        return node.n3()
    if node in seen:
        return "[]"
    inner = seen | {node}
    parts = sorted(
        f"{p.n3()} {_fingerprint(g, o, inner)}" for p, o in g.predicate_objects(node)
    )
    return "[" + " ; ".join(parts) + "]"


def _context(g: Graph, node, seen: frozenset) -> str:
    """The triples pointing at `node`, blank subjects described by content and context."""
    inner = seen | {node}
    refs = []
    for subject, pred in g.subject_predicates(node):
        if not isinstance(subject, BNode):
            ref = subject.n3()
        elif subject in inner:
            ref = "[]"
        else:
            ref = "{" + _context(g, subject, inner) + " " + _fingerprint(g, subject, inner) + "}"
        refs.append(f"{ref} {pred.n3()}")
    return " , ".join(sorted(refs))


def _iri(g: Graph, node, pred) -> Optional[str]:
    value = g.value(node, pred)
    return str(value) if isinstance(value, URIRef) else None


def _text(g: Graph, node, pred) -> Optional[str]:
    value = g.value(node, pred)
    return str(value) if value is not None else None


def _integer(g: Graph, node, pred) -> Optional[int]:
    value = g.value(node, pred)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring non-integer value %r for %s", value, pred)
        return None


def _number(g: Graph, node, pred):
    value = g.value(node, pred)
    if not isinstance(value, Literal):
        return None
    py = value.toPython()
    if isinstance(py, bool):
        return str(value)
    if isinstance(py, (int, float)):
        return py
    # xsd:decimal comes back as Decimal
    if hasattr(py, "as_integer_ratio"):
        return float(py)
    return str(value)


def _verify_iris(g: Graph) -> None:
    for triple in g.triples((None, None, None)):
        for term in triple:
            if isinstance(term, URIRef) and not is_valid_iri(str(term)):
                raise ShapesParseError(f"Invalid IRI in shapes document: <{term}>")
