"""
shapeplan.uris — IRI helpers and vocabulary constants shared across modules.
"""

from __future__ import annotations

import re

from rdflib.namespace import RDF, SH

RDF_TYPE = str(RDF.type)
SH_VIOLATION = str(SH.Violation)
WKT_LITERAL = "http://www.opengis.net/ont/geosparql#wktLiteral"

# Synthetic namespace for shapes that are blank nodes
BNODE_PREFIX = "bnode://id/"

# Characters that may never appear unescaped in an IRI (RFC 3987)
_ILLEGAL_IRI_CHARS = re.compile(r'[\x00-\x20<>"{}|\\^`]')


def local_name_index(iri: str) -> int:
    """Index where the local name of an IRI starts.

    The split point is the last '#', else the last '/', else the last ':'.
    """
    for sep in ("#", "/", ":"):
        idx = iri.rfind(sep)
        if idx >= 0:
            return idx + 1
    raise ValueError(f"No separator character found in IRI: {iri}")


def local_name(iri: str) -> str:
    return iri[local_name_index(iri):]


def namespace_of(iri: str) -> str:
    return iri[:local_name_index(iri)]


def is_correct_uri_split(namespace: str, local: str) -> bool:
    """True if `namespace` + `local` would split back into the same two parts."""
    if not namespace:
        return False
    last = namespace[-1]
    if last == "#":
        return "#" not in local
    if last == "/":
        return "/" not in local and "#" not in local
    if last == ":":
        return ":" not in local and "/" not in local and "#" not in local
    return False


def is_valid_iri(iri: str) -> bool:
    return ":" in iri and not _ILLEGAL_IRI_CHARS.search(iri)
