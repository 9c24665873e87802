"""
shapeplan.uri_translator — Map RDF IRIs to the names used in the property graph.

The handleVocabUris setting decides the projection:

  SHORTEN / SHORTEN_STRICT   prefix + '__' + local name   (ns0__Person)
  IGNORE                     local name                   (Person)
  MAP                        explicit mapping, else local name
  KEEP                       the full IRI

Without a graph config (plain LPG) local names are used.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from rdflib.namespace import DC, DCTERMS, OWL, RDF, RDFS, SDO, SH, SKOS, XSD

from shapeplan.errors import InvalidPrefixDefinitionError, UriNamespaceUnknownError
from shapeplan.graph_config import PREFIX_PATTERN, GraphConfig, VocabUriMode
from shapeplan.uris import is_correct_uri_split, local_name, namespace_of

READ_PREFIXES_QUERY = "MATCH (n:_NsPrefDef) RETURN properties(n) AS prefixes"

READ_MAPPINGS_QUERY = (
    "MATCH (mns:_MapNs)<-[:_IN]-(elem:_MapDef)\n"
    "RETURN mns._ns + elem._local AS uri, elem._key AS name"
)

DEFAULT_PREFIXES = {
    "rdf": str(RDF),
    "rdfs": str(RDFS),
    "owl": str(OWL),
    "sh": str(SH),
    "xsd": str(XSD),
    "skos": str(SKOS),
    "sch": str(SDO),
    "dc": str(DC),
    "dct": str(DCTERMS),
}


class NamespacePrefixes:
    """Registry of prefix -> namespace definitions.

    Every definition is checked on construction; a malformed one raises
    InvalidPrefixDefinitionError.
    """

    def __init__(self, definitions: Optional[dict[str, str]] = None, with_defaults: bool = True):
        self._by_prefix: dict[str, str] = {}
        self._by_namespace: dict[str, str] = {}
        if with_defaults:
            for prefix, ns in DEFAULT_PREFIXES.items():
                self._register(prefix, ns)
        for prefix, ns in (definitions or {}).items():
            if not (isinstance(prefix, str) and PREFIX_PATTERN.match(prefix)):
                raise InvalidPrefixDefinitionError(prefix, ns)
            if not (isinstance(ns, str) and is_correct_uri_split(ns, "localName")):
                raise InvalidPrefixDefinitionError(prefix, ns)
            self._register(prefix, ns)

    @classmethod
    def load(cls, tx, with_defaults: bool = True) -> NamespacePrefixes:
        """Read the prefix definitions stored in the host graph."""
        record = tx.run(READ_PREFIXES_QUERY, {}).single()
        definitions = dict(record["prefixes"]) if record is not None else {}
        return cls(definitions, with_defaults=with_defaults)

    def _register(self, prefix: str, ns: str) -> None:
        previous = self._by_prefix.get(prefix)
        if previous is not None:
            self._by_namespace.pop(previous, None)
        self._by_prefix[prefix] = ns
        self._by_namespace[ns] = prefix

    def prefix_for(self, namespace: str) -> Optional[str]:
        return self._by_namespace.get(namespace)

    def namespace_for(self, prefix: str) -> Optional[str]:
        return self._by_prefix.get(prefix)

    def as_dict(self) -> dict[str, str]:
        return dict(self._by_prefix)


@dataclass
class UriTranslator:
    config: Optional[GraphConfig] = None
    prefixes: NamespacePrefixes = field(default_factory=NamespacePrefixes)
    # Explicit IRI -> name mappings, used in MAP mode
    mappings: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, tx, config: Optional[GraphConfig]) -> UriTranslator:
        prefixes = NamespacePrefixes.load(tx)
        mappings = {}
        if config is not None and config.vocab_uri_mode == VocabUriMode.MAP:
            mappings = {
                record["uri"]: record["name"]
                for record in tx.run(READ_MAPPINGS_QUERY, {})
            }
        return cls(config=config, prefixes=prefixes, mappings=mappings)

    @property
    def mode(self) -> Optional[VocabUriMode]:
        return self.config.vocab_uri_mode if self.config is not None else None

    def translate(self, iri: str) -> str:
        mode = self.mode
        if mode is None or mode == VocabUriMode.IGNORE:
            return local_name(iri)
        if mode in (VocabUriMode.SHORTEN, VocabUriMode.SHORTEN_STRICT):
            return self.short_form(iri)
        if mode == VocabUriMode.MAP:
            return self.mappings.get(iri, local_name(iri))
        return iri

    def translate_all(self, iris: list[str]) -> list[str]:
        return [self.translate(iri) for iri in iris]

    def short_form(self, iri: str) -> str:
        ns = namespace_of(iri)
        prefix = self.prefixes.prefix_for(ns)
        if prefix is None:
            raise UriNamespaceUnknownError(ns)
        return f"{prefix}__{local_name(iri)}"

    def full_form(self, short: str) -> str:
        """Inverse of short_form()."""
        prefix, sep, local = short.partition("__")
        ns = self.prefixes.namespace_for(prefix) if sep else None
        if ns is None:
            raise UriNamespaceUnknownError(prefix)
        return ns + local
