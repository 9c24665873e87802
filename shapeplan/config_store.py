"""
shapeplan.config_store — Persist the graph configuration in the host graph.

The configuration lives in a `_GraphConfig` node linked by a `HAS`
relationship to a `_ForciblyAssignedOnImportNodeProperties` node. Writes
are only allowed while the graph holds no `Resource` nodes, unless `set`
is explicitly forced.

The store works against any transaction object exposing
`run(query, parameters)` whose result has `single()`, such as a
neo4j.Transaction (not type-hinted to avoid a hard dependency).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from shapeplan.errors import GraphConfigMissingError, GraphNotEmptyError
from shapeplan.graph_config import GraphConfig

logger = logging.getLogger(__name__)

GRAPH_IS_EMPTY_QUERY = "MATCH (r:Resource) RETURN elementId(r) AS id LIMIT 1"

READ_CONFIG_QUERY = (
    "MATCH (gc:_GraphConfig)\n"
    "OPTIONAL MATCH (gc)-[:HAS]->(np:_ForciblyAssignedOnImportNodeProperties)\n"
    "RETURN properties(gc) AS gc, properties(np) AS nodeProps"
)

WRITE_CONFIG_QUERY = (
    "MERGE (gc:_GraphConfig)\n"
    "MERGE (gc)-[:HAS]->(np:_ForciblyAssignedOnImportNodeProperties)\n"
    "SET gc = $props, np = $nodeProps"
)

DROP_CONFIG_QUERY = (
    "MATCH (n)\n"
    "WHERE n:_GraphConfig OR n:_ForciblyAssignedOnImportNodeProperties\n"
    "DETACH DELETE n"
)

ConfigItems = list[tuple[str, Any]]


class GraphConfigStore:
    def __init__(self, tx):
        self.tx = tx

    def init(self, props: Optional[dict[str, Any]] = None) -> ConfigItems:
        """Create (or overwrite) the configuration of an empty graph."""
        if not self.graph_is_empty():
            raise GraphNotEmptyError()
        config = GraphConfig.from_props(props or {})
        self._save(config)
        logger.info("Graph config initialised: %s", config.vocab_uri_mode.value)
        return config.as_items()

    def set(self, props: Optional[dict[str, Any]] = None) -> ConfigItems:
        """Merge `props` into the stored configuration.

        Requires an empty graph unless `props["force"]` is True.
        """
        props = props or {}
        if props.get("force") is not True and not self.graph_is_empty():
            raise GraphNotEmptyError()
        current = self.load()
        if current is None:
            raise GraphConfigMissingError()
        config = current.add(props)
        self._save(config)
        logger.info("Graph config updated with keys %s", sorted(props))
        return config.as_items()

    def show(self) -> ConfigItems:
        config = self.load()
        if config is None:
            return []
        return config.as_items()

    def drop(self) -> ConfigItems:
        if not self.graph_is_empty():
            raise GraphNotEmptyError()
        self.tx.run(DROP_CONFIG_QUERY, {})
        logger.info("Graph config dropped")
        return []

    def load(self) -> Optional[GraphConfig]:
        """Read the persisted configuration, or None if there is none."""
        record = self.tx.run(READ_CONFIG_QUERY, {}).single()
        if record is None:
            return None
        return GraphConfig.from_storage(record["gc"], record["nodeProps"] or {})

    def graph_is_empty(self) -> bool:
        return self.tx.run(GRAPH_IS_EMPTY_QUERY, {}).single() is None

    def _save(self, config: GraphConfig) -> None:
        stored = config.to_storage(include_node_properties=False)
        self.tx.run(WRITE_CONFIG_QUERY, {
            "props": stored,
            "nodeProps": dict(config.forcibly_assigned_properties),
        })
