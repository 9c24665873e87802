import pytest

from shapeplan.config_store import (
    DROP_CONFIG_QUERY,
    GRAPH_IS_EMPTY_QUERY,
    READ_CONFIG_QUERY,
    WRITE_CONFIG_QUERY,
)
from shapeplan.uri_translator import READ_MAPPINGS_QUERY, READ_PREFIXES_QUERY


class FakeResult:
    def __init__(self, records):
        self._records = records

    def single(self):
        return self._records[0] if self._records else None

    def __iter__(self):
        return iter(self._records)


class FakeTransaction:
    """In-memory stand-in for a neo4j transaction.

    Answers only the queries shapeplan issues, matched by their text.
    """

    def __init__(self, resources=0, prefixes=None, mappings=None):
        self.resources = resources
        self.prefixes = dict(prefixes or {})
        self.mappings = dict(mappings or {})
        self.config_node = None
        self.node_props = None
        self.queries = []

    def run(self, query, parameters=None):
        parameters = parameters or {}
        self.queries.append(query)

        if query == GRAPH_IS_EMPTY_QUERY:
            return FakeResult([{"id": "4:r:1"}] if self.resources else [])
        if query == READ_CONFIG_QUERY:
            if self.config_node is None:
                return FakeResult([])
            return FakeResult([{"gc": dict(self.config_node), "nodeProps": dict(self.node_props or {})}])
        if query == WRITE_CONFIG_QUERY:
            # null properties are never stored by the database
            self.config_node = {k: v for k, v in parameters["props"].items() if v is not None}
            self.node_props = dict(parameters["nodeProps"])
            return FakeResult([])
        if query == DROP_CONFIG_QUERY:
            self.config_node = None
            self.node_props = None
            return FakeResult([])
        if query == READ_PREFIXES_QUERY:
            return FakeResult([{"prefixes": dict(self.prefixes)}] if self.prefixes else [])
        if query == READ_MAPPINGS_QUERY:
            return FakeResult([{"uri": uri, "name": name} for uri, name in self.mappings.items()])
        raise AssertionError(f"Unexpected query: {query}")


@pytest.fixture
def examples_dir(request):
    return request.config.rootpath / "examples"


@pytest.fixture
def people_shacl(examples_dir):
    return (examples_dir / "people.shacl.ttl").read_text()


@pytest.fixture
def make_tx():
    return FakeTransaction


@pytest.fixture
def tx():
    return FakeTransaction()
