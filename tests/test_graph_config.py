"""
Test GraphConfig: construction, storage round-trip, partial updates and
the external view.
"""

import pytest

from shapeplan.errors import InvalidParamError
from shapeplan.graph_config import (
    DEFAULT_BASE_SCHEMA_NAMESPACE,
    DEFAULT_BASE_SCHEMA_PREFIX,
    GraphConfig,
    GraphMode,
    MultivalMode,
    NODE_PROPERTIES_KEY,
    RdfTypesMode,
    VocabUriMode,
)


def test_defaults():
    """An empty property map gives the documented defaults."""
    config = GraphConfig.from_props({})

    assert config.vocab_uri_mode == VocabUriMode.SHORTEN
    assert config.multival_mode == MultivalMode.OVERWRITE
    assert config.rdf_types_mode == RdfTypesMode.LABELS
    assert config.keep_lang_tag is False
    assert config.apply_neo4j_naming is False
    assert config.keep_custom_datatypes is False
    assert config.multival_prop_list is None
    assert config.custom_datatype_prop_list is None
    assert (config.class_label, config.subclass_of_rel) == ("Class", "SCO")
    assert (config.datatype_property_label, config.object_property_label) == ("Property", "Relationship")
    assert (config.subproperty_of_rel, config.domain_rel, config.range_rel) == ("SPO", "DOMAIN", "RANGE")
    assert config.forcibly_assigned_properties == {}
    assert config == GraphConfig()


def test_enum_values_parsed():
    config = GraphConfig.from_props({
        "handleVocabUris": "KEEP",
        "handleMultival": "ARRAY",
        "handleRDFTypes": "LABELS_AND_NODES",
    })
    assert config.vocab_uri_mode == VocabUriMode.KEEP
    assert config.multival_mode == MultivalMode.ARRAY
    assert config.rdf_types_mode == RdfTypesMode.LABELS_AND_NODES
    assert config.rdf_types_mode.as_labels and config.rdf_types_mode.as_nodes


@pytest.mark.parametrize("key, value", [
    ("handleVocabUris", "FAST"),
    ("handleVocabUris", "shorten"),
    ("handleMultival", "LIST"),
    ("handleRDFTypes", 1),
    ("handleRDFTypes", None),
])
def test_invalid_enum_raises(key, value):
    """Anything outside a field's canonical names is rejected, naming field and value."""
    with pytest.raises(InvalidParamError) as exc_info:
        GraphConfig.from_props({key: value})

    assert exc_info.value.param == key
    assert str(exc_info.value) == f"{value} is not a valid option for param '{key}'"


def test_invalid_enum_is_a_value_error():
    with pytest.raises(ValueError):
        GraphConfig.from_props({"handleMultival": "SOMETIMES"})


def test_unknown_keys_ignored():
    config = GraphConfig.from_props({"colour": "blue", "keepLangTag": True})
    assert config.keep_lang_tag is True


@pytest.mark.parametrize("key, value", [
    ("keepLangTag", "false"),
    ("applyNeo4jNaming", "true"),
    ("keepCustomDataTypes", 1),
])
def test_flags_must_be_booleans(key, value):
    """A string "false" must not switch a flag on."""
    with pytest.raises(InvalidParamError) as exc_info:
        GraphConfig.from_props({key: value})

    assert exc_info.value.param == key


def test_missing_flag_is_false():
    config = GraphConfig.from_props({"keepLangTag": None})
    assert config.keep_lang_tag is False


def test_config_is_hashable():
    config = GraphConfig.from_props({
        "handleVocabUris": "IGNORE",
        NODE_PROPERTIES_KEY: {"_n10sValidatorGenerated": True},
    })

    assert hash(config) == hash(GraphConfig.from_props({"handleVocabUris": "IGNORE"}))
    assert len({config, GraphConfig.from_props({"handleVocabUris": "IGNORE"}), GraphConfig()}) == 3


def test_uri_lists_become_sets():
    config = GraphConfig.from_props({
        "multivalPropList": ["http://ex.org/b", "http://ex.org/a", "http://ex.org/a"],
    })
    assert config.multival_prop_list == frozenset({"http://ex.org/a", "http://ex.org/b"})


@pytest.mark.parametrize("namespace, kept", [
    ("http://example.org/schema#", True),
    ("http://example.org/schema/", True),
    ("urn:example:", True),
    ("http://example.org/schema", False),
    ("", False),
])
def test_base_schema_namespace_validation(namespace, kept):
    """An invalid namespace is silently dropped and the default applies."""
    config = GraphConfig.from_props({"baseSchemaNamespace": namespace})

    if kept:
        assert config.base_schema_ns == namespace
        assert config.base_schema_namespace == namespace
    else:
        assert config.base_schema_ns is None
        assert config.base_schema_namespace == DEFAULT_BASE_SCHEMA_NAMESPACE


@pytest.mark.parametrize("prefix, kept", [
    ("sch", True),
    ("my-schema_2", True),
    ("2schema", False),
    ("with space", False),
])
def test_base_schema_prefix_validation(prefix, kept):
    config = GraphConfig.from_props({"baseSchemaPrefix": prefix})

    if kept:
        assert config.base_schema_namespace_prefix == prefix
    else:
        assert config.base_schema_prefix is None
        assert config.base_schema_namespace_prefix == DEFAULT_BASE_SCHEMA_PREFIX


@pytest.mark.parametrize("mode, expected", [
    ("SHORTEN", GraphMode.RDF),
    ("SHORTEN_STRICT", GraphMode.RDF),
    ("KEEP", GraphMode.RDF),
    ("IGNORE", GraphMode.LPG),
    ("MAP", GraphMode.LPG),
])
def test_graph_mode(mode, expected):
    """Graph mode depends only on handleVocabUris."""
    for types in ("LABELS", "NODES", "LABELS_AND_NODES"):
        for multival in ("OVERWRITE", "ARRAY"):
            config = GraphConfig.from_props({
                "handleVocabUris": mode,
                "handleRDFTypes": types,
                "handleMultival": multival,
                "keepLangTag": True,
            })
            assert config.graph_mode == expected


# ─── Storage ─────────────────────────────────────────────────────────


ROUND_TRIP_PROPS = [
    {},
    {"handleVocabUris": "IGNORE", "handleRDFTypes": "NODES"},
    {
        "handleVocabUris": "MAP",
        "handleMultival": "ARRAY",
        "handleRDFTypes": "LABELS_AND_NODES",
        "keepLangTag": True,
        "applyNeo4jNaming": True,
        "keepCustomDataTypes": True,
        "multivalPropList": ["http://ex.org/tags"],
        "customDataTypePropList": ["http://ex.org/price", "http://ex.org/weight"],
        "baseSchemaNamespace": "http://ex.org/schema#",
        "baseSchemaPrefix": "exs",
        "classLabel": "Kind",
        "subClassOfRel": "IS_A",
        "domainRel": "FROM",
        "rangeRel": "TO",
        "forciblyAssignedOnImportNodeProperties": {"source": "import", "version": 2},
    },
]


@pytest.mark.parametrize("props", ROUND_TRIP_PROPS)
def test_storage_round_trip(props):
    config = GraphConfig.from_props(props)
    assert GraphConfig.from_storage(config.to_storage()) == config


@pytest.mark.parametrize("props", ROUND_TRIP_PROPS)
def test_storage_round_trip_with_sibling_node(props):
    """Forcibly-assigned properties persisted on a separate node come back too."""
    config = GraphConfig.from_props(props)
    stored = config.to_storage(include_node_properties=False)

    assert "_forciblyAssignedOnImportNodeProperties" not in stored
    restored = GraphConfig.from_storage(stored, dict(config.forcibly_assigned_properties))
    assert restored == config


def test_storage_layout():
    config = GraphConfig.from_props({
        "handleVocabUris": "KEEP",
        "handleRDFTypes": "LABELS_AND_NODES",
        "multivalPropList": ["http://ex.org/b", "http://ex.org/a"],
    })
    stored = config.to_storage()

    assert stored["_handleVocabUris"] == 4
    assert stored["_handleMultival"] == 0
    assert stored["_handleRDFTypes"] == 2
    assert stored["_multivalPropList"] == ["http://ex.org/a", "http://ex.org/b"]
    assert stored["_customDataTypePropList"] is None
    assert stored["_baseSchemaNamespace"] is None
    assert stored["_classLabel"] == "Class"
    assert all(key.startswith("_") for key in stored)


def test_from_storage_accepts_names_and_drops_identity():
    config = GraphConfig.from_storage(
        {"_handleVocabUris": "IGNORE", "_handleRDFTypes": 1},
        {"identity": 42, "source": "import"},
    )
    assert config.vocab_uri_mode == VocabUriMode.IGNORE
    assert config.rdf_types_mode == RdfTypesMode.NODES
    assert config.forcibly_assigned_properties == {"source": "import"}


def test_from_storage_unknown_code_raises():
    with pytest.raises(InvalidParamError):
        GraphConfig.from_storage({"_handleVocabUris": 9})


# ─── Partial update ──────────────────────────────────────────────────


def test_add_overwrites_recognised_keys():
    config = GraphConfig.from_props({"handleVocabUris": "IGNORE"})
    updated = config.add({"handleVocabUris": "KEEP", "classLabel": "Kind"})

    assert updated.vocab_uri_mode == VocabUriMode.KEEP
    assert updated.class_label == "Kind"
    assert config.vocab_uri_mode == VocabUriMode.IGNORE, "add must not modify the receiver"


def test_add_never_clears_flags():
    """False inputs are discarded; only true switches a flag."""
    config = GraphConfig.from_props({"keepLangTag": True})

    updated = config.add({"keepLangTag": False, "applyNeo4jNaming": True})
    assert updated.keep_lang_tag is True
    assert updated.apply_neo4j_naming is True
    assert updated.keep_custom_datatypes is False


def test_add_rejects_non_boolean_flags():
    config = GraphConfig()

    with pytest.raises(InvalidParamError):
        config.add({"applyNeo4jNaming": "yes"})
    with pytest.raises(InvalidParamError):
        config.add({"keepLangTag": "false"})


def test_add_invalid_enum_leaves_config_unchanged():
    config = GraphConfig.from_props({"handleRDFTypes": "NODES"})
    before = config.to_storage()

    with pytest.raises(InvalidParamError):
        config.add({"handleRDFTypes": "EDGES", "classLabel": "Kind"})

    assert config.to_storage() == before


def test_add_invalid_namespace_keeps_previous():
    config = GraphConfig.from_props({
        "baseSchemaNamespace": "http://ex.org/schema#",
        "baseSchemaPrefix": "exs",
    })
    updated = config.add({"baseSchemaNamespace": "not a namespace", "baseSchemaPrefix": "9x"})

    assert updated.base_schema_ns == "http://ex.org/schema#"
    assert updated.base_schema_prefix == "exs"


# ─── External view ───────────────────────────────────────────────────


def test_as_items_order_and_omissions():
    config = GraphConfig.from_props({"handleVocabUris": "IGNORE", "handleRDFTypes": "NODES"})
    items = config.as_items()
    keys = [k for k, _ in items]

    assert keys[:4] == ["handleVocabUris", "handleMultival", "handleRDFTypes", "keepLangTag"]
    assert dict(items)["handleVocabUris"] == "IGNORE"
    assert dict(items)["handleRDFTypes"] == "NODES"
    assert "multivalPropList" not in keys
    assert "customDataTypePropList" not in keys
    assert "baseSchemaNamespace" not in keys
    assert "baseSchemaPrefix" not in keys
    assert keys[-1] == "forciblyAssignedOnImportNodeProperties"


def test_as_items_includes_present_optionals():
    config = GraphConfig.from_props({
        "multivalPropList": ["http://ex.org/b", "http://ex.org/a"],
        "baseSchemaPrefix": "exs",
    })
    items = dict(config.as_items())

    assert items["multivalPropList"] == ["http://ex.org/a", "http://ex.org/b"]
    assert items["baseSchemaPrefix"] == "exs"
