"""
Test the shapes parser: SHACL document -> raw constraint records.
"""

import io

import pytest

from shapeplan.errors import ShapesParseError
from shapeplan.shapes import CLOSED_DEFINITION, ParserConfig, parse_constraints

EX = "http://example.org/people#"
SH = "http://www.w3.org/ns/shacl#"
XSD = "http://www.w3.org/2001/XMLSchema#"
RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"


def _property_record(records, target, item):
    found = [r for r in records if r.get("appliesToCat") == target and r.get("item") == item]
    assert len(found) == 1, f"Expected one record for {target} / {item}, got {len(found)}"
    return found[0]


def test_record_streams(people_shacl):
    """Property records come first, then closed shapes, then node-level records."""
    records = parse_constraints(people_shacl)

    property_records = [r for r in records if "item" in r]
    closed = [r for r in records if r.get("constraintType") == CLOSED_DEFINITION]
    node_level = [r for r in records if "reqClass" in r or "disjointClass" in r]

    assert len(property_records) == 10
    assert len(closed) == 1
    assert len(node_level) == 2
    assert records == property_records + closed + node_level


def test_records_ordered_by_shape_then_path(people_shacl):
    records = parse_constraints(people_shacl)
    person = [r["item"] for r in records if r.get("appliesToCat") == EX + "Person" and "item" in r]

    assert person == [EX + p for p in ("age", "email", "employs", "name", "status", "worksFor")]


def test_property_facets(people_shacl):
    records = parse_constraints(people_shacl)

    name = _property_record(records, EX + "Person", EX + "name")
    assert name["dataType"] == XSD + "string"
    assert (name["minCount"], name["maxCount"]) == (1, 1)
    assert (name["minStrLen"], name["maxStrLen"]) == (2, 80)
    assert name["inverse"] is False
    assert name["severity"] == SH + "Violation"
    assert name["nodeShapeUid"] == EX + "PersonShape"
    assert name["propShapeUid"].startswith("bnode://id/")

    age = _property_record(records, EX + "Person", EX + "age")
    assert age["minInc"] == 0
    assert age["maxExc"] == 150
    assert age["minExc"] is None and age["maxInc"] is None

    email = _property_record(records, EX + "Person", EX + "email")
    assert email["pattern"] == "^[^@]+@[^@]+$"
    assert email["severity"] == SH + "Warning"

    works_for = _property_record(records, EX + "Person", EX + "worksFor")
    assert works_for["rangeType"] == EX + "Company"
    assert works_for["rangeKind"] == SH + "IRI"


def test_inverse_path(people_shacl):
    records = parse_constraints(people_shacl)
    employs = _property_record(records, EX + "Person", EX + "employs")

    assert employs["inverse"] is True
    assert employs["maxCount"] == 1


def test_in_lists_split_by_first_member(people_shacl):
    records = parse_constraints(people_shacl)

    status = _property_record(records, EX + "Person", EX + "status")
    assert status["inLiterals"] == ["active", "retired"]
    assert "inUris" not in status

    country = _property_record(records, EX + "Company", EX + "country")
    assert country["inUris"] == [EX + "UK", EX + "FR", EX + "DE"]
    assert "inLiterals" not in country


def test_has_value_split():
    turtle = """\
    @prefix sh: <http://www.w3.org/ns/shacl#> .
    @prefix ex: <http://example.org/people#> .

    ex:S a sh:NodeShape ;
        sh:targetClass ex:Person ;
        sh:property [
            sh:path ex:tag ;
            sh:hasValue ex:vip, "gold", 3 ;
        ] .
    """
    record = parse_constraints(turtle)[0]

    assert record["hasValueUri"] == [EX + "vip"]
    assert sorted(record["hasValueLiteral"]) == ["3", "gold"]


def test_type_has_value(people_shacl):
    records = parse_constraints(people_shacl)
    record = _property_record(records, EX + "Company", RDF_TYPE)

    assert record["hasValueUri"] == [EX + "Organisation"]


def test_implicit_class_target(people_shacl):
    """A shape that is also an rdfs:Class targets itself."""
    records = parse_constraints(people_shacl)
    record = _property_record(records, EX + "Employee", EX + "employeeId")

    assert record["minCount"] == 1


def test_closed_shape_record(people_shacl):
    records = parse_constraints(people_shacl)
    closed = [r for r in records if r.get("constraintType") == CLOSED_DEFINITION][0]

    assert closed["appliesToCat"] == EX + "Person"
    assert closed["nodeShapeUid"] == EX + "PersonShape"
    assert closed["ignoredProps"] == [EX + "nickname"]
    assert closed["definedProps"] == [EX + p for p in ("age", "email", "name", "status", "worksFor")]


def test_node_level_records(people_shacl):
    records = parse_constraints(people_shacl)

    company = [r for r in records if r.get("disjointClass")]
    assert len(company) == 1
    assert company[0]["appliesToCat"] == EX + "Company"
    assert company[0]["disjointClass"] == [EX + "Person"]

    employee = [r for r in records if r.get("reqClass")]
    assert len(employee) == 1
    assert employee[0]["appliesToCat"] == EX + "Employee"
    assert employee[0]["reqClass"] == [EX + "Person"]


def test_untargeted_and_complex_paths_skipped(people_shacl):
    """No target class, or a sequence path: nothing is extracted."""
    records = parse_constraints(people_shacl)

    assert not [r for r in records if r.get("item") == EX + "draft"]
    assert not [r for r in records if r.get("appliesToCat") == EX + "Manager"]


def test_blank_node_ids_are_stable(people_shacl):
    first = [r["propShapeUid"] for r in parse_constraints(people_shacl) if "item" in r]
    second = [r["propShapeUid"] for r in parse_constraints(people_shacl) if "item" in r]

    assert first == second
    assert len(set(first)) == len(first)


def test_blank_node_ids_tell_deep_list_differences_apart():
    """Two property shapes whose sh:in lists only differ at the tenth member."""
    turtle = """\
    @prefix sh: <http://www.w3.org/ns/shacl#> .
    @prefix ex: <http://example.org/people#> .

    ex:PartyShape a sh:NodeShape ;
        sh:targetClass ex:Party ;
        sh:property [ sh:path ex:code ; sh:in ("a" "b" "c" "d" "e" "f" "g" "h" "i" "PERSON") ] ,
                    [ sh:path ex:code ; sh:in ("a" "b" "c" "d" "e" "f" "g" "h" "i" "COMPANY") ] .
    """
    records = parse_constraints(turtle)

    assert len(records) == 2
    assert records[0]["propShapeUid"] != records[1]["propShapeUid"]
    assert sorted(r["inLiterals"][-1] for r in records) == ["COMPANY", "PERSON"]


def test_identical_blank_property_shapes_get_unique_ids():
    turtle = """\
    @prefix sh: <http://www.w3.org/ns/shacl#> .
    @prefix ex: <http://example.org/people#> .

    ex:PersonShape a sh:NodeShape ;
        sh:targetClass ex:Person ;
        sh:property [ sh:path ex:name ; sh:minCount 1 ] ,
                    [ sh:path ex:name ; sh:minCount 1 ] .

    ex:PetShape a sh:NodeShape ;
        sh:targetClass ex:Pet ;
        sh:property [ sh:path ex:name ; sh:minCount 1 ] .
    """
    records = parse_constraints(turtle)
    uids = [r["propShapeUid"] for r in records]

    assert len(records) == 3
    assert len(set(uids)) == 3
    assert all(uid.startswith("bnode://id/") for uid in uids)
    assert uids == [r["propShapeUid"] for r in parse_constraints(turtle)]


def test_node_reference_properties():
    """Property shapes reached through sh:node apply to the referencing shape's target."""
    turtle = """\
    @prefix sh: <http://www.w3.org/ns/shacl#> .
    @prefix ex: <http://example.org/people#> .

    ex:Named a sh:NodeShape ;
        sh:property [ sh:path ex:name ; sh:minCount 1 ] .

    ex:PetShape a sh:NodeShape ;
        sh:targetClass ex:Pet ;
        sh:node ex:Named .
    """
    records = parse_constraints(turtle)

    assert [(r["appliesToCat"], r["item"]) for r in records] == [(EX + "Pet", EX + "name")]


def test_binary_stream_and_other_formats():
    ntriples = (
        '<http://example.org/people#S> <http://www.w3.org/1999/02/22-rdf-syntax-ns#type> '
        '<http://www.w3.org/ns/shacl#NodeShape> .\n'
        '<http://example.org/people#S> <http://www.w3.org/ns/shacl#targetClass> '
        '<http://example.org/people#Person> .\n'
        '<http://example.org/people#S> <http://www.w3.org/ns/shacl#property> '
        '<http://example.org/people#P> .\n'
        '<http://example.org/people#P> <http://www.w3.org/ns/shacl#path> '
        '<http://example.org/people#name> .\n'
        '<http://example.org/people#P> <http://www.w3.org/ns/shacl#minCount> '
        '"1"^^<http://www.w3.org/2001/XMLSchema#integer> .\n'
    )
    records = parse_constraints(io.BytesIO(ntriples.encode("utf-8")), "N-Triples")

    assert len(records) == 1
    assert records[0]["propShapeUid"] == EX + "P"
    assert records[0]["minCount"] == 1


def test_quads_parse_as_union():
    trig = """\
    @prefix sh: <http://www.w3.org/ns/shacl#> .
    @prefix ex: <http://example.org/people#> .

    ex:shapes {
        ex:S a sh:NodeShape ;
            sh:targetClass ex:Person ;
            sh:property [ sh:path ex:name ; sh:maxCount 1 ] .
    }
    """
    records = parse_constraints(trig, "TriG")

    assert len(records) == 1
    assert records[0]["maxCount"] == 1


def test_parse_error():
    with pytest.raises(ShapesParseError):
        parse_constraints("this is not turtle .")


def test_unsupported_format():
    with pytest.raises(ShapesParseError):
        parse_constraints("", "Manchester")


BAD_IRI = (
    "<http://example.org/people#S> <http://www.w3.org/1999/02/22-rdf-syntax-ns#type> "
    "<http://www.w3.org/ns/shacl#NodeShape> .\n"
    "<http://example.org/people#S> <http://www.w3.org/ns/shacl#targetClass> "
    "<http://example.org/people#Per|son> .\n"
    "<http://example.org/people#S> <http://www.w3.org/ns/shacl#property> "
    "<http://example.org/people#P> .\n"
    "<http://example.org/people#P> <http://www.w3.org/ns/shacl#path> "
    "<http://example.org/people#name> .\n"
)


def test_uri_syntax_verified_by_default():
    with pytest.raises(ShapesParseError):
        parse_constraints(BAD_IRI, "nt")


def test_uri_syntax_verification_off():
    config = ParserConfig.from_props({"verifyUriSyntax": False})
    records = parse_constraints(BAD_IRI, "nt", config)

    assert records[0]["appliesToCat"] == "http://example.org/people#Per|son"
