from shapeplan import GraphConfig, compile_shapes, dry_run

# Shapes for people and companies, compiled for a graph imported with shortened IRIs
with open("examples/people.shacl.ttl") as f:
    shapes = f.read()

config = GraphConfig.from_props({"handleVocabUris": "SHORTEN", "handleRDFTypes": "LABELS_AND_NODES"})
plan = compile_shapes(shapes, config=config, prefixes={"ex": "http://example.org/people#"})
print(dry_run(plan))
