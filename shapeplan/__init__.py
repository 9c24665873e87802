"""
shapeplan — Compile SHACL shapes into parameterised Cypher validation plans.
"""

from shapeplan.compiler import PlanBuilder, compile_shapes
from shapeplan.config_store import GraphConfigStore
from shapeplan.graph_config import GraphConfig
from shapeplan.plan import ValidatorPlan, dry_run
from shapeplan.shapes import ParserConfig, parse_constraints

__all__ = [
    "GraphConfig",
    "GraphConfigStore",
    "ParserConfig",
    "PlanBuilder",
    "ValidatorPlan",
    "compile_shapes",
    "dry_run",
    "parse_constraints",
]
