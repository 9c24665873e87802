"""
shapeplan.errors — Exceptions raised by configuration handling and plan compilation.
"""

from __future__ import annotations


class ShapePlanError(Exception):
    """Base class for every error raised by shapeplan."""


class InvalidParamError(ShapePlanError, ValueError):
    def __init__(self, param: str, value):
        self.param = param
        self.value = value
        super().__init__(f"{value} is not a valid option for param '{param}'")


class GraphConfigMissingError(ShapePlanError):
    def __init__(self):
        super().__init__("Graph config not found. Call 'init' method first.")


class GraphNotEmptyError(ShapePlanError):
    def __init__(self):
        super().__init__("The graph is non-empty. Config cannot be changed.")


class UriNamespaceUnknownError(ShapePlanError):
    def __init__(self, namespace: str):
        self.namespace = namespace
        super().__init__(f"No prefix has been defined for namespace <{namespace}>")


class InvalidPrefixDefinitionError(ShapePlanError):
    def __init__(self, prefix, namespace):
        self.prefix = prefix
        self.namespace = namespace
        super().__init__(
            f"The namespace prefix definition {prefix!r} -> {namespace!r} is not valid"
        )


class ShapesParseError(ShapePlanError):
    """The shapes document could not be read as RDF."""
