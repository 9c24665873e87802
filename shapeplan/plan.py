"""
shapeplan.plan — The validation plan produced by the compiler.

A ValidatorPlan holds the ordered queries (Q_1, Q_2, ...), the parameter
sets they read through `$<param set id>`, and an inventory of the
constraints that were compiled. dry_run() renders it for reading.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from shapeplan.constraints import ConstraintComponent, ConstraintKind


@dataclass
class PlanEntry:
    query_id: str
    global_query: str
    scoped_query: str
    triggers: list[str]
    kind: ConstraintKind
    shape_id: str
    param_set: Optional[str] = None
    # property or relationship checked, None for node-level checks
    path: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            "id": self.query_id,
            "global": self.global_query,
            "scoped": self.scoped_query,
            "triggers": list(self.triggers),
            "kind": self.kind.value,
            "shapeId": self.shape_id,
            "path": self.path,
        }
        if self.param_set is not None:
            d["paramSet"] = self.param_set
        return d


@dataclass
class ValidatorPlan:
    entries: list[PlanEntry] = field(default_factory=list)
    params: dict[str, dict[str, Any]] = field(default_factory=dict)
    inventory: list[ConstraintComponent] = field(default_factory=list)
    # Inventory kinds are rendered as sh:<Kind> in RDF graph mode
    rdf_mode: bool = False

    def add_query(
        self,
        global_query: str,
        scoped_query: str,
        triggers: Iterable[str],
        kind: ConstraintKind,
        shape_id: str,
        param_set: Optional[str] = None,
        path: Optional[str] = None,
    ) -> PlanEntry:
        entry = PlanEntry(
            query_id=f"Q_{len(self.entries) + 1}",
            global_query=global_query,
            scoped_query=scoped_query,
            triggers=list(dict.fromkeys(triggers)),
            kind=kind,
            shape_id=shape_id,
            param_set=param_set,
            path=path,
        )
        self.entries.append(entry)
        return entry

    def new_param_set(self, param_set_id: str) -> dict[str, Any]:
        """Parameter set registered under `param_set_id`, created if missing."""
        return self.params.setdefault(param_set_id, {})

    def add_constraint(self, component: ConstraintComponent) -> None:
        self.inventory.append(component)

    # ── Queries ──────────────────────────────────────────────────

    def queries_for(self, touched_labels: Iterable[str]) -> list[PlanEntry]:
        """Entries worth re-running when nodes with these labels changed."""
        touched = set(touched_labels)
        return [e for e in self.entries if touched.intersection(e.triggers)]

    def kind_name(self, kind: ConstraintKind) -> str:
        return f"sh:{kind.value}" if self.rdf_mode else kind.value

    # ── Serialisation ────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "queries": [e.to_dict() for e in self.entries],
            "params": self.params,
            "constraints": [
                {
                    "focusLabel": c.focus_label,
                    "path": c.path,
                    "kind": self.kind_name(c.kind),
                    "param": c.payload,
                }
                for c in self.inventory
            ],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)


def dry_run(plan: ValidatorPlan, scoped: bool = False) -> str:
    """Return every query of the plan as a formatted string."""
    lines = []
    for entry in plan.entries:
        lines.append(f"// [{entry.query_id}] {plan.kind_name(entry.kind)} on {', '.join(entry.triggers)}")
        lines.append(f"// shape: {entry.shape_id}")
        if entry.param_set is not None:
            lines.append(f"// ${entry.param_set} = {json.dumps(plan.params.get(entry.param_set), default=str)}")
        lines.append(entry.scoped_query if scoped else entry.global_query)
        lines.append("")
    return "\n".join(lines)
