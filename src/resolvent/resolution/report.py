"""
human-readable explanations of unsatisfiable resolutions.

a failed resolution ends with an incompatibility whose cause tree records
how it was derived: every derived node combines two parent
incompatibilities, the leaves are external facts (dependencies, missing
versions, python constraints). the reporter walks that tree and writes one
"Because ..., ..." line per derivation, numbering lines that are referenced
again later.
"""
from typing import Dict, List, Optional

from .incompatibility import Incompatibility


def collect_trace(incompatibility: Incompatibility) -> List[Incompatibility]:
    """every incompatibility in the derivation tree, causes before their conclusions."""
    trace: List[Incompatibility] = []
    seen = set()

    def visit(node: Incompatibility) -> None:
        if id(node) in seen:
            return
        seen.add(id(node))
        if node.is_derived():
            visit(node.cause.conflict)
            visit(node.cause.other)
        trace.append(node)

    visit(incompatibility)
    return trace


class FailureReporter:
    def __init__(self, incompatibility: Incompatibility):
        self.incompatibility = incompatibility
        self._lines: List[str] = []
        self._ref_count = 0
        self._line_refs: Dict[int, int] = {}
        self._shared = self._find_shared(incompatibility)

    @staticmethod
    def _find_shared(root: Incompatibility) -> set:
        """derived nodes reached through more than one path."""
        counts: Dict[int, int] = {}

        def visit(node: Incompatibility) -> None:
            if not node.is_derived():
                return
            counts[id(node)] = counts.get(id(node), 0) + 1
            if counts[id(node)] > 1:
                return
            visit(node.cause.conflict)
            visit(node.cause.other)

        visit(root)
        return {key for key, count in counts.items() if count > 1}

    def report(self) -> str:
        if not self.incompatibility.is_derived():
            return f"Because {self.incompatibility}, version solving failed."
        self._lines = []
        self._ref_count = 0
        self._line_refs = {}
        self._build(self.incompatibility)
        return "\n".join(self._lines)

    def _is_shared(self, node: Incompatibility) -> bool:
        return id(node) in self._shared

    def _line_ref(self, node: Incompatibility) -> Optional[int]:
        return self._line_refs.get(id(node))

    def _add_line_ref(self) -> None:
        self._ref_count += 1
        if self._lines:
            self._lines[-1] = f"{self._lines[-1]} ({self._ref_count})"

    def _build(self, node: Incompatibility) -> None:
        self._build_helper(node)
        if self._is_shared(node) and self._line_ref(node) is None:
            self._add_line_ref()
            self._line_refs[id(node)] = self._ref_count

    def _build_helper(self, node: Incompatibility) -> None:
        first, second = node.cause.conflict, node.cause.other

        if not first.is_derived() and not second.is_derived():
            self._lines.append(f"Because {first} and {second}, {node}.")
            return
        if first.is_derived() and not second.is_derived():
            self._one_each(first, second, node)
            return
        if second.is_derived() and not first.is_derived():
            self._one_each(second, first, node)
            return

        ref1, ref2 = self._line_ref(first), self._line_ref(second)
        if ref1 is not None and ref2 is not None:
            self._lines.append(f"Because {first} ({ref1}) and {second} ({ref2}), {node}.")
        elif ref1 is not None:
            self._build(second)
            self._lines.append(f"And because {first} ({ref1}), {node}.")
        elif ref2 is not None:
            self._build(first)
            self._lines.append(f"And because {second} ({ref2}), {node}.")
        else:
            self._build(first)
            if self._is_shared(first):
                self._lines.append("")
                self._build(node)
            else:
                self._add_line_ref()
                ref = self._ref_count
                self._lines.append("")
                self._build(second)
                self._lines.append(f"And because {first} ({ref}), {node}.")

    def _one_each(self, derived: Incompatibility, external: Incompatibility, node: Incompatibility) -> None:
        ref = self._line_ref(derived)
        if ref is not None:
            self._lines.append(f"Because {derived} ({ref}) and {external}, {node}.")
            return

        prior_first, prior_second = derived.cause.conflict, derived.cause.other
        if prior_first.is_derived() and not prior_second.is_derived():
            self._build(prior_first)
            self._lines.append(f"And because {prior_second} and {external}, {node}.")
        elif prior_second.is_derived() and not prior_first.is_derived():
            self._build(prior_second)
            self._lines.append(f"And because {prior_first} and {external}, {node}.")
        else:
            self._build(derived)
            self._lines.append(f"And because {external}, {node}.")
