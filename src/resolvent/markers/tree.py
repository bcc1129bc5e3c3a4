"""
environment markers in disjunctive normal form.

a marker is a tuple of clauses joined by `or`; a clause maps each variable to
one constraint and is the `and` of those constraints. constraints are
VersionRange for version variables, StringSet for string variables, and a
StringSet over {"true"} for opaque atoms (substring tests and string
ordering) that are only ever evaluated, never reasoned about.

variables are independent, so a clause with no empty constraint is always
satisfiable. that makes `is_false` a syntactic check, and everything else
(`is_true`, `implies`, `is_disjoint`) reduces to it.
"""
import logging
from functools import lru_cache
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from packaging.markers import InvalidMarker, Marker, default_environment
from packaging.specifiers import InvalidSpecifier
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from ..algebra.range import VersionRange
from ..domain.errors import MarkerSyntaxError
from .parser import BoolOp, Comparison, MarkerParser, Node
from .tokenizer import MarkerTokenizer

logger = logging.getLogger(__name__)

PYTHON_VERSION = "python_full_version"
VERSION_VARIABLES = frozenset({"python_full_version", "implementation_version"})

# nothing sorts below 0.dev0
_LOWEST_VERSION = Version("0.dev0")

_FLIPPED = {"<": ">", "<=": ">=", ">": "<", ">=": "<=", "==": "==", "!=": "!="}
_NEGATED = {"in": "not in", "not in": "in", "<": ">=", ">=": "<", "<=": ">", ">": "<=", "==": "!=", "!=": "=="}
_CANONICAL_ATOM_OPS = frozenset({"in", "<", "<=", "=="})


class StringSet:
    """a finite (or, when negated, co-finite) set of strings."""

    __slots__ = ("values", "negated")

    def __init__(self, values: Iterable[str] = (), negated: bool = False):
        self.values = frozenset(values)
        self.negated = negated

    def is_empty(self) -> bool:
        return not self.negated and not self.values

    def is_full(self) -> bool:
        return self.negated and not self.values

    def contains(self, value: Optional[str]) -> bool:
        return (value in self.values) != self.negated

    def complement(self) -> "StringSet":
        return StringSet(self.values, not self.negated)

    def intersection(self, other: "StringSet") -> "StringSet":
        if not self.negated and not other.negated:
            return StringSet(self.values & other.values)
        if not self.negated:
            return StringSet(self.values - other.values)
        if not other.negated:
            return StringSet(other.values - self.values)
        return StringSet(self.values | other.values, True)

    def union(self, other: "StringSet") -> "StringSet":
        if not self.negated and not other.negated:
            return StringSet(self.values | other.values)
        if not self.negated:
            return StringSet(other.values - self.values, True)
        if not other.negated:
            return StringSet(self.values - other.values, True)
        return StringSet(self.values & other.values, True)

    def subset_of(self, other: "StringSet") -> bool:
        return self.intersection(other) == self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StringSet):
            return NotImplemented
        return (self.values, self.negated) == (other.values, other.negated)

    def __hash__(self) -> int:
        return hash((self.values, self.negated))

    def __repr__(self) -> str:
        prefix = "not " if self.negated else ""
        return f"StringSet({prefix}{sorted(self.values)})"


_ATOM_TRUE = StringSet({"true"})


class Atom(NamedTuple):
    """a comparison kept verbatim; lhs and rhs are source text (quoted literals or variable names)."""
    lhs: str
    op: str
    rhs: str

    @property
    def text(self) -> str:
        return f"{self.lhs} {self.op} {self.rhs}"

    @property
    def negated_text(self) -> str:
        return f"{self.lhs} {_NEGATED[self.op]} {self.rhs}"


Key = Union[str, Atom]
Constraint = Union[VersionRange, StringSet]
Clause = Tuple[Tuple[Key, Constraint], ...]


def _key_order(key: Key) -> tuple:
    if isinstance(key, Atom):
        return (1,) + tuple(key)
    return (0, key)


def _quote(value: str) -> str:
    if "'" in value:
        return f'"{value}"'
    return f"'{value}'"


def _clause_implies(a: Dict[Key, Constraint], b: Dict[Key, Constraint]) -> bool:
    for key, constraint in b.items():
        if key not in a or not a[key].subset_of(constraint):
            return False
    return True


def _and_clauses(a: Dict[Key, Constraint], b: Dict[Key, Constraint]) -> Optional[Dict[Key, Constraint]]:
    merged = dict(a)
    for key, constraint in b.items():
        if key in merged:
            constraint = merged[key].intersection(constraint)
            if constraint.is_empty():
                return None
        merged[key] = constraint
    return merged


def _render_version(key: str, constraint: VersionRange) -> Tuple[str, bool]:
    text = str(constraint)
    if text.startswith("!="):
        return f"{key} != {_quote(text[2:])}", False

    parts = []
    for lower, upper in constraint.segments:
        if lower is not None and lower == upper:
            parts.append(f"{key} == {_quote(str(lower[0]))}")
            continue
        bounds = []
        if lower is not None:
            bounds.append(f"{key} {'>=' if lower[1] else '>'} {_quote(str(lower[0]))}")
        if upper is not None:
            bounds.append(f"{key} {'<=' if upper[1] else '<'} {_quote(str(upper[0]))}")
        parts.append(" and ".join(bounds))

    if len(parts) == 1:
        return parts[0], False
    wrapped = [f"({p})" if " and " in p else p for p in parts]
    return " or ".join(wrapped), True


def _render_term(key: Key, constraint: Constraint) -> Tuple[str, bool]:
    """render one clause entry; the flag says whether the text is a disjunction."""
    if isinstance(key, Atom):
        return (key.text if constraint.contains("true") else key.negated_text), False
    if isinstance(constraint, VersionRange):
        return _render_version(key, constraint)
    values = sorted(constraint.values)
    if constraint.negated:
        return " and ".join(f"{key} != {_quote(v)}" for v in values), False
    return " or ".join(f"{key} == {_quote(v)}" for v in values), len(values) > 1


def _render_clause(clause: Clause) -> str:
    parts = []
    for key, constraint in clause:
        text, is_disjunction = _render_term(key, constraint)
        if is_disjunction and len(clause) > 1:
            text = f"({text})"
        parts.append(text)
    return " and ".join(parts)


def _simplify(clauses: Iterable[Optional[Dict[Key, Constraint]]]) -> Tuple[Clause, ...]:
    work = []
    for clause in clauses:
        if clause is None:
            continue
        cleaned = {k: c for k, c in clause.items() if not c.is_full()}
        if any(c.is_empty() for c in cleaned.values()):
            continue
        if not cleaned:
            return ((),)
        work.append(cleaned)

    changed = True
    while changed:
        changed = False

        # drop clauses implied by another one
        kept = []
        for i, clause in enumerate(work):
            redundant = any(
                j != i and _clause_implies(clause, other) and (j < i or not _clause_implies(other, clause))
                for j, other in enumerate(work)
            )
            if redundant:
                changed = True
            else:
                kept.append(clause)
        work = kept

        # a ∨ b == a ∨ (b with b[k] widened by a[k]) whenever the rest of b implies the rest of a
        for b in work:
            for a in work:
                if a is b:
                    continue
                for key in list(b):
                    if key not in a or key not in b:
                        continue
                    if not all(k in b and b[k].subset_of(c) for k, c in a.items() if k != key):
                        continue
                    widened = a[key].union(b[key])
                    if widened != b[key]:
                        changed = True
                        if widened.is_full():
                            del b[key]
                        else:
                            b[key] = widened
                if not b:
                    return ((),)

    result = [tuple(sorted(c.items(), key=lambda item: _key_order(item[0]))) for c in work]
    result.sort(key=_render_clause)
    return tuple(result)


def _python_version_range(op: str, value: str) -> Optional[VersionRange]:
    """`python_version` compares X.Y only; map it onto full versions."""
    if "*" in value or op == "~=":
        return _version_range(op, value)
    try:
        version = Version(value)
    except InvalidVersion:
        return None
    if len(version.release) != 2 or version.pre or version.post or version.dev or version.local:
        return _version_range(op, value)

    major, minor = version.release
    next_minor = Version(f"{major}.{minor + 1}")
    if op in ("==", "==="):
        return VersionRange.between(version, next_minor)
    if op == "!=":
        return VersionRange.between(version, next_minor).complement()
    if op == ">":
        return VersionRange.higher_than(next_minor)
    if op == ">=":
        return VersionRange.higher_than(version)
    if op == "<":
        return VersionRange.strictly_lower_than(version)
    if op == "<=":
        return VersionRange.strictly_lower_than(next_minor)
    return None


def _version_range(op: str, value: str) -> Optional[VersionRange]:
    try:
        if "*" in value or op == "~=":
            return VersionRange.from_specifier(f"{op}{value}")
        if op == "===":
            op = "=="
        return VersionRange.from_operator(op, value)
    except (InvalidSpecifier, InvalidVersion, ValueError):
        return None


def _atom(lhs: str, op: str, rhs: str, source: str) -> "MarkerTree":
    if op not in _NEGATED:
        raise MarkerSyntaxError(source, f"operator '{op}' is not supported here")
    if op in _CANONICAL_ATOM_OPS:
        return MarkerTree.from_constraint(Atom(lhs, op, rhs), _ATOM_TRUE)
    return MarkerTree.from_constraint(Atom(lhs, _NEGATED[op], rhs), _ATOM_TRUE.complement())


def _from_comparison(node: Comparison, source: str) -> "MarkerTree":
    lhs, op, rhs = node.lhs, node.op, node.rhs
    if lhs.is_variable and not rhs.is_variable:
        variable, value = lhs.text, rhs.text
    elif rhs.is_variable and not lhs.is_variable and op in _FLIPPED:
        variable, value, op = rhs.text, lhs.text, _FLIPPED[op]
    else:
        return _atom(lhs.to_string(), op, rhs.to_string(), source)

    if variable in ("python_version", PYTHON_VERSION, "implementation_version"):
        if variable == "python_version":
            constraint = _python_version_range(op, value)
            variable = PYTHON_VERSION
        else:
            constraint = _version_range(op, value)
        if constraint is None:
            return _atom(lhs.to_string(), node.op, rhs.to_string(), source)
        if constraint.subset_of(VersionRange.strictly_lower_than(_LOWEST_VERSION)):
            return MarkerTree.FALSE
        return MarkerTree.from_constraint(variable, constraint)

    if variable == "extra":
        value = canonicalize_name(value)
    if op in ("==", "==="):
        return MarkerTree.from_constraint(variable, StringSet({value}))
    if op == "!=":
        return MarkerTree.from_constraint(variable, StringSet({value}, True))
    return _atom(lhs.to_string(), node.op, rhs.to_string(), source)


def _from_node(node: Node, source: str) -> "MarkerTree":
    if isinstance(node, BoolOp):
        if node.op == "and":
            result = MarkerTree.TRUE
            for child in node.children:
                result = result.and_(_from_node(child, source))
        else:
            result = MarkerTree.FALSE
            for child in node.children:
                result = result.or_(_from_node(child, source))
        return result
    return _from_comparison(node, source)


@lru_cache(maxsize=4096)
def _parse(text: str) -> "MarkerTree":
    text = text.strip()
    if not text:
        return MarkerTree.TRUE
    try:
        Marker(text)
    except InvalidMarker as e:
        raise MarkerSyntaxError(text, str(e)) from e
    tokens = MarkerTokenizer().tokenize(text)
    return _from_node(MarkerParser(tokens, text).parse(), text)


class MarkerTree:
    """an immutable, simplified PEP 508 marker."""

    __slots__ = ("_clauses",)

    TRUE: "MarkerTree"
    FALSE: "MarkerTree"

    def __init__(self, clauses: Tuple[Clause, ...] = ()):
        self._clauses = clauses

    @classmethod
    def parse(cls, text: Optional[str]) -> "MarkerTree":
        if text is None:
            return cls.TRUE
        return _parse(text)

    @classmethod
    def from_constraint(cls, key: Key, constraint: Constraint) -> "MarkerTree":
        return cls(_simplify([{key: constraint}]))

    @classmethod
    def python(cls, versions: VersionRange) -> "MarkerTree":
        """a marker that holds exactly for python_full_version in `versions`."""
        return cls.from_constraint(PYTHON_VERSION, versions)

    @classmethod
    def extra(cls, name: str) -> "MarkerTree":
        return cls.from_constraint("extra", StringSet({canonicalize_name(name)}))

    @property
    def clauses(self) -> List[Dict[Key, Constraint]]:
        return [dict(clause) for clause in self._clauses]

    # boolean algebra

    def and_(self, other: "MarkerTree") -> "MarkerTree":
        if self.is_true() or other.is_false():
            return other
        if other.is_true() or self.is_false():
            return self
        combined = []
        for a in self._clauses:
            for b in other._clauses:
                combined.append(_and_clauses(dict(a), dict(b)))
        return MarkerTree(_simplify(combined))

    def or_(self, other: "MarkerTree") -> "MarkerTree":
        if self.is_false():
            return other
        if other.is_false():
            return self
        return MarkerTree(_simplify([dict(c) for c in self._clauses + other._clauses]))

    def negate(self) -> "MarkerTree":
        result = MarkerTree.TRUE
        for clause in self._clauses:
            alternatives = MarkerTree(_simplify([{key: constraint.complement()} for key, constraint in clause]))
            result = result.and_(alternatives)
            if result.is_false():
                break
        return result

    def is_false(self) -> bool:
        return not self._clauses

    def is_true(self) -> bool:
        if self._clauses == ((),):
            return True
        return self.negate().is_false()

    def is_disjoint(self, other: "MarkerTree") -> bool:
        return self.and_(other).is_false()

    def implies(self, other: "MarkerTree") -> bool:
        return self.and_(other.negate()).is_false()

    def equivalent(self, other: "MarkerTree") -> bool:
        return self.implies(other) and other.implies(self)

    # projections

    def python_range(self) -> VersionRange:
        """the python versions for which some clause can hold."""
        result = VersionRange.empty()
        for clause in self._clauses:
            result = result.union(dict(clause).get(PYTHON_VERSION, VersionRange.full()))
        return result

    def with_extra(self, extra: Optional[str]) -> "MarkerTree":
        """substitute the `extra` variable (None: no extra is active)."""
        value = canonicalize_name(extra) if extra else None
        clauses = []
        for clause in self._clauses:
            entries = dict(clause)
            constraint = entries.pop("extra", None)
            if constraint is not None and not constraint.contains(value):
                continue
            clauses.append(entries)
        return MarkerTree(_simplify(clauses))

    def mentions_extra(self) -> bool:
        return any("extra" in dict(clause) for clause in self._clauses)

    def simplify_python(self, floor: VersionRange) -> "MarkerTree":
        """drop python bounds that are implied by `floor` (usually the requires-python range)."""
        if floor.is_full():
            return self
        outside = floor.complement()
        clauses = []
        for clause in self._clauses:
            entries = dict(clause)
            constraint = entries.get(PYTHON_VERSION)
            if constraint is not None:
                if constraint.is_disjoint(floor):
                    continue
                widened = constraint.union(outside)
                # widening only helps when it does not add segments
                if len(widened.segments) <= len(constraint.segments):
                    entries[PYTHON_VERSION] = widened
            clauses.append(entries)
        return MarkerTree(_simplify(clauses))

    def evaluate(self, environment: Optional[Dict[str, str]] = None) -> bool:
        env = dict(default_environment())
        if environment:
            env.update(environment)
        env.setdefault("extra", "")
        return any(all(_holds(key, constraint, env) for key, constraint in clause) for clause in self._clauses)

    # dunder

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MarkerTree):
            return NotImplemented
        return self._clauses == other._clauses

    def __hash__(self) -> int:
        return hash(self._clauses)

    def __str__(self) -> str:
        if self.is_false():
            return f"{PYTHON_VERSION} < '{_LOWEST_VERSION}'"
        return " or ".join(_render_clause(clause) for clause in self._clauses)

    def __repr__(self) -> str:
        return f"MarkerTree({str(self)!r})"


MarkerTree.TRUE = MarkerTree(((),))
MarkerTree.FALSE = MarkerTree(())


def _holds(key: Key, constraint: Constraint, env: Dict[str, str]) -> bool:
    if isinstance(key, Atom):
        return Marker(key.text).evaluate(env) == constraint.contains("true")
    if isinstance(constraint, VersionRange):
        try:
            return constraint.contains(Version(env.get(key, "")))
        except InvalidVersion:
            logger.debug(f"environment value for {key} is not a version: {env.get(key)!r}")
            return False
    value = env.get(key, "")
    if key == "extra":
        value = canonicalize_name(value) if value else None
    return constraint.contains(value)
