"""Semantic-version parsing, comparison and constraint matching.

Constraint grammar (whitespace AND binds tighter than ``||``)::

    constraint := alternative ( "||" alternative )*
    alternative := term ( WS term )*
    term := "*" | "^" ver | "~" ver | op ver | ver
    op := ">=" | "<=" | ">" | "<" | "="

Constraint versions may be partial (``1``, ``1.2``) and are zero padded.
Caret and tilde expand to a ``>=`` / ``<`` pair before evaluation:

    ^1.2.3 -> >=1.2.3 <2.0.0     ^0.2.3 -> >=0.2.3 <0.3.0
    ^0.0.3 -> >=0.0.3 <0.0.4     ~1.2.3 -> >=1.2.3 <1.3.0
"""
from __future__ import annotations

import operator
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Optional, Tuple

from modflow.errors import MalformedConstraintError, MalformedVersionError

_VERSION_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?"
    r"(?:\+([0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?$"
)
_PARTIAL_RE = re.compile(
    r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?"
    r"(?:-([0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?"
    r"(?:\+([0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?$"
)
_TERM_RE = re.compile(r"^(\^|~|>=|<=|>|<|=)?(.+)$")
_OP_GAP_RE = re.compile(r"(\^|~|>=|<=|>|<|=)\s+")

_OPS: dict[str, Callable[[object, object], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "=": operator.eq,
}


def _prerelease_key(pre: Tuple[str, ...]) -> tuple:
    # A release (no prerelease) ranks above every prerelease of the same core.
    if not pre:
        return (1,)
    parts = []
    for ident in pre:
        if ident.isdigit():
            parts.append((0, int(ident), ""))
        else:
            parts.append((1, 0, ident))
    return (0, tuple(parts))


@dataclass(frozen=True, order=False)
class Version:
    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = field(default=(), compare=False)

    def _key(self) -> tuple:
        return (self.major, self.minor, self.patch, _prerelease_key(self.prerelease))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __lt__(self, other: "Version") -> bool:
        return self._key() < other._key()

    def __le__(self, other: "Version") -> bool:
        return self._key() <= other._key()

    def __gt__(self, other: "Version") -> bool:
        return self._key() > other._key()

    def __ge__(self, other: "Version") -> bool:
        return self._key() >= other._key()

    @property
    def is_stable(self) -> bool:
        return not self.prerelease

    def __str__(self) -> str:
        s = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            s += "-" + ".".join(self.prerelease)
        if self.build:
            s += "+" + ".".join(self.build)
        return s


@lru_cache(maxsize=1024)
def parse_version(version: str) -> Version:
    if not isinstance(version, str):
        raise MalformedVersionError(str(version))
    m = _VERSION_RE.match(version.strip())
    if not m:
        raise MalformedVersionError(version)
    major, minor, patch, pre, build = m.groups()
    return Version(
        int(major),
        int(minor),
        int(patch),
        tuple(pre.split(".")) if pre else (),
        tuple(build.split(".")) if build else (),
    )


def _parse_partial(text: str, constraint: str) -> Version:
    m = _PARTIAL_RE.match(text)
    if not m:
        raise MalformedConstraintError(constraint, f"bad version '{text}'")
    major, minor, patch, pre, build = m.groups()
    return Version(
        int(major),
        int(minor or 0),
        int(patch or 0),
        tuple(pre.split(".")) if pre else (),
        tuple(build.split(".")) if build else (),
    )


@dataclass(frozen=True)
class Comparator:
    op: str
    version: Version

    def allows(self, v: Version) -> bool:
        return _OPS[self.op](v, self.version)

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


def _expand_caret(v: Version) -> Tuple[Comparator, ...]:
    if v.major > 0:
        upper = Version(v.major + 1, 0, 0)
    elif v.minor > 0:
        upper = Version(0, v.minor + 1, 0)
    else:
        upper = Version(0, 0, v.patch + 1)
    return (Comparator(">=", v), Comparator("<", upper))


def _expand_tilde(v: Version) -> Tuple[Comparator, ...]:
    return (Comparator(">=", v), Comparator("<", Version(v.major, v.minor + 1, 0)))


def _parse_term(term: str, constraint: str) -> Tuple[Comparator, ...]:
    if term == "*":
        return ()
    m = _TERM_RE.match(term)
    if not m:  # pragma: no cover - _TERM_RE matches any non-empty string
        raise MalformedConstraintError(constraint, f"bad term '{term}'")
    op, rest = m.group(1), m.group(2)
    if rest.startswith(("^", "~", ">", "<", "=")):
        raise MalformedConstraintError(constraint, f"bad term '{term}'")
    v = _parse_partial(rest, constraint)
    if op == "^":
        return _expand_caret(v)
    if op == "~":
        return _expand_tilde(v)
    return (Comparator(op or "=", v),)


@dataclass(frozen=True)
class Constraint:
    """Parsed constraint: OR of alternatives, each an AND of comparators.

    An empty alternative (``*``) matches every version.
    """

    raw: str
    alternatives: Tuple[Tuple[Comparator, ...], ...]

    def allows(self, version: "Version | str") -> bool:
        v = parse_version(version) if isinstance(version, str) else version
        return any(
            all(c.allows(v) for c in alt) for alt in self.alternatives
        )

    @property
    def is_any(self) -> bool:
        return any(not alt for alt in self.alternatives)

    def __str__(self) -> str:
        return self.raw


@lru_cache(maxsize=1024)
def parse_constraint(constraint: str) -> Constraint:
    if not isinstance(constraint, str) or not constraint.strip():
        raise MalformedConstraintError(str(constraint), "empty constraint")
    alternatives = []
    for alt in constraint.split("||"):
        alt = _OP_GAP_RE.sub(r"\1", alt.strip())
        if not alt:
            raise MalformedConstraintError(constraint, "empty alternative")
        comparators: list[Comparator] = []
        for term in alt.split():
            comparators.extend(_parse_term(term, constraint))
        alternatives.append(tuple(comparators))
    return Constraint(constraint.strip(), tuple(alternatives))


def satisfies(version: str, constraint: str) -> bool:
    """Does ``version`` satisfy ``constraint``?

    Raises ``MalformedVersionError`` / ``MalformedConstraintError`` on
    unparseable input.
    """
    v = parse_version(version)
    return parse_constraint(constraint).allows(v)


def compare(a: str, b: str) -> int:
    va, vb = parse_version(a), parse_version(b)
    return (va > vb) - (va < vb)


def bump(version: str, kind: str = "patch") -> str:
    v = parse_version(version)
    if kind == "major":
        return f"{v.major + 1}.0.0"
    if kind == "minor":
        return f"{v.major}.{v.minor + 1}.0"
    if kind == "patch":
        return f"{v.major}.{v.minor}.{v.patch + 1}"
    raise ValueError(f"Unknown bump kind '{kind}' (major|minor|patch)")


def is_stable(version: str) -> bool:
    return parse_version(version).is_stable


def max_satisfying(versions: list[str], constraint: str) -> Optional[str]:
    c = parse_constraint(constraint)
    matching = [parse_version(v) for v in versions if c.allows(v)]
    if not matching:
        return None
    return str(max(matching))
