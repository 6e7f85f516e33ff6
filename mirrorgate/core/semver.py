"""Semantic versions and npm-style range expressions.

Two parse modes share one lexer:

* :func:`parse_range` is strict and follows the public registry's
  x-range rules (``1.2`` means ``>=1.2.0 <1.3.0``).  It is what version
  resolution uses, so an unparseable token is an error.
* :func:`parse_constraint` is permissive and zero-fills partial versions
  (``<=14`` means ``<=14.0.0``).  It is what the runtime compatibility check
  uses: tokens it cannot read are dropped and reported as warnings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering

from mirrorgate.exceptions import InvalidConstraint

_VERSION_RE = re.compile(
    r"^\s*[v=]?\s*"
    r"(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?\s*$"
)

# A possibly incomplete version: "1", "1.2", "1.x", "*", "1.2.3-beta.1"
_PARTIAL_RE = re.compile(
    r"^[v=]?(\d+|[xX*])"
    r"(?:\.(\d+|[xX*]))?"
    r"(?:\.(\d+|[xX*]))?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)

_TOKEN_RE = re.compile(r"^(>=|<=|>|<|=|~>|~|\^)?(.*)$")

# "> = 1.2" and ">= 1.2" both collapse to ">=1.2"
_OP_SPACE_RE = re.compile(r"(>=|<=|>|<|=|~>|~|\^)\s+")
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")


def _prerelease_key(ids: tuple[str, ...]) -> tuple[tuple[int, int | str], ...]:
    return tuple((0, int(i)) if i.isdigit() else (1, i) for i in ids)


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A concrete ``major.minor.patch[-prerelease][+build]`` version."""

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> Version:
        m = _VERSION_RE.match(text)
        if not m:
            raise InvalidConstraint(text, "not a full major.minor.patch version")
        major, minor, patch, pre, build = m.groups()
        return cls(
            int(major),
            int(minor),
            int(patch),
            tuple(pre.split(".")) if pre else (),
            tuple(build.split(".")) if build else (),
        )

    @classmethod
    def coerce(cls, text: str) -> Version | None:
        """Return a Version for *text*, or None if it is not one."""
        try:
            return cls.parse(text)
        except InvalidConstraint:
            return None

    @property
    def release(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def next_major(self) -> Version:
        return Version(self.major + 1, 0, 0)

    def next_minor(self) -> Version:
        return Version(self.major, self.minor + 1, 0)

    def next_patch(self) -> Version:
        return Version(self.major, self.minor, self.patch + 1)

    def _key(self) -> tuple:
        # A release sorts above every prerelease of the same triple.
        if not self.prerelease:
            return (*self.release, 1, ())
        return (*self.release, 0, _prerelease_key(self.prerelease))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


@dataclass(frozen=True)
class Comparator:
    op: str  # one of "=", ">=", "<=", ">", "<"
    version: Version

    def test(self, version: Version) -> bool:
        if self.op == "=":
            return version == self.version
        if self.op == ">=":
            return version >= self.version
        if self.op == "<=":
            return version <= self.version
        if self.op == ">":
            return version > self.version
        if self.op == "<":
            return version < self.version
        raise ValueError(f"unknown comparator operator {self.op!r}")

    def __str__(self) -> str:
        return f"{'' if self.op == '=' else self.op}{self.version}"


@dataclass(frozen=True)
class ComparatorSet:
    """Comparators that must all hold (whitespace-joined in the source text)."""

    comparators: tuple[Comparator, ...] = ()

    def test(self, version: Version, *, include_prerelease: bool = False) -> bool:
        if not all(c.test(version) for c in self.comparators):
            return False
        if version.is_prerelease and not include_prerelease:
            # Prereleases only match when a comparator opts into the same triple.
            return any(
                c.version.is_prerelease and c.version.release == version.release
                for c in self.comparators
            )
        return True

    def __str__(self) -> str:
        return " ".join(str(c) for c in self.comparators) or "*"


@dataclass(frozen=True)
class Range:
    """A disjunction (``||``) of comparator sets."""

    raw: str
    alternatives: tuple[ComparatorSet, ...]
    warnings: tuple[str, ...] = field(default=(), compare=False)

    def test(self, version: Version, *, include_prerelease: bool = False) -> bool:
        return any(
            alt.test(version, include_prerelease=include_prerelease) for alt in self.alternatives
        )

    def max_satisfying(self, versions: list[Version]) -> Version | None:
        matching = [v for v in versions if self.test(v)]
        return max(matching) if matching else None

    def __str__(self) -> str:
        return " || ".join(str(a) for a in self.alternatives)


# ── parsing ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class _Partial:
    major: int | None
    minor: int | None
    patch: int | None
    prerelease: tuple[str, ...]
    components: int  # how many components were written, x-ranges included
    wildcard: bool = False  # an explicit "x", "X" or "*" was written

    def floor(self) -> Version:
        return Version(
            self.major or 0,
            self.minor or 0,
            self.patch or 0,
            self.prerelease if self.patch is not None else (),
        )

    @property
    def is_full(self) -> bool:
        return self.patch is not None


def _parse_partial(text: str) -> _Partial:
    m = _PARTIAL_RE.match(text)
    if not m:
        raise InvalidConstraint(text)
    parts = [m.group(1), m.group(2), m.group(3)]
    components = sum(1 for p in parts if p is not None)
    nums: list[int | None] = []
    wildcard = False
    for p in parts:
        if p is None or p in ("x", "X", "*"):
            wildcard = True
        if wildcard:
            nums.append(None)
        else:
            nums.append(int(p))
    pre = tuple(m.group(4).split(".")) if m.group(4) and nums[2] is not None else ()
    explicit = any(p in ("x", "X", "*") for p in parts)
    return _Partial(nums[0], nums[1], nums[2], pre, components, explicit)


def _zero_filled(p: _Partial) -> _Partial:
    return _Partial(p.major or 0, p.minor or 0, p.patch or 0, p.prerelease, p.components)


def _tilde(p: _Partial) -> list[Comparator]:
    low = p.floor()
    if p.major is None:
        return []
    if p.minor is None or p.components < 2:
        return [Comparator(">=", low), Comparator("<", Version(p.major + 1, 0, 0))]
    return [Comparator(">=", low), Comparator("<", Version(p.major, p.minor + 1, 0))]


def _caret(p: _Partial) -> list[Comparator]:
    low = p.floor()
    if p.major is None:
        return []
    if p.major > 0 or p.minor is None:
        upper = Version(p.major + 1, 0, 0)
    elif p.minor > 0 or p.patch is None:
        upper = Version(0, p.minor + 1, 0)
    else:
        upper = Version(0, 0, p.patch + 1)
    return [Comparator(">=", low), Comparator("<", upper)]


def _xrange(op: str, p: _Partial) -> list[Comparator]:
    """Expand one primitive comparator whose version may be partial."""
    if p.is_full:
        return [Comparator(op, p.floor())]
    if p.major is None:
        # "*", "x", ">=*": anything; "<*" and ">*": nothing
        if op in ("<", ">"):
            return [Comparator("<", Version(0, 0, 0))]
        return []
    if p.minor is None:
        upper = Version(p.major + 1, 0, 0)
    else:
        upper = Version(p.major, p.minor + 1, 0)
    low = p.floor()
    if op == "=":
        return [Comparator(">=", low), Comparator("<", upper)]
    if op == ">":
        return [Comparator(">=", upper)]
    if op == ">=":
        return [Comparator(">=", low)]
    if op == "<":
        return [Comparator("<", low)]
    return [Comparator("<", upper)]  # "<="


def _hyphen(low_text: str, high_text: str, *, zero_fill: bool = False) -> list[Comparator]:
    low = _parse_partial(low_text)
    high = _parse_partial(high_text)
    if zero_fill:
        low = low if low.wildcard else _zero_filled(low)
        high = high if high.wildcard else _zero_filled(high)
    comparators: list[Comparator] = []
    if low.major is not None:
        comparators.append(Comparator(">=", low.floor()))
    if high.major is None:
        return comparators
    if high.is_full:
        comparators.append(Comparator("<=", high.floor()))
    elif high.minor is None:
        comparators.append(Comparator("<", Version(high.major + 1, 0, 0)))
    else:
        comparators.append(Comparator("<", Version(high.major, high.minor + 1, 0)))
    return comparators


def _desugar(token: str, *, zero_fill: bool) -> list[Comparator]:
    m = _TOKEN_RE.match(token)
    if not m or not m.group(2):
        raise InvalidConstraint(token)
    op = m.group(1) or "="
    partial = _parse_partial(m.group(2))
    if op in ("~", "~>"):
        return _tilde(_zero_filled(partial) if zero_fill else partial)
    if op == "^":
        if zero_fill:
            return _caret(_zero_filled(partial))
        return _caret(partial)
    if zero_fill and not partial.wildcard:
        return [Comparator(op, _zero_filled(partial).floor())]
    return _xrange(op, partial)


def _split_alternatives(text: str) -> list[str]:
    return [alt.strip() for alt in text.split("||")]


def parse_range(text: str) -> Range:
    """Parse *text* strictly with registry x-range semantics.

    Raises :class:`InvalidConstraint` on any token it cannot read.
    """
    alternatives: list[ComparatorSet] = []
    for alt in _split_alternatives(text):
        hyphen = _HYPHEN_RE.match(alt)
        if hyphen:
            alternatives.append(ComparatorSet(tuple(_hyphen(*hyphen.groups()))))
            continue
        comparators: list[Comparator] = []
        for token in _OP_SPACE_RE.sub(r"\1", alt).split():
            comparators.extend(_desugar(token, zero_fill=False))
        alternatives.append(ComparatorSet(tuple(comparators)))
    return Range(text, tuple(alternatives))


def parse_constraint(text: str) -> Range:
    """Parse *text* permissively, zero-filling partial versions.

    Unreadable sub-constraints are dropped (so they count as satisfied) and
    listed in :attr:`Range.warnings`.
    """
    alternatives: list[ComparatorSet] = []
    warnings: list[str] = []
    for alt in _split_alternatives(text):
        hyphen = _HYPHEN_RE.match(alt)
        if hyphen:
            try:
                bounds = _hyphen(*hyphen.groups(), zero_fill=True)
            except InvalidConstraint:
                warnings.append(f"ignoring unparseable constraint {alt!r} in {text!r}")
                bounds = []
            alternatives.append(ComparatorSet(tuple(bounds)))
            continue
        comparators: list[Comparator] = []
        for token in _OP_SPACE_RE.sub(r"\1", alt).split():
            try:
                comparators.extend(_desugar(token, zero_fill=True))
            except InvalidConstraint:
                warnings.append(f"ignoring unparseable constraint {token!r} in {text!r}")
        alternatives.append(ComparatorSet(tuple(comparators)))
    return Range(text, tuple(alternatives), tuple(warnings))


def is_range(text: str) -> bool:
    """True when *text* parses as a strict range expression."""
    try:
        parse_range(text)
    except InvalidConstraint:
        return False
    return True
