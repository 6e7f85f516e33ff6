"""License allow-list policy over SPDX identifiers and license expressions."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

import structlog

from mirrorgate.exceptions import InvalidLicenseExpression

log = structlog.get_logger("mirrorgate.engine")

DEFAULT_ALLOWED_LICENSES = (
    "MIT",
    "ISC",
    "BSD-2-Clause",
    "BSD-3-Clause",
    "Apache-2.0",
    "0BSD",
    "Unlicense",
)

_TOKEN_RE = re.compile(r"\(|\)|[^\s()]+")
_KEYWORDS = frozenset({"AND", "OR", "WITH"})


class MissingLicensePolicy(str, enum.Enum):
    """What to do with a package that declares no license at all."""

    DENY = "deny"
    ALLOW = "allow"


# ── expression tree ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class LicenseRef:
    """A single license id, optionally with a ``WITH`` exception."""

    license: str
    exception: str | None = None

    def satisfied_by(self, allowed: frozenset[str]) -> bool:
        if self.license.casefold() in allowed:
            return True
        return self.exception is not None and str(self).casefold() in allowed

    def __str__(self) -> str:
        if self.exception is None:
            return self.license
        return f"{self.license} WITH {self.exception}"


@dataclass(frozen=True)
class AllOf:
    terms: tuple[LicenseNode, ...]

    def satisfied_by(self, allowed: frozenset[str]) -> bool:
        return all(term.satisfied_by(allowed) for term in self.terms)


@dataclass(frozen=True)
class AnyOf:
    terms: tuple[LicenseNode, ...]

    def satisfied_by(self, allowed: frozenset[str]) -> bool:
        return any(term.satisfied_by(allowed) for term in self.terms)


LicenseNode = LicenseRef | AllOf | AnyOf


class _ExpressionParser:
    """Recursive-descent parser for SPDX license expressions.

    Grammar: ``or := and (OR and)*``, ``and := term (AND term)*``,
    ``term := "(" or ")" | id [WITH id]``.  Keywords ignore case.
    """

    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = _TOKEN_RE.findall(text)
        self._pos = 0

    def parse(self) -> LicenseNode:
        if not self._tokens:
            raise InvalidLicenseExpression(self._text, "empty")
        node = self._parse_or()
        if self._pos < len(self._tokens):
            raise InvalidLicenseExpression(
                self._text, f"unexpected {self._tokens[self._pos]!r}"
            )
        return node

    def _peek(self) -> str | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _take(self) -> str:
        token = self._peek()
        if token is None:
            raise InvalidLicenseExpression(self._text, "unexpected end")
        self._pos += 1
        return token

    def _accept(self, keyword: str) -> bool:
        token = self._peek()
        if token is not None and token.upper() == keyword:
            self._pos += 1
            return True
        return False

    def _identifier(self) -> str:
        token = self._take()
        if token in ("(", ")") or token.upper() in _KEYWORDS:
            raise InvalidLicenseExpression(self._text, f"expected a license id, got {token!r}")
        return token

    def _parse_or(self) -> LicenseNode:
        terms = [self._parse_and()]
        while self._accept("OR"):
            terms.append(self._parse_and())
        return terms[0] if len(terms) == 1 else AnyOf(tuple(terms))

    def _parse_and(self) -> LicenseNode:
        terms = [self._parse_term()]
        while self._accept("AND"):
            terms.append(self._parse_term())
        return terms[0] if len(terms) == 1 else AllOf(tuple(terms))

    def _parse_term(self) -> LicenseNode:
        if self._peek() == "(":
            self._pos += 1
            node = self._parse_or()
            if self._take() != ")":
                raise InvalidLicenseExpression(self._text, "unbalanced parentheses")
            return node
        license_id = self._identifier()
        if self._accept("WITH"):
            return LicenseRef(license_id, self._identifier())
        return LicenseRef(license_id)


def parse_license_expression(text: str) -> LicenseNode:
    """Parse an SPDX license expression; AND binds tighter than OR.

    Raises :class:`InvalidLicenseExpression` when *text* is not well formed.
    """
    return _ExpressionParser(text).parse()


# ── policy ──────────────────────────────────────────────────────────────


class LicensePolicy:
    """Decide whether a declared license string is acceptable.

    ``A OR B`` passes when any alternative is allowed; ``A AND B`` needs
    every term; parentheses group.  ``A WITH exc`` passes when ``A`` is
    allowed or the whole ``A WITH exc`` string is.  A license field that
    is not a well-formed expression is rejected unless it appears verbatim
    in the allow-list.  Comparison ignores case.
    """

    def __init__(
        self,
        allowed: tuple[str, ...] | list[str] | frozenset[str] = DEFAULT_ALLOWED_LICENSES,
        missing: MissingLicensePolicy = MissingLicensePolicy.DENY,
    ) -> None:
        self.allowed = frozenset(
            " ".join(lic.split()).casefold() for lic in allowed if lic.strip()
        )
        self.missing = missing

    def allows(self, license_expr: str | None) -> bool:
        if license_expr is None or not license_expr.strip():
            return self.missing is MissingLicensePolicy.ALLOW
        if " ".join(license_expr.split()).casefold() in self.allowed:
            return True
        try:
            tree = parse_license_expression(license_expr)
        except InvalidLicenseExpression as exc:
            log.warning("license.unreadable", license=license_expr, reason=exc.reason)
            return False
        return tree.satisfied_by(self.allowed)
