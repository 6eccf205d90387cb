"""Release identity recovery from free-text plan and run titles.

Titles are matched positionally against an underscore-delimited grammar such as
``${version}_${environment}_${platform}``: segment *i* of the title is read as
token *i* of the grammar. Literal grammar segments (``REL_${version}_...``) keep
their position but their title value is ignored. Every segment is normalized
before validation:

- surrounding bracket pairs are stripped (``[PT]`` becomes ``PT``);
- unicode dash variants are folded to ``-``;
- non-breaking, zero-width and ordinary spaces are removed;
- diacritics are stripped and the result is upper-cased.

``version`` and ``environment`` are required; every other token is optional and
falls back to ``None`` when missing or not allowed.
"""

from __future__ import annotations

import logging
import re
import threading
import unicodedata
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Pattern, Tuple

from .models import ReleaseIdentity

logger = logging.getLogger(__name__)

SEPARATOR = "_"
VERSION_TOKEN = "version"
ENVIRONMENT_TOKEN = "environment"
REQUIRED_TOKENS: Tuple[str, ...] = (VERSION_TOKEN, ENVIRONMENT_TOKEN)

_PLACEHOLDER_RE = re.compile(r"^\$\{([A-Za-z][A-Za-z0-9]*)\}$")
_BRACKET_PAIRS = {"[": "]", "(": ")", "{": "}"}
_DASH_VARIANTS = "\u2010\u2011\u2012\u2013\u2014\u2015\u2212"
_REMOVED_CHARACTERS = "\u00a0\u200b\u200c\u200d\ufeff "
_NORMALIZE_TABLE = str.maketrans(
    {
        **{char: "-" for char in _DASH_VARIANTS},
        **{char: None for char in _REMOVED_CHARACTERS},
    }
)


def normalize_token(raw: Optional[str]) -> str:
    """Normalize one title segment (or allow-list entry) for comparison.

    Returns an empty string for ``None`` or segments that normalize to nothing.
    """
    if raw is None:
        return ""

    value = raw.strip()
    while len(value) >= 2 and _BRACKET_PAIRS.get(value[0]) == value[-1]:
        value = value[1:-1].strip()

    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return stripped.translate(_NORMALIZE_TABLE).strip().upper()


@dataclass(frozen=True)
class ReleaseGrammar:
    """Positional segments compiled from an identifier format string.

    ``segments`` holds one entry per ``_``-separated segment of the format: the
    token name for a ``${name}`` placeholder, or ``None`` for a literal segment
    whose title value is ignored.
    """

    source: str
    segments: Tuple[Optional[str], ...]
    error: Optional[str] = None

    @property
    def tokens(self) -> Tuple[str, ...]:
        return tuple(name for name in self.segments if name is not None)

    @property
    def is_valid(self) -> bool:
        return self.error is None


_GRAMMAR_CACHE: Dict[str, ReleaseGrammar] = {}
_GRAMMAR_LOCK = threading.Lock()


def _build_grammar(identifier_format: str) -> ReleaseGrammar:
    segments: List[Optional[str]] = []
    for segment in identifier_format.split(SEPARATOR):
        match = _PLACEHOLDER_RE.match(segment.strip())
        name = match.group(1) if match is not None else None
        # a repeated placeholder only counts at its first position
        segments.append(name if name not in segments else None)

    missing = [name for name in REQUIRED_TOKENS if name not in segments]
    if missing:
        return ReleaseGrammar(
            source=identifier_format,
            segments=tuple(segments),
            error=f"required placeholder(s) missing: {', '.join(missing)}",
        )

    return ReleaseGrammar(source=identifier_format, segments=tuple(segments))


def compile_grammar(identifier_format: str) -> ReleaseGrammar:
    """Compile an identifier format into a :class:`ReleaseGrammar`.

    Grammars are cached for the lifetime of the process; the first compilation
    of each format string runs under a lock, so it happens exactly once.
    Literal segments are kept as ignored positions. Formats lacking a
    ``version`` or ``environment`` placeholder still produce a grammar, with
    ``error`` describing the problem.
    """
    grammar = _GRAMMAR_CACHE.get(identifier_format)
    if grammar is None:
        with _GRAMMAR_LOCK:
            grammar = _GRAMMAR_CACHE.get(identifier_format)
            if grammar is None:
                grammar = _build_grammar(identifier_format)
                _GRAMMAR_CACHE[identifier_format] = grammar
    return grammar


@dataclass(frozen=True)
class IdentifierRules:
    """Validation rules injected into :class:`IdentifierParser`.

    ``allow_lists`` maps a token name to its accepted values. Tokens without an
    entry accept any non-empty value.
    """

    identifier_format: str
    version_pattern: Pattern[str]
    allow_lists: Mapping[str, Iterable[str]] = field(default_factory=dict)


class IdentifierParser:
    """Recover :class:`ReleaseIdentity` values from titles using injected rules."""

    def __init__(self, rules: IdentifierRules) -> None:
        self._rules = rules
        self._grammar = compile_grammar(rules.identifier_format)
        self._allowed: Dict[str, FrozenSet[str]] = {
            name: frozenset(normalize_token(value) for value in values if normalize_token(value))
            for name, values in rules.allow_lists.items()
        }

        if not self._grammar.is_valid:
            logger.error(
                "Release identifier format is malformed; every title will be rejected",
                extra={"identifier_format": rules.identifier_format, "reason": self._grammar.error},
            )

    @property
    def grammar(self) -> ReleaseGrammar:
        return self._grammar

    @property
    def is_operable(self) -> bool:
        return self._grammar.is_valid

    def _is_allowed(self, token: str, value: str) -> bool:
        allowed = self._allowed.get(token)
        if allowed is None:
            return True
        return value in allowed

    def parse(self, title: Optional[str]) -> Optional[ReleaseIdentity]:
        """Parse ``title`` into a release identity.

        Returns ``None`` when the title is blank, a required token is missing or
        invalid, or the configured grammar is malformed.
        """
        if not self.is_operable or title is None or not title.strip():
            return None

        segments = title.split(SEPARATOR)
        values: Dict[str, Optional[str]] = {}
        for position, token in enumerate(self._grammar.segments):
            if token is None:
                continue
            raw = segments[position] if position < len(segments) else None
            values[token] = normalize_token(raw) or None

        version = values[VERSION_TOKEN]
        if version is None or self._rules.version_pattern.fullmatch(version) is None:
            logger.debug("Title rejected: invalid version", extra={"title": title, "version": version})
            return None

        environment = values[ENVIRONMENT_TOKEN]
        if environment is None or not self._is_allowed(ENVIRONMENT_TOKEN, environment):
            logger.debug(
                "Title rejected: invalid environment",
                extra={"title": title, "environment": environment},
            )
            return None

        attributes: Dict[str, Optional[str]] = {}
        for token in self._grammar.tokens:
            if token in REQUIRED_TOKENS:
                continue
            value = values[token]
            attributes[token] = value if value is not None and self._is_allowed(token, value) else None

        return ReleaseIdentity(
            version=version,
            environment=environment,
            raw_title=title,
            attributes=MappingProxyType(attributes),
        )
