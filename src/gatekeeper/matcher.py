"""
Path rule matching.

A path rule is one line of a path access policy:

    /admin**                    everything under /admin
    /api/*/items                one path segment in the middle
    !/api/public** [GET,HEAD]   negated, limited to some methods

``*`` matches any run of characters except ``/``, ``**`` matches any run of
characters including ``/``. Rules are evaluated in order and the last
matching rule decides.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, FrozenSet, Iterable, Optional

DEFAULT_METHOD = "GET"
NEGATION = "!"
WILDCARD = "*"

_METHODS_PATTERN = re.compile(r"^(?P<pattern>.*?)\s*\[(?P<methods>[^\]]*)\]$")


def _compile(pattern: str) -> Callable[[str], bool]:
    if WILDCARD not in pattern:
        return lambda path: path == pattern

    if pattern.endswith(WILDCARD * 2) and WILDCARD not in pattern[:-2]:
        prefix = pattern[:-2]
        return lambda path: path.startswith(prefix)

    parts = []
    for i, chunk in enumerate(pattern.split(WILDCARD * 2)):
        if i:
            parts.append(".*")
        parts.append("[^/]*".join(re.escape(literal) for literal in chunk.split(WILDCARD)))

    regex = re.compile("".join(parts), re.DOTALL)
    return lambda path: regex.fullmatch(path) is not None


@dataclass(frozen=True)
class PathRule:
    """
    Parsed path rule.

    Attributes:
        raw: Rule as written
        pattern: Path pattern without negation and method list
        negated: Whether the rule starts with !
        methods: Upper-cased allowed methods, None for all methods
    """
    raw: str
    pattern: str
    negated: bool = False
    methods: Optional[FrozenSet[str]] = None
    _match: Callable[[str], bool] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self._match is None:
            object.__setattr__(self, "_match", _compile(self.pattern))

    @classmethod
    def parse(cls, raw: str) -> "PathRule":
        """Parse a rule string, cached per string."""
        return _parse(raw)

    def matches_path(self, path: str) -> bool:
        return self._match(path)

    def allows_method(self, method: str) -> bool:
        return self.methods is None or method.upper() in self.methods

    def evaluate(self, path: str, method: str) -> Optional[bool]:
        """
        Evaluate this rule on its own.

        Returns:
            None when the path does not match, otherwise whether the path is
            restricted according to this rule
        """
        if not self.matches_path(path):
            return None

        result = not self.negated
        if not self.allows_method(method):
            result = not result

        return result


@lru_cache(maxsize=2048)
def _parse(raw: str) -> PathRule:
    text = raw.strip()
    methods = None

    found = _METHODS_PATTERN.match(text)
    if found:
        text = found.group("pattern")
        methods = frozenset(
            method.strip().upper()
            for method in found.group("methods").split(",")
            if method.strip()
        )

    negated = text.startswith(NEGATION)
    if negated:
        text = text[len(NEGATION):].strip()

    return PathRule(raw=raw, pattern=text, negated=negated, methods=methods)


class PathMatcher:
    """
    Matches a request against an ordered list of path rules.

    The matcher holds no state: the same arguments always give the same
    result.
    """

    def matches(self, path: str, method: Optional[str], rules: Iterable[str]) -> bool:
        """
        Check whether a path is covered by a rule list.

        Args:
            path: Requested path
            method: Requested HTTP method, GET when None
            rules: Ordered rule strings

        Returns:
            The verdict of the last matching rule, False when none matches
        """
        return self.evaluate(path, method, rules) is True

    def evaluate(self, path: str, method: Optional[str], rules: Iterable[str]) -> Optional[bool]:
        """
        Evaluate a rule list, telling a miss apart from a negative verdict.

        Returns:
            The verdict of the last matching rule, None when none matches
        """
        method = (method or DEFAULT_METHOD).upper()
        result = None

        for raw in rules:
            verdict = PathRule.parse(raw).evaluate(path, method)
            if verdict is not None:
                result = verdict

        return result
