"""Minimal semver range matching for peer-dependency inference.

Supports ``*``/empty, ``||`` unions, whitespace-separated intersections,
hyphen ranges (``A - B``), ``^``, ``~``, ``>=``, ``>``, ``<=``, ``<``, ``=``
and bare or partial versions (``18``, ``18.2``). Anything else in the
npm range grammar is out of scope.
"""

from __future__ import annotations

import re

from pkgrecon.engines.version_resolver.models import Confidence

_ANY_RANGES = {"", "*", "x", "X", "latest"}
_WILDCARD_PARTS = {"x", "X", "*"}
_OPERATORS = {">=", "<=", ">", "<", "=", "^", "~"}

_LEADING_NON_DIGITS_RE = re.compile(r"^[^0-9]*")
_SUFFIX_RE = re.compile(r"[-+].*$")
_NATURAL_CHUNK_RE = re.compile(r"(\d+)")

_EXACT_RE = re.compile(r"^\d+\.\d+\.\d+$")
_PATCH_LEVEL_RE = re.compile(r"^[\^~]\d+\.\d+\.\d+$")
_MINOR_LEVEL_RE = re.compile(r"^[\^~]?\d+\.\d+")


def _clean(version: str) -> str:
    version = _LEADING_NON_DIGITS_RE.sub("", version.strip())
    return _SUFFIX_RE.sub("", version)


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse into exactly three integer components.

    Missing or non-numeric components become 0; pre-release and build
    suffixes are dropped.
    """
    parts = _clean(version).split(".")
    nums: list[int] = []
    for part in parts[:3]:
        try:
            nums.append(int(part))
        except ValueError:
            nums.append(0)
    while len(nums) < 3:
        nums.append(0)
    return nums[0], nums[1], nums[2]


def _numeric_prefix_len(version: str) -> int:
    count = 0
    for part in _clean(version).split(".")[:3]:
        if not part or part in _WILDCARD_PARTS or not part.isdigit():
            break
        count += 1
    return count


def _compare(a: tuple[int, int, int], b: tuple[int, int, int]) -> int:
    for x, y in zip(a, b):
        if x > y:
            return 1
        if x < y:
            return -1
    return 0


def _satisfies_comparator(v: tuple[int, int, int], comp: str) -> bool:
    comp = comp.strip()
    if comp in _ANY_RANGES:
        return True

    if comp.startswith("^"):
        r = parse_version(comp[1:])
        if r[0] == 0 and r[1] == 0:
            return v[0] == 0 and v[1] == 0 and v[2] >= r[2]
        if r[0] == 0:
            return v[0] == 0 and v[1] == r[1] and v[2] >= r[2]
        return v[0] == r[0] and (v[1], v[2]) >= (r[1], r[2])

    if comp.startswith("~"):
        r = parse_version(comp[1:])
        return v[0] == r[0] and v[1] == r[1] and v[2] >= r[2]

    if comp.startswith(">="):
        return _compare(v, parse_version(comp[2:])) >= 0
    if comp.startswith(">"):
        return _compare(v, parse_version(comp[1:])) > 0
    if comp.startswith("<="):
        return _compare(v, parse_version(comp[2:])) <= 0
    if comp.startswith("<"):
        return _compare(v, parse_version(comp[1:])) < 0

    exact = comp[1:] if comp.startswith("=") else comp
    r = parse_version(exact)
    n = _numeric_prefix_len(exact)
    return all(v[i] == r[i] for i in range(n))


def _join_operators(tokens: list[str]) -> list[str]:
    # ">= 1.2.3" is one comparator.
    joined: list[str] = []
    pending_op = ""
    for tok in tokens:
        if tok in _OPERATORS:
            pending_op += tok
            continue
        joined.append(pending_op + tok)
        pending_op = ""
    return joined


def satisfies(version: str, range_expr: str) -> bool:
    """Return True if *version* satisfies *range_expr*."""
    range_expr = range_expr.strip()
    if range_expr in _ANY_RANGES:
        return True

    if "||" in range_expr:
        return any(satisfies(version, branch) for branch in range_expr.split("||"))

    v = parse_version(version)
    tokens = _join_operators(range_expr.split())

    # "A - B" is >=A <=B; other tokens are ANDed with it.
    while "-" in tokens:
        idx = tokens.index("-")
        if idx == 0 or idx == len(tokens) - 1:
            tokens.pop(idx)
            continue
        lower, upper = tokens[idx - 1], tokens[idx + 1]
        tokens[idx - 1 : idx + 2] = [f">={lower}", f"<={upper}"]

    return all(_satisfies_comparator(v, tok) for tok in tokens)


def range_specificity(range_expr: str) -> int:
    """3 = pinned version, 2 = patch-level ^/~, 1 = minor-level, 0 = wider."""
    if _EXACT_RE.match(range_expr):
        return 3
    if _PATCH_LEVEL_RE.match(range_expr):
        return 2
    if _MINOR_LEVEL_RE.match(range_expr):
        return 1
    return 0


def confidence_for_range(range_expr: str, match_count: int) -> Confidence:
    """Confidence implied by how tightly a peer range pins a version."""
    specificity = range_specificity(range_expr)
    if specificity == 3:
        return "exact"
    if specificity == 2:
        return "high" if match_count == 1 else "medium"
    if specificity == 1:
        return "medium"
    return "low"


def natural_key(version: str) -> tuple[tuple[int, int | str], ...]:
    """Sort key that orders digit runs numerically (``1.10.0`` > ``1.9.0``)."""
    key: list[tuple[int, int | str]] = []
    for chunk in _NATURAL_CHUNK_RE.split(version):
        if not chunk:
            continue
        if chunk.isdigit():
            key.append((0, int(chunk)))
        else:
            key.append((1, chunk.lower()))
    return tuple(key)
