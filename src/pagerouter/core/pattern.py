"""Route pattern compiler.

Turns a pattern such as ``/posts/:slug(/page-:page)`` into an immutable
:class:`CompiledPattern` holding:
- The anchored regular expression used to match requests
- The placeholder names in capture order
- The optional segments, keyed by the placeholder they contain
- The template used to generate paths back from parameter values

Placeholders are written ``:name``. An optional segment is a parenthesized
piece of the pattern containing exactly one placeholder; it may be left out
of both requests and generated paths.
"""

import re
from dataclasses import dataclass, field
from typing import Mapping

from pagerouter.core.errors import ConfigurationError

# One or more word or hyphen characters
DEFAULT_DEFINITION = "[A-Za-z0-9_-]+"

PLACEHOLDER_PATTERN = re.compile(r":(\w+)")

COUNTED_QUANTIFIER = re.compile(r"\{(?:\d+(?:,\d*)?|,\d+)\}")


@dataclass(frozen=True)
class Literal:
    """Literal text copied verbatim into generated paths."""

    text: str


@dataclass(frozen=True)
class Placeholder:
    """A ``:name`` placeholder."""

    name: str


@dataclass(frozen=True)
class OptionalSegment:
    """A parenthesized segment that holds exactly one placeholder."""

    name: str
    parts: tuple[Literal | Placeholder, ...]
    source: str


Part = Literal | Placeholder | OptionalSegment


@dataclass(frozen=True)
class CompiledPattern:
    """Immutable result of compiling a route pattern."""

    pattern: str
    is_static: bool
    variables: tuple[str, ...] = ()
    optional_segments: Mapping[str, str] = field(default_factory=dict)
    regex: re.Pattern | None = None
    # (placeholder name, regex group index) in capture order
    groups: tuple[tuple[str, int], ...] = ()
    template: tuple[Part, ...] = ()

    def is_optional(self, name: str) -> bool:
        """Check whether a placeholder lives inside an optional segment."""
        return name in self.optional_segments


def compile_pattern(pattern: str, definitions: Mapping[str, str] | None = None) -> CompiledPattern:
    """Compile a route pattern.

    Args:
        pattern: Route pattern, e.g. ``/users/:id`` or ``/posts(/page-:page)``
        definitions: Regex fragments overriding the default placeholder body

    Returns:
        CompiledPattern for the pattern

    Raises:
        ConfigurationError: If an optional segment is malformed or a regex
            fragment does not compile
    """
    definitions = definitions or {}

    if ":" not in pattern:
        return CompiledPattern(
            pattern=pattern,
            is_static=True,
            template=(Literal(pattern),),
        )

    template: list[Part] = []
    optional_segments: dict[str, str] = {}

    for text, optional in _split_segments(pattern):
        parts = _tokenize(text)
        if not optional:
            template.extend(parts)
            continue

        names = [part.name for part in parts if isinstance(part, Placeholder)]
        if len(names) != 1:
            raise ConfigurationError(
                f"Optional segment ({text}) in pattern {pattern!r} must contain "
                f"exactly one placeholder, found {len(names)}"
            )
        name = names[0]
        if name in optional_segments:
            raise ConfigurationError(
                f"Placeholder :{name} appears in more than one optional segment "
                f"of pattern {pattern!r}"
            )
        optional_segments[name] = f"({text})"
        template.append(OptionalSegment(name=name, parts=tuple(parts), source=f"({text})"))

    regex_parts: list[str] = []
    groups: list[tuple[str, int]] = []
    group_count = 0

    def placeholder_regex(name: str) -> str:
        nonlocal group_count
        fragment = definitions.get(name, DEFAULT_DEFINITION)
        try:
            nested = re.compile(fragment).groups
        except re.error as e:
            raise ConfigurationError(
                f"Invalid regex {fragment!r} for placeholder :{name}: {e}"
            ) from e
        group_count += 1
        groups.append((name, group_count))
        group_count += nested
        # Lazy so that an earlier placeholder leaves room for later segments
        return f"({ungreedy(fragment)})"

    for part in template:
        if isinstance(part, Literal):
            regex_parts.append(re.escape(part.text))
        elif isinstance(part, Placeholder):
            regex_parts.append(placeholder_regex(part.name))
        else:
            inner = "".join(
                re.escape(p.text) if isinstance(p, Literal) else placeholder_regex(p.name)
                for p in part.parts
            )
            regex_parts.append(f"(?:{inner})??")

    regex_str = "".join(regex_parts)
    try:
        regex = re.compile(regex_str)
    except re.error as e:
        raise ConfigurationError(f"Pattern {pattern!r} compiles to invalid regex: {e}") from e

    return CompiledPattern(
        pattern=pattern,
        is_static=False,
        variables=tuple(name for name, _ in groups),
        optional_segments=optional_segments,
        regex=regex,
        groups=tuple(groups),
        template=tuple(template),
    )


def _split_segments(pattern: str) -> list[tuple[str, bool]]:
    """Split a pattern into (text, is_optional) chunks.

    Raises:
        ConfigurationError: On nested or unbalanced parentheses
    """
    chunks: list[tuple[str, bool]] = []
    buffer: list[str] = []
    in_segment = False

    for char in pattern:
        if char == "(":
            if in_segment:
                raise ConfigurationError(f"Nested optional segments are not supported: {pattern!r}")
            chunks.append(("".join(buffer), False))
            buffer = []
            in_segment = True
        elif char == ")":
            if not in_segment:
                raise ConfigurationError(f"Unbalanced ')' in pattern {pattern!r}")
            chunks.append(("".join(buffer), True))
            buffer = []
            in_segment = False
        else:
            buffer.append(char)

    if in_segment:
        raise ConfigurationError(f"Unclosed optional segment in pattern {pattern!r}")

    chunks.append(("".join(buffer), False))
    return [(text, optional) for text, optional in chunks if text or optional]


def _tokenize(text: str) -> list[Literal | Placeholder]:
    """Split text into literal runs and placeholders."""
    parts: list[Literal | Placeholder] = []
    position = 0
    for match in PLACEHOLDER_PATTERN.finditer(text):
        if match.start() > position:
            parts.append(Literal(text[position : match.start()]))
        parts.append(Placeholder(match.group(1)))
        position = match.end()
    if position < len(text):
        parts.append(Literal(text[position:]))
    return parts


def ungreedy(fragment: str) -> str:
    """Invert the greediness of every quantifier in a regex fragment.

    Greedy quantifiers become lazy and lazy ones greedy, so that a fragment
    written as ``[a-z-]+`` takes the shortest text that lets the rest of the
    pattern match. Possessive quantifiers, escapes and character classes are
    copied unchanged.
    """
    out: list[str] = []
    position = 0
    length = len(fragment)

    while position < length:
        char = fragment[position]

        if char == "\\":
            out.append(fragment[position : position + 2])
            position += 2
            continue

        if char == "[":
            end = _class_end(fragment, position)
            out.append(fragment[position:end])
            position = end
            continue

        if char == "(" and fragment.startswith("?", position + 1):
            # Group modifier such as (?: or (?P<name>, not a quantifier
            out.append("(?")
            position += 2
            continue

        quantifier = None
        if char in "*+?":
            quantifier = char
        elif char == "{":
            counted = COUNTED_QUANTIFIER.match(fragment, position)
            if counted:
                quantifier = counted.group()

        if quantifier is None:
            out.append(char)
            position += 1
            continue

        out.append(quantifier)
        position += len(quantifier)
        modifier = fragment[position : position + 1]
        if modifier == "?":
            position += 1
        elif modifier != "+":
            out.append("?")

    return "".join(out)


def _class_end(fragment: str, start: int) -> int:
    """Index just past the character class opening at ``start``."""
    position = start + 1
    if fragment.startswith("^", position):
        position += 1
    # A leading ] is a literal member of the class
    if fragment.startswith("]", position):
        position += 1
    while position < len(fragment):
        char = fragment[position]
        if char == "\\":
            position += 2
            continue
        if char == "]":
            return position + 1
        position += 1
    return len(fragment)
