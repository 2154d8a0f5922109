"""
=============================================================================
REPLACEMENT TEMPLATES
=============================================================================

A redirect target is written as a template that may refer back to the
capture groups of the rule's pattern:

    REDIRECT_DOCS_FROM = ^(.*)/docs/(?P<page>.*)$
    REDIRECT_DOCS_TO   = $1/help/${page}

=============================================================================
GROUP REFERENCE SYNTAX
=============================================================================

    $1, ${1}        Numbered group (0 is the whole match)
    $name, ${name}  Named group, from (?P<name>...)
    $$              A literal dollar sign

The unbraced form takes the LONGEST run of letters, digits and underscores
after the "$". If the run is all digits it is a group number, otherwise a
group name:

    $1/help     → group 1, then "/help"
    $1a         → group NAMED "1a" (almost never what you want)
    ${1}a       → group 1, then "a"

A reference to a group that doesn't exist, or that didn't take part in the
match, expands to "". A "$" that isn't followed by a reference is copied
as-is. Backslashes are ordinary characters.

Templates are parsed ONCE, when the rule is compiled, so expanding one per
request is just a walk over a tuple of parts.

=============================================================================
"""

import re
from dataclasses import dataclass
from typing import Tuple, Union


# Letters, digits and underscore, matched greedily after "$"
_REF_NAME = re.compile(r"[A-Za-z0-9_]+")


@dataclass(frozen=True)
class GroupRef:
    """A reference to one capture group (by number or by name)."""

    group: Union[int, str]

    def resolve(self, match: "re.Match[str]") -> str:
        """Return the text the group captured, or "" if there is none."""
        if isinstance(self.group, int):
            if self.group > match.re.groups:
                return ""
        elif self.group not in match.re.groupindex:
            return ""
        return match.group(self.group) or ""


Part = Union[str, GroupRef]


@dataclass(frozen=True)
class ReplacementTemplate:
    """
    A parsed replacement template.

    Attributes:
        source: The template text as configured.
        parts: Literal strings and GroupRef objects, in order.
    """

    source: str
    parts: Tuple[Part, ...]

    @classmethod
    def parse(cls, source: str) -> "ReplacementTemplate":
        """
        Split a template into literal text and group references.

        Parsing never fails: anything that doesn't form a valid reference
        is kept as literal text.
        """
        parts: list = []
        literal: list = []
        i = 0
        length = len(source)

        while i < length:
            char = source[i]
            if char != "$" or i + 1 >= length:
                literal.append(char)
                i += 1
                continue

            nxt = source[i + 1]

            # "$$" → "$"
            if nxt == "$":
                literal.append("$")
                i += 2
                continue

            # "${...}"
            if nxt == "{":
                close = source.find("}", i + 2)
                name = source[i + 2:close] if close != -1 else ""
                if not name:
                    literal.append(char)
                    i += 1
                    continue
                ref, i = _group_ref(name), close + 1

            # "$name" / "$123"
            else:
                match = _REF_NAME.match(source, i + 1)
                if not match:
                    literal.append(char)
                    i += 1
                    continue
                ref, i = _group_ref(match.group()), match.end()

            if literal:
                parts.append("".join(literal))
                literal = []
            parts.append(ref)

        if literal:
            parts.append("".join(literal))

        return cls(source=source, parts=tuple(parts))

    @property
    def has_references(self) -> bool:
        """True if the template refers to at least one group."""
        return any(isinstance(part, GroupRef) for part in self.parts)

    def expand(self, match: "re.Match[str]") -> str:
        """
        Build the replacement text for one match.

        Suitable as the ``repl`` callable of ``re.Pattern.sub``:

            pattern.sub(template.expand, subject)
        """
        return "".join(
            part if isinstance(part, str) else part.resolve(match)
            for part in self.parts
        )

    def __str__(self) -> str:
        return self.source


def _group_ref(name: str) -> GroupRef:
    """Numbers become int references, everything else a named reference."""
    if name.isascii() and name.isdigit():
        return GroupRef(int(name))
    return GroupRef(name)
