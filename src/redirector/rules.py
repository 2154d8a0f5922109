"""
=============================================================================
REDIRECT RULES
=============================================================================

Turns flat configuration keys into an ordered, immutable set of redirect
rules.

=============================================================================
CONFIGURATION CONVENTION
=============================================================================

Rules come in pairs of keys that share a name:

    REDIRECT_<NAME>_FROM    Regular expression, matched against host + uri
    REDIRECT_<NAME>_TO      Replacement template ($1, ${name}, ...)

    REDIRECT_BLOG_FROM=^blog\\.example\\.com/(.*)$
    REDIRECT_BLOG_TO=https://example.com/blog/$1

<NAME> is opaque. It may be empty and it may contain underscores.

=============================================================================
COMPILATION POLICY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                  compile_rules(config) Flow                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   for key in sorted(config):                                        │
    │       │                                                              │
    │       ├── not REDIRECT_*_FROM?  → ignore                           │
    │       │                                                              │
    │       ├── no REDIRECT_*_TO?     → WARNING, skip                     │
    │       │                                                              │
    │       ├── re.compile() fails?   → ERROR, skip                       │
    │       │                                                              │
    │       └── otherwise             → INFO, append RedirectRule         │
    │                                                                      │
    │   return tuple(rules)           → frozen RuleSet                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A bad rule never stops the server from starting. It is logged and dropped,
and every other rule still compiles.

Keys are visited in LEXICOGRAPHIC order. Since the first matching rule
wins, this makes the matching order reproducible: REDIRECT_A_FROM is
always tried before REDIRECT_B_FROM, whatever order the environment lists
them in.

=============================================================================
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .template import ReplacementTemplate


logger = logging.getLogger(__name__)


RULE_PREFIX = "REDIRECT_"
FROM_SUFFIX = "_FROM"
TO_SUFFIX = "_TO"


@dataclass(frozen=True)
class RedirectRule:
    """
    One configured redirect.

    Frozen: a rule is built once at startup and shared by every worker
    thread, so nothing is allowed to change it afterwards.

    Attributes:
        name: The <NAME> part of the configuration keys.
        pattern: Compiled regex, searched for anywhere in host + uri.
        replacement: The template text from the _TO key.
        template: The parsed form of `replacement`.
    """

    name: str
    pattern: "re.Pattern[str]"
    replacement: str
    template: ReplacementTemplate = field(repr=False, compare=False)

    @classmethod
    def create(cls, name: str, pattern: str, replacement: str) -> "RedirectRule":
        """
        Compile a rule from its raw strings.

        Raises:
            re.error: If `pattern` is not a valid regular expression.
        """
        return cls(
            name=name,
            pattern=re.compile(pattern),
            replacement=replacement,
            template=ReplacementTemplate.parse(replacement),
        )

    def matches(self, subject: str) -> bool:
        """True if the pattern occurs anywhere in `subject`."""
        return self.pattern.search(subject) is not None

    def apply(self, subject: str) -> str:
        """
        Substitute EVERY match of the pattern in `subject`.

        Each match is replaced using its own capture groups; text outside
        the matches is kept.
        """
        return self.pattern.sub(self.template.expand, subject)


# The shared, read-only collection handed to every request handler
RuleSet = Tuple[RedirectRule, ...]


def rule_name(key: str) -> Optional[str]:
    """
    Extract <NAME> from a REDIRECT_<NAME>_FROM key.

    Returns None for keys that don't follow the convention. The prefix and
    suffix may not overlap, so the bare key "REDIRECT_FROM" has no name.

        >>> rule_name("REDIRECT_OLD_BLOG_FROM")
        'OLD_BLOG'
        >>> rule_name("REDIRECT_OLD_BLOG_TO") is None
        True
    """
    if not (key.startswith(RULE_PREFIX) and key.endswith(FROM_SUFFIX)):
        return None
    if len(key) < len(RULE_PREFIX) + len(FROM_SUFFIX):
        return None
    return key[len(RULE_PREFIX):len(key) - len(FROM_SUFFIX)]


def compile_rules(config: Mapping[str, str]) -> RuleSet:
    """
    Build the RuleSet from configuration keys.

    Args:
        config: Key/value configuration, usually the redirect entries of
                ServerConfig. It is only read, never modified.

    Returns:
        Tuple of RedirectRule in matching order.
    """
    rules = []

    for key in sorted(config):
        name = rule_name(key)
        if name is None:
            continue

        to_key = f"{RULE_PREFIX}{name}{TO_SUFFIX}"
        if to_key not in config:
            logger.warning(f"Found {key} but no matching {to_key}, skipping")
            continue

        try:
            rule = RedirectRule.create(name, config[key], config[to_key])
        except re.error as e:
            logger.error(f"Error compiling regex for {key}: {e}")
            continue

        logger.info(f"Redirect rule: {rule.pattern.pattern} -> {rule.replacement}")
        rules.append(rule)

    return tuple(rules)
