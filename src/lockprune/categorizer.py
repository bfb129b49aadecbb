# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Package categorization for reports.

Names are sorted into report buckets by an ordered list of
(predicate, label) pairs: the first matching predicate wins and unmatched
names go to the default bucket. The categorizer only reads package names and
never feeds anything back into the graph.

Rules are usually written in configuration:

    category_rules:
      - category: tokio_runtime
        prefix: [tokio]
        exact: [mio, parking_lot]
      - category: proc_macro
        contains: [derive]
        suffix: [-macros]
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from lockprune.errors import ConfigurationError

DEFAULT_CATEGORY = "other"
WORKSPACE_CATEGORY = "workspace"

MATCHER_KEYS = ("exact", "prefix", "suffix", "contains", "regex")

Predicate = Callable[[str], bool]


@dataclass(frozen=True)
class CategoryRule:
    """One category and the name patterns that select it.

    A name matches when any of the patterns matches.
    """

    category: str
    exact: Tuple[str, ...] = ()
    prefix: Tuple[str, ...] = ()
    suffix: Tuple[str, ...] = ()
    contains: Tuple[str, ...] = ()
    regex: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Compiled once; frozen dataclass needs object.__setattr__
        compiled = []
        for pattern in self.regex:
            try:
                compiled.append(re.compile(pattern))
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid regex {pattern!r} in category '{self.category}': {e}"
                ) from e
        object.__setattr__(self, "_compiled", tuple(compiled))

    def matches(self, name: str) -> bool:
        """Whether name belongs to this category."""
        return (
            name in self.exact
            or name.startswith(self.prefix)
            or name.endswith(self.suffix)
            or any(fragment in name for fragment in self.contains)
            or any(pattern.search(name) for pattern in self._compiled)  # type: ignore[attr-defined]
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CategoryRule":
        """Build a rule from a configuration mapping.

        Raises:
            ConfigurationError: If the mapping is malformed.
        """
        category = data.get("category")
        if not isinstance(category, str) or not category:
            raise ConfigurationError(f"Category rule needs a non-empty 'category': {data}")

        unknown = set(data) - set(MATCHER_KEYS) - {"category"}
        if unknown:
            raise ConfigurationError(
                f"Unknown keys in category rule '{category}': {', '.join(sorted(unknown))}"
            )

        patterns: Dict[str, Tuple[str, ...]] = {}
        for key in MATCHER_KEYS:
            value = data.get(key, [])
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigurationError(
                    f"'{key}' in category rule '{category}' must be a list of strings"
                )
            patterns[key] = tuple(value)

        if not any(patterns.values()):
            raise ConfigurationError(f"Category rule '{category}' has no patterns")

        return cls(category=category, **patterns)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {"category": self.category}
        for key in MATCHER_KEYS:
            values = getattr(self, key)
            if values:
                result[key] = list(values)
        return result


# Rust/Cargo ecosystem buckets used when no rules are configured
DEFAULT_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule("actix_core", prefix=("actix",)),
    CategoryRule("async_graphql", prefix=("async-graphql",)),
    CategoryRule(
        "tokio_runtime",
        prefix=("tokio",),
        exact=("mio", "parking_lot", "signal-hook-registry"),
    ),
    CategoryRule("serde_family", prefix=("serde",), exact=("itoa", "ryu")),
    CategoryRule("futures_family", prefix=("futures",)),
    CategoryRule(
        "proc_macro",
        exact=("proc-macro2", "quote", "syn"),
        contains=("derive", "darling"),
        suffix=("-macros",),
    ),
    CategoryRule(
        "utilities",
        exact=("bytes", "pin-project-lite", "once_cell", "cfg-if", "log", "memchr", "libc"),
    ),
    CategoryRule("database", contains=("sea-", "sqlx", "postgres", "mysql", "sqlite")),
    CategoryRule("crypto", contains=("sha", "md5", "hmac", "digest")),
    CategoryRule("encoding", contains=("base64", "hex", "percent", "url")),
    CategoryRule("async_extras", regex=(r"^(crossbeam|parking_lot|thread|mio|signal)",)),
    CategoryRule("serialization", contains=("toml",), regex=(r"^(?!.*serde_json).*json",)),
    CategoryRule("string_utils", regex=(r"^(unicode|stringprep|idna|punycode)",)),
    CategoryRule(
        "misc_utils", regex=(r"^(humantime|num-|ordered-|either|itertools|indexmap)",)
    ),
)


class Categorizer:
    """Immutable first-match-wins classifier over package names.

    Usage:
        categorizer = Categorizer.from_rules(DEFAULT_RULES, workspace_members=["app"])
        categorizer.classify("tokio-util")  # "tokio_runtime"
        buckets = categorizer.bucketize(graph.all_names())
    """

    def __init__(
        self,
        rules: Sequence[Tuple[Predicate, str]],
        default_category: str = DEFAULT_CATEGORY,
    ) -> None:
        """Initialize with ordered (predicate, label) pairs."""
        self._rules: Tuple[Tuple[Predicate, str], ...] = tuple(rules)
        self.default_category = default_category

    @classmethod
    def from_rules(
        cls,
        rules: Iterable[CategoryRule],
        workspace_members: Optional[Iterable[str]] = None,
        default_category: str = DEFAULT_CATEGORY,
    ) -> "Categorizer":
        """Build from CategoryRule objects, with an optional leading workspace rule."""
        ordered: List[CategoryRule] = []
        members = tuple(workspace_members or ())
        if members:
            ordered.append(CategoryRule(WORKSPACE_CATEGORY, exact=members))
        ordered.extend(rules)
        return cls([(rule.matches, rule.category) for rule in ordered], default_category)

    @property
    def categories(self) -> List[str]:
        """Labels in rule order (first occurrence), then the default label."""
        labels: List[str] = []
        for _, label in self._rules:
            if label not in labels:
                labels.append(label)
        if self.default_category not in labels:
            labels.append(self.default_category)
        return labels

    def classify(self, name: str) -> str:
        """Label of the first rule matching name, or the default label."""
        # Versioned keys ("foo 1.2.3") are classified by package name
        package = name.split(" ", 1)[0]
        for predicate, label in self._rules:
            if predicate(package):
                return label
        return self.default_category

    def bucketize(self, names: Iterable[str]) -> Dict[str, List[str]]:
        """Group names by label; every label is present, members sorted."""
        buckets: Dict[str, List[str]] = {label: [] for label in self.categories}
        for name in names:
            buckets[self.classify(name)].append(name)
        for members in buckets.values():
            members.sort()
        return buckets
