"""
Route Table

Turns a registry snapshot (the JSON list served by the module market) into
an immutable prefix -> backend mapping, and resolves request paths against it
by longest-prefix match on path-segment boundaries.

Building is pure: no I/O, same input gives an equal table.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog

from core.exceptions import DuplicatePrefix, RouteTableBuildError

logger = structlog.get_logger("route-table")

SOURCE_DISCOVERY = "discovery"
SOURCE_DEFAULT = "default"


def normalize_prefix(prefix: str) -> str:
    """'/api/x/' and 'api/x' both become '/api/x'; the root stays '/'"""
    prefix = "/" + prefix.strip().strip("/")
    return prefix


def default_prefix(module_name: str) -> str:
    return f"/api/{module_name}"


@dataclass(frozen=True)
class RouteRule:
    prefix: str
    target_base_url: str
    module_name: str

    def matches(self, path: str) -> bool:
        if self.prefix == "/":
            return path.startswith("/")
        return path == self.prefix or path.startswith(self.prefix + "/")

    def to_dict(self) -> Dict[str, str]:
        return {
            "prefix": self.prefix,
            "target": self.target_base_url,
            "module": self.module_name,
        }


@dataclass(frozen=True)
class RouteMatch:
    rule: RouteRule
    remainder: str

    @property
    def target_url(self) -> str:
        return self.rule.target_base_url.rstrip("/") + self.remainder

    def raw_remainder(self, raw_path: str) -> str:
        """
        Remainder cut from the still percent-encoded request path.

        Matching runs on the decoded path, but forwarding must keep escapes
        such as %2F or %3F intact. The prefix spans the same number of
        segments in both forms, so the cut is made after that many slashes.
        """
        raw_path = raw_path.split("?", 1)[0]
        if self.rule.prefix == "/":
            return raw_path or "/"
        depth = self.rule.prefix.count("/")
        parts = raw_path.split("/", depth + 1)
        if len(parts) <= depth + 1:
            return "/"
        return "/" + parts[depth + 1]

    def raw_target_url(self, raw_path: str) -> str:
        return self.rule.target_base_url.rstrip("/") + self.raw_remainder(raw_path)


@dataclass(frozen=True)
class RouteTable:
    """
    Immutable route table.

    Rules are kept ordered by descending prefix length, so the first rule
    that matches is the longest matching prefix. Two tables are equal when
    they hold the same rules, whatever their source or build time.
    """
    rules: Tuple[RouteRule, ...] = ()
    source: str = field(default=SOURCE_DISCOVERY, compare=False)
    built_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc), compare=False)

    def __post_init__(self):
        ordered = tuple(sorted(self.rules, key=lambda r: (-len(r.prefix), r.prefix)))
        object.__setattr__(self, "rules", ordered)

    def __len__(self) -> int:
        return len(self.rules)

    def match(self, path: str) -> Optional[RouteMatch]:
        """Longest-prefix match; the remainder keeps its leading slash"""
        for rule in self.rules:
            if rule.matches(path):
                remainder = path if rule.prefix == "/" else path[len(rule.prefix):]
                return RouteMatch(rule=rule, remainder=remainder or "/")
        return None

    def to_dict(self) -> List[Dict[str, str]]:
        return [rule.to_dict() for rule in self.rules]


@dataclass(frozen=True)
class BuildResult:
    table: RouteTable
    diagnostics: Tuple[DuplicatePrefix, ...] = ()


def build_route_table(modules: Any, source: str = SOURCE_DISCOVERY) -> BuildResult:
    """
    Build a route table from module records.

    A module is routed when it has a string `backend.url`; its prefix is
    `backend.prefix` or `/api/<name>`. When two modules claim the same
    prefix the first one in snapshot order keeps it and the other is
    reported as a DuplicatePrefix diagnostic.

    Raises:
        RouteTableBuildError: `modules` is not a list of records
    """
    if not isinstance(modules, list):
        raise RouteTableBuildError(
            f"Expected a list of modules, got {type(modules).__name__}"
        )

    rules: Dict[str, RouteRule] = {}
    diagnostics: List[DuplicatePrefix] = []

    for module in modules:
        if not isinstance(module, Mapping):
            logger.warning("Ignoring non-object module entry", entry=repr(module)[:100])
            continue

        name = module.get("name")
        backend = module.get("backend")
        if not isinstance(name, str) or not name or not isinstance(backend, Mapping):
            continue

        url = backend.get("url")
        if not isinstance(url, str) or not url:
            continue

        prefix = backend.get("prefix")
        prefix = normalize_prefix(prefix if isinstance(prefix, str) and prefix.strip() else default_prefix(name))

        if prefix in rules:
            duplicate = DuplicatePrefix(prefix, name, rules[prefix].module_name)
            logger.warning(
                "Duplicate route prefix, keeping first",
                prefix=prefix,
                module=name,
                kept=rules[prefix].module_name,
            )
            diagnostics.append(duplicate)
            continue

        rules[prefix] = RouteRule(prefix=prefix, target_base_url=url.rstrip("/"), module_name=name)

    table = RouteTable(rules=tuple(rules.values()), source=source)
    return BuildResult(table=table, diagnostics=tuple(diagnostics))


def default_route_table(routes: Iterable[Mapping[str, str]]) -> RouteTable:
    """
    Degraded-mode table from configured fallback routes.

    Each entry is {name, url, prefix?}, the same shape as a module's backend
    block flattened with its name.
    """
    modules = [
        {"name": r["name"], "backend": {"url": r["url"], "prefix": r.get("prefix")}}
        for r in routes
    ]
    return build_route_table(modules, source=SOURCE_DEFAULT).table
