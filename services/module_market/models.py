"""
Module Market Models

Pydantic schemas for module descriptors and the records served by the
registry API. Python attributes are snake_case; the wire format is the
camelCase used in descriptor files.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.exceptions import ModgateException


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class BackendSpec(_CamelModel):
    """Where the module's backend listens and under which gateway prefix"""
    url: Optional[str] = None
    prefix: Optional[str] = None


class FrontendSpec(_CamelModel):
    """Micro-frontend entry point and the shell route that activates it"""
    entry: Optional[str] = None
    active_rule: Optional[str] = None


class ModuleDescriptor(_CamelModel):
    """
    Contents of a module descriptor file (module.json).

    Only `name` and `displayName` are required. Unknown keys are kept so they
    are served back unchanged.
    """
    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    version: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    enabled: bool = True
    backend: Optional[BackendSpec] = None
    frontend: Optional[FrontendSpec] = None

    @field_validator("name", "display_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class ModuleRecord(ModuleDescriptor):
    """Descriptor plus the fields derived by the scanner"""
    has_backend: bool = False
    has_frontend: bool = False
    path: str

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on name, displayName or description"""
        term = term.lower()
        return any(
            term in value.lower()
            for value in (self.name, self.display_name, self.description)
            if value
        )

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal problem found while scanning"""
    code: str
    message: str
    directory: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: ModgateException) -> "Diagnostic":
        return cls(
            code=exc.error_code,
            message=exc.message,
            directory=exc.details.get("directory"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "directory": self.directory}


@dataclass(frozen=True)
class ScanResult:
    modules: Tuple[ModuleRecord, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable point-in-time registry.

    Never mutated once published; a refresh builds a new Snapshot and swaps
    the cache reference.
    """
    modules: Tuple[ModuleRecord, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    generation: int = 0
    scanned_at: Optional[datetime] = None
    _index: Dict[str, ModuleRecord] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_index", {m.name: m for m in self.modules})

    def __len__(self) -> int:
        return len(self.modules)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(m.name for m in self.modules)

    def get(self, name: str) -> Optional[ModuleRecord]:
        return self._index.get(name)


class RegistryStats(BaseModel):
    """Aggregate counts over the current snapshot"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int
    enabled: int
    disabled: int
    with_backend: int
    with_frontend: int
    by_type: Dict[str, int]
