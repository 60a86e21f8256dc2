"""Ingest value objects produced by a source analyser.

A RawProgramEntity is the unnormalized description of one declaration.
The writer interns its strings and turns it into a fact row plus edges.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from identdb.config.constants import NO_TYPE
from identdb.store.models import Modifier, Species


@dataclass(frozen=True, slots=True)
class RawTypeName:
    """A type as written at a declaration site.

    ``identifier_name`` is the simple name (``List``); ``fqn`` the fully
    qualified one (``java.util.List``) when the analyser resolved it.
    """

    identifier_name: str
    fqn: str | None = None

    @property
    def display_name(self) -> str:
        """Stored type name: the FQN, or the identifier name when there is none."""
        return self.fqn or self.identifier_name

    @classmethod
    def parse(cls, value: str | dict[str, Any] | RawTypeName) -> RawTypeName:
        """Build from ``"a.b.C"``, ``"C"`` or ``{"identifier_name": ..., "fqn": ...}``."""
        if isinstance(value, RawTypeName):
            return value
        if isinstance(value, dict):
            return cls(identifier_name=value["identifier_name"], fqn=value.get("fqn"))
        if "." in value:
            return cls(identifier_name=value.rsplit(".", 1)[1], fqn=value)
        return cls(identifier_name=value)


@dataclass(frozen=True, slots=True)
class SourceSpan:
    begin_line: int = 0
    begin_column: int = 0
    end_line: int = 0
    end_column: int = 0


@dataclass(frozen=True, slots=True)
class RawProgramEntity:
    """Unnormalized declaration as handed to the writer."""

    file_name: str
    package_name: str
    container_uid: str | None
    entity_uid: str | None
    identifier_name: str
    species: Species
    type_name: RawTypeName
    is_array: bool = False
    is_loop_control_variable: bool = False
    method_signature: str | None = None
    modifiers: tuple[Modifier, ...] = ()
    super_classes: tuple[RawTypeName, ...] = ()
    super_types: tuple[RawTypeName, ...] = ()
    span: SourceSpan = field(default_factory=SourceSpan)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RawProgramEntity:
        """Build from a JSON-style mapping (as read by ``idb ingest``).

        Species and modifiers are given by description; type names as
        strings or mappings accepted by RawTypeName.parse. A declaration
        without a type gets the NO_TYPE placeholder.
        """
        span = data.get("span") or {}
        return cls(
            file_name=data["file_name"],
            package_name=data.get("package_name", ""),
            container_uid=data.get("container_uid"),
            entity_uid=data.get("entity_uid"),
            identifier_name=data["identifier_name"],
            species=Species.for_description(data["species"]),
            type_name=RawTypeName.parse(data.get("type_name") or NO_TYPE),
            is_array=bool(data.get("is_array", False)),
            is_loop_control_variable=bool(data.get("is_loop_control_variable", False)),
            method_signature=data.get("method_signature"),
            modifiers=tuple(Modifier.for_description(m) for m in data.get("modifiers") or ()),
            super_classes=tuple(RawTypeName.parse(t) for t in data.get("super_classes") or ()),
            super_types=tuple(RawTypeName.parse(t) for t in data.get("super_types") or ()),
            span=SourceSpan(
                begin_line=span.get("begin_line", 0),
                begin_column=span.get("begin_column", 0),
                end_line=span.get("end_line", 0),
                end_column=span.get("end_column", 0),
            ),
        )
