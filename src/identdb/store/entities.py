"""Reconstructed program entities.

A ProgramEntity carries the data common to every species plus an optional
species-specific detail:

- Inheritance (classes, interfaces): super class and super type names,
  each mapped to its tokens.
- Invocation (methods, constructors): the method signature.
- None for every other species.

The detail kind is chosen by EntityShape.for_species, so callers switch on
``entity.shape`` rather than on concrete types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from identdb.config.constants import ANONYMOUS
from identdb.store.models import Modifier, Species
from identdb.store.tokenizer import CONTRACTIONS


class EntityShape(str, Enum):
    PLAIN = "plain"
    INHERITABLE = "inheritable"
    INVOKABLE = "invokable"

    @classmethod
    def for_species(cls, species: Species) -> EntityShape:
        if species.is_class_or_interface:
            return cls.INHERITABLE
        if species.is_invokable:
            return cls.INVOKABLE
        return cls.PLAIN


@dataclass(frozen=True, slots=True)
class Inheritance:
    """Declared parents of a class or interface, name -> tokens."""

    super_classes: dict[str, list[str]] = field(default_factory=dict)
    super_types: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Invocation:
    signature: str | None

    @property
    def argument_count(self) -> int:
        """Arguments in a ``;``-separated signature, e.g. ``(int;String;)`` -> 2."""
        if not self.signature:
            return 0
        return len(self.signature.split(";")) - 1


@dataclass(frozen=True, slots=True)
class ProgramEntity:
    """A stored declaration rebuilt from its fact row and dictionaries."""

    key: int
    project_name: str | None
    project_version: str | None
    identifier_name: str | None
    package_name: str | None
    tokens: list[str] | None
    modifiers: list[Modifier]
    species: Species
    container_uid: str | None
    entity_uid: str | None
    type_name: str | None
    is_array: bool
    is_loop_control_variable: bool
    file_name: str | None
    start_line: int | None
    start_column: int | None
    end_line: int | None
    end_column: int | None
    detail: Inheritance | Invocation | None = None

    @property
    def shape(self) -> EntityShape:
        return EntityShape.for_species(self.species)

    @property
    def is_anonymous(self) -> bool:
        return self.identifier_name == ANONYMOUS

    @property
    def fqn(self) -> str:
        return f"{self.package_name}.{self.identifier_name}"

    @property
    def super_classes(self) -> dict[str, list[str]]:
        """Super class names and tokens; empty unless the shape is inheritable."""
        if isinstance(self.detail, Inheritance):
            return self.detail.super_classes
        return {}

    @property
    def super_types(self) -> dict[str, list[str]]:
        if isinstance(self.detail, Inheritance):
            return self.detail.super_types
        return {}

    @property
    def method_signature(self) -> str | None:
        if isinstance(self.detail, Invocation):
            return self.detail.signature
        return None

    @property
    def sub_concatenated_tokens(self) -> list[str]:
        """Tokens with each ``sub`` joined to the token that follows it."""
        tokens = self.tokens or []
        result: list[str] = []
        i = 0
        while i < len(tokens):
            if tokens[i] == "sub" and i < len(tokens) - 1:
                result.append(tokens[i] + tokens[i + 1])
                i += 2
            else:
                result.append(tokens[i])
                i += 1
        return result

    @property
    def modal_expanded_tokens(self) -> list[str]:
        """Tokens with contractions expanded (``cant`` -> ``can``, ``not``)."""
        result: list[str] = []
        for token in self.tokens or []:
            result.extend(CONTRACTIONS.get(token, (token,)))
        return result
