"""In-memory interning dictionaries mirrored from the dictionary tables.

One DictionaryCache per category keeps a bijection between surrogate keys
and string values. Callers must look a value up before inserting it: the
cache only mirrors what the database already holds.

A Dictionaries object bundles every category for one open store and is
shared by reference between the writer and the reader.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from sqlmodel import select

from identdb.config.constants import PROJECT_SEPARATOR
from identdb.store.models import (
    FileName,
    IdentifierName,
    MethodSignature,
    ModifierName,
    PackageName,
    Project,
    SpeciesName,
    Token,
    TypeName,
)

if TYPE_CHECKING:
    from sqlmodel import Session

log = structlog.get_logger(__name__)


class DictionaryCache:
    """Bidirectional key <-> value map for one interned category."""

    def __init__(self, category: str) -> None:
        self.category = category
        self._by_key: dict[int, str] = {}
        self._by_value: dict[str, int] = {}

    def key_for(self, value: str) -> int | None:
        return self._by_value.get(value)

    def value_for(self, key: int) -> str | None:
        return self._by_key.get(key)

    def put(self, key: int, value: str) -> str | None:
        """Bind ``key`` to ``value``, returning the value previously bound to key.

        Rebinding drops whichever old pairing would break the bijection.
        """
        previous = self._by_key.get(key)
        if previous is not None and previous != value:
            del self._by_value[previous]
        stale_key = self._by_value.get(value)
        if stale_key is not None and stale_key != key:
            del self._by_key[stale_key]
        self._by_key[key] = value
        self._by_value[value] = key
        return previous

    def discard(self, key: int) -> None:
        """Forget ``key`` and its value, if present."""
        value = self._by_key.pop(key, None)
        if value is not None and self._by_value.get(value) == key:
            del self._by_value[value]

    def values(self) -> list[str]:
        return list(self._by_value)

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, value: object) -> bool:
        return value in self._by_value

    def __repr__(self) -> str:
        return f"DictionaryCache({self.category!r}, size={len(self)})"


class ProjectKeyStore:
    """Forward-only map from ``"name version"`` to project key."""

    def __init__(self) -> None:
        self._keys: dict[str, int] = {}

    def get(self, name_and_version: str) -> int | None:
        return self._keys.get(name_and_version)

    def put(self, name_and_version: str, key: int) -> int | None:
        previous = self._keys.get(name_and_version)
        self._keys[name_and_version] = key
        return previous

    def discard(self, name_and_version: str) -> None:
        self._keys.pop(name_and_version, None)

    def project_names(self) -> list[str]:
        return list(self._keys)

    def __len__(self) -> int:
        return len(self._keys)


# category -> (table model, key column, value column)
_CATEGORIES: dict[str, tuple[Any, str, str]] = {
    "identifier_names": (IdentifierName, "identifier_name_key", "identifier_name"),
    "type_names": (TypeName, "type_name_key", "type_name"),
    "tokens": (Token, "token_key", "token"),
    "method_signatures": (MethodSignature, "method_signature_key", "method_signature"),
    "modifiers": (ModifierName, "modifier_key", "modifier"),
    "species": (SpeciesName, "species_name_key", "species_name"),
    "package_names": (PackageName, "package_name_key", "package_name"),
    "file_names": (FileName, "file_name_key", "file_name"),
}


@dataclass
class Dictionaries:
    """Every interning cache of one open store.

    ``type_owners`` maps a type-name key to the key of the identifier name
    that names the type.
    """

    identifier_names: DictionaryCache = field(
        default_factory=lambda: DictionaryCache("identifier_names")
    )
    type_names: DictionaryCache = field(default_factory=lambda: DictionaryCache("type_names"))
    tokens: DictionaryCache = field(default_factory=lambda: DictionaryCache("tokens"))
    method_signatures: DictionaryCache = field(
        default_factory=lambda: DictionaryCache("method_signatures")
    )
    modifiers: DictionaryCache = field(default_factory=lambda: DictionaryCache("modifiers"))
    species: DictionaryCache = field(default_factory=lambda: DictionaryCache("species"))
    package_names: DictionaryCache = field(
        default_factory=lambda: DictionaryCache("package_names")
    )
    file_names: DictionaryCache = field(default_factory=lambda: DictionaryCache("file_names"))
    projects: ProjectKeyStore = field(default_factory=ProjectKeyStore)
    type_owners: dict[int, int] = field(default_factory=dict)

    def cache(self, category: str) -> DictionaryCache:
        cache = getattr(self, category, None)
        if not isinstance(cache, DictionaryCache):
            raise KeyError(category)
        return cache

    @classmethod
    def load(cls, session: Session) -> Dictionaries:
        """Bulk load every category from its table.

        A value stored under more than one key (a file written before the
        value columns were unique) keeps its lowest key; the others are
        logged and left out of the cache.
        """
        dictionaries = cls()
        for category, (model, key_column, value_column) in _CATEGORIES.items():
            cache = dictionaries.cache(category)
            key_col = getattr(model, key_column)
            rows = session.exec(
                select(key_col, getattr(model, value_column)).order_by(key_col)
            ).all()
            for key, value in rows:
                kept = cache.key_for(value)
                if kept is not None:
                    log.warning(
                        "duplicate_dictionary_value",
                        category=category,
                        value=value,
                        kept_key=kept,
                        duplicate_key=key,
                    )
                    continue
                cache.put(key, value)

        for type_key, owner_key in session.exec(
            select(TypeName.type_name_key, TypeName.identifier_name_key_fk)
        ).all():
            if owner_key is not None:
                dictionaries.type_owners[type_key] = owner_key

        for key, name, version in session.exec(
            select(Project.project_key, Project.project_name, Project.project_version)
        ).all():
            dictionaries.projects.put(f"{name}{PROJECT_SEPARATOR}{version}", key)

        log.debug(
            "dictionaries_loaded",
            **{category: len(dictionaries.cache(category)) for category in _CATEGORIES},
            projects=len(dictionaries.projects),
        )
        return dictionaries
