"""Entity reader: rebuilds program entities from normalized rows.

Strings are resolved through the shared dictionaries; tokens come from
the stored token positions, re-sorted by position, and are never
recomputed. The entity shape follows the species: classes and interfaces
carry their super class and super type names, methods and constructors
their signature, everything else nothing extra.

Projects are addressed by their ``"name version"`` string, as returned by
``project_list``.

Per-row failures never abort a listing. Database errors are logged and
the affected accessor returns an empty result (or None).
"""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from identdb.config.constants import NO_METHOD_SIGNATURE_KEY, PROJECT_SEPARATOR
from identdb.store.entities import EntityShape, Inheritance, Invocation, ProgramEntity
from identdb.store.models import (
    FileName,
    IdentifierName,
    MethodSignature,
    Modifier,
    ModifierXref,
    Package,
    PackageName,
    ProgramEntityRow,
    Project,
    Species,
    SuperClassXref,
    SuperTypeXref,
    Token,
    TokenPosition,
    TypeGroup,
    TypeName,
)
from identdb.store.sampler import sample_names, sample_tokenised_names

if TYPE_CHECKING:
    from identdb.store._internal.db import Database
    from identdb.store._internal.dictionary import DictionaryCache, Dictionaries

log = structlog.get_logger(__name__)

T = TypeVar("T")


class EntityReader:
    """Query surface over one open store."""

    def __init__(
        self,
        db: Database,
        dictionaries: Dictionaries,
        rng: random.Random | None = None,
    ) -> None:
        self._db = db
        self._dictionaries = dictionaries
        self.rng = rng or random.Random()

    def _query(self, operation: str, fn: Callable[[Session], T], default: T, **context: Any) -> T:
        """Run ``fn`` in a fresh session, logging and returning ``default`` on failure."""
        try:
            with self._db.session() as session:
                return fn(session)
        except SQLAlchemyError as e:
            log.error("query_failed", operation=operation, error=str(e), **context)
            return default

    # =========================================================================
    # Names and tokens
    # =========================================================================

    def project_list(self) -> list[str]:
        """Every stored project as ``"name version"``."""

        def run(session: Session) -> list[str]:
            rows = session.exec(
                select(Project.project_name, Project.project_version).order_by(
                    col(Project.project_key)
                )
            ).all()
            return [f"{name}{PROJECT_SEPARATOR}{version}" for name, version in rows]

        return self._query("project_list", run, [])

    def tokens_for(self, name: str) -> list[str] | None:
        """Tokens of ``name`` in left-to-right order, or None for an unknown name."""
        key = self._dictionaries.identifier_names.key_for(name)
        if key is None:
            log.warning("no_tokens_for_name", identifier_name=name)
            return None
        return self._query(
            "tokens_for", lambda s: self._tokens_for_key(s, key), None, identifier_name=name
        )

    def package_names_for_project(self, project: str) -> list[str]:
        project_key = self._dictionaries.projects.get(project)
        if project_key is None:
            return []

        def run(session: Session) -> list[str]:
            keys = session.exec(
                select(Package.package_name_key_fk)
                .where(Package.project_key_fk == project_key)
                .order_by(col(Package.package_key))
            ).all()
            cache = self._dictionaries.package_names
            names = (self._value(session, cache, PackageName, key) for key in keys)
            return [name for name in names if name is not None]

        return self._query("package_names_for_project", run, [], project=project)

    def class_names_for_package(self, project: str, package: str) -> list[str]:
        """Names of the classes declared in ``package`` of ``project``."""
        project_key = self._dictionaries.projects.get(project)
        package_name_key = self._dictionaries.package_names.key_for(package)
        species_key = self._species_key(Species.CLASS)
        if project_key is None or package_name_key is None:
            return []

        def run(session: Session) -> list[str]:
            package_key = session.exec(
                select(Package.package_key).where(
                    Package.project_key_fk == project_key,
                    Package.package_name_key_fk == package_name_key,
                )
            ).first()
            if package_key is None:
                return []
            keys = session.exec(
                select(ProgramEntityRow.identifier_name_key_fk)
                .where(
                    ProgramEntityRow.project_key_fk == project_key,
                    ProgramEntityRow.package_key_fk == package_key,
                    ProgramEntityRow.species_name_key_fk == species_key,
                )
                .order_by(col(ProgramEntityRow.program_entity_key))
            ).all()
            return self._identifier_names(session, keys)

        return self._query(
            "class_names_for_package", run, [], project=project, package=package
        )

    def identifier_names_for(
        self,
        project: str,
        species: Species | None = None,
        modifier: Modifier | None = None,
    ) -> list[str]:
        """Distinct identifier names of a project, sorted.

        Optionally restricted to one species and/or to entities carrying
        ``modifier``.
        """
        project_key = self._dictionaries.projects.get(project)
        if project_key is None:
            return []

        def run(session: Session) -> list[str]:
            statement = select(ProgramEntityRow.identifier_name_key_fk).where(
                ProgramEntityRow.project_key_fk == project_key
            )
            if species is not None:
                statement = statement.where(
                    ProgramEntityRow.species_name_key_fk == self._species_key(species)
                )
            if modifier is not None:
                modifier_key = self._dictionaries.modifiers.key_for(modifier.description)
                statement = statement.join(
                    ModifierXref,
                    col(ModifierXref.program_entity_key_fk)
                    == col(ProgramEntityRow.program_entity_key),
                ).where(ModifierXref.modifier_key_fk == modifier_key)
            keys = session.exec(statement.distinct()).all()
            return sorted(set(self._identifier_names(session, keys)))

        return self._query("identifier_names_for", run, [], project=project)

    # =========================================================================
    # Sampling
    # =========================================================================

    def name_set_for(
        self,
        species: Species,
        count: int,
        minimum_length: int,
        project: str | None = None,
    ) -> list[str]:
        """Sorted random sample of ``count`` distinct names (0 means all)."""
        return sample_names(self._candidates(species, project), count, minimum_length, self.rng)

    def tokenised_name_set_for(
        self,
        species: Species,
        count: int,
        minimum_length: int,
        project: str | None = None,
    ) -> list[str]:
        """As name_set_for, each name rendered as its space-joined tokens."""
        return sample_tokenised_names(
            self._candidates(species, project),
            count,
            minimum_length,
            self.tokens_for,
            self.rng,
        )

    def _candidates(self, species: Species, project: str | None) -> list[str]:
        species_key = self._species_key(species)
        project_key = None
        if project is not None:
            project_key = self._dictionaries.projects.get(project)
            if project_key is None:
                return []

        def run(session: Session) -> list[str]:
            statement = select(ProgramEntityRow.identifier_name_key_fk).where(
                ProgramEntityRow.species_name_key_fk == species_key
            )
            if project is not None:
                statement = statement.where(ProgramEntityRow.project_key_fk == project_key)
            keys = session.exec(statement.distinct()).all()
            return self._identifier_names(session, keys)

        return self._query("name_candidates", run, [], species=species.description)

    # =========================================================================
    # Entity listings
    # =========================================================================

    def all_class_names_for(self, project: str) -> list[ProgramEntity]:
        return self._entities_for_project_by_species(project, Species.CLASS)

    def all_classes_and_interfaces_for(self, project: str) -> list[ProgramEntity]:
        entities: list[ProgramEntity] = []
        for species in Species:
            if species.is_class_or_interface:
                entities.extend(self._entities_for_project_by_species(project, species))
        return entities

    def all_field_names_for(self, project: str) -> list[ProgramEntity]:
        return self._entities_for_project_by_species(project, Species.FIELD)

    def all_formal_argument_names_for(self, project: str) -> list[ProgramEntity]:
        return self._entities_for_project_by_species(project, Species.FORMAL_ARGUMENT)

    def all_local_variable_names_for(self, project: str) -> list[ProgramEntity]:
        return self._entities_for_project_by_species(project, Species.LOCAL_VARIABLE)

    def entities_for(self, project: str, version: str | None = None) -> list[ProgramEntity]:
        """Every entity of a project.

        ``project`` is ``"name version"``, or just the name when ``version``
        is given separately.
        """
        if version is not None:
            project = f"{project}{PROJECT_SEPARATOR}{version}"
        project_key = self._dictionaries.projects.get(project)
        if project_key is None:
            log.warning("unknown_project", project=project)
            return []
        return self._entities_where(
            "entities_for", ProgramEntityRow.project_key_fk == project_key
        )

    def entities_by_species(self, species: Species) -> list[ProgramEntity]:
        """Every entity of ``species`` across all projects."""
        return self._entities_where(
            "entities_by_species",
            ProgramEntityRow.species_name_key_fk == self._species_key(species),
        )

    def entity_set_where(
        self, species: Species, max_count: int, type_group: TypeGroup
    ) -> list[ProgramEntity]:
        """Up to ``max_count`` entities of ``species`` whose type is in ``type_group``.

        At most one entity per identifier name is returned.
        """
        selected: dict[str, ProgramEntity] = {}
        for entity in self.entities_by_species(species):
            if len(selected) >= max_count:
                break
            if entity.identifier_name is None or entity.identifier_name in selected:
                continue
            if TypeGroup.classify(entity.type_name) is type_group:
                selected[entity.identifier_name] = entity
        return list(selected.values())

    def _entities_for_project_by_species(
        self, project: str, species: Species
    ) -> list[ProgramEntity]:
        project_key = self._dictionaries.projects.get(project)
        if project_key is None:
            log.warning("unknown_project", project=project)
            return []
        return self._entities_where(
            "entities_for_project_by_species",
            ProgramEntityRow.project_key_fk == project_key,
            ProgramEntityRow.species_name_key_fk == self._species_key(species),
        )

    def _entities_where(self, operation: str, *criteria: Any) -> list[ProgramEntity]:
        def run(session: Session) -> list[ProgramEntity]:
            rows = session.exec(
                select(ProgramEntityRow)
                .where(*criteria)
                .order_by(col(ProgramEntityRow.program_entity_key))
            ).all()
            return self._reconstruct_all(session, rows)

        return self._query(operation, run, [])

    # =========================================================================
    # Lookups by name
    # =========================================================================

    def class_or_interface_for(self, project: str, fqn: str) -> ProgramEntity | None:
        """Find the class or interface ``fqn`` (``package.Name``) in ``project``."""
        package, _, name = fqn.rpartition(".")
        project_key = self._dictionaries.projects.get(project)
        identifier_key = self._dictionaries.identifier_names.key_for(name)
        package_name_key = self._dictionaries.package_names.key_for(package)
        if project_key is None or identifier_key is None or package_name_key is None:
            return None
        species_keys = [self._species_key(s) for s in Species if s.is_class_or_interface]

        def run(session: Session) -> ProgramEntity | None:
            row = session.exec(
                select(ProgramEntityRow)
                .join(Package, col(Package.package_key) == col(ProgramEntityRow.package_key_fk))
                .where(
                    ProgramEntityRow.project_key_fk == project_key,
                    ProgramEntityRow.identifier_name_key_fk == identifier_key,
                    Package.package_name_key_fk == package_name_key,
                    col(ProgramEntityRow.species_name_key_fk).in_(species_keys),
                )
                .order_by(col(ProgramEntityRow.program_entity_key))
            ).first()
            return None if row is None else self._reconstruct(session, row)

        return self._query("class_or_interface_for", run, None, project=project, fqn=fqn)

    def entity_candidates_for(self, name: str, species: Species) -> list[ProgramEntity]:
        """Every class (or every interface) named ``name``, across projects.

        Raises:
            ValueError: ``species`` is neither class nor interface.
        """
        if not species.is_class_or_interface:
            raise ValueError(f"Species must be class or interface, not {species.description}")
        identifier_key = self._dictionaries.identifier_names.key_for(name)
        if identifier_key is None:
            return []
        return self._entities_where(
            "entity_candidates_for",
            ProgramEntityRow.identifier_name_key_fk == identifier_key,
            ProgramEntityRow.species_name_key_fk == self._species_key(species),
        )

    def sub_classes_for(self, name: str) -> list[ProgramEntity]:
        """Entities declaring a super class named ``name``.

        Matching is by simple name only: subclasses of every type called
        ``name`` are returned, whatever its package.
        """
        return self._subs_for(
            "sub_classes_for",
            name,
            SuperClassXref,
            SuperClassXref.sub_class_entity_key_fk,
            SuperClassXref.super_class_name_key_fk,
        )

    def sub_types_for(self, name: str) -> list[ProgramEntity]:
        """Entities declaring a super type (implemented interface) named ``name``."""
        return self._subs_for(
            "sub_types_for",
            name,
            SuperTypeXref,
            SuperTypeXref.sub_type_entity_key_fk,
            SuperTypeXref.super_type_name_key_fk,
        )

    def _subs_for(
        self, operation: str, name: str, edge: Any, sub_column: Any, super_column: Any
    ) -> list[ProgramEntity]:
        identifier_key = self._dictionaries.identifier_names.key_for(name)
        if identifier_key is None:
            return []

        def run(session: Session) -> list[ProgramEntity]:
            type_keys = session.exec(
                select(TypeName.type_name_key).where(
                    TypeName.identifier_name_key_fk == identifier_key
                )
            ).all()
            if not type_keys:
                return []
            entity_keys = session.exec(
                select(sub_column).where(col(super_column).in_(type_keys)).distinct()
            ).all()
            rows = session.exec(
                select(ProgramEntityRow)
                .where(col(ProgramEntityRow.program_entity_key).in_(entity_keys))
                .order_by(col(ProgramEntityRow.program_entity_key))
            ).all()
            return self._reconstruct_all(session, rows)

        return self._query(operation, run, [], name=name)

    # =========================================================================
    # Per-entity details
    # =========================================================================

    def modifiers_for(self, entity_key: int) -> list[Modifier]:
        return self._query(
            "modifiers_for", lambda s: self._modifiers(s, entity_key), [], entity_key=entity_key
        )

    def super_class_names_for(self, entity_key: int) -> list[str]:
        return self._query(
            "super_class_names_for",
            lambda s: list(self._super_classes(s, entity_key)),
            [],
            entity_key=entity_key,
        )

    def super_type_names_for(self, entity_key: int) -> list[str]:
        return self._query(
            "super_type_names_for",
            lambda s: list(self._super_types(s, entity_key)),
            [],
            entity_key=entity_key,
        )

    # =========================================================================
    # Reconstruction
    # =========================================================================

    def _reconstruct_all(
        self, session: Session, rows: Iterable[ProgramEntityRow]
    ) -> list[ProgramEntity]:
        entities = []
        for row in rows:
            try:
                entities.append(self._reconstruct(session, row))
            except (SQLAlchemyError, KeyError, ValueError) as e:
                log.error(
                    "entity_reconstruction_failed",
                    program_entity_key=row.program_entity_key,
                    error=str(e),
                )
        return entities

    def _reconstruct(self, session: Session, row: ProgramEntityRow) -> ProgramEntity:
        dictionaries = self._dictionaries
        species_name = dictionaries.species.value_for(row.species_name_key_fk)
        if species_name is None:
            raise ValueError(f"Unknown species key {row.species_name_key_fk}")
        species = Species.for_description(species_name)

        project = session.get(Project, row.project_key_fk)
        identifier_name = self._value(
            session, dictionaries.identifier_names, IdentifierName, row.identifier_name_key_fk
        )
        entity_key = row.program_entity_key
        assert entity_key is not None

        detail: Inheritance | Invocation | None = None
        shape = EntityShape.for_species(species)
        if shape is EntityShape.INHERITABLE:
            detail = Inheritance(
                super_classes=self._super_classes(session, entity_key),
                super_types=self._super_types(session, entity_key),
            )
        elif shape is EntityShape.INVOKABLE:
            signature = None
            if row.method_signature_key_fk != NO_METHOD_SIGNATURE_KEY:
                signature = self._value(
                    session,
                    dictionaries.method_signatures,
                    MethodSignature,
                    row.method_signature_key_fk,
                )
            detail = Invocation(signature=signature)

        return ProgramEntity(
            key=entity_key,
            project_name=project.project_name if project else None,
            project_version=project.project_version if project else None,
            identifier_name=identifier_name,
            package_name=self._package_name(session, row.package_key_fk),
            tokens=self._tokens_for_key(session, row.identifier_name_key_fk),
            modifiers=self._modifiers(session, entity_key),
            species=species,
            container_uid=row.container_uid,
            entity_uid=row.entity_uid,
            type_name=self._value(session, dictionaries.type_names, TypeName, row.type_name_key_fk),
            is_array=row.is_array,
            is_loop_control_variable=row.is_loop_control_var,
            file_name=self._value(session, dictionaries.file_names, FileName, row.file_name_key_fk),
            start_line=row.start_line_number,
            start_column=row.start_column,
            end_line=row.end_line_number,
            end_column=row.end_column,
            detail=detail,
        )

    def _tokens_for_key(self, session: Session, identifier_key: int) -> list[str]:
        rows = session.exec(
            select(TokenPosition.position, TokenPosition.token_key_fk).where(
                TokenPosition.identifier_name_key_fk == identifier_key
            )
        ).all()
        # Storage order is not guaranteed
        tokens = []
        for _, token_key in sorted(rows):
            token = self._value(session, self._dictionaries.tokens, Token, token_key)
            if token is not None:
                tokens.append(token)
        return tokens

    def _modifiers(self, session: Session, entity_key: int) -> list[Modifier]:
        keys = session.exec(
            select(ModifierXref.modifier_key_fk)
            .where(ModifierXref.program_entity_key_fk == entity_key)
            .order_by(col(ModifierXref.id))
        ).all()
        modifiers = []
        for key in keys:
            description = self._dictionaries.modifiers.value_for(key)
            if description is None:
                log.warning("unknown_modifier_key", modifier_key=key, entity_key=entity_key)
                continue
            modifiers.append(Modifier.for_description(description))
        return modifiers

    def _super_classes(self, session: Session, entity_key: int) -> dict[str, list[str]]:
        return self._supers(
            session,
            entity_key,
            SuperClassXref.sub_class_entity_key_fk,
            SuperClassXref.super_class_name_key_fk,
        )

    def _super_types(self, session: Session, entity_key: int) -> dict[str, list[str]]:
        return self._supers(
            session,
            entity_key,
            SuperTypeXref.sub_type_entity_key_fk,
            SuperTypeXref.super_type_name_key_fk,
        )

    def _supers(
        self, session: Session, entity_key: int, sub_column: Any, super_column: Any
    ) -> dict[str, list[str]]:
        """Map each super class (or type) name of an entity to its tokens."""
        type_keys = session.exec(select(super_column).where(sub_column == entity_key)).all()
        supers: dict[str, list[str]] = {}
        for type_key in type_keys:
            owner_key = self._type_owner(session, type_key)
            if owner_key is None:
                log.warning("type_without_identifier", type_name_key=type_key)
                continue
            name = self._value(
                session, self._dictionaries.identifier_names, IdentifierName, owner_key
            )
            if name is not None:
                supers[name] = self._tokens_for_key(session, owner_key)
        return supers

    def _type_owner(self, session: Session, type_key: int) -> int | None:
        owner_key = self._dictionaries.type_owners.get(type_key)
        if owner_key is None:
            row = session.get(TypeName, type_key)
            if row is not None and row.identifier_name_key_fk is not None:
                owner_key = row.identifier_name_key_fk
                self._dictionaries.type_owners[type_key] = owner_key
        return owner_key

    def _package_name(self, session: Session, package_key: int) -> str | None:
        package = session.get(Package, package_key)
        if package is None:
            return None
        return self._value(
            session, self._dictionaries.package_names, PackageName, package.package_name_key_fk
        )

    def _identifier_names(self, session: Session, keys: Iterable[int]) -> list[str]:
        names = []
        for key in keys:
            name = self._value(session, self._dictionaries.identifier_names, IdentifierName, key)
            if name is not None:
                names.append(name)
        return names

    def _species_key(self, species: Species) -> int | None:
        return self._dictionaries.species.key_for(species.description)

    def _value(
        self, session: Session, cache: DictionaryCache, model: Any, key: int | None
    ) -> str | None:
        """Resolve ``key`` through ``cache``, falling back to its table."""
        if key is None:
            return None
        value = cache.value_for(key)
        if value is not None:
            return value
        row = session.get(model, key)
        if row is None:
            log.warning("dangling_key", category=cache.category, key=key)
            return None
        value = getattr(row, _VALUE_COLUMNS[model])
        cache.put(key, value)
        return value


_VALUE_COLUMNS: dict[Any, str] = {
    IdentifierName: "identifier_name",
    Token: "token",
    TypeName: "type_name",
    MethodSignature: "method_signature",
    PackageName: "package_name",
    FileName: "file_name",
}
