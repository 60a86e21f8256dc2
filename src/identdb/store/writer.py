"""Entity writer: turns raw entity descriptions into normalized rows.

Storing one entity interns every string it carries, then inserts the
fact row and its edges:

1. project key (run-scoped, created on first store of a run)
2. file key (direct table lookup)
3. package-name key, then the (project, package name) package key
4. method-signature key, or 0 for species that are not invokable
5. type-name key (interning the type's own identifier name first)
6. identifier-name key; a new name is tokenized exactly once
7. fact row
8. modifier edges
9. super-class and super-type edges for classes and interfaces

A value missing from the in-memory dictionaries is looked up in its table
before it is inserted, since several stores may share one file. The
dictionary value columns are unique, so a racing insert fails its step
instead of duplicating the value.

Two write policies exist. ``atomic`` runs the whole sequence in one
BEGIN IMMEDIATE transaction and raises StoreError on the first failure,
evicting every cache entry added by the failed call. ``best_effort``
commits each step on its own; a failed step is logged, yields None and
the remaining steps still run.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from identdb.config.constants import (
    ANONYMOUS,
    NO_METHOD_SIGNATURE_KEY,
    PROJECT_SEPARATOR,
    SENTINEL_PREFIX,
)
from identdb.config.models import WritePolicy
from identdb.core.errors import StoreError
from identdb.store.models import (
    FileName,
    IdentifierName,
    MethodSignature,
    ModifierXref,
    Package,
    PackageName,
    ProgramEntityRow,
    Project,
    SuperClassXref,
    SuperTypeXref,
    Token,
    TokenPosition,
    TypeName,
)
from identdb.store.raw import RawProgramEntity, RawTypeName

if TYPE_CHECKING:
    from identdb.store._internal.db import Database
    from identdb.store._internal.dictionary import DictionaryCache, Dictionaries
    from identdb.store.tokenizer import Tokenizer

log = structlog.get_logger(__name__)

# Undo actions registered while interning, replayed when a write rolls back
UndoLog = list[Callable[[], None]]
Step = Callable[..., Any]


class EntityWriter:
    """Normalizer for one open store.

    Not thread-safe; EntityStore serializes calls to ``store``.
    """

    def __init__(
        self,
        db: Database,
        dictionaries: Dictionaries,
        tokenizer: Tokenizer,
        *,
        write_policy: WritePolicy = "atomic",
        deduplicate_entities: bool = False,
    ) -> None:
        self._db = db
        self._dictionaries = dictionaries
        self.tokenizer = tokenizer
        self.write_policy = write_policy
        self.deduplicate_entities = deduplicate_entities

        self._project_name: str | None = None
        self._project_version: str | None = None
        # Run-scoped state, reset by set_project
        self._project_key: int | None = None
        self._package_keys: dict[str, int] = {}

    @property
    def project(self) -> tuple[str, str] | None:
        if self._project_name is None or self._project_version is None:
            return None
        return self._project_name, self._project_version

    def set_project(self, name: str, version: str) -> None:
        """Start a new ingestion run for ``name`` at ``version``."""
        self._project_name = name
        self._project_version = version
        self._project_key = None
        self._package_keys = {}

    # =========================================================================
    # Entry point
    # =========================================================================

    def store(self, raw: RawProgramEntity) -> int | None:
        """Store one entity and return its fact-row key.

        Raises:
            StoreError: PROJECT_NOT_SET before set_project; STORE_WRITE_FAILED
                under the atomic policy when any step fails.
        """
        if self.project is None:
            raise StoreError.project_not_set()

        if self.write_policy == "best_effort":
            return self._store_best_effort(raw)
        return self._store_atomic(raw)

    def _store_atomic(self, raw: RawProgramEntity) -> int:
        undo: UndoLog = []

        try:
            with self._db.immediate_transaction() as session:

                def step(name: str, fn: Step, *args: Any) -> Any:
                    try:
                        result = fn(session, *args, undo)
                    except Exception as e:
                        # Tokenizers are pluggable and may fail with anything
                        raise StoreError.write_failed(
                            name, str(e), identifier_name=raw.identifier_name
                        ) from e
                    if result is None:
                        raise StoreError.write_failed(
                            name,
                            "key could not be resolved",
                            identifier_name=raw.identifier_name,
                        )
                    return result

                entity_key = self._write(raw, step)
        except StoreError as e:
            _replay(undo)
            log.warning("store_failed", **e.details)
            raise
        except SQLAlchemyError as e:
            # Commit failures surface outside any step
            _replay(undo)
            raise StoreError.write_failed(
                "commit", str(e), identifier_name=raw.identifier_name
            ) from e
        except Exception:
            _replay(undo)
            raise

        return entity_key

    def _store_best_effort(self, raw: RawProgramEntity) -> int | None:
        with self._db.session() as session:

            def step(name: str, fn: Step, *args: Any) -> Any:
                undo: UndoLog = []
                try:
                    result = fn(session, *args, undo)
                    session.commit()
                except Exception as e:
                    session.rollback()
                    _replay(undo)
                    log.warning(
                        "store_step_failed",
                        step=name,
                        identifier_name=raw.identifier_name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return None
                if result is None:
                    log.warning(
                        "store_step_unresolved", step=name, identifier_name=raw.identifier_name
                    )
                return result

            return self._write(raw, step)

    def _write(self, raw: RawProgramEntity, step: Callable[..., Any]) -> Any:
        project_key = step("project", self._project_key_for)

        if self.deduplicate_entities:
            existing = step("deduplicate", self._existing_entity_key, project_key, raw)
            if existing:
                log.debug(
                    "entity_reused",
                    program_entity_key=existing,
                    container_uid=raw.container_uid,
                    entity_uid=raw.entity_uid,
                )
                return existing

        file_key = step("file", self._file_key_for, raw.file_name)
        package_key = step("package", self._package_key_for, project_key, raw.package_name)
        if raw.species.is_invokable and raw.method_signature is not None:
            signature_key = step(
                "method_signature", self._method_signature_key_for, raw.method_signature
            )
        else:
            signature_key = NO_METHOD_SIGNATURE_KEY
        type_key = step("type_name", self._type_name_key_for, raw.type_name)
        identifier_key = step("identifier_name", self._identifier_key_for, raw.identifier_name)
        species_key = step("species", self._species_key_for, raw)

        keys = {
            "project_key": project_key,
            "file_key": file_key,
            "package_key": package_key,
            "type_name_key": type_key,
            "identifier_name_key": identifier_key,
            "species_key": species_key,
            "method_signature_key": signature_key,
        }
        missing = sorted(name for name, key in keys.items() if key is None)
        if missing:
            log.warning(
                "null_foreign_keys", identifier_name=raw.identifier_name, missing=missing
            )

        entity_key = step("program_entity", self._insert_entity, raw, keys)
        step("modifiers", self._insert_modifiers, entity_key, raw)
        if raw.species.is_class_or_interface:
            step(
                "super_classes", self._insert_supers, entity_key, raw.super_classes, SuperClassXref
            )
            step("super_types", self._insert_supers, entity_key, raw.super_types, SuperTypeXref)

        log.debug(
            "entity_stored",
            program_entity_key=entity_key,
            identifier_name=raw.identifier_name,
            species=raw.species.description,
        )
        return entity_key

    # =========================================================================
    # Key resolution
    # =========================================================================

    def _project_key_for(self, session: Session, undo: UndoLog) -> int | None:
        if self._project_key is not None:
            return self._project_key

        name, version = self.project  # type: ignore[misc]
        name_and_version = f"{name}{PROJECT_SEPARATOR}{version}"
        key = self._dictionaries.projects.get(name_and_version)
        if key is None:
            # Another store on the same file may have created it
            key = session.exec(
                select(Project.project_key).where(
                    Project.project_name == name, Project.project_version == version
                )
            ).first()
        if key is None:
            row = Project(project_name=name, project_version=version)
            session.add(row)
            session.flush()
            key = row.project_key
            if key is None:
                return None
            log.info("project_created", project=name_and_version, project_key=key)
        if self._dictionaries.projects.get(name_and_version) is None:
            self._dictionaries.projects.put(name_and_version, key)
            undo.append(lambda: self._dictionaries.projects.discard(name_and_version))

        self._project_key = key
        undo.append(self._forget_project_key)
        return key

    def _forget_project_key(self) -> None:
        self._project_key = None

    def _existing_entity_key(
        self, session: Session, project_key: int, raw: RawProgramEntity, undo: UndoLog
    ) -> int:
        key = session.exec(
            select(ProgramEntityRow.program_entity_key).where(
                ProgramEntityRow.project_key_fk == project_key,
                ProgramEntityRow.container_uid == raw.container_uid,
                ProgramEntityRow.entity_uid == raw.entity_uid,
            )
        ).first()
        # 0 means "none found" so the step never reports it as unresolved
        return key or 0

    def _file_key_for(self, session: Session, file_name: str, undo: UndoLog) -> int | None:
        cache = self._dictionaries.file_names
        key = session.exec(
            select(FileName.file_name_key).where(FileName.file_name == file_name)
        ).first()
        if key is None:
            row = FileName(file_name=file_name)
            session.add(row)
            session.flush()
            key = row.file_name_key
            if key is None:
                return None
            log.debug("interned", category=cache.category, key=key, value=file_name)
        if file_name not in cache:
            cache.put(key, file_name)
            undo.append(lambda: cache.discard(key))
        return key

    def _package_key_for(
        self, session: Session, project_key: int | None, package_name: str, undo: UndoLog
    ) -> int | None:
        key = self._package_keys.get(package_name)
        if key is not None:
            return key

        name_key = self._intern(
            session, self._dictionaries.package_names, PackageName(package_name=package_name), undo
        )
        key = session.exec(
            select(Package.package_key).where(
                Package.project_key_fk == project_key,
                Package.package_name_key_fk == name_key,
            )
        ).first()
        if key is None:
            row = Package(package_name_key_fk=name_key, project_key_fk=project_key)
            session.add(row)
            session.flush()
            key = row.package_key
            if key is None:
                return None

        self._package_keys[package_name] = key
        undo.append(lambda: self._package_keys.pop(package_name, None))
        return key

    def _method_signature_key_for(
        self, session: Session, signature: str, undo: UndoLog
    ) -> int | None:
        return self._intern(
            session,
            self._dictionaries.method_signatures,
            MethodSignature(method_signature=signature),
            undo,
        )

    def _type_name_key_for(
        self, session: Session, type_name: RawTypeName, undo: UndoLog
    ) -> int | None:
        cache = self._dictionaries.type_names
        display_name = type_name.display_name
        key = cache.key_for(display_name)
        if key is not None:
            return key

        owner_key = self._identifier_key_for(session, type_name.identifier_name, undo)
        key = self._intern(
            session,
            cache,
            TypeName(type_name=display_name, identifier_name_key_fk=owner_key),
            undo,
        )
        if key is not None and owner_key is not None:
            owners = self._dictionaries.type_owners
            owners[key] = owner_key
            undo.append(lambda: owners.pop(key, None))
        return key

    def _identifier_key_for(self, session: Session, name: str, undo: UndoLog) -> int | None:
        cache = self._dictionaries.identifier_names
        key = cache.key_for(name)
        if key is not None:
            return key

        key, inserted = self._get_or_insert(
            session, cache, IdentifierName(identifier_name=name), undo
        )
        if not inserted or key is None or name.startswith(SENTINEL_PREFIX):
            return key

        # First sighting of this name: tokenize once and record positions
        tokens = [token.lower() for token in self.tokenizer.tokenize(name)]
        for position, token in enumerate(tokens, start=1):
            token_key = self._intern(session, self._dictionaries.tokens, Token(token=token), undo)
            session.add(
                TokenPosition(
                    token_key_fk=token_key, identifier_name_key_fk=key, position=position
                )
            )
        session.flush()
        log.debug("tokenized", identifier_name=name, tokens=tokens)
        return key

    def _species_key_for(
        self, session: Session, raw: RawProgramEntity, undo: UndoLog
    ) -> int | None:
        return self._dictionaries.species.key_for(raw.species.description)

    def _intern(
        self, session: Session, cache: DictionaryCache, row: Any, undo: UndoLog
    ) -> int | None:
        """Return the key of ``row``'s value, inserting ``row`` if the value is new."""
        key = cache.key_for(getattr(row, _ROW_COLUMNS[type(row)][1]))
        if key is not None:
            return key
        key, _ = self._get_or_insert(session, cache, row, undo)
        return key

    def _get_or_insert(
        self, session: Session, cache: DictionaryCache, row: Any, undo: UndoLog
    ) -> tuple[int | None, bool]:
        """Resolve a cache miss against the table; the flag is True when ``row`` was inserted.

        The table, not the cache, decides whether a value exists: other stores
        on the same file intern into it too.
        """
        model = type(row)
        key_column, value_column = _ROW_COLUMNS[model]
        value = getattr(row, value_column)
        key = session.exec(
            select(getattr(model, key_column)).where(getattr(model, value_column) == value)
        ).first()
        inserted = key is None
        if inserted:
            session.add(row)
            session.flush()
            key = getattr(row, key_column)
            if key is None:
                return None, False
            log.debug("interned", category=cache.category, key=key, value=value)
        cache.put(key, value)
        undo.append(lambda: cache.discard(key))
        return key, inserted

    # =========================================================================
    # Fact row and edges
    # =========================================================================

    def _insert_entity(
        self, session: Session, raw: RawProgramEntity, keys: dict[str, Any], undo: UndoLog
    ) -> int | None:
        row = ProgramEntityRow(
            project_key_fk=keys["project_key"],
            package_key_fk=keys["package_key"],
            identifier_name_key_fk=keys["identifier_name_key"],
            container_uid=raw.container_uid,
            entity_uid=raw.entity_uid,
            species_name_key_fk=keys["species_key"],
            type_name_key_fk=keys["type_name_key"],
            method_signature_key_fk=keys["method_signature_key"] or NO_METHOD_SIGNATURE_KEY,
            is_anonymous=raw.identifier_name == ANONYMOUS,
            file_name_key_fk=keys["file_key"],
            is_array=raw.is_array,
            is_loop_control_var=raw.is_loop_control_variable,
            start_line_number=raw.span.begin_line,
            start_column=raw.span.begin_column,
            end_line_number=raw.span.end_line,
            end_column=raw.span.end_column,
        )
        session.add(row)
        session.flush()
        return row.program_entity_key

    def _insert_modifiers(
        self, session: Session, entity_key: int | None, raw: RawProgramEntity, undo: UndoLog
    ) -> int | None:
        count = 0
        for modifier in raw.modifiers:
            modifier_key = self._dictionaries.modifiers.key_for(modifier.description)
            if modifier_key is None:
                log.warning("unknown_modifier", modifier=modifier.description)
                return None
            session.add(
                ModifierXref(modifier_key_fk=modifier_key, program_entity_key_fk=entity_key)
            )
            count += 1
        session.flush()
        return count

    def _insert_supers(
        self,
        session: Session,
        entity_key: int | None,
        supers: tuple[RawTypeName, ...],
        edge: type[SuperClassXref] | type[SuperTypeXref],
        undo: UndoLog,
    ) -> int | None:
        count = 0
        for type_name in supers:
            type_key = self._type_name_key_for(session, type_name, undo)
            if type_key is None:
                return None
            if edge is SuperClassXref:
                session.add(
                    SuperClassXref(
                        sub_class_entity_key_fk=entity_key, super_class_name_key_fk=type_key
                    )
                )
            else:
                session.add(
                    SuperTypeXref(
                        sub_type_entity_key_fk=entity_key, super_type_name_key_fk=type_key
                    )
                )
            count += 1
        session.flush()
        return count


_ROW_COLUMNS: dict[type, tuple[str, str]] = {
    IdentifierName: ("identifier_name_key", "identifier_name"),
    Token: ("token_key", "token"),
    TypeName: ("type_name_key", "type_name"),
    MethodSignature: ("method_signature_key", "method_signature"),
    PackageName: ("package_name_key", "package_name"),
}


def _replay(undo: UndoLog) -> None:
    for action in reversed(undo):
        action()
