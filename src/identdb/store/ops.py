"""Lifecycle facade over one entity store file.

EntityStore owns the database, the shared dictionaries, the writer and the
reader. It enforces the serialization rules of the store:

- _write_lock: only ONE store() at a time, so get-or-insert interning
  cannot race and the dictionaries stay bijective
- _lifecycle_lock: schema creation and shutdown never run concurrently

Usage::

    with EntityStore.open_with_creation(Path("entities.db")) as store:
        store.set_project("commons-lang", "3.12")
        store.store(raw_entity)
        names = store.reader.name_set_for(Species.METHOD, 100, 3)
"""

from __future__ import annotations

import random
import threading
from pathlib import Path
from types import TracebackType

import structlog
from sqlalchemy.exc import SQLAlchemyError

from identdb.config.models import IdentDbConfig
from identdb.core.errors import StoreError
from identdb.core.logging import clear_run_id, set_level, set_run_id
from identdb.store._internal.db import Database
from identdb.store._internal.dictionary import Dictionaries
from identdb.store.raw import RawProgramEntity
from identdb.store.reader import EntityReader
from identdb.store.tokenizer import IdentifierTokenizer, Tokenizer
from identdb.store.writer import EntityWriter

log = structlog.get_logger(__name__)


class EntityStore:
    """An open entity store. Create with ``open`` or ``open_with_creation``."""

    def __init__(
        self,
        db: Database,
        *,
        config: IdentDbConfig | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        self.config = config or IdentDbConfig()
        self.db = db
        self._write_lock = threading.RLock()
        self._lifecycle_lock = threading.Lock()
        self._closed = False

        try:
            with db.session() as session:
                self.dictionaries = Dictionaries.load(session)
        except SQLAlchemyError as e:
            db.dispose()
            raise StoreError.open_failed(str(db.db_path), str(e)) from e

        self.tokenizer: Tokenizer = tokenizer or IdentifierTokenizer(
            recursive_split=self.config.tokenizer.recursive_split,
            modal_expansion=self.config.tokenizer.modal_expansion,
        )
        self._writer = EntityWriter(
            db,
            self.dictionaries,
            self.tokenizer,
            write_policy=self.config.store.write_policy,
            deduplicate_entities=self.config.store.deduplicate_entities,
        )
        seed = self.config.sampler.seed
        self._reader = EntityReader(
            db, self.dictionaries, rng=random.Random(seed) if seed is not None else None
        )

    # =========================================================================
    # Opening
    # =========================================================================

    @classmethod
    def open(
        cls,
        path: Path,
        *,
        config: IdentDbConfig | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> EntityStore:
        """Open an existing store read-only.

        Raises:
            StoreError: STORE_NOT_FOUND if ``path`` does not exist,
                STORE_OPEN_FAILED if it cannot be read as a store.
        """
        path = Path(path)
        if not path.is_file():
            raise StoreError.not_found(str(path))
        config = config or IdentDbConfig()
        db = Database(path, read_only=True, busy_timeout_ms=config.database.busy_timeout_ms)
        store = cls(db, config=config, tokenizer=tokenizer)
        log.info("store_opened", path=str(path), read_only=True)
        return store

    @classmethod
    def open_with_creation(
        cls,
        path: Path,
        *,
        config: IdentDbConfig | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> EntityStore:
        """Open a store for writing, creating the file and schema if absent."""
        path = Path(path)
        config = config or IdentDbConfig()
        path.parent.mkdir(parents=True, exist_ok=True)
        db = Database(path, busy_timeout_ms=config.database.busy_timeout_ms)
        try:
            with _SCHEMA_LOCK:
                db.create_all()
        except SQLAlchemyError as e:
            db.dispose()
            raise StoreError.open_failed(str(path), str(e)) from e
        store = cls(db, config=config, tokenizer=tokenizer)
        log.info("store_opened", path=str(path), read_only=False)
        return store

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def read_only(self) -> bool:
        return self.db.read_only

    @property
    def reader(self) -> EntityReader:
        self._check_open()
        return self._reader

    @property
    def project(self) -> tuple[str, str] | None:
        return self._writer.project

    def set_project(self, name: str, version: str) -> str:
        """Start an ingestion run for a project. Returns the run id bound to logs."""
        self._check_open()
        with self._write_lock:
            self._writer.set_project(name, version)
            run_id = set_run_id()
        log.info("project_set", project=name, version=version)
        return run_id

    def set_tokenizer_options(self, recursive_split: bool, modal_expansion: bool) -> None:
        """Install a default IdentifierTokenizer with these options.

        Applies to names stored from now on. A custom tokenizer passed at
        open time is replaced, not reconfigured.
        """
        with self._write_lock:
            self.tokenizer = IdentifierTokenizer(
                recursive_split=recursive_split, modal_expansion=modal_expansion
            )
            self._writer.tokenizer = self.tokenizer

    def set_logging_level(self, level: str) -> None:
        set_level(level)

    # =========================================================================
    # Writing
    # =========================================================================

    def store(self, raw: RawProgramEntity) -> int | None:
        """Store one raw entity and return its fact-row key.

        Raises:
            StoreError: STORE_READ_ONLY, STORE_CLOSED, PROJECT_NOT_SET, or
                STORE_WRITE_FAILED under the atomic write policy.
        """
        self._check_open()
        if self.read_only:
            raise StoreError.read_only(str(self.db.db_path))
        with self._write_lock:
            return self._writer.store(raw)

    # =========================================================================
    # Shutdown
    # =========================================================================

    def shutdown(self) -> None:
        """Release the database. Safe to call more than once."""
        with self._lifecycle_lock:
            if self._closed:
                return
            with self._write_lock:
                self._closed = True
                self.db.dispose()
                clear_run_id()
        log.info("store_closed", path=str(self.db.db_path))

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError.closed()

    def __enter__(self) -> EntityStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown()


# Schema creation is process-wide: two stores may target the same file
_SCHEMA_LOCK = threading.Lock()
