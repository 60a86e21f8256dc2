"""Tests for the EntityStore lifecycle facade."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

import pytest
from sqlmodel import func, select

from identdb.config.models import IdentDbConfig, StoreConfig, TokenizerConfig
from identdb.core.errors import ErrorCode, StoreError
from identdb.core.logging import get_run_id
from identdb.store import EntityStore, Species
from identdb.store.models import (
    FileName,
    IdentifierName,
    Package,
    PackageName,
    ProgramEntityRow,
    Project,
    Token,
    TokenPosition,
    TypeName,
)
from identdb.store.tokenizer import IdentifierTokenizer


class TestOpening:
    """open and open_with_creation."""

    def test_open_missing_file_fails(self, temp_dir: Path) -> None:
        with pytest.raises(StoreError) as exc_info:
            EntityStore.open(temp_dir / "missing.db")

        assert exc_info.value.code == ErrorCode.STORE_NOT_FOUND

    def test_open_with_creation_creates_parent_dirs(self, temp_dir: Path) -> None:
        path = temp_dir / "nested" / "dir" / "entities.db"

        with EntityStore.open_with_creation(path) as store:
            assert not store.read_only

        assert path.is_file()

    def test_open_non_store_file_fails(self, temp_dir: Path) -> None:
        path = temp_dir / "garbage.db"
        path.write_text("this is not a database")

        with pytest.raises(StoreError) as exc_info:
            EntityStore.open(path)

        assert exc_info.value.code == ErrorCode.STORE_OPEN_FAILED

    def test_open_read_only_rejects_store(self, store: EntityStore, store_path: Path, make_raw):
        # Given an existing store
        store.store(make_raw())

        # When
        with EntityStore.open(store_path) as reader_store:
            # Then
            assert reader_store.read_only
            with pytest.raises(StoreError) as exc_info:
                reader_store.store(make_raw())
            assert exc_info.value.code == ErrorCode.STORE_READ_ONLY
            assert reader_store.reader.project_list() == ["demo 1.0"]


class TestProject:
    def test_set_project_binds_run_id(self, store: EntityStore) -> None:
        run_id = store.set_project("other", "2.0")

        assert store.project == ("other", "2.0")
        assert get_run_id() == run_id


class TestTokenizerOptions:
    def test_options_apply_to_later_names(self, store: EntityStore, make_raw) -> None:
        # Given
        store.set_tokenizer_options(recursive_split=True, modal_expansion=True)

        # When
        store.store(make_raw(identifier_name="cantDecodeBase64"))

        # Then
        assert store.reader.tokens_for("cantDecodeBase64") == [
            "can",
            "not",
            "decode",
            "base",
            "64",
        ]

    def test_options_from_config(self, temp_dir: Path, make_raw) -> None:
        config = IdentDbConfig(tokenizer=TokenizerConfig(recursive_split=True))

        with EntityStore.open_with_creation(temp_dir / "e.db", config=config) as store:
            store.set_project("demo", "1.0")
            store.store(make_raw(identifier_name="utf8Name"))
            assert store.reader.tokens_for("utf8Name") == ["utf", "8", "name"]

    def test_options_replace_custom_tokenizer(self, temp_dir: Path, make_raw) -> None:
        """A tokenizer given at open time is swapped for the default one."""

        class _WholeName:
            def tokenize(self, name: str) -> list[str]:
                return [name]

        with EntityStore.open_with_creation(temp_dir / "e.db", tokenizer=_WholeName()) as store:
            store.set_project("demo", "1.0")
            store.store(make_raw(identifier_name="maxValue"))

            store.set_tokenizer_options(recursive_split=False, modal_expansion=False)
            store.store(make_raw(identifier_name="minValue"))

            assert isinstance(store.tokenizer, IdentifierTokenizer)
            assert store.reader.tokens_for("maxValue") == ["maxvalue"]
            assert store.reader.tokens_for("minValue") == ["min", "value"]


class TestLoggingLevel:
    def test_set_logging_level(self, store: EntityStore) -> None:
        root = logging.getLogger()
        previous = root.level
        try:
            store.set_logging_level("warning")
            assert root.level == logging.WARNING
        finally:
            store.set_logging_level(logging.getLevelName(previous))


class TestShutdown:
    """Shutdown is idempotent and final."""

    def test_shutdown_twice(self, store: EntityStore) -> None:
        store.shutdown()
        store.shutdown()

        assert store.closed

    def test_store_after_shutdown_fails(self, store: EntityStore, make_raw) -> None:
        store.shutdown()

        with pytest.raises(StoreError) as exc_info:
            store.store(make_raw())

        assert exc_info.value.code == ErrorCode.STORE_CLOSED

    def test_reader_after_shutdown_fails(self, store: EntityStore) -> None:
        store.shutdown()

        with pytest.raises(StoreError):
            _ = store.reader

    def test_context_manager_shuts_down(self, temp_dir: Path) -> None:
        with EntityStore.open_with_creation(temp_dir / "ctx.db") as store:
            pass

        assert store.closed


class TestWritePolicyFromConfig:
    def test_best_effort_store_returns_key(self, temp_dir: Path, make_raw) -> None:
        config = IdentDbConfig(store=StoreConfig(write_policy="best_effort"))

        with EntityStore.open_with_creation(temp_dir / "b.db", config=config) as store:
            store.set_project("demo", "1.0")
            key = store.store(make_raw(species=Species.METHOD, method_signature="()"))

            assert key is not None
            assert store.reader.entities_by_species(Species.METHOD)[0].method_signature == "()"


def _count(store: EntityStore, model: Any, *criteria: Any) -> int:
    with store.db.session() as session:
        return session.exec(select(func.count()).select_from(model).where(*criteria)).one()


_SHARED_NAMES = ("maxValue", "minValue", "getName", "setName")


class TestConcurrentWrites:
    """Each dictionary value gets one row however many writers intern it."""

    def test_threads_on_one_store(self, store: EntityStore, make_raw) -> None:
        errors: list[str] = []

        def worker(i: int) -> None:
            try:
                for n, name in enumerate(_SHARED_NAMES):
                    store.store(
                        make_raw(
                            name,
                            entity_uid=f"{i}-{n}",
                            type_name="java.util.List",
                            package_name=f"org.p{n % 2}",
                        )
                    )
            except Exception as e:
                errors.append(f"Worker {i}: {e}")

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors, f"Thread errors: {errors}"
        assert _count(store, ProgramEntityRow) == 8 * len(_SHARED_NAMES)
        for name in _SHARED_NAMES:
            assert _count(store, IdentifierName, IdentifierName.identifier_name == name) == 1
        assert _count(store, Token, Token.token == "value") == 1
        assert _count(store, Token, Token.token == "name") == 1
        assert _count(store, TypeName) == 1
        assert _count(store, PackageName) == 2
        assert _count(store, Package) == 2

    def test_two_stores_on_one_file(self, temp_dir: Path, make_raw) -> None:
        """A value interned by one store is reused, not duplicated, by the other."""
        # Given
        path = temp_dir / "shared.db"
        with (
            EntityStore.open_with_creation(path) as first,
            EntityStore.open_with_creation(path) as second,
        ):
            first.set_project("p", "1.0")
            second.set_project("q", "1.0")

            # When
            first.store(make_raw("Base", species=Species.CLASS, type_name="org.example.Base"))
            second.store(
                make_raw(
                    "Child",
                    species=Species.CLASS,
                    type_name="org.example.Child",
                    super_classes=("org.example.Base",),
                )
            )
            second.set_project("p", "1.0")
            second.store(make_raw("counter"))

        # Then
        with EntityStore.open(path) as reopened:
            base_key = reopened.dictionaries.identifier_names.key_for("Base")
            assert _count(reopened, IdentifierName, IdentifierName.identifier_name == "Base") == 1
            assert _count(reopened, TypeName, TypeName.type_name == "org.example.Base") == 1
            assert _count(reopened, PackageName) == 1
            assert _count(reopened, FileName) == 1
            assert _count(reopened, Project) == 2
            assert (
                _count(reopened, TokenPosition, TokenPosition.identifier_name_key_fk == base_key)
                == 1
            )
            assert reopened.reader.tokens_for("Base") == ["base"]

    def test_threads_on_two_stores(self, temp_dir: Path, make_raw) -> None:
        path = temp_dir / "shared.db"
        stores = [EntityStore.open_with_creation(path) for _ in range(2)]
        errors: list[str] = []

        def worker(i: int) -> None:
            try:
                stores[i].set_project("demo", "1.0")
                for n, name in enumerate(_SHARED_NAMES):
                    stores[i].store(make_raw(name, entity_uid=f"{i}-{n}"))
            except Exception as e:
                errors.append(f"Worker {i}: {e}")

        try:
            threads = [threading.Thread(target=worker, args=(i,)) for i in range(2)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert not errors, f"Thread errors: {errors}"
            check = stores[0]
            assert _count(check, ProgramEntityRow) == 2 * len(_SHARED_NAMES)
            assert _count(check, IdentifierName) == len(_SHARED_NAMES) + 1
            assert _count(check, Token, Token.token == "value") == 1
            assert _count(check, Project) == 1
        finally:
            for entity_store in stores:
                entity_store.shutdown()
