"""Shared fixtures for store tests."""

from __future__ import annotations

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from identdb.store import EntityStore, RawProgramEntity


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store_path(temp_dir: Path) -> Path:
    return temp_dir / "entities.db"


@pytest.fixture
def store(store_path: Path) -> Generator[EntityStore, None, None]:
    """Writable store with project 'demo 1.0' set."""
    from identdb.config.models import IdentDbConfig, SamplerConfig
    from identdb.store import EntityStore

    config = IdentDbConfig(sampler=SamplerConfig(seed=7))
    entity_store = EntityStore.open_with_creation(store_path, config=config)
    entity_store.set_project("demo", "1.0")
    yield entity_store
    entity_store.shutdown()


@pytest.fixture
def make_raw() -> Callable[..., RawProgramEntity]:
    """Factory for raw entities with sensible defaults.

    ``type_name`` and super lists accept plain strings (``"a.b.C"`` or ``"C"``).
    """
    from identdb.store import RawProgramEntity, RawTypeName, Species
    from identdb.store.raw import SourceSpan

    def _make(
        identifier_name: str = "counter",
        species: Species = Species.FIELD,
        type_name: str = "int",
        package_name: str = "org.example",
        file_name: str = "src/org/example/Widget.java",
        super_classes: tuple[str, ...] = (),
        super_types: tuple[str, ...] = (),
        **kwargs: Any,
    ) -> RawProgramEntity:
        return RawProgramEntity(
            file_name=file_name,
            package_name=package_name,
            container_uid=kwargs.pop("container_uid", "c0ffee"),
            entity_uid=kwargs.pop("entity_uid", f"uid-{identifier_name}"),
            identifier_name=identifier_name,
            species=species,
            type_name=RawTypeName.parse(type_name),
            super_classes=tuple(RawTypeName.parse(t) for t in super_classes),
            super_types=tuple(RawTypeName.parse(t) for t in super_types),
            span=kwargs.pop("span", SourceSpan(3, 5, 3, 20)),
            **kwargs,
        )

    return _make
