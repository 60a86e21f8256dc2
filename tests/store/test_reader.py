"""Tests for the entity reader (reconstructor)."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from identdb.store import (
    EntityShape,
    EntityStore,
    Inheritance,
    Invocation,
    Modifier,
    Species,
    TypeGroup,
)
from identdb.store.models import IdentifierName, Token, TokenPosition
from identdb.store.raw import SourceSpan


class TestRoundTrip:
    """Stored entities come back with the same data."""

    def test_field_round_trip(self, store: EntityStore, make_raw: Callable[..., Any]) -> None:
        # Given
        raw = make_raw(
            "maxRetryCount",
            type_name="int",
            modifiers=(Modifier.PRIVATE, Modifier.STATIC),
            is_array=True,
            span=SourceSpan(10, 4, 10, 30),
        )

        # When
        key = store.store(raw)
        [entity] = store.reader.entities_for("demo 1.0")

        # Then
        assert entity.key == key
        assert entity.project_name == "demo"
        assert entity.project_version == "1.0"
        assert entity.identifier_name == "maxRetryCount"
        assert entity.package_name == "org.example"
        assert entity.fqn == "org.example.maxRetryCount"
        assert entity.tokens == ["max", "retry", "count"]
        assert entity.modifiers == [Modifier.PRIVATE, Modifier.STATIC]
        assert entity.species is Species.FIELD
        assert entity.type_name == "int"
        assert entity.is_array is True
        assert entity.is_loop_control_variable is False
        assert entity.file_name == "src/org/example/Widget.java"
        assert (entity.start_line, entity.start_column, entity.end_line, entity.end_column) == (
            10,
            4,
            10,
            30,
        )
        assert entity.container_uid == "c0ffee"
        assert entity.entity_uid == "uid-maxRetryCount"

    def test_entities_for_accepts_separate_version(
        self, store: EntityStore, make_raw: Callable[..., Any]
    ) -> None:
        store.store(make_raw("counter"))

        assert len(store.reader.entities_for("demo", "1.0")) == 1
        assert store.reader.entities_for("demo", "9.9") == []


class TestShapeDispatch:
    """Entity shape follows the species."""

    def test_class_is_inheritable(self, store: EntityStore, make_raw: Callable[..., Any]) -> None:
        store.store(
            make_raw(
                "ArrayStack",
                species=Species.CLASS,
                type_name="org.example.ArrayStack",
                super_classes=("java.util.AbstractList",),
                super_types=("java.util.Deque", "RandomAccess"),
            )
        )

        [entity] = store.reader.all_class_names_for("demo 1.0")

        assert entity.shape is EntityShape.INHERITABLE
        assert isinstance(entity.detail, Inheritance)
        assert entity.super_classes == {"AbstractList": ["abstract", "list"]}
        assert entity.super_types == {"Deque": ["deque"], "RandomAccess": ["random", "access"]}
        assert entity.method_signature is None

    def test_method_is_invokable(self, store: EntityStore, make_raw: Callable[..., Any]) -> None:
        store.store(
            make_raw(
                "putIfAbsent",
                species=Species.METHOD,
                type_name="V",
                method_signature="(K;V;)",
            )
        )

        [entity] = store.reader.entities_by_species(Species.METHOD)

        assert entity.shape is EntityShape.INVOKABLE
        assert entity.detail == Invocation(signature="(K;V;)")
        assert entity.detail.argument_count == 2
        assert entity.super_classes == {}

    def test_field_is_plain(self, store: EntityStore, make_raw: Callable[..., Any]) -> None:
        store.store(make_raw("size"))

        [entity] = store.reader.all_field_names_for("demo 1.0")

        assert entity.shape is EntityShape.PLAIN
        assert entity.detail is None

    def test_interface_without_supers_has_empty_maps(
        self, store: EntityStore, make_raw: Callable[..., Any]
    ) -> None:
        store.store(make_raw("Visitor", species=Species.INTERFACE, type_name="Visitor"))

        [entity] = store.reader.all_classes_and_interfaces_for("demo 1.0")

        assert entity.detail == Inheritance()


class TestTokens:
    """tokens_for re-sorts stored positions."""

    def test_tokens_in_left_to_right_order(
        self, store: EntityStore, make_raw: Callable[..., Any]
    ) -> None:
        store.store(make_raw("getUserAccountById"))

        expected = ["get", "user", "account", "by", "id"]
        assert store.reader.tokens_for("getUserAccountById") == expected

    def test_unknown_name_returns_none(self, store: EntityStore) -> None:
        assert store.reader.tokens_for("neverStored") is None

    def test_positions_stored_out_of_order(self, store: EntityStore, store_path: Path) -> None:
        """Rows inserted in reverse position order still read back in order."""
        # Given
        with store.db.session() as session:
            name = IdentifierName(identifier_name="zetaAlphaMid")
            session.add(name)
            session.flush()
            for position, word in [(3, "mid"), (1, "zeta"), (2, "alpha")]:
                token = Token(token=word)
                session.add(token)
                session.flush()
                session.add(
                    TokenPosition(
                        token_key_fk=token.token_key,
                        identifier_name_key_fk=name.identifier_name_key,
                        position=position,
                    )
                )
            session.commit()

        # When
        with EntityStore.open(store_path) as reopened:
            tokens = reopened.reader.tokens_for("zetaAlphaMid")

        # Then
        assert tokens == ["zeta", "alpha", "mid"]


class TestSubclassDiscovery:
    """Lexical subclass and subtype lookups."""

    def test_child_found_for_base(self, store: EntityStore, make_raw: Callable[..., Any]) -> None:
        # Given
        store.store(make_raw("Base", species=Species.CLASS, type_name="org.example.Base"))
        store.store(
            make_raw(
                "Child",
                species=Species.CLASS,
                type_name="org.example.Child",
                super_classes=("org.example.Base",),
            )
        )

        # When
        subclasses = store.reader.sub_classes_for("Base")

        # Then
        assert [e.identifier_name for e in subclasses] == ["Child"]
        assert subclasses[0].shape is EntityShape.INHERITABLE

    def test_unrelated_base_with_same_name_also_matches(
        self, store: EntityStore, make_raw: Callable[..., Any]
    ) -> None:
        """Matching is by simple name, so both hierarchies are returned."""
        store.store(make_raw("Base", species=Species.CLASS, type_name="org.example.Base"))
        store.store(
            make_raw("Child", species=Species.CLASS, type_name="org.example.Child",
                     super_classes=("org.example.Base",))
        )
        store.store(
            make_raw("Base", species=Species.CLASS, type_name="org.other.Base",
                     package_name="org.other")
        )
        store.store(
            make_raw("Stranger", species=Species.CLASS, type_name="org.other.Stranger",
                     package_name="org.other", super_classes=("org.other.Base",))
        )

        names = sorted(e.identifier_name for e in store.reader.sub_classes_for("Base"))

        assert names == ["Child", "Stranger"]

    def test_sub_types(self, store: EntityStore, make_raw: Callable[..., Any]) -> None:
        store.store(
            make_raw("FileWalker", species=Species.CLASS, type_name="FileWalker",
                     super_types=("java.lang.Runnable",))
        )

        assert [e.identifier_name for e in store.reader.sub_types_for("Runnable")] == ["FileWalker"]
        assert store.reader.sub_classes_for("Runnable") == []

    def test_unknown_name_returns_empty(self, store: EntityStore) -> None:
        assert store.reader.sub_classes_for("Nothing") == []
        assert store.reader.sub_types_for("Nothing") == []


class TestListings:
    """Project, package and name listings."""

    @pytest.fixture
    def populated(self, store: EntityStore, make_raw: Callable[..., Any]) -> EntityStore:
        store.store(make_raw("Widget", species=Species.CLASS, type_name="org.example.Widget"))
        store.store(
            make_raw("Gadget", species=Species.CLASS, type_name="org.example.util.Gadget",
                     package_name="org.example.util", modifiers=(Modifier.PUBLIC,))
        )
        store.store(make_raw("width", modifiers=(Modifier.PRIVATE,)))
        store.store(make_raw("height", modifiers=(Modifier.PRIVATE,)))
        store.store(make_raw("label", type_name="String", modifiers=(Modifier.PUBLIC,)))
        store.store(make_raw("visible", type_name="boolean"))
        store.store(
            make_raw("index", species=Species.LOCAL_VARIABLE, is_loop_control_variable=True)
        )
        store.store(make_raw("event", species=Species.FORMAL_ARGUMENT, type_name="Event"))
        return store

    def test_project_list(self, populated: EntityStore) -> None:
        assert populated.reader.project_list() == ["demo 1.0"]

    def test_package_names_for_project(self, populated: EntityStore) -> None:
        assert populated.reader.package_names_for_project("demo 1.0") == [
            "org.example",
            "org.example.util",
        ]
        assert populated.reader.package_names_for_project("missing 0") == []

    def test_class_names_for_package(self, populated: EntityStore) -> None:
        reader = populated.reader
        assert reader.class_names_for_package("demo 1.0", "org.example") == ["Widget"]
        assert reader.class_names_for_package("demo 1.0", "org.example.util") == ["Gadget"]
        assert reader.class_names_for_package("demo 1.0", "org.none") == []

    def test_identifier_names_filters(self, populated: EntityStore) -> None:
        reader = populated.reader
        assert "index" in reader.identifier_names_for("demo 1.0")
        assert reader.identifier_names_for("demo 1.0", species=Species.FIELD) == [
            "height",
            "label",
            "visible",
            "width",
        ]
        assert reader.identifier_names_for("demo 1.0", modifier=Modifier.PRIVATE) == [
            "height",
            "width",
        ]
        assert reader.identifier_names_for(
            "demo 1.0", species=Species.CLASS, modifier=Modifier.PUBLIC
        ) == ["Gadget"]

    def test_species_listings(self, populated: EntityStore) -> None:
        reader = populated.reader
        assert [e.identifier_name for e in reader.all_local_variable_names_for("demo 1.0")] == [
            "index"
        ]
        assert [e.identifier_name for e in reader.all_formal_argument_names_for("demo 1.0")] == [
            "event"
        ]
        assert reader.all_local_variable_names_for("demo 1.0")[0].is_loop_control_variable

    def test_entity_set_where_filters_type_group(self, populated: EntityStore) -> None:
        reader = populated.reader

        numeric = reader.entity_set_where(Species.FIELD, 10, TypeGroup.NUMERIC)
        strings = reader.entity_set_where(Species.FIELD, 10, TypeGroup.STRING)
        capped = reader.entity_set_where(Species.FIELD, 1, TypeGroup.NUMERIC)

        assert sorted(e.identifier_name for e in numeric) == ["height", "width"]
        assert [e.identifier_name for e in strings] == ["label"]
        assert len(capped) == 1

    def test_entity_set_where_unique_by_name(
        self, store: EntityStore, make_raw: Callable[..., Any]
    ) -> None:
        store.store(make_raw("count", entity_uid="one"))
        store.store(make_raw("count", entity_uid="two"))

        assert len(store.reader.entity_set_where(Species.FIELD, 10, TypeGroup.NUMERIC)) == 1

    def test_class_or_interface_for(self, populated: EntityStore) -> None:
        reader = populated.reader

        entity = reader.class_or_interface_for("demo 1.0", "org.example.util.Gadget")

        assert entity is not None
        assert entity.identifier_name == "Gadget"
        assert entity.package_name == "org.example.util"
        assert reader.class_or_interface_for("demo 1.0", "org.example.Gadget") is None
        assert reader.class_or_interface_for("demo 1.0", "org.example.width") is None

    def test_entity_candidates_for(self, populated: EntityStore) -> None:
        reader = populated.reader

        assert [e.package_name for e in reader.entity_candidates_for("Widget", Species.CLASS)] == [
            "org.example"
        ]
        assert reader.entity_candidates_for("Widget", Species.INTERFACE) == []

    def test_entity_candidates_rejects_other_species(self, populated: EntityStore) -> None:
        with pytest.raises(ValueError):
            populated.reader.entity_candidates_for("width", Species.FIELD)

    def test_per_entity_details(self, store: EntityStore, make_raw: Callable[..., Any]) -> None:
        key = store.store(
            make_raw("Panel", species=Species.CLASS, type_name="Panel",
                     modifiers=(Modifier.ABSTRACT,), super_classes=("Component",),
                     super_types=("Iterable", "Serializable"))
        )

        assert store.reader.modifiers_for(key) == [Modifier.ABSTRACT]
        assert store.reader.super_class_names_for(key) == ["Component"]
        assert sorted(store.reader.super_type_names_for(key)) == ["Iterable", "Serializable"]


class TestNameSampling:
    """name_set_for and tokenised_name_set_for."""

    @pytest.fixture
    def methods(self, store: EntityStore, make_raw: Callable[..., Any]) -> EntityStore:
        for name in ("run", "getName", "setName", "toString", "hashCode", "equals", "go"):
            store.store(make_raw(name, species=Species.METHOD, type_name="void"))
        return store

    def test_zero_count_returns_every_name(self, methods: EntityStore) -> None:
        names = methods.reader.name_set_for(Species.METHOD, 0, 0)

        expected = ["run", "getName", "setName", "toString", "hashCode", "equals", "go"]
        assert names == sorted(expected)

    def test_minimum_length_filters(self, methods: EntityStore) -> None:
        assert methods.reader.name_set_for(Species.METHOD, 0, 7) == [
            "getName",
            "hashCode",
            "setName",
            "toString",
        ]

    def test_sample_is_bounded_and_distinct(self, methods: EntityStore) -> None:
        names = methods.reader.name_set_for(Species.METHOD, 3, 0)

        assert len(names) == 3
        assert len(set(names)) == 3
        assert names == sorted(names)

    def test_project_scope(self, methods: EntityStore) -> None:
        assert methods.reader.name_set_for(Species.METHOD, 0, 0, project="other 1") == []
        assert len(methods.reader.name_set_for(Species.METHOD, 0, 0, project="demo 1.0")) == 7

    def test_tokenised_names_sorted_by_rendering(self, methods: EntityStore) -> None:
        rendered = methods.reader.tokenised_name_set_for(Species.METHOD, 0, 7)

        assert rendered == ["get name", "hash code", "set name", "to string"]


class TestGracefulDegradation:
    """Database errors on the read path yield empty results."""

    def test_missing_table_returns_empty(
        self, store: EntityStore, make_raw: Callable[..., Any]
    ) -> None:
        store.store(make_raw("counter"))
        store.db.execute_raw("DROP TABLE token_positions")

        assert store.reader.tokens_for("counter") is None
        assert store.reader.entities_for("demo 1.0") == []
        assert store.reader.project_list() == ["demo 1.0"]
