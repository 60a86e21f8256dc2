"""SQLModel definitions for the normalized entity store.

Single source of truth for all table schemas.

Layout:
- Dictionary tables: one per interned category (identifier names, tokens,
  type names, method signatures, species, modifiers, package names, files).
  Each holds (surrogate key, value) and is mirrored in memory by a
  DictionaryCache.
- Projects and packages: packages are scoped to (project, package name).
- program_entities: the central fact table, one row per stored declaration.
- Edge tables: modifiers, super classes, super types and ordered token
  positions.
"""

from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

# ============================================================================
# ENUMS
# ============================================================================


class Species(str, Enum):
    """Category of a declared program entity.

    Values are the descriptions persisted in the species table. Enum order
    is the order in which rows are created, so new members go at the end.
    """

    ANNOTATION = "annotation"
    ANNOTATION_MEMBER = "annotation member"
    CLASS = "class"
    CONSTRUCTOR = "constructor"
    ENUM = "enum"
    ENUM_CONSTANT = "enum constant"
    FIELD = "field"
    FORMAL_ARGUMENT = "formal argument"
    LAMBDA_ARGUMENT = "lambda argument"
    INTERFACE = "interface"
    LABEL = "label"
    LOCAL_VARIABLE = "local variable"
    METHOD = "method"
    TYPE_PARAMETER = "type parameter"

    @property
    def description(self) -> str:
        return self.value

    @property
    def is_class_or_interface(self) -> bool:
        return self in (Species.CLASS, Species.INTERFACE)

    @property
    def is_invokable(self) -> bool:
        """True for methods and constructors."""
        return self in (Species.METHOD, Species.CONSTRUCTOR)

    @classmethod
    def for_description(cls, description: str) -> "Species":
        """Look up a species by its stored description (or member name)."""
        try:
            return cls(description)
        except ValueError:
            return cls[description.upper().replace(" ", "_")]


class Modifier(str, Enum):
    """Declaration modifier. Values are the stored descriptions."""

    ABSTRACT = "abstract"
    DEFAULT = "default"
    FINAL = "final"
    NATIVE = "native"
    PRIVATE = "private"
    PROTECTED = "protected"
    PUBLIC = "public"
    STATIC = "static"
    STRICTFP = "strictfp"
    SYNCHRONIZED = "synchronized"
    TRANSIENT = "transient"
    VOLATILE = "volatile"

    @property
    def description(self) -> str:
        return self.value

    @classmethod
    def for_description(cls, description: str) -> "Modifier":
        try:
            return cls(description.lower())
        except ValueError:
            return cls[description.upper()]


class TypeGroup(str, Enum):
    """Coarse classification of a type name."""

    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    REFERENCE = "reference"
    STRING = "string"
    VOID = "void"

    @classmethod
    def classify(cls, type_name: str | None) -> "TypeGroup":
        """Classify a type name by its spelling. Unknown names are references."""
        if type_name is None:
            return cls.REFERENCE
        return _TYPE_GROUPS.get(type_name, cls.REFERENCE)


_TYPE_GROUPS: dict[str, TypeGroup] = {
    "boolean": TypeGroup.BOOLEAN,
    "Boolean": TypeGroup.BOOLEAN,
    "BigDecimal": TypeGroup.NUMERIC,
    "BigInteger": TypeGroup.NUMERIC,
    "double": TypeGroup.NUMERIC,
    "Double": TypeGroup.NUMERIC,
    "float": TypeGroup.NUMERIC,
    "Float": TypeGroup.NUMERIC,
    "int": TypeGroup.NUMERIC,
    "Integer": TypeGroup.NUMERIC,
    "long": TypeGroup.NUMERIC,
    "Long": TypeGroup.NUMERIC,
    "short": TypeGroup.NUMERIC,
    "Short": TypeGroup.NUMERIC,
    "String": TypeGroup.STRING,
    "void": TypeGroup.VOID,
}


# ============================================================================
# DICTIONARY TABLES
# ============================================================================


class IdentifierName(SQLModel, table=True):
    """Interned identifier name."""

    __tablename__ = "identifier_names"

    identifier_name_key: int | None = Field(default=None, primary_key=True)
    identifier_name: str = Field(unique=True, index=True)


class Token(SQLModel, table=True):
    """Interned lower-case token (component word) of identifier names."""

    __tablename__ = "tokens"

    token_key: int | None = Field(default=None, primary_key=True)
    token: str = Field(unique=True, index=True)


class TypeName(SQLModel, table=True):
    """Interned type display name (FQN, or identifier name when there is none).

    Carries the key of the identifier name that names the type so that
    inheritance queries can walk from a type back to its simple name.
    """

    __tablename__ = "type_names"

    type_name_key: int | None = Field(default=None, primary_key=True)
    type_name: str = Field(unique=True, index=True)
    identifier_name_key_fk: int | None = Field(
        default=None, foreign_key="identifier_names.identifier_name_key", index=True
    )


class MethodSignature(SQLModel, table=True):
    __tablename__ = "method_signatures"

    method_signature_key: int | None = Field(default=None, primary_key=True)
    method_signature: str = Field(unique=True, index=True)


class SpeciesName(SQLModel, table=True):
    """Read-only table populated from Species at schema creation."""

    __tablename__ = "species"

    species_name_key: int | None = Field(default=None, primary_key=True)
    species_name: str = Field(unique=True)


class ModifierName(SQLModel, table=True):
    """Read-only table populated from Modifier at schema creation."""

    __tablename__ = "modifiers"

    modifier_key: int | None = Field(default=None, primary_key=True)
    modifier: str = Field(unique=True)


class PackageName(SQLModel, table=True):
    __tablename__ = "package_names"

    package_name_key: int | None = Field(default=None, primary_key=True)
    package_name: str = Field(unique=True, index=True)


class FileName(SQLModel, table=True):
    __tablename__ = "files"

    file_name_key: int | None = Field(default=None, primary_key=True)
    file_name: str = Field(unique=True, index=True)


# ============================================================================
# PROJECTS AND PACKAGES
# ============================================================================


class Project(SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("project_name", "project_version"),)

    project_key: int | None = Field(default=None, primary_key=True)
    project_name: str
    project_version: str


class Package(SQLModel, table=True):
    """A package name as it occurs in one project."""

    __tablename__ = "packages"
    __table_args__ = (UniqueConstraint("project_key_fk", "package_name_key_fk"),)

    package_key: int | None = Field(default=None, primary_key=True)
    package_name_key_fk: int = Field(foreign_key="package_names.package_name_key")
    project_key_fk: int = Field(foreign_key="projects.project_key", index=True)


# ============================================================================
# FACT TABLE
# ============================================================================


class ProgramEntityRow(SQLModel, table=True):
    """One stored declaration. Never updated, never deleted."""

    __tablename__ = "program_entities"

    program_entity_key: int | None = Field(default=None, primary_key=True)
    project_key_fk: int = Field(foreign_key="projects.project_key", index=True)
    package_key_fk: int = Field(foreign_key="packages.package_key", index=True)
    identifier_name_key_fk: int = Field(
        foreign_key="identifier_names.identifier_name_key", index=True
    )
    container_uid: str | None = None
    entity_uid: str | None = None
    species_name_key_fk: int = Field(foreign_key="species.species_name_key", index=True)
    type_name_key_fk: int = Field(foreign_key="type_names.type_name_key")
    # No FK: 0 is recorded for species that are not invokable
    method_signature_key_fk: int = Field(default=0)
    is_anonymous: bool = False
    file_name_key_fk: int = Field(foreign_key="files.file_name_key")
    is_array: bool = False
    is_loop_control_var: bool = False
    start_line_number: int | None = None
    start_column: int | None = None
    end_line_number: int | None = None
    end_column: int | None = None


# ============================================================================
# EDGE TABLES
# ============================================================================


class TokenPosition(SQLModel, table=True):
    """Token at a 1-based position of an identifier name."""

    __tablename__ = "token_positions"

    id: int | None = Field(default=None, primary_key=True)
    token_key_fk: int = Field(foreign_key="tokens.token_key")
    identifier_name_key_fk: int = Field(
        foreign_key="identifier_names.identifier_name_key", index=True
    )
    position: int


class ModifierXref(SQLModel, table=True):
    __tablename__ = "modifier_xrefs"

    id: int | None = Field(default=None, primary_key=True)
    modifier_key_fk: int = Field(foreign_key="modifiers.modifier_key")
    program_entity_key_fk: int = Field(
        foreign_key="program_entities.program_entity_key", index=True
    )


class SuperClassXref(SQLModel, table=True):
    __tablename__ = "super_class_xrefs"

    id: int | None = Field(default=None, primary_key=True)
    sub_class_entity_key_fk: int = Field(
        foreign_key="program_entities.program_entity_key", index=True
    )
    super_class_name_key_fk: int = Field(foreign_key="type_names.type_name_key", index=True)


class SuperTypeXref(SQLModel, table=True):
    __tablename__ = "super_type_xrefs"

    id: int | None = Field(default=None, primary_key=True)
    sub_type_entity_key_fk: int = Field(
        foreign_key="program_entities.program_entity_key", index=True
    )
    super_type_name_key_fk: int = Field(foreign_key="type_names.type_name_key", index=True)
