"""Store module - normalized storage of program entities.

This module provides:
- Interning: bijective string <-> key dictionaries per category
- Writer: raw entity descriptions -> fact rows and edges
- Reader: rows -> species-shaped ProgramEntity values, lexical
  subclass/subtype discovery, bounded random name sampling

Public API is in `identdb.store.ops`:
- EntityStore: open/create, set project, store, read, shutdown

Internal implementations are in `identdb.store._internal/`.
"""

from identdb.store.entities import EntityShape, Inheritance, Invocation, ProgramEntity
from identdb.store.models import Modifier, Species, TypeGroup
from identdb.store.ops import EntityStore
from identdb.store.raw import RawProgramEntity, RawTypeName, SourceSpan
from identdb.store.reader import EntityReader
from identdb.store.sampler import sample_names, sample_tokenised_names
from identdb.store.tokenizer import IdentifierTokenizer, Tokenizer
from identdb.store.writer import EntityWriter

__all__ = [
    # Lifecycle
    "EntityStore",
    "EntityReader",
    "EntityWriter",
    # Ingest
    "RawProgramEntity",
    "RawTypeName",
    "SourceSpan",
    # Entities
    "EntityShape",
    "Inheritance",
    "Invocation",
    "ProgramEntity",
    # Enums
    "Modifier",
    "Species",
    "TypeGroup",
    # Tokenizing and sampling
    "IdentifierTokenizer",
    "Tokenizer",
    "sample_names",
    "sample_tokenised_names",
]
