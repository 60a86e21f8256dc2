"""Configuration constants.

Values here are part of the stored data format and must NOT be
user-configurable. For configurable values, see models.py.
"""

NO_METHOD_SIGNATURE_KEY = 0
"""Method signature key recorded for species that are not invokable."""

ANONYMOUS = "#anonymous#"
"""Identifier name recorded for anonymous declarations."""

NO_TYPE = "#no type#"
"""Type name recorded for declarations without a type."""

SENTINEL_PREFIX = "#"
"""Identifier names with this prefix are placeholders and are never tokenized."""

PROJECT_SEPARATOR = " "
"""Separator between project name and version in project keys."""
