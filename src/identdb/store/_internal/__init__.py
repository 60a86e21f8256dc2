"""Internal persistence and interning machinery. Not part of the public API."""
