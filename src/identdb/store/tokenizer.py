"""Default identifier-name tokenizer.

The store treats tokenization as pluggable: anything implementing the
Tokenizer protocol can be handed to EntityStore. Tokens are returned in
left-to-right order; the writer lower-cases and interns them.
"""

from __future__ import annotations

import re
from typing import Protocol

# Contractions as they appear once an identifier name is tokenized.
CONTRACTIONS: dict[str, tuple[str, str]] = {
    "arent": ("are", "not"),
    "cant": ("can", "not"),
    "couldnt": ("could", "not"),
    "didnt": ("did", "not"),
    "doesnt": ("does", "not"),
    "dont": ("do", "not"),
    "hadnt": ("had", "not"),
    "hasnt": ("has", "not"),
    "havent": ("have", "not"),
    "isnt": ("is", "not"),
    "mustnt": ("must", "not"),
    "neednt": ("need", "not"),
    "shant": ("shall", "not"),
    "shouldnt": ("should", "not"),
    "wasnt": ("was", "not"),
    "werent": ("were", "not"),
    "wont": ("will", "not"),
    "wouldnt": ("would", "not"),
}

# Separators: underscores, dollars and anything else that is not alphanumeric
_SEPARATORS = re.compile(r"[^A-Za-z0-9]+")
# Camel-case words with trailing digits, acronyms ending before a capitalized word
_CAMEL_SPLIT = re.compile(
    r"[A-Z]?[a-z]+[0-9]*|[A-Z]+[0-9]*(?=[A-Z][a-z]|$)|[A-Z]+[0-9]*|[0-9]+"
)
_ALPHA_DIGIT_SPLIT = re.compile(r"[A-Za-z]+|[0-9]+")


class Tokenizer(Protocol):
    def tokenize(self, name: str) -> list[str]: ...


class IdentifierTokenizer:
    """Split identifier names into lower-case words.

    Handles camelCase, PascalCase, snake_case, acronyms and ``$``.
    Example: ``getHTTPServer_md5`` -> ``["get", "http", "server", "md5"]``

    Args:
        recursive_split: Also separate digit runs from letters
            (``md5`` -> ``md``, ``5``).
        modal_expansion: Expand contractions (``cant`` -> ``can``, ``not``).
    """

    def __init__(self, recursive_split: bool = False, modal_expansion: bool = False) -> None:
        self.recursive_split = recursive_split
        self.modal_expansion = modal_expansion

    def tokenize(self, name: str) -> list[str]:
        words: list[str] = []
        for part in _SEPARATORS.split(name):
            if not part:
                continue
            words.extend(w.lower() for w in _CAMEL_SPLIT.findall(part))

        if self.recursive_split:
            words = [piece for w in words for piece in _ALPHA_DIGIT_SPLIT.findall(w)]
        if self.modal_expansion:
            words = [piece for w in words for piece in CONTRACTIONS.get(w, (w,))]
        return words

    def __repr__(self) -> str:
        return (
            f"IdentifierTokenizer(recursive_split={self.recursive_split}, "
            f"modal_expansion={self.modal_expansion})"
        )
