"""Bounded random name sampling for corpus extraction."""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable


def sample_names(
    candidates: Iterable[str],
    count: int,
    minimum_length: int = 0,
    rng: random.Random | None = None,
) -> list[str]:
    """Select up to ``count`` distinct names of at least ``minimum_length``.

    ``count == 0`` means "all". When the qualifying population is no larger
    than ``count`` the whole population is returned; otherwise exactly
    ``count`` names are drawn uniformly without replacement. The result is
    always sorted.
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")

    population = sorted({name for name in candidates if len(name) >= minimum_length})
    if count == 0 or len(population) <= count:
        return population

    rng = rng or random.Random()
    chosen: set[str] = set()
    # Terminates: count < len(population) was checked above
    while len(chosen) < count:
        chosen.add(population[rng.randrange(len(population))])
    return sorted(chosen)


def sample_tokenised_names(
    candidates: Iterable[str],
    count: int,
    minimum_length: int,
    tokens_for: Callable[[str], list[str] | None],
    rng: random.Random | None = None,
) -> list[str]:
    """Same selection as sample_names, rendered as space-joined tokens.

    Sorted by the rendered string, which can differ from name order.
    Names without stored tokens render as the name itself.
    """
    rendered = []
    for name in sample_names(candidates, count, minimum_length, rng):
        tokens = tokens_for(name)
        rendered.append(" ".join(tokens) if tokens else name)
    return sorted(rendered)
