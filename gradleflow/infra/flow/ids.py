# gradleflow/infra/flow/ids.py
"""
Identifier generation for nodes, groups and variables.

Generators are created explicitly and passed to whoever needs fresh ids, so
two graphs (or two tests) never share a counter.
"""
from __future__ import annotations

import itertools
import uuid
from typing import Iterable, Optional, Set


class IdGenerator:
    """
    Produces ids that are never reused by this generator.

    Sequential mode yields ``"{prefix}_{n}"``; random mode yields
    ``"{prefix}_{uuid hex}"``. Ids passed through ``reserve`` (for example the
    ids of a loaded graph) are skipped.

    Example:
        ```python
        ids = IdGenerator()
        ids.next("task")   # "task_1"
        ids.next("task")   # "task_2"
        ```
    """

    def __init__(self, start: int = 1, random: bool = False, reserved: Optional[Iterable[str]] = None):
        self._counter = itertools.count(start)
        self._random = random
        self._issued: Set[str] = set(reserved or ())

    def reserve(self, ids: Iterable[str]) -> None:
        self._issued.update(ids)

    def next(self, prefix: str = "id") -> str:
        """
        Issue a fresh id.

        Args:
            prefix: Prefix for the id (e.g. "task", "group", "var")

        Returns:
            An id not previously issued or reserved
        """
        while True:
            if self._random:
                candidate = f"{prefix}_{uuid.uuid4().hex}"
            else:
                candidate = f"{prefix}_{next(self._counter)}"
            if candidate not in self._issued:
                self._issued.add(candidate)
                return candidate

    def unique(self, preferred: str) -> str:
        """
        Issue ``preferred`` itself if free, otherwise ``preferred_2``, ``preferred_3``...

        Args:
            preferred: Desired id

        Returns:
            The preferred id or a suffixed variant
        """
        candidate = preferred
        suffix = 2
        while candidate in self._issued:
            candidate = f"{preferred}_{suffix}"
            suffix += 1
        self._issued.add(candidate)
        return candidate
