"""Per-engine cache over the dice-notation compiler."""

from __future__ import annotations

import logging
from typing import Optional

from .data import COMPILER_CACHE_LIMIT
from .dice import CompiledExpression, parse

logger = logging.getLogger(__name__)


class ExpressionCompiler:
    """Compile expression text once and hand back the cached tree afterwards.

    Compiled trees are immutable; expressions that reference variables are
    bound per trial at evaluation time, so one entry serves every trial.
    """

    def __init__(self, max_entries: int = COMPILER_CACHE_LIMIT) -> None:
        self._cache: dict[str, CompiledExpression] = {}
        self._max_entries = max_entries
        self.hits = 0
        self.misses = 0

    def compile(self, text: str) -> CompiledExpression:
        key = text.strip() if isinstance(text, str) else text
        cached = self._cache.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        compiled = parse(text)
        self.misses += 1
        if len(self._cache) >= self._max_entries:
            logger.debug("Expression cache full (%d entries); clearing", len(self._cache))
            self._cache.clear()
        self._cache[key] = compiled
        logger.debug("Compiled expression %r (variables: %s)", key, sorted(compiled.variables))
        return compiled

    def compile_optional(self, text: Optional[str]) -> Optional[CompiledExpression]:
        """Compile ``text`` unless the field is absent or blank."""

        if text is None or not text.strip():
            return None
        return self.compile(text)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, text: str) -> bool:
        return text.strip() in self._cache
