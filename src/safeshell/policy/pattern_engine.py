"""Regex pattern engine used by every validator.

Provides RE2-compatible pattern matching with graceful fallback to the
standard library ``re`` module when ``google-re2`` is not installed.

Guarantees:
* Patterns are compiled once and cached.
* Matching is case-sensitive unless the caller asks otherwise; case
  folding is expressed with the inline ``(?i)`` flag so both engines
  honour it.
* Policy rules are evaluated in one pass under a wall-clock timeout.  A
  timed-out evaluation counts as a match (fail-closed).
* Caller-supplied patterns (grep, find, env filters) are compiled with the
  ``regex`` package and searched under a deadline enforced inside the
  matcher, so a backtracking pattern cannot stall the gateway.
"""
from __future__ import annotations

import re
import threading
import time
from collections.abc import Sequence
from functools import lru_cache
from typing import Any

import regex

from safeshell.core.errors import ExecutionTimeout

# ---------------------------------------------------------------------------
# Attempt to import google-re2; fall back to ``re`` if unavailable
# ---------------------------------------------------------------------------

_RE2_AVAILABLE = False
_re2_module: Any = None

try:
    import re2 as _re2_module  # type: ignore[no-redef]

    _RE2_AVAILABLE = True
except ImportError:
    pass

# Exceptions raised for a syntactically invalid pattern.
PATTERN_ERRORS: tuple[type[Exception], ...] = (re.error, regex.error)
if _RE2_AVAILABLE:
    PATTERN_ERRORS += (_re2_module.error,)


# ---------------------------------------------------------------------------
# Compiled pattern caches (module-level)
# ---------------------------------------------------------------------------

@lru_cache(maxsize=512)
def _compile_pattern(pattern: str, use_re2: bool) -> Any:
    """Compile and cache a regex pattern.

    Raises
    ------
    re.error
        If the pattern is syntactically invalid.
    """
    if use_re2 and _RE2_AVAILABLE:
        return _re2_module.compile(pattern)
    return re.compile(pattern)


@lru_cache(maxsize=128)
def _compile_bounded(pattern: str) -> Any:
    return regex.compile(pattern)


# ---------------------------------------------------------------------------
# BoundedPattern
# ---------------------------------------------------------------------------

class BoundedPattern:
    """A caller-supplied pattern searched under one shared deadline.

    The deadline starts when the pattern is created.  Every :meth:`search`
    is given the time left until it; once the time is spent the search
    raises :class:`~safeshell.core.errors.ExecutionTimeout`.
    """

    def __init__(self, pattern: str, timeout: float) -> None:
        self.pattern = pattern
        self.timeout = timeout
        self._compiled = _compile_bounded(pattern)
        self._deadline = time.monotonic() + timeout

    def search(self, text: str) -> Any:
        """Return the first match of the pattern in *text*, or ``None``."""
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise self._expired()
        try:
            return self._compiled.search(text, timeout=remaining)
        except TimeoutError as exc:
            raise self._expired() from exc

    def _expired(self) -> ExecutionTimeout:
        return ExecutionTimeout(
            f"Pattern search exceeded timeout of {self.timeout:g}s",
            details={"pattern": self.pattern, "timeout": self.timeout},
        )


# ---------------------------------------------------------------------------
# PatternEngine
# ---------------------------------------------------------------------------

class PatternEngine:
    """RE2-compatible pattern matching engine with timeout support.

    Parameters
    ----------
    timeout_ms:
        Maximum wall-clock time in milliseconds for one evaluation of a
        rule set.
    prefer_re2:
        If ``True`` (the default), use ``google-re2`` when available.
    """

    def __init__(
        self,
        timeout_ms: float = 100.0,
        prefer_re2: bool = True,
    ) -> None:
        self._timeout_s = timeout_ms / 1000.0
        self._use_re2 = prefer_re2 and _RE2_AVAILABLE

    @property
    def engine_name(self) -> str:
        """Return the name of the active regex engine."""
        return "google-re2" if self._use_re2 else "re (stdlib)"

    @property
    def errors(self) -> tuple[type[Exception], ...]:
        """Exception types raised by :meth:`compile` for an invalid pattern."""
        return PATTERN_ERRORS

    # -- compilation --------------------------------------------------------

    def compile(self, pattern: str, *, ignore_case: bool = False) -> Any:
        """Compile *pattern* with the active engine.

        Raises ``re.error`` (or ``re2.error``) if the pattern is invalid.
        """
        if ignore_case:
            pattern = "(?i)" + pattern
        return _compile_pattern(pattern, self._use_re2)

    @staticmethod
    def bounded(pattern: str, *, timeout: float) -> BoundedPattern:
        """Compile a caller-supplied *pattern* searched under *timeout* seconds.

        Raises ``regex.error`` if the pattern is invalid.
        """
        return BoundedPattern(pattern, timeout)

    # -- matching -----------------------------------------------------------

    def match(self, pattern: str, text: str, *, ignore_case: bool = False) -> bool:
        """Return ``True`` if *pattern* matches anywhere in *text*.

        On timeout, returns ``True`` (fail-closed).
        """
        return self.first_match([pattern], text, ignore_case=ignore_case) is not None

    def first_match(
        self,
        patterns: Sequence[str],
        text: str,
        *,
        ignore_case: bool = False,
    ) -> int | None:
        """Return the index of the first of *patterns* matching *text*.

        All patterns are tried in one pass under a single timeout.  On
        timeout the index of the pattern being evaluated is returned
        (fail-closed).  Returns ``None`` when none matches.
        """
        if not patterns:
            return None
        compiled = [self.compile(pattern, ignore_case=ignore_case) for pattern in patterns]
        cursor = [0]

        def _scan() -> bool:
            for index, candidate in enumerate(compiled):
                cursor[0] = index
                if candidate.search(text) is not None:
                    return True
            return False

        return cursor[0] if self._run_with_timeout(_scan) else None

    # -- internal timeout helper --------------------------------------------

    def _run_with_timeout(self, fn: Any) -> bool:
        """Execute *fn* with a wall-clock timeout.

        Returns ``True`` if the function times out (fail-closed).
        """
        result_box: list[bool] = [True]
        exception_box: list[BaseException | None] = [None]

        def _worker() -> None:
            try:
                result_box[0] = fn()
            except Exception as exc:
                exception_box[0] = exc

        thread = threading.Thread(target=_worker, daemon=True)
        thread.start()
        thread.join(timeout=self._timeout_s)

        if thread.is_alive():
            return True

        if exception_box[0] is not None:
            raise exception_box[0]

        return result_box[0]

    # -- cache management ---------------------------------------------------

    @staticmethod
    def clear_cache() -> None:
        _compile_pattern.cache_clear()

    @staticmethod
    def cache_info() -> Any:
        return _compile_pattern.cache_info()
