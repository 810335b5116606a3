"""Pager selection and program image loading with fallbacks."""

import logging
import os
from typing import Callable, Iterable, List, Mapping, Sequence, Tuple

from digenv.common.errors import StageExecError

logger = logging.getLogger(__name__)

DEFAULT_PAGER_VARIABLE = "PAGER"
DEFAULT_FALLBACK_PAGERS = ("less", "more")


def pager_candidates(
    environ: Mapping[str, str],
    variable: str = DEFAULT_PAGER_VARIABLE,
    fallbacks: Iterable[str] = DEFAULT_FALLBACK_PAGERS,
) -> Tuple[str, ...]:
    """
    Return the pagers to try, in order.

    The pager named by ``variable`` comes first when it is set and non-empty,
    then each of ``fallbacks``. Repeated names are tried once.

    Args:
        environ: Environment to read the pager variable from
        variable: Name of the pager-selector variable
        fallbacks: Conventional pagers tried after the preferred one

    Returns:
        Ordered, de-duplicated tuple of program names
    """
    ordered: List[str] = []
    preferred = environ.get(variable, "").strip()
    if preferred:
        ordered.append(preferred)
    for name in fallbacks:
        if name not in ordered:
            ordered.append(name)
    return tuple(ordered)


def exec_first(
    candidates: Sequence[str],
    args: Sequence[str] = (),
    execvp: Callable[[str, List[str]], None] = os.execvp,
) -> None:
    """
    Replace the current process image with the first loadable candidate.

    Only returns by raising: a successful ``execvp`` never comes back.

    Args:
        candidates: Program names to try, in order
        args: Arguments after argv[0], shared by every candidate
        execvp: Image loader, ``os.execvp`` outside of tests

    Raises:
        StageExecError: If no candidate could be loaded
    """
    attempted: List[str] = []
    for name in candidates:
        attempted.append(name)
        try:
            execvp(name, [name, *args])
        except OSError as e:
            logger.debug(f"Could not load program: {{'program': {name!r}, 'error': {e.strerror!r}}}")
    raise StageExecError(
        f"Could not execute any of: {', '.join(attempted) or '(none)'}",
        attempted=attempted,
    )
