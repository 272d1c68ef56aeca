"""Process entrypoint: runs the CLI and turns whatever escapes it into an exit code.

Exit codes
- 0: run finished and every record was handled.
- 1: run finished but some records failed to write.
- 2: configuration problem (bad flags, unreadable or invalid config).
- 3: the store could not be reached or a stream failed.
- 4: anything else, including Ctrl-C; a traceback is printed.
"""

from __future__ import annotations

import sys
import traceback
from collections.abc import Iterator, Sequence
from enum import IntEnum

from bson_text_repair.config.loader import ConfigLoadError
from bson_text_repair.config.schema import ConfigValidationError
from bson_text_repair.store.base import StoreError


class ExitCode(IntEnum):
    SUCCESS = 0
    RECORDS_FAILED = 1
    CONFIG_ERROR = 2
    STORE_ERROR = 3
    INTERNAL_ERROR = 4


# First match along the exception chain wins.
_ROUTES: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
    ((ConfigLoadError, ConfigValidationError), ExitCode.CONFIG_ERROR),
    ((StoreError,), ExitCode.STORE_ERROR),
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Used by the ``bson-text-repair`` script and ``python -m bson_text_repair``."""

    from bson_text_repair.ui.cli import run_cli

    try:
        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        # argparse exits 0 for --help and 2 for usage errors.
        return _as_exit_code(exc.code)
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return ExitCode.INTERNAL_ERROR
    except Exception as exc:  # noqa: BLE001 - last line before the shell
        code = _route_exception(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return code


def _as_exit_code(raw: object) -> int:
    if raw is None:
        return ExitCode.SUCCESS
    if isinstance(raw, int):
        try:
            return ExitCode(raw)
        except ValueError:
            return ExitCode.INTERNAL_ERROR
    text = str(raw).strip()
    if text:
        print(text, file=sys.stderr)
    return ExitCode.INTERNAL_ERROR


def _route_exception(exc: BaseException) -> ExitCode:
    for link in _exception_chain(exc):
        for types, code in _ROUTES:
            if isinstance(link, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """``exc`` then its causes, following implicit context unless it was suppressed."""

    seen: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in seen:
        seen.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif link.__suppress_context__:
            link = None
        else:
            link = link.__context__


__all__ = ["ExitCode", "cli_entrypoint"]
