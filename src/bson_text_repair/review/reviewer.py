"""Change review: per-field accept/reject decisions and human-readable diffs.

The rewriter only sees :class:`ChangeReviewer`; whether a human is asked is
decided by the injected :class:`DecisionSource`.
"""

from __future__ import annotations

import asyncio
import difflib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Protocol

import bson
from bson import json_util
from bson.codec_options import CodecOptions, DatetimeConversion
from rich.prompt import Confirm
from rich.text import Text

if TYPE_CHECKING:
    from rich.console import Console

    from bson_text_repair.domain.models import RecordIdentity
    from bson_text_repair.ui.render import CLIRenderer

logger = logging.getLogger(__name__)

# Dates outside the datetime range come back as DatetimeMS instead of raising.
_DIFF_CODEC_OPTIONS: Final[CodecOptions] = CodecOptions(
    unicode_decode_error_handler="replace",
    datetime_conversion=DatetimeConversion.DATETIME_AUTO,
)
_DIFF_JSON_OPTIONS: Final[json_util.JSONOptions] = json_util.RELAXED_JSON_OPTIONS


@dataclass(frozen=True, slots=True)
class FieldChange:
    """A proposed replacement of one invalid string field."""

    identity: RecordIdentity | None
    key: str
    original: str
    candidate: str

    @property
    def label(self) -> str:
        record = self.identity.display if self.identity is not None else ""
        return f"[{record}][{self.key}]"


class DecisionSource(Protocol):
    """Where accept/reject answers come from."""

    @property
    def interactive(self) -> bool: ...

    async def ask(self, change: FieldChange) -> bool: ...


class AutoApprove:
    """Accept every candidate without asking."""

    @property
    def interactive(self) -> bool:
        return False

    async def ask(self, change: FieldChange) -> bool:
        return True


class ConsolePrompt:
    """Ask a yes/no question on the console for every candidate.

    The blocking prompt runs in a worker thread so the event loop stays free
    while waiting for the operator.
    """

    def __init__(self, console: Console, *, default: bool = False) -> None:
        self._console = console
        self._default = default

    @property
    def interactive(self) -> bool:
        return True

    async def ask(self, change: FieldChange) -> bool:
        question = Text(f"{change.label} apply repair?")
        answer = await asyncio.to_thread(
            Confirm.ask,
            question,
            console=self._console,
            default=self._default,
        )
        return bool(answer)


class ChangeReviewer:
    """Render proposed field repairs and collect a verdict for each."""

    def __init__(self, source: DecisionSource, renderer: CLIRenderer | None = None) -> None:
        self._source = source
        self._renderer = renderer

    @classmethod
    def for_mode(cls, *, confirm: bool, renderer: CLIRenderer) -> ChangeReviewer:
        """Auto-approve unless ``confirm`` asks for interactive review."""

        source: DecisionSource = ConsolePrompt(renderer.console) if confirm else AutoApprove()
        return cls(source, renderer)

    @property
    def confirm(self) -> bool:
        return self._source.interactive

    async def decide(
        self,
        identity: RecordIdentity | None,
        key: str,
        original_text: str,
        candidate_text: str,
    ) -> bool:
        change = FieldChange(
            identity=identity,
            key=key,
            original=original_text,
            candidate=candidate_text,
        )
        if self.confirm:
            self._show(change)

        accepted = await self._source.ask(change)

        if accepted and not self.confirm:
            self._show(change)
        logger.info(
            "field repair %s",
            "accepted" if accepted else "declined",
            extra={"field": key, "before": original_text, "after": candidate_text},
        )
        return accepted

    def _show(self, change: FieldChange) -> None:
        if self._renderer is not None:
            self._renderer.diff(render_field_change(change))


def render_field_change(change: FieldChange) -> list[str]:
    """Render a before/after pair as ``-``/``+`` lines under the field label."""

    return [
        change.label,
        f"- {change.original!r}",
        f"+ {change.candidate!r}",
    ]


def document_lines(document: bytes) -> list[str]:
    """Pretty-print a BSON document as Extended JSON lines, tolerating invalid UTF-8."""

    decoded = bson.decode(document, codec_options=_DIFF_CODEC_OPTIONS)
    rendered = json_util.dumps(
        decoded,
        json_options=_DIFF_JSON_OPTIONS,
        indent=2,
        ensure_ascii=False,
    )
    return rendered.splitlines()


def render_document_diff(
    original: bytes,
    rewritten: bytes,
    *,
    label: str = "",
) -> list[str]:
    """Unified diff of two documents; empty when they render identically."""

    if original == rewritten:
        return []
    before = document_lines(original)
    after = document_lines(rewritten)
    suffix = f" {label}" if label else ""
    return list(
        difflib.unified_diff(
            before,
            after,
            fromfile=f"original{suffix}",
            tofile=f"rewritten{suffix}",
            lineterm="",
        )
    )


__all__ = [
    "AutoApprove",
    "ChangeReviewer",
    "ConsolePrompt",
    "DecisionSource",
    "FieldChange",
    "document_lines",
    "render_document_diff",
    "render_field_change",
]
