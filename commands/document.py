from __future__ import annotations

import logging
import re
from typing import Optional, Protocol

from commands.patterns import FormatAction

logger = logging.getLogger(__name__)

_TAG = re.compile(r"<[^>]+>")

_WRAPPERS: dict[FormatAction, tuple[str, str]] = {
    FormatAction.bold: ("<strong>", "</strong>"),
    FormatAction.italic: ("<em>", "</em>"),
    FormatAction.heading_1: ("<h1>", "</h1>"),
    FormatAction.heading_2: ("<h2>", "</h2>"),
    FormatAction.heading_3: ("<h3>", "</h3>"),
    FormatAction.bullet_list: ("<ul><li>", "</li></ul>"),
    FormatAction.ordered_list: ("<ol><li>", "</li></ol>"),
    FormatAction.blockquote: ("<blockquote><p>", "</p></blockquote>"),
    FormatAction.align_center: ('<p style="text-align: center">', "</p>"),
    FormatAction.align_left: ('<p style="text-align: left">', "</p>"),
    FormatAction.align_right: ('<p style="text-align: right">', "</p>"),
    FormatAction.paragraph: ("<p>", "</p>"),
    FormatAction.task_list: (
        '<ul data-type="taskList"><li data-type="taskItem" data-checked="false">',
        "</li></ul>",
    ),
}


class Document(Protocol):
    """The rich-text surface voice commands act on."""

    def has_selection(self) -> bool: ...

    def get_selection(self) -> Optional[tuple[int, int]]: ...

    def set_selection(self, selection: Optional[tuple[int, int]]) -> None: ...

    def get_html(self) -> str: ...

    def set_content(self, html: str) -> None: ...

    def apply_format(self, action: FormatAction) -> None: ...


class HtmlDocument:
    """In-memory document: an HTML string plus a selection over it."""

    def __init__(self, html: str = "", selection: Optional[tuple[int, int]] = None) -> None:
        self.html = html
        self.selection = selection
        self.applied: list[FormatAction] = []
        self.content_updates = 0

    def select(self, start: int, end: int) -> None:
        if not 0 <= start <= end <= len(self.html):
            raise ValueError(f"Selection {start}:{end} outside document")
        self.selection = (start, end)

    def select_text(self, text: str) -> None:
        start = self.html.find(text)
        if start == -1:
            raise ValueError(f"{text!r} not in document")
        self.select(start, start + len(text))

    def has_selection(self) -> bool:
        return self.selection is not None and self.selection[0] != self.selection[1]

    def get_selection(self) -> Optional[tuple[int, int]]:
        return self.selection

    def set_selection(self, selection: Optional[tuple[int, int]]) -> None:
        if selection is None:
            self.selection = None
        else:
            self.select(*selection)

    def get_html(self) -> str:
        return self.html

    def get_text(self) -> str:
        return _TAG.sub("", self.html)

    def set_content(self, html: str) -> None:
        self.html = html
        self.selection = None
        self.content_updates += 1

    def apply_format(self, action: FormatAction) -> None:
        if not self.has_selection():
            raise ValueError("No text selected")
        start, end = self.selection
        opening, closing = _WRAPPERS[action]
        self.html = self.html[:start] + opening + self.html[start:end] + closing + self.html[end:]
        self.selection = (start, end + len(opening) + len(closing))
        self.applied.append(action)
        logger.debug("Applied %s to %d chars", action.value, end - start)
