from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FormatAction(str, Enum):
    bold = "bold"
    italic = "italic"
    heading_1 = "heading_1"
    heading_2 = "heading_2"
    heading_3 = "heading_3"
    bullet_list = "bullet_list"
    ordered_list = "ordered_list"
    blockquote = "blockquote"
    align_center = "align_center"
    align_left = "align_left"
    align_right = "align_right"
    paragraph = "paragraph"
    task_list = "task_list"


@dataclass(frozen=True)
class VoiceCommand:
    patterns: tuple[str, ...]
    action: FormatAction
    description: str
    requires_selection: bool = True


# Order matters: the first command with a matching phrase wins.
COMMANDS: tuple[VoiceCommand, ...] = (
    VoiceCommand(("make this bold", "bold this", "make bold", "bold"), FormatAction.bold, "Make selected text bold"),
    VoiceCommand(
        ("make this italic", "italic this", "make italic", "italic", "italicize this"),
        FormatAction.italic,
        "Make selected text italic",
    ),
    VoiceCommand(("heading one", "heading 1", "make heading one", "h1"), FormatAction.heading_1, "Convert to heading 1"),
    VoiceCommand(("heading two", "heading 2", "make heading two", "h2"), FormatAction.heading_2, "Convert to heading 2"),
    VoiceCommand(
        ("heading three", "heading 3", "make heading three", "h3"), FormatAction.heading_3, "Convert to heading 3"
    ),
    VoiceCommand(
        ("bullet list", "bullet points", "make bullet list", "bulleted list"),
        FormatAction.bullet_list,
        "Create bullet list",
    ),
    VoiceCommand(
        ("numbered list", "number list", "ordered list", "make numbered list"),
        FormatAction.ordered_list,
        "Create numbered list",
    ),
    VoiceCommand(
        ("make quote", "quote this", "block quote", "make this a quote"), FormatAction.blockquote, "Convert to quote"
    ),
    VoiceCommand(("center this", "center align", "align center"), FormatAction.align_center, "Center align text"),
    VoiceCommand(("left align", "align left"), FormatAction.align_left, "Left align text"),
    VoiceCommand(("right align", "align right"), FormatAction.align_right, "Right align text"),
    VoiceCommand(
        ("normal text", "make paragraph", "regular text", "paragraph"),
        FormatAction.paragraph,
        "Convert to normal paragraph",
    ),
    VoiceCommand(("task list", "todo list", "checklist", "make checklist"), FormatAction.task_list, "Create task list"),
)

COMMAND_KEYWORDS: tuple[str, ...] = (
    # formatting
    "make", "bold", "italic", "heading", "list", "quote", "center", "align",
    "bullet", "numbered", "task", "paragraph", "normal",
    # actions
    "turn", "convert", "format", "change", "transform",
    # targets
    "title", "first", "everything", "all", "whole", "document",
    "line", "text", "introduction", "conclusion",
    # natural language
    "want", "please", "can", "should", "need",
    "h1", "h2", "h3", "checklist", "todo",
)

SMART_PHRASES: tuple[str, ...] = (
    "make the title bold",
    "make the introduction bold",
    "make the first paragraph bold",
    "make the first line bold",
    "turn the title into a heading",
    "make the first line a heading",
    "make the title a heading one",
    "make the title a heading two",
    "add bullet points to the list",
    "make everything a bullet list",
    "make all paragraphs bullet points",
    "center the title",
    "center the first line",
    "make the whole thing a quote",
    "quote everything",
    "make it all italic",
    "make the document a task list",
    "bold the heading",
    "italicize the introduction",
    "center align the title",
    "make the conclusion bold",
    "turn this into a numbered list",
    "convert to bullet points",
    "make this a quote block",
    "format as heading",
    "align everything center",
    "I want this bold",
    "can you make this italic",
    "please make this a heading",
    "turn this into a list",
    "make this look like a quote",
    "center this text",
    "format this as a title",
)


def contains_command_keywords(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in COMMAND_KEYWORDS)


def match_command(text: str, has_selection: bool) -> Optional[tuple[VoiceCommand, str]]:
    """Return the first command (and the phrase that hit) found in ``text``.

    Commands that act on a selection are skipped when nothing is selected.
    """
    normalized = text.lower().strip()
    for command in COMMANDS:
        if command.requires_selection and not has_selection:
            continue
        for pattern in command.patterns:
            if pattern in normalized:
                return command, pattern
    return None


def supported_phrases() -> list[str]:
    return [p for command in COMMANDS for p in command.patterns] + list(SMART_PHRASES)
