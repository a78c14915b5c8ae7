from __future__ import annotations

from typing import Sequence

SYSTEM_PROMPT = (
    "You are an intelligent transcript processor. "
    "Return only the corrected transcript, no explanations or additional formatting."
)


def build_correction_prompt(text: str, context: Sequence[str] = ()) -> str:
    context_str = " ".join(context) if context else "No previous context"

    return f"""\
You are an intelligent transcript processor. Your job is to:

1. Fix speech-to-text errors and typos
2. Understand corrections (e.g., "500 sorry 100" → "100")
3. Improve grammar and punctuation
4. Format properly (capitalization, spacing)
5. Merge the previous transcript and the current chunk into one coherent transcript

Previous transcript: {context_str}
Current transcript chunk: {text}

Rules:
- If the speaker corrects themselves ("X sorry Y", "X make that Y" or "X no wait Y"), \
replace X with Y in the final output; never keep both
- A correction in the current chunk may refer to anything in the previous transcript
- Fix obvious speech-to-text errors (e.g., "dccided" → "decided")
- Maintain the speaker's intended meaning
- Keep it concise and natural
- Format emails, numbers, dates properly
- Handle verbal punctuation ("comma", "period", "question mark")

Examples:
- "in meeting we dccided to buy 500 gpus sorry 100 gpus" → "In the meeting, we decided to buy 100 GPUs."
- "the revenue was 2 million no wait 3 million dollars" → "The revenue was 3 million dollars."
- "send email to john at gmail dot com" → "Send email to john@gmail.com."

Return the complete corrected transcript (previous transcript plus current chunk), \
nothing else."""


EDITOR_SYSTEM_PROMPT = """\
Ultra-fast voice command processor. Return ONLY updated HTML.

RULES:
- Bold: <strong>text</strong>
- Italic: <em>text</em>
- H1: <h1>text</h1>, H2: <h2>text</h2>, H3: <h3>text</h3>
- Bullet: <ul><li>item</li></ul>
- Numbered: <ol><li>item</li></ol>
- Quote: <blockquote><p>text</p></blockquote>
- Center: <p style="text-align: center">text</p>
- Task: <ul data-type="taskList"><li data-type="taskItem" data-checked="false">task</li></ul>

SMART COMMANDS:
- "make everything bold" → wrap ALL in <strong>
- "make title bold" → wrap first heading in <strong>
- "bullet list" → convert paragraphs to <ul><li>
- "heading" → convert to <h1>, <h2>, or <h3>

RESPONSE: HTML only, no explanations."""


def truncate_content(html: str, max_chars: int = 2000) -> str:
    if len(html) > max_chars:
        return html[:max_chars] + "..."
    return html


def build_command_prompt(command: str, html: str, max_chars: int = 2000) -> str:
    return f'Command: "{command}"\nHTML: {truncate_content(html, max_chars)}'
