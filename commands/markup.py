from __future__ import annotations

import re

_FENCE = re.compile(r"```(?:html)?\n?")


def looks_like_markup(html: str) -> bool:
    return len(html) > 10 and "<" in html and ">" in html


def should_apply_partial(partial: str, original: str) -> bool:
    """Cheap plausibility check before pushing a half-streamed rewrite."""
    return looks_like_markup(partial) and len(partial) > 20 and partial != original


def clean_markup(response: str) -> str:
    """Strip code fences and surrounding prose; '' if nothing tag-like is left."""
    cleaned = _FENCE.sub("", response.strip())

    start = cleaned.find("<")
    end = cleaned.rfind(">")
    if start != -1 and end > start:
        cleaned = cleaned[start:end + 1]

    if "<" not in cleaned or ">" not in cleaned:
        return ""
    return cleaned
