import asyncio
import json

import httpx
import pytest

from common.schemas import CorrectionResult
from oracle.scoring import calculate_confidence, detect_changes


class FakeOracle:
    """Scripted stand-in for the correction client.

    ``respond(text, context)`` produces the corrected text (or raises).
    Texts listed in ``gates`` block until their event is set.
    """

    model = "fake-model"

    def __init__(self, respond=None, available=True):
        self.calls: list[tuple[str, list[str]]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.available = available
        self._respond = respond or (lambda text, context: text.upper())

    async def correct(self, text, context=()):
        self.calls.append((text, list(context)))
        await asyncio.sleep(0)
        gate = self.gates.get(text)
        if gate is not None:
            await gate.wait()
        corrected = self._respond(text, list(context))
        return CorrectionResult(
            corrected_text=corrected,
            confidence=calculate_confidence(text, corrected),
            changes=detect_changes(text, corrected),
        )

    async def is_available(self):
        return self.available


async def settle_soon(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def failing_transport() -> httpx.MockTransport:
    def handler(request):
        raise AssertionError(f"unexpected request to {request.url}")

    return httpx.MockTransport(handler)


def sse_body(*deltas: str) -> str:
    frames = [
        "data: " + json.dumps({"choices": [{"delta": {"content": delta}}]}) for delta in deltas
    ]
    frames.append("data: [DONE]")
    return "\n\n".join(frames) + "\n\n"


@pytest.fixture
def oracle():
    return FakeOracle()
