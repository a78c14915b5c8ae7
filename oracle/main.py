from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException

from common.config import OracleSettings
from common.schemas import CorrectionResult, CorrectRequest
from oracle.client import CorrectionClient

logger = logging.getLogger(__name__)

settings = OracleSettings()
app = FastAPI(title="Correction Oracle")
client = CorrectionClient(settings)


@app.get("/health")
async def health():
    return {"status": "ok", "correction_configured": client.configured}


@app.get("/available")
async def available():
    return {"available": await client.is_available()}


@app.post("/correct", response_model=CorrectionResult)
async def correct(req: CorrectRequest):
    text = req.text.strip()
    if not text:
        raise HTTPException(status_code=422, detail="text must not be empty")

    result = await client.correct(text, req.context)
    logger.info("Corrected %d chars (confidence=%.2f)", len(text), result.confidence)
    return result


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
