import asyncio
import json
import sys

import websockets


async def test(script_path=None):
    uri = "ws://localhost:8000/transcript"
    async with websockets.connect(uri, close_timeout=2) as ws:
        await ws.send(json.dumps({"type": "start", "stream_id": "live-test"}))
        print("Sent start")

        if script_path:
            with open(script_path) as f:
                lines = [line.strip() for line in f if line.strip()]
        else:
            lines = ["in meeting we dccided", "to buy 500 gpus", "sorry 100 gpus"]

        for i, line in enumerate(lines):
            await ws.send(json.dumps({"type": "fragment", "text": line, "is_final": True}))
            print(f"Sent fragment {i + 1}/{len(lines)}: {line}")
            await asyncio.sleep(0.3)

        await ws.send(json.dumps({"type": "end"}))
        print("Sent end, waiting...\n")

        async for msg in ws:
            resp = json.loads(msg)
            if resp.get("type") == "state":
                state = resp["state"]
                print(json.dumps({
                    "processed": state["processed_transcript"],
                    "stats": state["stats"],
                }, indent=2))
            else:
                print(json.dumps(resp, indent=2))

    print("\nDone.")


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        asyncio.run(test(path))
    except websockets.exceptions.ConnectionClosedError:
        pass
