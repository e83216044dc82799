#!/usr/bin/env python3
"""
Bridge Demo - Device and Remote

Opens two websocket connections to a running bridge and walks through
the whole protocol:
1. The device sends init with its private topic and gets the ack
2. The remote subscribes to the shared /system topic
3. The remote publishes a command onto the device's private topic
4. The device answers with a passthrough frame (no action field)
5. The device sends an unrecognized action, which lands on /system

Usage:
    python scripts/demo_client.py [ws://localhost:3000/]
"""

import asyncio
import json
import sys
from uuid import uuid4

import websockets

BRIDGE_URL = sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:3000/"
DEVICE_TOPIC = f"priv/device-{uuid4().hex[:8]}"


async def expect(ws, label: str) -> dict:
    """Wait for the next frame and print it."""
    frame = json.loads(await asyncio.wait_for(ws.recv(), timeout=5.0))
    print(f"   {label} <- {frame}")
    return frame


async def main():
    print("="*70)
    print("🔌 BRIDGE DEMO")
    print("="*70)
    print(f"Bridge URL: {BRIDGE_URL}")
    print(f"Device topic: {DEVICE_TOPIC}")
    print("="*70)

    try:
        async with websockets.connect(BRIDGE_URL) as device, \
                websockets.connect(BRIDGE_URL) as remote:

            print("\n📝 STEP 1: DEVICE INIT")
            await device.send(json.dumps({"action": "init", "data": DEVICE_TOPIC}))
            ack = await expect(device, "device")
            if ack.get("data") != "success":
                print("❌ Init was not acknowledged")
                sys.exit(1)

            print("\n📡 STEP 2: REMOTE SUBSCRIBES TO /system")
            await remote.send(json.dumps({"action": "subscribe", "topic": "/system"}))
            # Remote init only serves as a barrier for the subscribe above
            await remote.send(json.dumps({"action": "init", "data": f"priv/remote-{uuid4().hex[:8]}"}))
            await expect(remote, "remote")

            print("\n🎮 STEP 3: REMOTE SENDS A COMMAND TO THE DEVICE")
            await remote.send(json.dumps({
                "action": "publish",
                "topic": DEVICE_TOPIC,
                "data": {"cmd": "play", "track": 3},
            }))
            await expect(device, "device")

            print("\n🔁 STEP 4: DEVICE PASSTHROUGH")
            await device.send(json.dumps({"status": "playing", "track": 3}))
            await expect(device, "device")

            print("\n🛰️  STEP 5: UNRECOGNIZED ACTION GOES TO /system")
            await device.send(json.dumps({"action": "start", "data": "player"}))
            await expect(remote, "remote")

            print("\n" + "="*70)
            print("✅ DEMO COMPLETE")
            print("="*70)

    except (ConnectionRefusedError, OSError):
        print("\n" + "="*70)
        print("❌ CONNECTION ERROR")
        print("="*70)
        print("Cannot connect to the bridge!")
        print("💡 Start the server with:")
        print("   uvicorn wsbridge.transport.app:app --port 3000")
        print("="*70)
        sys.exit(1)
    except asyncio.TimeoutError:
        print("\n❌ Timed out waiting for a frame from the bridge")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
