# src/pricepush/notify/console.py
from __future__ import annotations


class ConsoleNotifier:
    """Prints pushes to stdout. Used when no chat channel is configured."""

    async def start(self):
        pass

    async def stop(self):
        pass

    async def push(self, user_id: str, text: str) -> bool:
        print(f"[PUSH] {user_id}: {text}", flush=True)
        return True
