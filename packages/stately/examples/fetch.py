"""Fetch workflow -- guards, enter hooks and goto chains.

Demonstrates:
- An event handler that mutates context and picks the target state
- An async guard that redirects to an error state after too many retries
- An async enter hook that replaces context
- A pass-through state that forwards with goto
- Watching the machine with subscribe()
- Debug traces routed through configure_logging()

Run: python -m examples.fetch
"""

import asyncio

from stately import Machine, configure_logging

MAX_RETRIES = 2


# ---------------------------------------------------------------------------
# Handlers, guards and hooks
# ---------------------------------------------------------------------------

def request(context: dict, url: str) -> str:
    context["url"] = url
    context["attempts"] += 1
    return "loading"


async def may_load(context: dict) -> bool | str:
    if context["attempts"] > MAX_RETRIES:
        return "failed"
    return True


async def load(context: dict) -> dict:
    await asyncio.sleep(0.01)
    if context["attempts"] < 2:
        return {**context, "error": "timeout"}
    return {**context, "error": None, "body": f"<html>{context['url']}</html>"}


def route(context: dict) -> str:
    return "failed" if context["error"] else "done"


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

async def run() -> None:
    machine = Machine(
        {"url": None, "attempts": 0, "error": None},
        {
            "idle": {"on": {"FETCH": request}},
            "loading": {"guard": may_load, "enter": load, "goto": "settle"},
            "settle": {"guard": route},
            "failed": {"on": {"RETRY": request}},
            "done": {},
        },
        "idle",
        debug=True,
    )
    machine.subscribe(lambda state, ctx: print(f"  -> {state}: {ctx}"))

    await machine.start()
    await machine.send("FETCH", "https://example.org")
    await machine.send("RETRY", "https://example.org")
    print(f"Final state: {machine.current_state}")


def main() -> None:
    configure_logging(level="DEBUG")
    asyncio.run(run())


if __name__ == "__main__":
    main()
