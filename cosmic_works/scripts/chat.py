"""
Cosmic Works - Interactive Chat
================================
Terminal front-end for Cosmo.  Every line typed is sent through
``AgentService.handle`` on one session, so follow-up questions see the
earlier conversation.

Commands:
    /history    Print the conversation so far.
    /reset      Start a fresh session (new history).
    /quit       Exit (Ctrl-D / Ctrl-C also work).

Usage:
    python -m cosmic_works.scripts.chat
    python -m cosmic_works.scripts.chat --session-id alice --show-steps
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import uuid
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

_PROMPT = "you › "


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="chat", description="Cosmic Works — Chat with Cosmo from the terminal.")
    parser.add_argument("--session-id", default=None, help="Conversation key (default: a random id per run).")
    parser.add_argument("--show-steps", action="store_true", default=False, help="Log every tool call Cosmo makes.")
    return parser.parse_args(argv)


async def _read_line() -> str | None:
    try:
        return await asyncio.to_thread(input, _PROMPT)
    except EOFError:
        return None


async def _chat(args: argparse.Namespace) -> int:
    try:
        from cosmic_works.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1

    from cosmic_works.src.core.errors import CosmicWorksError
    from cosmic_works.src.core.factory import build_agent_service, build_store
    from cosmic_works.src.core.service import AgentRequest

    cfg = settings.model_copy(update={"LOG_INTERMEDIATE_STEPS": True}) if args.show_steps else settings
    session_id = args.session_id or uuid.uuid4().hex[:8]

    store = build_store(cfg)
    try:
        service = build_agent_service(cfg, store)

        print()
        print("=" * 60)
        print(f"  COSMO — Cosmic Works assistant  (session: {session_id})")
        print("  /history · /reset · /quit")
        print("=" * 60)

        while True:
            line = await _read_line()
            if line is None or line.strip() == "/quit":
                print()
                return 0

            prompt = line.strip()
            if not prompt:
                continue

            if prompt == "/history":
                session = service.registry.get(session_id)
                for msg in session.history if session else ():
                    print(f"  [{msg.role}] {msg.content}")
                continue

            if prompt == "/reset":
                service.registry.discard(session_id)
                session_id = uuid.uuid4().hex[:8]
                print(f"  (new session: {session_id})")
                continue

            try:
                response = await service.handle(AgentRequest(prompt=prompt, session_id=session_id))
            except CosmicWorksError as exc:
                print(f"  [error] {exc.message}")
                continue
            print(f"cosmo › {response.message}\n")
    finally:
        store.close()


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    try:
        sys.exit(asyncio.run(_chat(args)))
    except KeyboardInterrupt:
        print()
        sys.exit(0)


if __name__ == "__main__":
    main()
