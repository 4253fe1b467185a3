"""Interactive Lemur chatbot for the terminal.

Usage examples:
    # Start a new conversation
    python -m src.cli

    # Continue from a stored message
    python -m src.cli --parent 3f0c9a4e-...

    # Use a scratch database
    python -m src.cli --db /tmp/lemur.db
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from src.chat.service import ChatService
from src.config import settings
from src.conversation.errors import StorageError
from src.conversation.store import ConversationStore
from src.lemur.client import LemurClient
from src.lemur.errors import LemurError

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with Lemur from the terminal.")
    parser.add_argument("--parent", help="Message id to continue the conversation from")
    parser.add_argument("--db", type=Path, help="SQLite database path (overrides DATABASE_PATH)")
    return parser.parse_args(argv)


async def run_chat(service: ChatService, parent_id: str | None = None) -> str | None:
    """Read prompts from stdin until EOF. Returns the last reply id."""
    print("Conversation")
    print("---------------------")
    while True:
        try:
            prompt = await asyncio.to_thread(input, "> ")
        except EOFError:
            print()
            return parent_id
        if not prompt.strip():
            continue

        reply_id = None
        try:
            async for reply in service.process(prompt, parent_id):
                print(reply.delta, end="", flush=True)
                reply_id = reply.id
        except (LemurError, StorageError) as exc:
            logger.exception("Chat turn failed")
            print(f"\nChat error: {exc}", file=sys.stderr)
            continue

        print("\n")
        if reply_id:
            parent_id = reply_id


async def _main(args: argparse.Namespace) -> None:
    store = ConversationStore(args.db, root_parent_id=settings.root_parent_id)
    async with LemurClient.from_settings(settings) as client:
        service = ChatService(store, client, window=settings.get_window_size())
        last_id = await run_chat(service, args.parent)
    if last_id:
        logger.info("Resume this conversation with --parent %s", last_id)


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level),
    )
    args = _parse_args(argv)
    try:
        asyncio.run(_main(args))
    except LemurError as exc:
        # Raised before the loop starts, e.g. a missing API key.
        logger.error("Cannot start chat: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
