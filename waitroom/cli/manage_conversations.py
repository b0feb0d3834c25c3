import argparse
import asyncio
import json
from typing import Optional

from waitroom.config import LOG_FILE, LOG_LEVEL
from waitroom.db import async_session_maker, init_db
from waitroom.logging_config import setup_logging
from waitroom.notifier import ChangeNotifier
from waitroom.openai_client import OpenAIClient
from waitroom.store import ConversationStore
from waitroom.summary import Summarizer


async def create_conversation(message_cap: Optional[int]) -> None:
    store = ConversationStore(async_session_maker)
    conversation = await store.create_conversation(message_cap=message_cap)
    print(f"Created conversation {conversation.identity} (cap {conversation.message_cap})")


async def close_conversation(identity: str) -> None:
    store = ConversationStore(async_session_maker)
    conversation = await store.close_conversation(identity)
    if conversation is None:
        raise SystemExit(f"Conversation {identity!r} does not exist")
    print(f"Closed conversation {identity}")


async def show_summary(identity: str) -> None:
    store = ConversationStore(async_session_maker)
    summary = await store.get_summary(identity)
    if summary is None:
        raise SystemExit(f"No summary for conversation {identity!r}")
    print(json.dumps(summary.model_dump(mode="json"), indent=2, ensure_ascii=False))


async def resummarize(identity: str) -> None:
    store = ConversationStore(async_session_maker)
    if await store.get_conversation(identity) is None:
        raise SystemExit(f"Conversation {identity!r} does not exist")
    summarizer = Summarizer(store, OpenAIClient(), ChangeNotifier())
    summary = await summarizer.recompute(identity)
    print(f"Summary updated for {identity}: {len(summary.key_points)} key points")


def main() -> None:
    parser = argparse.ArgumentParser(description="Manage waiting-room conversations")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create missing database tables")

    create_parser = subparsers.add_parser("create", help="Open a new conversation")
    create_parser.add_argument(
        "--cap",
        type=int,
        help="Patient message cap for this conversation; defaults to MESSAGE_CAP",
    )

    close_parser = subparsers.add_parser("close", help="Close a conversation")
    close_parser.add_argument("identity", help="Conversation identity")

    show_parser = subparsers.add_parser("show-summary", help="Print the current summary as JSON")
    show_parser.add_argument("identity", help="Conversation identity")

    resummarize_parser = subparsers.add_parser(
        "resummarize", help="Re-run extraction over the full transcript"
    )
    resummarize_parser.add_argument("identity", help="Conversation identity")

    args = parser.parse_args()
    setup_logging(LOG_LEVEL, LOG_FILE)

    if args.command == "init-db":
        asyncio.run(init_db())
        print("Database tables created")
    elif args.command == "create":
        asyncio.run(create_conversation(args.cap))
    elif args.command == "close":
        asyncio.run(close_conversation(args.identity))
    elif args.command == "show-summary":
        asyncio.run(show_summary(args.identity))
    elif args.command == "resummarize":
        asyncio.run(resummarize(args.identity))


if __name__ == "__main__":
    main()
