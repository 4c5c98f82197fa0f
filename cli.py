#!/usr/bin/env python3
"""Simple CLI for chatting with the Paychat agent locally"""

import argparse
import asyncio
from typing import Optional

from paychat.config import settings
from paychat.core.conversation import (
    ConversationOrchestrator,
    NoPendingChallenge,
    SendInProgress,
    SendOutcome,
    SendResult,
    ThreadNotFound,
    create_orchestrator,
)
from paychat.logging_config import setup_logging
from paychat.services.amount import AmountParseFailure, normalize_amount
from paychat.services.transaction_summary import (
    TransactionSummary,
    extract_summary,
    get_grammar,
)
from paychat.services.transfer import build_transfer_call, format_idr


class ConsoleNotifier:
    """Print notifications inline instead of toasts"""

    ICONS = {"error": "❌", "warning": "⚠️ ", "success": "✅", "info": "ℹ️ "}

    def notify(self, level: str, message: str) -> None:
        print(f"{self.ICONS.get(level, '•')} {message}")


def print_summary(summary: TransactionSummary):
    """Pretty print a transfer proposal"""
    call = build_transfer_call(summary)

    print("\n🧾 Transaction Summary")
    print("=" * 50)
    print(f"To:       {summary.recipient_label}")
    print(f"Address:  {summary.recipient_address}")
    print(f"Amount:   {format_idr(summary.amount)} ({summary.amount} units)")
    print(f"Category: {summary.category}")
    print("-" * 50)
    print(f"Call:     {call['function']} on {call['to']}")
    print(f"Data:     {call['data']}")


def print_result(result: SendResult):
    if result.outcome == SendOutcome.CHALLENGED:
        challenge = result.challenge
        print("\n💳 Payment required")
        if challenge and challenge.details:
            print(f"   {challenge.details}")
        if challenge and challenge.requirements:
            req = challenge.requirements
            print(f"   {req.max_amount_required} units of {req.asset} to {req.pay_to} ({req.network})")
        print("   Type 'pay' to authorize and resend, or 'dismiss' to cancel.")
        return

    if result.message:
        print(f"🤖 Assistant: {result.message.content}")

    if result.summary:
        print_summary(result.summary)


def print_threads(orchestrator: ConversationOrchestrator, current: str):
    print("\nThreads:")
    for thread in orchestrator.store.list_threads():
        marker = "*" if thread.thread_id == current else " "
        print(f" {marker} {thread.thread_id}  {thread.title} ({thread.message_count} messages)")


async def cli_chat(thread_id: Optional[str] = None):
    """Interactive chat mode"""
    orchestrator = create_orchestrator(notifier=ConsoleNotifier())

    if thread_id is None or not orchestrator.store.has_thread(thread_id):
        threads = orchestrator.store.list_threads()
        thread_id = threads[0].thread_id if threads else orchestrator.start_thread()

    print("🤖 Paychat")
    print(f"Agent: {settings.agent_url}")
    print(f"Wallet: {'configured' if settings.has_wallet else 'not configured'}")
    print("Type 'exit' to quit, 'help' for commands")
    print("-" * 40)

    thread = orchestrator.store.get_thread(thread_id)
    if thread.messages:
        print(f"🤖 Assistant: {thread.messages[-1].content}")

    while True:
        try:
            user_input = input("\n💬 You: ").strip()
            command = user_input.lower()

            if command in ['exit', 'quit', 'q']:
                print("Goodbye! 👋")
                break

            elif command in ['help', 'h']:
                print("\nCommands:")
                print("  help         - Show this help")
                print("  exit         - Quit the chat")
                print("  new          - Start a new thread")
                print("  threads      - List threads")
                print("  switch <id>  - Switch to another thread")
                print("  pay          - Authorize the pending payment and resend")
                print("  dismiss      - Dismiss the pending payment")
                print("  Send 50rb to Budi for lunch - Ask for a transfer")
                continue

            elif command == 'new':
                thread_id = orchestrator.start_thread()
                print(f"Started thread {thread_id}")
                print(f"🤖 Assistant: {orchestrator.store.get_thread(thread_id).messages[-1].content}")
                continue

            elif command == 'threads':
                print_threads(orchestrator, thread_id)
                continue

            elif command.startswith('switch'):
                parts = user_input.split(maxsplit=1)
                if len(parts) < 2 or not orchestrator.store.has_thread(parts[1]):
                    print("❌ Unknown thread. Use 'threads' to list them.")
                    continue
                thread_id = parts[1]
                thread = orchestrator.store.get_thread(thread_id)
                print(f"Switched to '{thread.title}'")
                continue

            elif command == 'pay':
                result = await orchestrator.pay_and_retry(thread_id)
                print_result(result)
                continue

            elif command == 'dismiss':
                if orchestrator.dismiss_challenge(thread_id):
                    print("Payment dismissed.")
                else:
                    print("No payment pending.")
                continue

            elif not user_input:
                continue

            result = await orchestrator.send(thread_id, user_input)
            print_result(result)

        except KeyboardInterrupt:
            print("\nGoodbye! 👋")
            break
        except (NoPendingChallenge, SendInProgress, ThreadNotFound) as e:
            print(f"❌ {e}")


def cli_parse(text: str, language: Optional[str] = None):
    """Extract a transfer proposal from assistant text"""
    summary = extract_summary(text, grammar=get_grammar(language))
    if summary is None:
        print("No transaction directive found.")
        return
    print_summary(summary)


def cli_amount(text: str):
    try:
        amount = normalize_amount(text)
    except AmountParseFailure as e:
        print(f"❌ {e}")
        return
    print(f"{amount} ({format_idr(amount)})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Paychat CLI")
    subparsers = parser.add_subparsers(dest="command")

    chat_parser = subparsers.add_parser("chat", help="Interactive chat mode")
    chat_parser.add_argument("--thread", help="Thread id to resume")

    parse_parser = subparsers.add_parser("parse", help="Extract a transaction summary from assistant text")
    parse_parser.add_argument("text", help="Assistant reply text")
    parse_parser.add_argument("--language", choices=["en", "id"], help="Directive language (default: configured)")

    amount_parser = subparsers.add_parser("amount", help="Normalize an amount like '50rb' or 'Rp 50.000'")
    amount_parser.add_argument("text", help="Amount text")

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging()
    command = args.command.lower()

    if command == "chat":
        await cli_chat(args.thread)

    elif command == "parse":
        cli_parse(args.text, args.language)

    elif command == "amount":
        cli_amount(args.text)

    else:
        print(f"❌ Unknown command: {command}")
        parser.print_help()


if __name__ == "__main__":
    asyncio.run(main())
