"""CLI entry point for the AIRA assistant.

A terminal chat loop for development.  It runs the same orchestrator as the
API server against the in-memory data backend unless ``--backend api`` is
given.  For production, use the FastAPI server (aira/server.py).

Usage:
    python -m aira.main                       # new random tenant, quiet
    python -m aira.main --tenant <uuid>       # fixed tenant
    python -m aira.main --debug               # show Bedrock / HTTP calls
"""

from __future__ import annotations

import argparse
import logging
import os
import uuid

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        for name in ("httpx", "httpcore", "botocore", "urllib3"):
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("aira").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="AIRA field-service assistant CLI")
    parser.add_argument("--tenant", help="Tenant ID (UUID); a random one is used if omitted")
    parser.add_argument("--user", default="cli-user", help="User ID recorded on created records")
    parser.add_argument(
        "--backend", choices=("memory", "api"), default="memory",
        help="Data backend to run against (default: memory)",
    )
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including Bedrock and HTTP calls",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    # aira.config reads DATA_BACKEND at import time
    os.environ["DATA_BACKEND"] = args.backend
    from aira.agent import ChatOrchestrator, ChatValidationError
    from aira.server import build_backend
    from aira.services.bedrock_gateway import create_bedrock_gateway
    from aira.tools.executor import FunctionExecutor

    tenant_id = args.tenant or str(uuid.uuid4())
    backend = build_backend(args.backend)
    orchestrator = ChatOrchestrator(create_bedrock_gateway(), FunctionExecutor(backend))
    history: list[dict[str, str]] = []

    print("\n" + "=" * 60)
    print("  AIRA - Field Service Assistant CLI")
    print("=" * 60)
    print(f"  Tenant: {tenant_id}")
    print("  Commands: 'quit' to exit, 'new' to clear the conversation.")
    print("=" * 60 + "\n")

    try:
        while True:
            try:
                user_input = input("You: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if not user_input:
                continue

            if user_input.lower() in ("exit", "quit", "q"):
                print("\nGoodbye!")
                break

            if user_input.lower() == "new":
                history.clear()
                print("\n>> Conversation cleared.\n")
                continue

            try:
                response = orchestrator.run(user_input, tenant_id, args.user, history)
            except ChatValidationError as e:
                print(f"\nAIRA: {e.message}\n")
                continue
            except KeyboardInterrupt:
                print("\n\nGoodbye!")
                break
            except Exception as e:
                logger.exception("Error processing message")
                print(f"\nAIRA: Sorry, something went wrong: {e}")
                print("      Please try again or type 'new' to start over.\n")
                continue

            print(f"\nAIRA: {response.reply}")
            for action in response.suggested_actions or []:
                print(f"      -> {action.label} ({action.action} {action.params})")
            print()

            history.append({"role": "user", "content": user_input})
            history.append({"role": "assistant", "content": response.reply})
    finally:
        backend.close()


if __name__ == "__main__":
    main()
