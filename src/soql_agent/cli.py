"""Command-line entrypoint: ``soql-agent "question"`` or an interactive session."""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from dotenv import load_dotenv

from common.config.env import get_env_str
from dal.salesforce import SalesforceConfig, SalesforceQueryExecutor, SalesforceSchemaProvider
from soql_agent.config import HealingSettings
from soql_agent.engine import HealingEngine
from soql_agent.llm_client import ChatModelTextGenerator, get_available_providers, get_llm
from soql_agent.telemetry import telemetry

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit", ":q"}


def build_parser() -> argparse.ArgumentParser:
    """Argument parser of the CLI."""
    parser = argparse.ArgumentParser(
        prog="soql-agent",
        description="Ask questions about a Salesforce org in plain language.",
    )
    parser.add_argument(
        "question", nargs="?", help="Question to answer; omit for interactive mode"
    )
    parser.add_argument("--session", default="cli", help="Conversation session key")
    parser.add_argument("--entity", default=None, help="Entity type to target when unnamed")
    parser.add_argument(
        "--max-retries", type=int, default=None, help="Execution attempts per question"
    )
    parser.add_argument(
        "--timeout", type=float, default=None, help="Deadline per question in seconds"
    )
    parser.add_argument("--provider", choices=get_available_providers(), default=None)
    parser.add_argument("--model", default=None, help="Model name for the chosen provider")
    parser.add_argument(
        "--check", action="store_true", help="Only verify Salesforce connectivity and exit"
    )
    parser.add_argument(
        "--log-level", default=None, help="Logging level (default: LOG_LEVEL or WARNING)"
    )
    return parser


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _ask(engine: HealingEngine, args: argparse.Namespace, question: str) -> int:
    try:
        result = await engine.ask(
            args.session, question, entity_hint=args.entity, timeout_seconds=args.timeout
        )
    except ValueError as exc:
        _print_json({"error": str(exc)})
        return 2
    _print_json(result.to_dict())
    return 0 if result.succeeded else 1


async def _interactive(engine: HealingEngine, args: argparse.Namespace) -> int:
    print("Type a question, 'reset' to clear the conversation, or 'exit' to quit.")
    while True:
        try:
            line = await asyncio.to_thread(input, "soql> ")
        except EOFError:
            return 0
        question = line.strip()
        if not question:
            continue
        if question.lower() in EXIT_COMMANDS:
            return 0
        if question.lower() == "reset":
            engine.reset(args.session)
            print("Conversation cleared.")
            continue
        await _ask(engine, args, question)


async def run(args: argparse.Namespace) -> int:
    """Run the CLI with parsed arguments; returns the exit code."""
    settings = HealingSettings.from_env()
    if args.max_retries is not None:
        settings = replace(settings, max_attempts=max(1, args.max_retries))

    async with SalesforceQueryExecutor(SalesforceConfig.from_env()) as executor:
        if args.check:
            ok = await executor.ping()
            _print_json({"salesforce": "ok" if ok else "unreachable"})
            return 0 if ok else 1

        engine = HealingEngine(
            text_generator=ChatModelTextGenerator(get_llm(args.provider, args.model)),
            executor=executor,
            schema_provider=SalesforceSchemaProvider(
                executor, max_fields=settings.max_schema_fields
            ),
            settings=settings,
        )
        if args.question:
            return await _ask(engine, args, args.question)
        return await _interactive(engine, args)


def main(argv: Optional[List[str]] = None) -> int:
    """Console script entrypoint."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    level = (args.log_level or get_env_str("LOG_LEVEL", "WARNING")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(run(args))
    except (KeyError, ValueError) as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    except KeyboardInterrupt:
        return 130
    finally:
        telemetry.flush()


if __name__ == "__main__":
    sys.exit(main())
