"""CLI entry point for mailrules."""

import argparse
import logging
import sys
from pathlib import Path

import structlog

from mailrules.exceptions import ConfigError, MailRulesError, ParseError

logger = structlog.get_logger()


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="mailrules",
        description="Filter an IMAP mailbox continuously with a small rule language",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    check_parser = subparsers.add_parser("check", help="Parse a rule file and print its rules")
    check_parser.add_argument("rules", type=Path, help="Rule file")

    run_parser = subparsers.add_parser("run", help="Filter the mailbox until interrupted")
    run_parser.add_argument("--rules", dest="rules_file", type=Path, help="Rule file")
    run_parser.add_argument("--host", help="IMAP host")
    run_parser.add_argument("--port", type=int, help="IMAP port (default: 993)")
    run_parser.add_argument("--username", help="IMAP login username")
    run_parser.add_argument("--password", help="IMAP login password")
    run_parser.add_argument("--mailbox", help="Mailbox to filter (default: INBOX)")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    _configure_logging(args.verbose)

    if args.command == "check":
        return _handle_check(args.rules)

    if args.command == "run":
        return _handle_run(args)

    return 1


def _handle_check(path: Path) -> int:
    """Handle check subcommand."""
    from mailrules.parse import parse_file
    from mailrules.rules import describe_rule

    try:
        rules = parse_file(path)
    except (ParseError, OSError) as e:
        print(f"{path}: {e}", file=sys.stderr)
        return 1

    for rule in rules:
        print(f"{describe_rule(rule)};")
    return 0


def _handle_run(args: argparse.Namespace) -> int:
    """Handle run subcommand."""
    from mailrules.config import get_settings_eager
    from mailrules.connectors import IMAPMailboxClient
    from mailrules.delivery import HTTPSink
    from mailrules.engine import RuleEngine
    from mailrules.parse import parse_file
    from mailrules.rules import describe_rule
    from mailrules.runloop import Watcher

    try:
        settings = get_settings_eager(
            rules_file=args.rules_file,
            host=args.host,
            port=args.port,
            username=args.username,
            password=args.password,
            mailbox=args.mailbox,
        )
        if settings.rules_file is None:
            raise ConfigError("No rule file given (--rules or MAILRULES_RULES_FILE)")
        imap_config = settings.imap_config()
    except ConfigError as e:
        logger.error("Invalid configuration", error=str(e))
        return 1

    logger.info("Parsing rules", path=str(settings.rules_file))
    try:
        rules = parse_file(settings.rules_file, default_flag=settings.default_flag)
    except (ParseError, OSError) as e:
        logger.error("Could not load rules", path=str(settings.rules_file), error=str(e))
        return 1

    try:
        with IMAPMailboxClient(imap_config, settings.idle_poll_interval) as client:
            logger.info("Rules", rules=[describe_rule(rule) for rule in rules])
            client.select(settings.mailbox)
            engine = RuleEngine(
                rules,
                client,
                HTTPSink(timeout=settings.stream_timeout),
                buffer_size=settings.fetch_buffer_size,
            )
            Watcher(client, engine, settings.mailbox).run()
    except MailRulesError as e:
        logger.error("Fatal error", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
