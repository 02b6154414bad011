"""CLI entry point for dcabot."""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import re
import sys
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Sequence

import yaml

from engine.errors import (
    ConfigurationError,
    FundingError,
    GateError,
    VenueError,
)
from engine.exchange_client import Exchange, OrderType
from engine.exchange_factory import build_exchange
from engine.schedule import DcaSchedule, SyncRequest, SyncResult
from utils.config_validator import (
    SUPPORTED_EXCHANGES,
    ConfigValidationError,
    validate_sync_config,
)
from utils.credentials import credential_spec, store_api_credentials
from utils.logging_config import setup_logging

LOGGER = logging.getLogger("dcabot.cli")

SUPPORTED_FORMATS = (".json", ".toml", ".yaml", ".yml")
DURATION_UNITS = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}
_DURATION = re.compile(r"^(\d+)([hdw])$")

EXIT_OK = 0
EXIT_GATED = 1
EXIT_CONFIG = 2
EXIT_UNEXPECTED = 3

# config keys that map straight from sync flags
SYNC_KEYS = (
    "exchange",
    "coins",
    "every",
    "usd",
    "currency",
    "after",
    "until",
    "trade",
    "autofund",
    "force",
    "order_type",
    "limit_order_spread",
    "fee",
    "sandbox",
    "log_level",
    "log_format",
    "log_file",
)

SYNC_DEFAULTS: dict[str, Any] = {
    "every": "1d",
    "usd": "0",
    "currency": "USD",
    "trade": False,
    "autofund": False,
    "force": False,
    "order_type": "market",
    "limit_order_spread": "0.01",
    "fee": "0.5",
    "sandbox": False,
    "log_level": "INFO",
    "log_format": "text",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Dollar cost average crypto purchases on a schedule."
    )
    parser.add_argument("--version", action="version", version="dcabot 0.1.0")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync", help="Run one purchase pass if the purchase window has arrived."
    )
    sync_parser.add_argument(
        "--exchange",
        choices=sorted(SUPPORTED_EXCHANGES),
        help="Exchange to trade on.",
    )
    sync_parser.add_argument(
        "--coin",
        dest="coins",
        action="append",
        help="Coin and percentage of the budget, e.g. BTC:50. Repeatable. "
        "The first coin's trade history decides the purchase window.",
    )
    sync_parser.add_argument(
        "--every", help="Purchase cadence: 12h, 1d, 2w (default 1d)."
    )
    sync_parser.add_argument(
        "--usd",
        help="Fiat to spend per run. 0 buys the minimum the exchange allows.",
    )
    sync_parser.add_argument(
        "--currency", help="Settlement currency (default USD)."
    )
    sync_parser.add_argument(
        "--after", help="Do not purchase until after this date (YYYY-MM-DD)."
    )
    sync_parser.add_argument(
        "--until", help="Stop purchasing after this date (YYYY-MM-DD)."
    )
    sync_parser.add_argument(
        "--trade",
        action="store_true",
        default=None,
        help="Actually place orders and deposits. Without it the run is a dry run.",
    )
    sync_parser.add_argument(
        "--autofund",
        action="store_true",
        default=None,
        help="Deposit the shortfall from the linked ACH bank account.",
    )
    sync_parser.add_argument(
        "--force",
        action="store_true",
        default=None,
        help="Skip the purchase window check (asks for confirmation).",
    )
    sync_parser.add_argument(
        "--order-type",
        choices=[t.value for t in OrderType],
        help="Order type (default market).",
    )
    sync_parser.add_argument(
        "--limit-order-spread",
        help="Percent above the ask for limit orders (default 0.01).",
    )
    sync_parser.add_argument(
        "--fee", help="Fee percent held back from limit orders (default 0.5)."
    )
    sync_parser.add_argument(
        "--sandbox",
        action="store_true",
        default=None,
        help="Use the exchange sandbox where one exists.",
    )
    sync_parser.add_argument(
        "--config", help="Path to JSON/TOML/YAML config file. Flags override it."
    )
    sync_parser.add_argument(
        "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)."
    )
    sync_parser.add_argument(
        "--log-format", choices=["text", "json"], help="Log output format."
    )
    sync_parser.add_argument("--log-file", help="Also write logs to this file.")
    sync_parser.set_defaults(handler=run_sync)

    store_parser = subparsers.add_parser(
        "store-credentials", help="Store exchange API credentials in the OS keychain."
    )
    store_parser.add_argument(
        "--exchange", required=True, choices=sorted(SUPPORTED_EXCHANGES)
    )
    store_parser.set_defaults(handler=run_store_credentials)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if hasattr(args, "handler"):
        return args.handler(args)
    parser.print_help()
    return EXIT_GATED


def run_sync(
    args: argparse.Namespace,
    *,
    exchange_builder: Callable[..., Exchange] = build_exchange,
    confirm: Callable[[str], bool] | None = None,
) -> int:
    try:
        config = load_sync_config(args)
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        setup_logging(level="INFO")
        LOGGER.error(str(exc))
        return EXIT_CONFIG

    setup_logging(
        level=str(config["log_level"]),
        structured=config["log_format"] == "json",
        log_file=config.get("log_file"),
    )
    try:
        validate_sync_config(config)
        request = build_sync_request(config)
        debug = not config["trade"]
        if debug:
            LOGGER.info("Running in dry-run mode, pass --trade to place orders")
        exchange = exchange_builder(
            config["exchange"], config, sandbox=bool(config["sandbox"])
        )
        schedule_kwargs: dict[str, Any] = {"debug": debug}
        if confirm is not None:
            schedule_kwargs["confirm"] = confirm
        schedule = DcaSchedule.create(exchange, request, **schedule_kwargs)
        result = schedule.sync()
    except ConfigValidationError as exc:
        LOGGER.error("Configuration validation failed: %s", exc)
        return EXIT_CONFIG
    except (GateError, FundingError) as exc:
        LOGGER.error(str(exc))
        return EXIT_GATED
    except ConfigurationError as exc:
        LOGGER.error(str(exc))
        return EXIT_CONFIG
    except VenueError as exc:
        LOGGER.error("Exchange error: %s", exc)
        return EXIT_UNEXPECTED
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return EXIT_CONFIG
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        LOGGER.exception("Unexpected error during sync: %s", exc)
        return EXIT_UNEXPECTED

    log_result(result)
    return EXIT_OK


def run_store_credentials(
    args: argparse.Namespace,
    *,
    prompt: Callable[[str], str] = getpass.getpass,
) -> int:
    setup_logging(level="INFO")
    try:
        spec = credential_spec(args.exchange)
        api_key = prompt(f"{args.exchange} API key: ")
        api_secret = prompt(f"{args.exchange} API secret: ")
        passphrase = None
        if spec.needs_passphrase:
            passphrase = prompt(f"{args.exchange} passphrase: ")
        store_api_credentials(args.exchange, api_key, api_secret, passphrase)
    except (RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return EXIT_CONFIG
    LOGGER.info(
        "Stored credentials for %s in service '%s'", args.exchange, spec.service_name
    )
    return EXIT_OK


def load_sync_config(args: argparse.Namespace) -> dict[str, Any]:
    """Merge defaults, the optional config file and explicit flags, in that order."""
    config: dict[str, Any] = dict(SYNC_DEFAULTS)
    if getattr(args, "config", None):
        config.update(load_config(Path(args.config).expanduser()))
    for key in SYNC_KEYS:
        value = getattr(args, key, None)
        if value is not None:
            config[key] = value
    return config


def build_sync_request(config: dict[str, Any]) -> SyncRequest:
    return SyncRequest(
        coins=tuple(config["coins"]),
        usd=Decimal(str(config["usd"])),
        every=parse_duration(str(config["every"])),
        after=parse_date(config.get("after")),
        until=parse_date(config.get("until")),
        auto_fund=bool(config["autofund"]),
        force=bool(config["force"]),
        order_type=OrderType(config["order_type"]),
        order_spread=Decimal(str(config["limit_order_spread"])),
        fee=Decimal(str(config["fee"])),
        currency=str(config["currency"]).upper(),
    )


def parse_duration(value: str) -> timedelta:
    """Parse a cadence such as ``12h``, ``1d`` or ``2w``."""
    match = _DURATION.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid duration '{value}', expected e.g. 12h, 1d or 2w")
    return int(match.group(1)) * DURATION_UNITS[match.group(2)]


def parse_date(value: Any) -> datetime | None:
    """Parse a YYYY-MM-DD date as midnight UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        day = value
    else:
        day = date.fromisoformat(str(value).strip())
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def log_result(result: SyncResult) -> None:
    if result.deferred:
        LOGGER.info("Run deferred until the deposit settles")
        return
    for order in result.orders:
        LOGGER.info("Order %s placed for %s", order.order_id, order.symbol)
    for symbol in result.skipped:
        LOGGER.info("Order for %s skipped in dry-run mode", symbol)
    for symbol, message in result.failures.items():
        LOGGER.warning("Order for %s failed: %s", symbol, message)
    if result.partial:
        LOGGER.warning(
            "%d of %d orders failed",
            len(result.failures),
            len(result.failures) + len(result.orders) + len(result.skipped),
        )


def load_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. Ensure the path is correct and readable."
        )
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        supported = ", ".join(SUPPORTED_FORMATS)
        raise ValueError(
            f"Unsupported config format '{suffix}'. Supported formats: {supported}."
        )
    try:
        if suffix == ".json":
            data = json.loads(config_path.read_text(encoding="utf-8"))
        elif suffix == ".toml":
            data = load_toml(config_path)
        else:
            data = load_yaml(config_path)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config file {config_path}: {exc}. Validate the file format."
        ) from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in config file {config_path}: {exc}.") from exc
    except (RuntimeError, ValueError):
        raise
    except Exception as exc:
        raise RuntimeError(
            f"Failed to parse config file {config_path}: {exc}."
        ) from exc
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {config_path} must contain a JSON/TOML/YAML object mapping."
        )
    return data


def load_toml(config_path: Path) -> dict[str, Any]:
    if sys.version_info >= (3, 11):
        import tomllib

        return tomllib.loads(config_path.read_text(encoding="utf-8"))
    import tomli

    return tomli.loads(config_path.read_text(encoding="utf-8"))


def load_yaml(config_path: Path) -> dict[str, Any]:
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"YAML config file {config_path} must contain a mapping at the top level."
        )
    return data


if __name__ == "__main__":
    raise SystemExit(main())
