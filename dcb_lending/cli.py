#!/usr/bin/env python3
"""
Command-line entry point for the DCB lending scripts.

Each subcommand is one operational script; institutions (ktb, vb, ...) are
profiles in the config file, selected with --bank.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from dcb_lending.database.postgres_real import DatabaseFactory, settings_factory
from dcb_lending.database.redis_real import SmartContractCache
from dcb_lending.error_handler import ConfigurationError, ErrorHandler, ErrorLog
from dcb_lending.flows.account_creation import AccountCreationFlow
from dcb_lending.flows.account_deletion import AccountDeletionFlow
from dcb_lending.flows.balance_inquiry import BalanceInquiryFlow
from dcb_lending.flows.drawdown import DrawdownOrchestrator
from dcb_lending.flows.smart_contract import SmartContractUpdateFlow, SmartContractVersionSync
from dcb_lending.integrations.clients.real_http.confluence import ConfluenceClient
from dcb_lending.integrations.clients.real_http.lending_api import RequestExecutor
from dcb_lending.integrations.policy.response_wrappers import ResponseExtractor
from dcb_lending.utils.config_loader import (
    ConfigRepository,
    DatabaseSettings,
    LendingConfig,
    RedisSettings,
    validate_institution,
)
from dcb_lending.utils.log_setup import setup_logging, timestamped_log_path

logger = logging.getLogger(__name__)

EPILOG = """
Examples:
  dcb-lending drawdown --bank ktb --timestamped-log
  dcb-lending create-account --bank vb
  dcb-lending delete-account --bank ktb
  dcb-lending sync-smart-contract --bank ktb --env SIT
  dcb-lending update-smart-contract --bank ktb
  dcb-lending validate-config
  dcb-lending clear-error-log
"""


# --------------------------------------------------------------------------- #
# Collaborator factories (replaced in tests)
# --------------------------------------------------------------------------- #
def make_executor(config: LendingConfig, error_log: ErrorLog) -> RequestExecutor:
    return RequestExecutor(
        timeout_seconds=config.http.timeout_seconds,
        verify_tls=config.http.verify_tls,
        error_log=error_log,
    )


def make_database_factory(settings: DatabaseSettings) -> DatabaseFactory:
    return settings_factory(settings)


def make_cache_factory(settings: RedisSettings) -> Callable[[], SmartContractCache]:
    return lambda: SmartContractCache.from_settings(settings)


@dataclass
class Runtime:
    args: argparse.Namespace
    repo: ConfigRepository
    config: LendingConfig
    error_log: ErrorLog


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #
def _require_bank(runtime: Runtime) -> str:
    if not runtime.args.bank:
        raise ConfigurationError("--bank is required for this command")
    return runtime.args.bank.lower()


def cmd_drawdown(runtime: Runtime) -> int:
    code = _require_bank(runtime)
    institution = runtime.config.institution(code)
    with make_executor(runtime.config, runtime.error_log) as executor:
        orchestrator = DrawdownOrchestrator(code, institution, executor, ResponseExtractor(runtime.error_log))
        orchestrator.run()
    return 0


def cmd_create_account(runtime: Runtime) -> int:
    code = _require_bank(runtime)
    institution = runtime.config.institution(code)
    with make_executor(runtime.config, runtime.error_log) as executor:
        flow = AccountCreationFlow(code, institution, executor, ResponseExtractor(runtime.error_log), runtime.repo)
        flow.run()
    return 0


def cmd_delete_account(runtime: Runtime) -> int:
    code = _require_bank(runtime)
    institution = runtime.config.institution(code)
    AccountDeletionFlow(code, institution, make_database_factory(institution.database)).run()
    return 0


def cmd_update_smart_contract(runtime: Runtime) -> int:
    code = _require_bank(runtime)
    institution = runtime.config.institution(code)
    SmartContractUpdateFlow(
        code,
        institution,
        make_database_factory(institution.database),
        make_cache_factory(runtime.config.redis),
    ).run()
    return 0


def cmd_sync_smart_contract(runtime: Runtime) -> int:
    settings = runtime.config.confluence
    if settings is None:
        raise ConfigurationError("No confluence section in config")
    args = runtime.args
    with make_executor(runtime.config, runtime.error_log) as executor:
        sync = SmartContractVersionSync(ConfluenceClient(settings, executor), settings, runtime.repo)
        sync.run(code=args.bank, page_id=args.page_id, title=args.title, env=args.env)
    return 0


def cmd_show_smart_contract(runtime: Runtime) -> int:
    code = _require_bank(runtime)
    institution = runtime.config.institution(code)
    if not institution.contract_ref_id:
        raise ConfigurationError(f"No contract_ref_id found in config for {code}")

    open_database = make_database_factory(institution.database)
    with open_database(institution.database.processing_database) as proc:
        rows = proc.find_loan_smart_contracts(institution.contract_ref_id)

    for row in rows:
        logger.info("%s", json.dumps(row, default=str, ensure_ascii=False))
    if runtime.args.output:
        output: Path = runtime.args.output
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(rows, default=str, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info("Results saved to %s", output)
    return 0


def cmd_balance_inquiry(runtime: Runtime) -> int:
    code = _require_bank(runtime)
    institution = runtime.config.institution(code)
    with make_executor(runtime.config, runtime.error_log) as executor:
        flow = BalanceInquiryFlow(
            code,
            institution,
            executor,
            ResponseExtractor(runtime.error_log),
            make_database_factory(institution.database),
        )
        result = flow.run()
    if runtime.args.output:
        runtime.args.output.parent.mkdir(parents=True, exist_ok=True)
        runtime.args.output.write_text(json.dumps(asdict(result), default=str, indent=2), encoding="utf-8")
        logger.info("Results saved to %s", runtime.args.output)
    return 0


def cmd_validate_config(runtime: Runtime) -> int:
    problems: List[str] = []
    codes = [runtime.args.bank.lower()] if runtime.args.bank else list(runtime.config.institutions)
    for code in codes:
        logger.info("Checking required fields for %s...", code.upper())
        problems.extend(validate_institution(code, runtime.config.institution(code)))

    for problem in problems:
        logger.error("Error: %s", problem)
    if problems:
        return 1
    logger.info("%s is valid!", runtime.repo.path)
    return 0


COMMANDS: Dict[str, Callable[[Runtime], int]] = {
    "drawdown": cmd_drawdown,
    "create-account": cmd_create_account,
    "delete-account": cmd_delete_account,
    "update-smart-contract": cmd_update_smart_contract,
    "sync-smart-contract": cmd_sync_smart_contract,
    "show-smart-contract": cmd_show_smart_contract,
    "balance-inquiry": cmd_balance_inquiry,
    "validate-config": cmd_validate_config,
}


# --------------------------------------------------------------------------- #
# Parser
# --------------------------------------------------------------------------- #
def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config YAML (default: $LENDING_CONFIG or config/lending_config.yml)",
    )
    common.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    common.add_argument("--log-file", type=Path, default=None, help="Also write the log to this file")
    common.add_argument(
        "--timestamped-log",
        action="store_true",
        help="Write the log to logs/<loc_account_no>-<timestamp>.log",
    )

    parser = argparse.ArgumentParser(
        prog="dcb-lending",
        description="DCB lending operational scripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def add(name: str, help_text: str, bank_required: bool = True) -> argparse.ArgumentParser:
        p = sub.add_parser(name, parents=[common], help=help_text)
        p.add_argument("--bank", required=bank_required, help="Institution code from the config (e.g. ktb, vb)")
        return p

    add("drawdown", "Run the four-step drawdown flow")
    add("create-account", "Create a line-of-credit account")
    add("delete-account", "Delete the configured account from both loan stores")
    add("update-smart-contract", "Push configured smart-contract ids to the DB and clear the cache key")

    sync = add("sync-smart-contract", "Read smart-contract versions from Confluence into the config", False)
    sync.add_argument("--page-id", default=None, help="Confluence page id (falls back to title search)")
    sync.add_argument("--title", default=None, help="Confluence page title")
    sync.add_argument("--env", default=None, help="Environment tag to select the table row (e.g. SIT)")

    show = add("show-smart-contract", "List loan_smart_contract rows for the configured account")
    show.add_argument("--output", type=Path, default=None, help="Save the rows as JSON")

    balance = add("balance-inquiry", "Query balances of the configured LOC account")
    balance.add_argument("--output", type=Path, default=None, help="Save the result as JSON")

    add("validate-config", "Check required fields of every (or one) institution", False)
    sub.add_parser("clear-error-log", parents=[common], help="Archive and truncate the error log")
    return parser


def _log_path(args: argparse.Namespace, config: Optional[LendingConfig]) -> Optional[Path]:
    if args.log_file:
        return args.log_file
    if not args.timestamped_log or config is None:
        return None
    loc_account_no = None
    bank = getattr(args, "bank", None)
    if bank and bank.lower() in config.institutions:
        loc_account_no = config.institutions[bank.lower()].loc_account_no
    return timestamped_log_path(Path(config.logs.log_dir), loc_account_no, stem=args.command)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    error_log = ErrorLog()
    handler = ErrorHandler(error_log)
    try:
        repo = ConfigRepository(args.config)

        if args.command == "clear-error-log":
            config = repo.load() if repo.path.exists() else None
            if config is not None:
                error_log = ErrorLog(Path(config.logs.error_log), Path(config.logs.archive_dir))
            error_log.archive()
            return 0

        config = repo.load()
        error_log = ErrorLog(Path(config.logs.error_log), Path(config.logs.archive_dir))
        handler = ErrorHandler(error_log)

        log_path = _log_path(args, config)
        if log_path and log_path != args.log_file:
            setup_logging(verbose=args.verbose, log_file=log_path)
            logger.info("Logging to %s", log_path)

        return COMMANDS[args.command](Runtime(args=args, repo=repo, config=config, error_log=error_log))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except Exception as e:
        return handler.handle_exception(e, {"command": args.command, "bank": getattr(args, "bank", None)})


if __name__ == "__main__":
    sys.exit(main())
