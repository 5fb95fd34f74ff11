"""
Smart-contract version maintenance.

SmartContractVersionSync pulls the versions deployed to an environment from
the Confluence release note into the config file; SmartContractUpdateFlow
pushes the configured versions into proc_loan_account / loan_smart_contract
and drops the cached contract definition from Redis.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from dcb_lending.database.postgres_real import DatabaseFactory
from dcb_lending.database.redis_real import SmartContractCache
from dcb_lending.error_handler import ConfigurationError
from dcb_lending.integrations.clients.real_http.confluence import ConfluenceClient, extract_storage_html
from dcb_lending.integrations.contracts.interfaces import SmartContractUpdateResult, SmartContractVersionSet
from dcb_lending.scrapers.confluence_table import extract_versions
from dcb_lending.utils.config_loader import ConfigRepository, ConfluenceSettings, InstitutionConfig


def configured_versions(code: str, institution: InstitutionConfig) -> SmartContractVersionSet:
    missing = [
        name
        for name in ("supervisor_contract_id", "loc_smart_contract_id", "drawdown_smart_contract_id")
        if not getattr(institution, name)
    ]
    if missing:
        raise ConfigurationError(f"Missing {', '.join(f'{code}.{m}' for m in missing)} in config")
    return SmartContractVersionSet(
        supervisor_contract_id=institution.supervisor_contract_id,
        loc_smart_contract_id=institution.loc_smart_contract_id,
        drawdown_smart_contract_id=institution.drawdown_smart_contract_id,
    )


class SmartContractUpdateFlow:
    def __init__(
        self,
        code: str,
        institution: InstitutionConfig,
        database_factory: DatabaseFactory,
        cache_factory: Callable[[], SmartContractCache],
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.code = code.lower()
        self.institution = institution
        self.database_factory = database_factory
        self.cache_factory = cache_factory
        self.logger = logger or logging.getLogger(__name__)

    def run(self) -> SmartContractUpdateResult:
        versions = configured_versions(self.code, self.institution)
        redis_key = self.institution.redis_key
        if not redis_key:
            raise ConfigurationError(f"Missing {self.code}.redis_key in config")

        self.logger.info("===== %s Smart Contract Update =====", self.code.upper())
        self.logger.info("Updating with supervisor_contract_id: %s", versions.supervisor_contract_id)
        self.logger.info("Setting loc_smart_contract_id: %s", versions.loc_smart_contract_id)
        self.logger.info("Setting drawdown_smart_contract_id: %s", versions.drawdown_smart_contract_id)

        with self.database_factory(self.institution.database.processing_database) as proc:
            proc_rows = proc.update_proc_loan_account(
                versions.supervisor_contract_id, versions.loc_smart_contract_id, versions.drawdown_smart_contract_id
            )
            contract_rows = proc.update_loan_smart_contract(
                versions.supervisor_contract_id, versions.loc_smart_contract_id, versions.drawdown_smart_contract_id
            )

        with self.cache_factory() as cache:
            deleted = cache.invalidate(redis_key)

        result = SmartContractUpdateResult(
            versions=versions,
            proc_loan_account_rows=proc_rows,
            loan_smart_contract_rows=contract_rows,
            redis_key=redis_key,
            cache_key_deleted=deleted,
        )

        self.logger.info("===== %s Update Summary =====", self.code.upper())
        self.logger.info("Supervisor Contract ID: %s", versions.supervisor_contract_id)
        self.logger.info("Updated proc_loan_account: %s rows", proc_rows)
        self.logger.info("Updated loan_smart_contract: %s rows", contract_rows)
        if deleted:
            self.logger.info("Deleted Redis key: %s", redis_key)
        else:
            self.logger.info("Redis key %s was not cached (nothing to delete)", redis_key)
        self.logger.info("===== End of Summary =====")
        return result


class SmartContractVersionSync:
    def __init__(
        self,
        confluence: ConfluenceClient,
        settings: ConfluenceSettings,
        config_repo: ConfigRepository,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.confluence = confluence
        self.settings = settings
        self.config_repo = config_repo
        self.logger = logger or logging.getLogger(__name__)

    def run(
        self,
        code: Optional[str] = None,
        page_id: Optional[str] = None,
        title: Optional[str] = None,
        env: Optional[str] = None,
    ) -> SmartContractVersionSet:
        code = (code or self.settings.institution or "").lower()
        if not code:
            raise ConfigurationError("No institution given for the Confluence sync (confluence.institution)")
        env = env or self.settings.env

        page = self.confluence.get_page(page_id or self.settings.page_id, title or self.settings.page_title)
        self.logger.info("Title: %s", page.get("title", "Unknown"))
        version = page.get("version") or {}
        self.logger.info("Last updated: %s", version.get("when", "Unknown"))

        heading = self.settings.heading_template.format(institution=code.upper())
        versions = extract_versions(extract_storage_html(page), heading, env, self.settings.version_columns)
        self.logger.info("%s versions on %s: %s", code.upper(), env.upper(), versions.as_config())

        self.config_repo.update_many(code, versions.as_config())
        return versions
