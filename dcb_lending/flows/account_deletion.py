"""
Account deletion - removes a loan_account row from both the orchestration
and the processing store by contract_ref_id. Zero rows in either store is
reported, not treated as an error.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Optional

from dcb_lending.database.postgres_real import DatabaseFactory
from dcb_lending.error_handler import ConfigurationError
from dcb_lending.integrations.contracts.interfaces import AccountDeletionResult
from dcb_lending.utils.config_loader import InstitutionConfig


class AccountDeletionFlow:
    def __init__(
        self,
        code: str,
        institution: InstitutionConfig,
        database_factory: DatabaseFactory,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.code = code.lower()
        self.institution = institution
        self.database_factory = database_factory
        self.logger = logger or logging.getLogger(__name__)

    def run(self) -> AccountDeletionResult:
        contract_ref_id = self.institution.contract_ref_id
        if not contract_ref_id:
            raise ConfigurationError(f"No contract_ref_id found in config for {self.code}")

        self.logger.info("===== %s Account Deletion =====", self.code.upper())
        self.logger.info("Deleting account with contract_ref_id: %s", contract_ref_id)

        settings = self.institution.database
        with ExitStack() as stack:
            orch = stack.enter_context(self.database_factory(settings.orchestration_database))
            proc = stack.enter_context(self.database_factory(settings.processing_database))
            result = AccountDeletionResult(
                contract_ref_id=contract_ref_id,
                orchestration_rows=orch.delete_loan_account(contract_ref_id),
                processing_rows=proc.delete_loan_account(contract_ref_id),
            )

        self.logger.info("===== Account Deletion Summary =====")
        self.logger.info("Contract Reference ID: %s", contract_ref_id)
        self.logger.info("Deleted from %s: %s rows", settings.orchestration_database, result.orchestration_rows)
        self.logger.info("Deleted from %s: %s rows", settings.processing_database, result.processing_rows)
        self.logger.info("===== End of Summary =====")
        return result
