"""
Balance inquiry for the configured LOC account.

Resolves the core-banking tm_account_id from proc_loan_account by
contract_ref_id, then asks the internal processor for the balances.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from dcb_lending.database.postgres_real import DatabaseFactory
from dcb_lending.error_handler import ConfigurationError
from dcb_lending.integrations.clients.real_http.lending_api import RequestExecutor
from dcb_lending.integrations.contracts.interfaces import BalanceInquiryResult
from dcb_lending.integrations.policy.response_wrappers import ResponseExtractor
from dcb_lending.utils.config_loader import InstitutionConfig
from dcb_lending.utils.identifiers import generate_request_id, generate_trace_parent

LOC_ACCOUNT_TYPE = "LOC_ACCOUNT"


class BalanceInquiryFlow:
    def __init__(
        self,
        code: str,
        institution: InstitutionConfig,
        executor: RequestExecutor,
        extractor: ResponseExtractor,
        database_factory: DatabaseFactory,
        logger: Optional[logging.Logger] = None,
        request_id_factory: Callable[[], str] = generate_request_id,
        trace_parent_factory: Callable[[], str] = generate_trace_parent,
    ) -> None:
        self.code = code.lower()
        self.institution = institution
        self.executor = executor
        self.extractor = extractor
        self.database_factory = database_factory
        self.logger = logger or logging.getLogger(__name__)
        self._request_id = request_id_factory
        self._trace_parent = trace_parent_factory

    def _headers(self, request_id: str) -> Dict[str, str]:
        headers = {"X-Channel-Id": "bib", "X-Requester": ""}
        headers.update(self.institution.balance_inquiry_headers)
        headers["X-Request-Id"] = request_id
        headers["X-Traceparent"] = self._trace_parent()
        headers["Content-Type"] = "application/json"
        return headers

    def run(self) -> BalanceInquiryResult:
        contract_ref_id = self.institution.contract_ref_id
        if not contract_ref_id:
            raise ConfigurationError(f"No contract_ref_id found in config for {self.code}")
        url = self.institution.balance_inquiry_url
        if not url:
            raise ConfigurationError(f"Missing {self.code}.balance_inquiry_url in config")

        self.logger.info("===== %s Balance Inquiry =====", self.code.upper())
        with self.database_factory(self.institution.database.processing_database) as proc:
            tm_account_id = proc.get_tm_account_id(contract_ref_id)

        body: Dict[str, Any] = {"accountIds": [{"tmAccountId": tm_account_id, "accountType": LOC_ACCOUNT_TYPE}]}
        request_id = self._request_id()
        self.logger.info("Calling POST %s", url)
        self.logger.info("Using request ID: %s", request_id)

        response = self.executor.execute("POST", url, self._headers(request_id), body)
        balances = self.extractor.extract_or_abort(response, "data", None, "BALANCE_INQUIRY")

        self.logger.info("===== Balance Inquiry Summary =====")
        self.logger.info("Contract Reference ID: %s", contract_ref_id)
        self.logger.info("TM Account ID: %s", tm_account_id)
        self.logger.info("Balances: %s", balances)
        self.logger.info("===== End of Summary =====")
        return BalanceInquiryResult(contract_ref_id=contract_ref_id, tm_account_id=tm_account_id, balances=balances)
