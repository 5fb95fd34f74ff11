"""
Line-of-credit account creation.

Posts the institution's static account profile with a fresh contractRefId and
stores the resulting contract_ref_id (and, where the institution returns one
worth keeping, the LOC account number) for later flows.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, Optional

from dcb_lending.error_handler import ConfigurationError
from dcb_lending.integrations.clients.real_http.lending_api import RequestExecutor, lending_headers
from dcb_lending.integrations.contracts.interfaces import AccountCreationResult
from dcb_lending.integrations.policy.response_wrappers import ResponseExtractor
from dcb_lending.utils.config_loader import ConfigRepository, InstitutionConfig
from dcb_lending.utils.identifiers import generate_request_id, generate_trace_parent

ACCOUNT_CREATE_PATH = "/dcb/lending/v1/accounts/loc/create"


class AccountCreationFlow:
    def __init__(
        self,
        code: str,
        institution: InstitutionConfig,
        executor: RequestExecutor,
        extractor: ResponseExtractor,
        config_repo: ConfigRepository,
        logger: Optional[logging.Logger] = None,
        request_id_factory: Callable[[], str] = generate_request_id,
        trace_parent_factory: Callable[[], str] = generate_trace_parent,
    ) -> None:
        self.code = code.lower()
        self.institution = institution
        self.executor = executor
        self.extractor = extractor
        self.config_repo = config_repo
        self.logger = logger or logging.getLogger(__name__)
        self._request_id = request_id_factory
        self._trace_parent = trace_parent_factory

    def build_request(self, contract_ref_id: str) -> Dict[str, Any]:
        inst = self.institution
        if not inst.account_profile:
            raise ConfigurationError(f"No account_profile configured for {self.code}")
        if inst.requires_ccd_id and not inst.ccd_id:
            raise ConfigurationError(f"Missing {self.code}.ccd_id in config")

        body = copy.deepcopy(inst.account_profile)
        body["contractRefId"] = contract_ref_id
        product_market_code = inst.product_market_code or body.get("productMarketCode")
        if not product_market_code:
            raise ConfigurationError(f"Missing {self.code}.product_market_code in config")
        body["productMarketCode"] = product_market_code
        if inst.requires_ccd_id:
            body["ccdId"] = inst.ccd_id
        return body

    def run(self) -> AccountCreationResult:
        self.logger.info("===== %s Account Creation =====", self.code.upper())
        contract_ref_id = self._request_id()
        body = self.build_request(contract_ref_id)
        self.logger.info("Generated contractRefId: %s", contract_ref_id)

        url = f"{self.institution.base_url.rstrip('/')}{ACCOUNT_CREATE_PATH}"
        request_id = self._request_id()
        self.logger.info("Calling POST %s", url)
        self.logger.info("Using request ID: %s", request_id)

        headers = lending_headers(self.institution.header_set("account"), request_id, self._trace_parent())
        response = self.executor.execute("POST", url, headers, body)

        account_number = self.extractor.extract_or_abort(
            response, self.institution.account_number_field, "", "ACCOUNT_NUMBER"
        )
        returned_ref = self.extractor.extract_or_abort(response, "data.contractRefId", contract_ref_id, "CONTRACT_REF_ID")

        updates: Dict[str, Any] = {"contract_ref_id": returned_ref}
        if self.institution.persist_account_number and account_number:
            updates["loc_account_no"] = account_number
        self.config_repo.update_many(self.code, updates)

        result = AccountCreationResult(
            institution=self.code,
            contract_ref_id=returned_ref,
            account_number=account_number or (self.institution.loc_account_no or ""),
            product_market_code=body.get("productMarketCode"),
            account_name=body.get("accountNameEN"),
        )

        self.logger.info("===== Account Creation Summary =====")
        self.logger.info("Contract Reference ID: %s", result.contract_ref_id)
        self.logger.info("Product Market Code: %s", result.product_market_code)
        self.logger.info("Account Name: %s", result.account_name)
        self.logger.info("Account Number: %s", result.account_number)
        self.logger.info("===== End of Summary =====")
        return result
