"""
Drawdown flow - disburse funds against a line of credit

1. Installmentation     -> drawdownToken + installment plans
2. Submit plan selection (submit-to-saving)
3. Confirm to saving or to biller, depending on drawdown_type
4. Amortization table for the selected tenor

One x-traceparent spans the whole run; every step gets its own x-request-id.
Any rejected step aborts the run; there is no resume.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from dcb_lending.error_handler import ConfigurationError, FlowAborted
from dcb_lending.integrations.clients.real_http.lending_api import RequestExecutor, lending_headers
from dcb_lending.integrations.contracts.interfaces import (
    DrawdownSession,
    DrawdownState,
    DrawdownType,
    NormalizedResponse,
)
from dcb_lending.integrations.policy.response_wrappers import ResponseExtractor, lookup_path
from dcb_lending.utils.config_loader import InstitutionConfig, validate_institution
from dcb_lending.utils.identifiers import generate_request_id, generate_trace_parent

DRAWDOWN_PATH = "/dcb/lending/v1/drawdown"


def format_amount(amount: float) -> str:
    """5000.0 -> "5000", 1234.5 -> "1234.5"."""
    value = float(amount)
    return str(int(value)) if value.is_integer() else str(value)


def _format_tenor(tenor: Any) -> str:
    if isinstance(tenor, float) and tenor.is_integer():
        return str(int(tenor))
    return str(tenor)


class DrawdownOrchestrator:
    def __init__(
        self,
        code: str,
        institution: InstitutionConfig,
        executor: RequestExecutor,
        extractor: ResponseExtractor,
        logger: Optional[logging.Logger] = None,
        request_id_factory: Callable[[], str] = generate_request_id,
        trace_parent_factory: Callable[[], str] = generate_trace_parent,
    ) -> None:
        self.code = code.lower()
        self.institution = institution
        self.executor = executor
        self.extractor = extractor
        self.logger = logger or logging.getLogger(__name__)
        self._request_id = request_id_factory
        self._trace_parent = trace_parent_factory
        self.session: Optional[DrawdownSession] = None

    def run(self) -> DrawdownSession:
        drawdown_type = self._validated_drawdown_type()

        self.session = session = DrawdownSession(
            trace_parent=self._trace_parent(),
            channel_txn_ref_id=self._request_id(),
        )
        try:
            plans = self._request_installments(session)
            self._submit_plan_selection(session, plans)
            self._confirm(session, drawdown_type)
            self._fetch_amortization_table(session)
        except FlowAborted:
            session.state = DrawdownState.ABORTED
            raise

        self._log_summary(session)
        return session

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #
    def _request_installments(self, session: DrawdownSession) -> List[Dict[str, Any]]:
        self.logger.info("===== Step 1: Drawdown Installmentation =====")
        inst = self.institution
        body: Dict[str, Any] = {
            "locAccountNo": inst.loc_account_no,
            "toAccountNo": inst.to_account_no,
            "productMarketCode": inst.product_market_code,
            "disburseAmount": float(inst.disburse_amount),
            "currency": inst.currency,
        }
        body.update(inst.drawdown_channel)
        if inst.requires_ccd_id:
            body["ccdId"] = inst.ccd_id

        response = self._post(session, "installmentation", body)

        token = self.extractor.extract_or_abort(response, "data.drawdownToken", "", "DRAWDOWN_TOKEN")
        if not token:
            raise FlowAborted(
                "Failed to extract drawdownToken from previous response",
                payload=response.body,
            )
        session.drawdown_token = token
        session.state = DrawdownState.INSTALLMENT_REQUESTED
        self.logger.info("Extracted drawdownToken: %s", token)

        return self.extractor.extract_or_abort(response, "data.installmentPlan", [], "INSTALLMENT_PLAN")

    def _submit_plan_selection(self, session: DrawdownSession, plans: List[Dict[str, Any]]) -> None:
        self.logger.info("===== Step 2: Submit Plan Selection =====")
        selected_plan_id = self.institution.selected_plan_id
        index = int(selected_plan_id)
        if not isinstance(plans, list) or not 0 <= index < len(plans):
            count = len(plans) if isinstance(plans, list) else 0
            raise FlowAborted(f"selected_plan_id {index} is outside the {count} installment plans returned")

        tenor = lookup_path(plans[index], "tenor")
        if tenor is None:
            raise FlowAborted(f"Installment plan {index} has no tenor", payload=plans[index])
        session.selected_plan_tenor = _format_tenor(tenor)

        body = {
            "drawdownToken": session.drawdown_token,
            "channelTxnRefId": session.channel_txn_ref_id,
            "selectedPlanId": selected_plan_id,
        }
        response = self._post(session, "submit-to-saving", body)
        self.extractor.extract_or_abort(response, "data", None, "SUBMIT_PLAN_SELECTION")
        session.state = DrawdownState.PLAN_SELECTED

    def _confirm(self, session: DrawdownSession, drawdown_type: DrawdownType) -> None:
        if drawdown_type is DrawdownType.SAVING:
            self.logger.info("===== Step 3: Confirm to Saving =====")
            path = "confirm-to-saving"
            body = {"drawdownToken": session.drawdown_token, "note": self.institution.confirmation_note}
        else:
            self.logger.info("===== Step 3: Confirm to Biller =====")
            path = "confirm-to-biller"
            body = {"drawdownToken": session.drawdown_token}

        response = self._post(session, path, body)
        self.extractor.extract_or_abort(response, "data", None, "CONFIRM_DRAWDOWN")
        session.state = DrawdownState.CONFIRMED

    def _fetch_amortization_table(self, session: DrawdownSession) -> None:
        self.logger.info("===== Step 4: Get Amortization Table =====")
        amount = self.institution.disburse_amount
        body = {
            "accountNumber": self.institution.loc_account_no,
            "drawdownAmount": format_amount(amount) if self.institution.amortization_amount_as_string else float(amount),
            "tenor": session.selected_plan_tenor,
        }
        response = self._post(session, "amortization-table", body)
        session.amortization = self.extractor.extract_or_abort(response, "data", None, "AMORTIZATION_TABLE")
        session.state = DrawdownState.AMORTIZATION_FETCHED

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _validated_drawdown_type(self) -> DrawdownType:
        problems = validate_institution(self.code, self.institution, require_drawdown=True)
        if problems:
            raise ConfigurationError("; ".join(problems))
        return DrawdownType(self.institution.drawdown_type)

    def _post(self, session: DrawdownSession, path: str, body: Dict[str, Any]) -> NormalizedResponse:
        url = f"{self.institution.base_url.rstrip('/')}{DRAWDOWN_PATH}/{path}"
        request_id = self._request_id()
        session.request_ids.append(request_id)

        self.logger.info("Calling POST %s", url)
        self.logger.info("Using request ID: %s", request_id)
        self.logger.debug("Request body: %s", json.dumps(body, ensure_ascii=False))

        headers = lending_headers(self.institution.header_set("drawdown"), request_id, session.trace_parent)
        response = self.executor.execute("POST", url, headers, body)
        self.logger.debug("Response (%s): %s", response.status_code, json.dumps(response.body, default=str, ensure_ascii=False))
        return response

    def _log_summary(self, session: DrawdownSession) -> None:
        inst = self.institution
        self.logger.info("===== Flow Execution Summary =====")
        self.logger.info("LOC Account Number: %s", inst.loc_account_no)
        self.logger.info("Disbursement Amount: %s", inst.disburse_amount)
        self.logger.info("To Account Number: %s", inst.to_account_no)
        self.logger.info("Product Market Code: %s", inst.product_market_code)
        self.logger.info("Drawdown Token: %s", session.drawdown_token)
        self.logger.info("Tenor: %s", session.selected_plan_tenor)
        self.logger.info("Trace parent: %s", session.trace_parent)
        self.logger.info("===== End of Summary =====")
