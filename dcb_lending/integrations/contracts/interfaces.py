from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


SUCCESS_CODE = "0000"
NETWORK_ERROR_CODE = "NETWORK_ERROR"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DrawdownType(str, Enum):
    SAVING = "Saving"
    BILL = "bill"


class DrawdownState(str, Enum):
    INSTALLMENT_REQUESTED = "INSTALLMENT_REQUESTED"
    PLAN_SELECTED = "PLAN_SELECTED"
    CONFIRMED = "CONFIRMED"
    AMORTIZATION_FETCHED = "AMORTIZATION_FETCHED"
    ABORTED = "ABORTED"


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@dataclass
class NormalizedResponse:
    """
    Uniform shape for every remote call.

    status_code is None when the call never reached the remote (transport
    failure); body then carries code NETWORK_ERROR.
    """
    status_code: Optional[int]
    body: Any
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_network_error(self) -> bool:
        return isinstance(self.body, dict) and self.body.get("code") == NETWORK_ERROR_CODE


# ---------------------------------------------------------------------------
# Flow state and results
# ---------------------------------------------------------------------------

@dataclass
class DrawdownSession:
    """In-memory state of one drawdown run; never persisted."""
    trace_parent: str
    channel_txn_ref_id: str
    drawdown_token: str = ""
    selected_plan_tenor: Optional[str] = None
    state: Optional[DrawdownState] = None
    amortization: Any = None
    request_ids: List[str] = field(default_factory=list)


@dataclass
class AccountCreationResult:
    institution: str
    contract_ref_id: str
    account_number: str
    product_market_code: Optional[str]
    account_name: Optional[str] = None


@dataclass
class AccountDeletionResult:
    contract_ref_id: str
    orchestration_rows: int
    processing_rows: int


@dataclass
class SmartContractVersionSet:
    supervisor_contract_id: str
    loc_smart_contract_id: str
    drawdown_smart_contract_id: str

    def as_config(self) -> Dict[str, str]:
        return {
            "supervisor_contract_id": self.supervisor_contract_id,
            "loc_smart_contract_id": self.loc_smart_contract_id,
            "drawdown_smart_contract_id": self.drawdown_smart_contract_id,
        }


@dataclass
class SmartContractUpdateResult:
    versions: SmartContractVersionSet
    proc_loan_account_rows: int
    loan_smart_contract_rows: int
    redis_key: str
    cache_key_deleted: bool


@dataclass
class BalanceInquiryResult:
    contract_ref_id: str
    tm_account_id: str
    balances: Any = None
