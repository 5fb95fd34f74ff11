"""
Integrations layer.
This package contains all code used to talk to external systems:
- DCB lending gateway (drawdown, account creation, balance inquiry)
- Confluence release notes (smart-contract versions)

Key rule:
- Flows MUST NOT call httpx directly.
- Flows go through RequestExecutor and read responses with ResponseExtractor.
"""

from .contracts.interfaces import (
    AccountCreationResult,
    AccountDeletionResult,
    BalanceInquiryResult,
    DrawdownSession,
    DrawdownState,
    DrawdownType,
    NormalizedResponse,
    SmartContractUpdateResult,
    SmartContractVersionSet,
)

__all__ = [
    "AccountCreationResult", "AccountDeletionResult", "BalanceInquiryResult",
    "DrawdownSession", "DrawdownState", "DrawdownType", "NormalizedResponse",
    "SmartContractUpdateResult", "SmartContractVersionSet",
]
