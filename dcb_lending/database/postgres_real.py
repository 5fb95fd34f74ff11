"""
Postgres access for the lending stores (orch_loan_account_creation and
proc_loan_account). One LendingDatabase wraps one logical database; engines
are not pooled and must be closed by the caller.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.pool import NullPool

from dcb_lending.error_handler import ConfigurationError, FlowAborted
from dcb_lending.utils.config_loader import DatabaseSettings

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _checked_schema(schema: str) -> str:
    if not _IDENTIFIER.match(schema):
        raise ConfigurationError(f"Invalid database schema name: {schema!r}")
    return schema


class LendingDatabase:
    def __init__(
        self,
        url: Union[str, URL, None] = None,
        name: str = "",
        schema: str = "public",
        engine: Optional[Engine] = None,
    ) -> None:
        if engine is None and url is None:
            raise ValueError("LendingDatabase needs a url or an engine")
        self.schema = _checked_schema(schema)
        self.engine = engine or create_engine(url, poolclass=NullPool)
        self.name = name or self.engine.url.database or ""
        logger.info("Using %s database", self.name)

    @classmethod
    def from_settings(cls, settings: DatabaseSettings, database: str) -> "LendingDatabase":
        return cls(settings.url_for(database), name=database, schema=settings.db_schema)

    def _table(self, table: str) -> str:
        return f"{self.schema}.{table}"

    def _execute(self, sql: str, params: Dict[str, Any]) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), params)
            return result.rowcount

    # ------------------------------------------------------------------ #
    # loan_account
    # ------------------------------------------------------------------ #
    def delete_loan_account(self, contract_ref_id: str) -> int:
        count = self._execute(
            f"DELETE FROM {self._table('loan_account')} WHERE contract_ref_id = :contract_ref_id",
            {"contract_ref_id": contract_ref_id},
        )
        logger.info("Deleted %s rows from %s.%s", count, self.name, self._table("loan_account"))
        return count

    def get_tm_account_id(self, contract_ref_id: str) -> str:
        with self.engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT tm_account_id FROM {self._table('loan_account')} WHERE contract_ref_id = :contract_ref_id"),
                {"contract_ref_id": contract_ref_id},
            ).first()
        if row is None:
            raise FlowAborted(f"No account found with contract_ref_id: {contract_ref_id}")
        logger.info("Found tm_account_id: %s", row.tm_account_id)
        return row.tm_account_id

    # ------------------------------------------------------------------ #
    # Smart contracts
    # ------------------------------------------------------------------ #
    def find_loan_smart_contracts(self, contract_ref_id: str) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                text(f"SELECT * FROM {self._table('loan_smart_contract')} WHERE contract_ref_id = :contract_ref_id"),
                {"contract_ref_id": contract_ref_id},
            ).mappings().all()
        logger.info("Retrieved %s rows from %s", len(rows), self._table("loan_smart_contract"))
        return [dict(r) for r in rows]

    def _update_smart_contract_ids(
        self, table: str, supervisor_contract_id: str, loc_smart_contract_id: str, drawdown_smart_contract_id: str
    ) -> int:
        count = self._execute(
            f"UPDATE {self._table(table)} "
            "SET loc_smart_contract_id = :loc, drawdown_smart_contract_id = :drawdown "
            "WHERE supervisor_contract_id = :supervisor",
            {
                "loc": loc_smart_contract_id,
                "drawdown": drawdown_smart_contract_id,
                "supervisor": supervisor_contract_id,
            },
        )
        logger.info("Updated %s rows in %s", count, self._table(table))
        return count

    def update_proc_loan_account(
        self, supervisor_contract_id: str, loc_smart_contract_id: str, drawdown_smart_contract_id: str
    ) -> int:
        return self._update_smart_contract_ids(
            "proc_loan_account", supervisor_contract_id, loc_smart_contract_id, drawdown_smart_contract_id
        )

    def update_loan_smart_contract(
        self, supervisor_contract_id: str, loc_smart_contract_id: str, drawdown_smart_contract_id: str
    ) -> int:
        return self._update_smart_contract_ids(
            "loan_smart_contract", supervisor_contract_id, loc_smart_contract_id, drawdown_smart_contract_id
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def close(self) -> None:
        self.engine.dispose()
        logger.info("Closed connection to %s database", self.name)

    def __enter__(self) -> "LendingDatabase":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


DatabaseFactory = Callable[[str], LendingDatabase]


def settings_factory(settings: DatabaseSettings) -> DatabaseFactory:
    """Factory opening a LendingDatabase for a logical database name."""

    def _open(database: str) -> LendingDatabase:
        return LendingDatabase.from_settings(settings, database)

    return _open
