"""
Configuration loader for the lending scripts.

A single YAML file holds per-institution connection/profile settings together
with the mutable values that flows hand to each other across invocations
(contract_ref_id, smart-contract ids, ...).
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.engine import URL

from dcb_lending.error_handler import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

DRAWDOWN_TYPES = ("Saving", "bill")

DEFAULT_VERSION_COLUMNS = {
    "supervisor_contract_id": "Supervisor Version",
    "loc_smart_contract_id": "LOC Version",
    "drawdown_smart_contract_id": "Drawdown Version",
}


class DatabaseSettings(BaseModel):
    """Postgres connection details; unset values fall back to DB_* env vars."""

    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    driver: str = "postgresql+psycopg2"
    db_schema: str = "public"
    orchestration_database: str = "orch_loan_account_creation"
    processing_database: str = "proc_loan_account"

    def url_for(self, database: str) -> URL:
        port = self.port or os.getenv("DB_PORT")
        return URL.create(
            self.driver,
            username=self.user or os.getenv("DB_USER"),
            password=self.password or os.getenv("DB_PASSWORD"),
            host=self.host or os.getenv("DB_HOST"),
            port=int(port) if port else None,
            database=database,
        )


class RedisSettings(BaseModel):
    host: str = Field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    port: int = Field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")), ge=1, le=65535)
    db: int = 0


class ConfluenceSettings(BaseModel):
    base_url: str
    username: str = ""
    api_token: str = Field(default_factory=lambda: os.getenv("CONFLUENCE_API_TOKEN", ""))
    space_key: str = "TM"
    env: str = "SIT"
    page_id: Optional[str] = None
    page_title: str = "Line of Credit - Release Note"
    institution: Optional[str] = None
    heading_template: str = "Revolving loan - {institution}"
    version_columns: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_VERSION_COLUMNS))


class HttpSettings(BaseModel):
    timeout_seconds: float = Field(default=30.0, gt=0)
    # Non-production gateways use self-signed certificates.
    verify_tls: bool = False


class LogSettings(BaseModel):
    log_dir: str = "logs"
    error_log: str = "error_log.txt"
    archive_dir: str = "error_logs_archive"


class InstitutionConfig(BaseModel):
    """Profile of one bank integration plus its mutable session values."""

    base_url: str
    loc_account_no: Optional[str] = None
    to_account_no: Optional[str] = None
    product_market_code: Optional[str] = None
    disburse_amount: Optional[float] = None
    selected_plan_id: Optional[int] = None
    currency: str = "THB"
    ccd_id: Optional[str] = None

    drawdown_type: Optional[str] = None
    confirmation_note: str = "DISBURSEMENT"
    # Merged into the installmentation body, e.g. {"channelId": "KTB"}
    drawdown_channel: Dict[str, str] = Field(default_factory=dict)
    # Channel identified by ccd_id: sent as ccdId on installmentation and account creation
    requires_ccd_id: bool = False
    amortization_amount_as_string: bool = False

    # Routing header sets keyed by call family: "drawdown", "account"
    headers: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    account_profile: Dict[str, Any] = Field(default_factory=dict)
    account_number_field: str = "data.accountNo"
    persist_account_number: bool = False

    contract_ref_id: Optional[str] = None
    supervisor_contract_id: Optional[str] = None
    loc_smart_contract_id: Optional[str] = None
    drawdown_smart_contract_id: Optional[str] = None
    redis_key: Optional[str] = None

    balance_inquiry_url: Optional[str] = None
    balance_inquiry_headers: Dict[str, str] = Field(default_factory=dict)

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    def header_set(self, family: str) -> Dict[str, str]:
        return dict(self.headers.get(family, {}))


class LendingConfig(BaseModel):
    institutions: Dict[str, InstitutionConfig]
    confluence: Optional[ConfluenceSettings] = None
    redis: RedisSettings = Field(default_factory=RedisSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    logs: LogSettings = Field(default_factory=LogSettings)

    def institution(self, code: str) -> InstitutionConfig:
        key = code.lower()
        if key not in self.institutions:
            raise ConfigurationError(f"Bank configuration for {code} not found")
        return self.institutions[key]


def default_config_path() -> Path:
    env_path = os.getenv("LENDING_CONFIG")
    if env_path:
        return Path(env_path)
    return Path(__file__).parent.parent.parent / "config" / "lending_config.yml"


class ConfigRepository:
    """
    Reads the config file wholesale and persists individual fields back.

    Writes rewrite the whole file; concurrent runs against the same file are
    last-writer-wins.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else default_config_path()

    def load_raw(self) -> Dict[str, Any]:
        if not self.path.exists():
            raise FileNotFoundError(f"Config file not found: {self.path}")

        with open(self.path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def load(self) -> LendingConfig:
        data = self.load_raw()
        try:
            config = LendingConfig(**data)
            logger.debug("Loaded lending config from %s", self.path)
            return config
        except ValidationError as e:
            logger.error("Config validation failed: %s", e)
            raise

    def update(self, institution: str, key: str, value: Any) -> None:
        self.update_many(institution, {key: value})

    def update_many(self, institution: str, values: Dict[str, Any]) -> None:
        data = self.load_raw()
        section = data.setdefault("institutions", {}).setdefault(institution.lower(), {})
        section.update(values)

        # Written beside the target and swapped in with os.replace
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        for key, value in values.items():
            logger.info("Updated config: %s.%s = %s", institution.lower(), key, value)


def validate_institution(code: str, institution: InstitutionConfig, require_drawdown: bool = True) -> List[str]:
    """
    Return a list of configuration problems for one institution.
    Empty list means the profile is usable.
    """
    errors: List[str] = []

    if not institution.base_url:
        errors.append(f"Missing {code}.base_url")

    if require_drawdown:
        for field in (
            "loc_account_no",
            "to_account_no",
            "product_market_code",
            "disburse_amount",
            "selected_plan_id",
            "drawdown_type",
        ):
            if getattr(institution, field) is None:
                errors.append(f"Missing {code}.{field}")

    if institution.requires_ccd_id and not institution.ccd_id:
        errors.append(f"Missing {code}.ccd_id")

    if institution.drawdown_type is not None and institution.drawdown_type not in DRAWDOWN_TYPES:
        errors.append(
            f"Invalid {code}.drawdown_type value: {institution.drawdown_type}. Must be 'Saving' or 'bill'."
        )

    return errors
