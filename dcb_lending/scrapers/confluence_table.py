"""
Smart-contract version table extraction from a Confluence release note.

The page carries one table per institution under a heading such as
"Revolving loan - KTB"; each data row is tagged with the environment it was
deployed to (SIT, UAT, ...). Only that narrow shape is supported.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging

from bs4 import BeautifulSoup, Tag

from dcb_lending.error_handler import ConfluenceError
from dcb_lending.integrations.contracts.interfaces import SmartContractVersionSet
from dcb_lending.utils.config_loader import DEFAULT_VERSION_COLUMNS

logger = logging.getLogger(__name__)

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


@dataclass
class TableRows:
    header: List[str]
    values: List[str]

    def as_mapping(self) -> Dict[str, str]:
        """Column name -> cell text; unnamed columns are dropped."""
        return {name: value for name, value in zip(self.header, self.values) if name}


def _cell_texts(row: Tag, tag: str) -> List[str]:
    return [cell.get_text(strip=True) for cell in row.find_all(tag)]


def find_table_after_heading(html: str, heading_text: str) -> Optional[Tag]:
    soup = BeautifulSoup(html, "html.parser")
    wanted = " ".join(heading_text.split())
    for heading in soup.find_all(HEADING_TAGS):
        if " ".join(heading.get_text(" ").split()) == wanted:
            return heading.find_next("table")
    return None


def extract_env_row(html: str, heading_text: str, env: str) -> TableRows:
    """
    Header row plus the single data row mentioning the environment tag.

    Raises:
        ConfluenceError: heading/table missing, or zero or several rows match env
    """
    table = find_table_after_heading(html, heading_text)
    if table is None:
        raise ConfluenceError(f'No table found after heading "{heading_text}"')

    rows = table.find_all("tr")
    if not rows:
        raise ConfluenceError(f'Table under "{heading_text}" has no rows')

    header = _cell_texts(rows[0], "th") or _cell_texts(rows[0], "td")
    env_tag = env.upper()
    matches = [row for row in rows[1:] if env_tag in row.get_text(" ", strip=True)]

    if not matches:
        raise ConfluenceError(f'No row tagged {env_tag} in table under "{heading_text}"')
    if len(matches) > 1:
        raise ConfluenceError(f'{len(matches)} rows tagged {env_tag} in table under "{heading_text}"; expected one')

    logger.info("Found header and %s row for %s", env_tag, heading_text)
    return TableRows(header=header, values=_cell_texts(matches[0], "td"))


def extract_versions(
    html: str,
    heading_text: str,
    env: str,
    version_columns: Optional[Dict[str, str]] = None,
) -> SmartContractVersionSet:
    columns = version_columns or DEFAULT_VERSION_COLUMNS
    mapping = extract_env_row(html, heading_text, env).as_mapping()

    missing = [column for column in columns.values() if not mapping.get(column)]
    if missing:
        raise ConfluenceError(f"Missing columns in version table: {', '.join(missing)}")

    return SmartContractVersionSet(
        supervisor_contract_id=mapping[columns["supervisor_contract_id"]],
        loc_smart_contract_id=mapping[columns["loc_smart_contract_id"]],
        drawdown_smart_contract_id=mapping[columns["drawdown_smart_contract_id"]],
    )
