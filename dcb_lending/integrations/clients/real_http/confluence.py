"""
Confluence REST client for release-note pages.

Only reads pages (storage format body); the smart-contract version table is
picked apart by dcb_lending.scrapers.confluence_table.
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from dcb_lending.error_handler import ConfluenceError
from dcb_lending.integrations.clients.real_http.lending_api import RequestExecutor
from dcb_lending.integrations.contracts.interfaces import NormalizedResponse
from dcb_lending.utils.config_loader import ConfluenceSettings

logger = logging.getLogger(__name__)


def _error_message(response: NormalizedResponse) -> str:
    if isinstance(response.body, dict):
        return str(response.body.get("message") or "Unknown error")
    return "Unknown error"


class ConfluenceClient:
    def __init__(self, settings: ConfluenceSettings, executor: RequestExecutor) -> None:
        self.settings = settings
        self.executor = executor
        self.base_url = settings.base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        token = base64.b64encode(f"{self.settings.username}:{self.settings.api_token}".encode("utf-8")).decode("ascii")
        return {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
        }

    def get_page_by_id(self, page_id: str) -> Dict[str, Any]:
        logger.info("Retrieving Confluence page with ID: %s", page_id)
        response = self.executor.execute(
            "GET",
            f"{self.base_url}/rest/api/content/{page_id}",
            headers=self._headers(),
            params={"expand": "body.storage"},
        )
        if response.status_code != 200 or not isinstance(response.body, dict):
            raise ConfluenceError(f"Failed to retrieve page {page_id}: {_error_message(response)}")

        logger.info("Successfully retrieved page: %s", response.body.get("title"))
        return response.body

    def get_page_by_title(self, title: str, space_key: Optional[str] = None) -> Dict[str, Any]:
        space = space_key or self.settings.space_key
        logger.info('Searching for page with title: "%s" in space: %s', title, space)
        response = self.executor.execute(
            "GET",
            f"{self.base_url}/rest/api/content",
            headers=self._headers(),
            params={"title": title, "spaceKey": space, "expand": "body.storage"},
        )
        if response.status_code != 200 or not isinstance(response.body, dict):
            raise ConfluenceError(f"Failed to search for page: {_error_message(response)}")

        results = response.body.get("results") or []
        if not results:
            raise ConfluenceError(f'No page found with title "{title}" in space {space}')

        logger.info("Found page: %s", results[0].get("title"))
        return results[0]

    def get_page(self, page_id: Optional[str] = None, title: Optional[str] = None) -> Dict[str, Any]:
        """Look the page up by id, falling back to a title search."""
        if page_id:
            try:
                return self.get_page_by_id(page_id)
            except ConfluenceError as e:
                logger.warning("Error getting page by ID: %s. Trying to get page by title instead...", e)
        return self.get_page_by_title(title or self.settings.page_title)


def extract_storage_html(page: Dict[str, Any]) -> str:
    """Raw storage-format HTML of a page (body.storage.value)."""
    try:
        return page["body"]["storage"]["value"]
    except (KeyError, TypeError) as exc:
        raise ConfluenceError("Invalid page structure: body.storage.value missing") from exc


def extract_plain_text(page: Dict[str, Any]) -> str:
    soup = BeautifulSoup(extract_storage_html(page), "html.parser")
    return re.sub(r"\s+", " ", soup.get_text(separator=" ")).strip()
