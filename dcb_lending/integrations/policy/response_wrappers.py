from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Union

from dcb_lending.error_handler import ErrorLog, FlowAborted
from dcb_lending.integrations.contracts.interfaces import SUCCESS_CODE, NormalizedResponse


@dataclass(frozen=True)
class Ok:
    value: Any
    used_default: bool = False


@dataclass(frozen=True)
class ApplicationError:
    """The remote answered with a non-success envelope code."""
    code: str
    message: str
    field_name: str
    body: Any = None


ExtractionResult = Union[Ok, ApplicationError]


def lookup_path(data: Any, field_path: str) -> Optional[Any]:
    """
    Walk a dot-separated path (e.g. "data.drawdownToken") through nested
    mappings. Numeric segments index into lists ("data.installmentPlan.1").

    Returns None as soon as a segment is missing or the current value is not
    a container.
    """
    current = data
    for part in (p for p in field_path.split(".") if p):
        if isinstance(current, Mapping):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def application_error_code(body: Mapping) -> Optional[str]:
    """
    Envelope code when it signals failure. Absent, null, "", numeric 0 and
    "0000" all mean success; any other value (including the string "0") is a
    failure code.
    """
    code = body.get("code")
    if code is None or code == "" or (isinstance(code, int) and not isinstance(code, bool) and code == 0):
        return None
    if str(code) == SUCCESS_CODE:
        return None
    return str(code)


class ResponseExtractor:
    """
    Checks a NormalizedResponse for an application error and pulls one field
    out of its body.

    - application error  -> ApplicationError result, logged to the error log
    - missing path        -> Ok(default), warning
    - malformed response  -> Ok(default), logged as a network-style error
    """

    def __init__(self, error_log: Optional[ErrorLog] = None, logger: Optional[logging.Logger] = None) -> None:
        self.error_log = error_log or ErrorLog()
        self.logger = logger or logging.getLogger(__name__)

    def extract(
        self,
        response: NormalizedResponse,
        field_path: str,
        default: Any = None,
        field_name: Optional[str] = None,
    ) -> ExtractionResult:
        field_name = field_name or field_path
        try:
            body = response.body
            if not isinstance(body, Mapping):
                raise TypeError(f"response body is {type(body).__name__}, expected an object")

            code = application_error_code(body)
            if code is not None:
                message = str(body.get("message") or "")
                self.logger.error("Error in response: Code %s - %s", code, message)
                self.error_log.record_application_error(field_name, code, message, body)
                return ApplicationError(code=code, message=message, field_name=field_name, body=body)

            value = lookup_path(body, field_path)
        except Exception as exc:
            self.logger.error("Error extracting value for %s: %s", field_name, exc)
            self.error_log.record_network_error(str(exc), field_name)
            self.logger.warning("Continuing execution with default value for %s", field_name)
            return Ok(default, used_default=True)

        if value is None:
            self.logger.warning(
                "Using default value for %s because it couldn't be extracted from the response", field_name
            )
            return Ok(default, used_default=True)
        return Ok(value)

    def extract_or_abort(
        self,
        response: NormalizedResponse,
        field_path: str,
        default: Any = None,
        field_name: Optional[str] = None,
    ) -> Any:
        """extract(), raising FlowAborted on an application error."""
        result = self.extract(response, field_path, default, field_name)
        if isinstance(result, ApplicationError):
            raise FlowAborted(
                f"{result.field_name} rejected: Code {result.code} - {result.message}",
                code=result.code,
                payload=result.body,
            )
        return result.value
