"""Provider CLI runner.

Runs ``gcloud``/``az`` commands with a timeout, parses JSON output and maps
CLI failures onto the cloudsweep error taxonomy.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import Any, List, Optional, Sequence, Type

from ..errors import (
    NotFoundError,
    PermissionDeniedError,
    ProtectedError,
    ProviderError,
    ProviderUnavailableError,
    TransientError,
)

logger = logging.getLogger(__name__)

# Markers are matched case-insensitively against stderr, first match wins
UNAVAILABLE_MARKERS = (
    "az login",
    "gcloud auth login",
    "not logged in",
    "no credentialed accounts",
    "reauthentication failed",
    "refresh token has expired",
)
PROTECTED_MARKERS = ("scopelocked", "cannot perform delete operation because following scope(s) are locked")
# A dependent still exists; the message usually names it, not-found wording included
IN_USE_MARKERS = (
    "is already being used",
    "being used by",
    "resourceinuse",
    "in use by",
    "inuseby",
    "another operation",
    "operation in progress",
)
NOT_FOUND_MARKERS = (
    "not_found",
    "notfound",
    "was not found",
    "could not be found",
    "does not exist",
    "no such object",
    "nosuchbucket",
)
PERMISSION_MARKERS = (
    "permission_denied",
    "permission denied",
    "authorizationfailed",
    "does not have authorization",
    "insufficient privileges",
    "forbidden",
)
TRANSIENT_MARKERS = (
    "resource_exhausted",
    "toomanyrequests",
    "too many requests",
    "rate limit",
    "please retry",
    "deadline_exceeded",
    "unavailable",
    "internal error",
)


def _status_codes(*codes: int) -> "re.Pattern[str]":
    """HTTP status codes as reported by the CLIs ("HTTPError 404", '"code": 404', "Status code: 503").

    Bare digits never match, so ids such as ``dspm-prod-404`` are ignored.
    """
    alternatives = "|".join(str(code) for code in codes)
    return re.compile(rf"\b(?:httperror|http error|status code|status|code)[\s:=\"']*(?:{alternatives})\b")


NOT_FOUND_CODES = _status_codes(404)
PERMISSION_CODES = _status_codes(403)
TRANSIENT_CODES = _status_codes(429, 500, 502, 503, 504)

CLASSIFIERS = (
    (UNAVAILABLE_MARKERS, None, ProviderUnavailableError),
    (PROTECTED_MARKERS, None, ProtectedError),
    (IN_USE_MARKERS, None, TransientError),
    (NOT_FOUND_MARKERS, NOT_FOUND_CODES, NotFoundError),
    (PERMISSION_MARKERS, PERMISSION_CODES, PermissionDeniedError),
    (TRANSIENT_MARKERS, TRANSIENT_CODES, TransientError),
)


def classify_failure(stderr: str) -> Type[ProviderError]:
    """Map CLI stderr text onto an error class."""
    text = (stderr or "").lower()
    for markers, codes, error_class in CLASSIFIERS:
        if any(marker in text for marker in markers) or (codes is not None and codes.search(text)):
            return error_class
    return ProviderError


class CommandRunner:
    """Runs one provider CLI.

    Attributes:
        provider: Provider name used in raised errors
        timeout: Per-call timeout in seconds
    """

    def __init__(self, provider: str, timeout: float = 300.0) -> None:
        self.provider = provider
        self.timeout = timeout

    def run(
        self,
        argv: Sequence[str],
        kind: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> str:
        """Run a command and return its stdout.

        Args:
            argv: Command and arguments (no shell)
            kind: Resource kind value, for error context
            resource_id: Resource id, for error context

        Returns:
            Captured stdout

        Raises:
            ProviderError: Subclass chosen by classify_failure
        """
        command = list(argv)
        logger.debug(f"Running: {' '.join(command)}")

        try:
            result = subprocess.run(
                command,
                check=True,
                text=True,
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ProviderUnavailableError(
                f"Command not found: {command[0]}",
                provider=self.provider,
                kind=kind,
                resource_id=resource_id,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise TransientError(
                f"Timed out after {self.timeout}s: {' '.join(command[:4])}",
                provider=self.provider,
                kind=kind,
                resource_id=resource_id,
            ) from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            error_class = classify_failure(stderr)
            raise error_class(
                stderr.splitlines()[-1] if stderr else f"Exit code {e.returncode}",
                provider=self.provider,
                kind=kind,
                resource_id=resource_id,
                details={"command": " ".join(command[:4]), "returncode": e.returncode},
            ) from e

        return result.stdout

    def run_json(
        self,
        argv: Sequence[str],
        kind: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> Any:
        """Run a command that prints JSON and return the parsed document.

        Empty output is returned as an empty list.
        """
        stdout = self.run(argv, kind=kind, resource_id=resource_id)
        if not stdout.strip():
            return []
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise ProviderError(
                f"Unparseable output from {argv[0]}: {e}",
                provider=self.provider,
                kind=kind,
                resource_id=resource_id,
            ) from e

    def run_json_list(
        self,
        argv: Sequence[str],
        kind: Optional[str] = None,
    ) -> List[Any]:
        """Run a listing command; a non-list document is wrapped in a list."""
        data = self.run_json(argv, kind=kind)
        if isinstance(data, list):
            return data
        return [data] if data else []
