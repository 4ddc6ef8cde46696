"""
Judge0 REST client for running code in a remote sandbox.
"""
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ...config import JUDGE0_API_URL, JUDGE0_HOST, SANDBOX_TIMEOUT
from ...errors import SandboxUnavailableError

logger = logging.getLogger("code_execution")

# Statuses that mean the sandbox itself is unusable, not that the code failed
UNUSABLE_STATUS_CODES = {401, 403, 429}


def _b64encode(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _b64decode(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return base64.b64decode(value).decode("utf-8", errors="replace")
    except (ValueError, TypeError):
        return value


@dataclass
class SandboxRun:
    """Decoded result of one submission."""
    stdout: str
    stderr: str
    compile_output: str
    time_seconds: float

    @property
    def error(self) -> str:
        return (self.stderr or self.compile_output).strip()


class Judge0Client:
    """Synchronous submit-and-wait client (blocking; call it from a worker thread)."""

    def __init__(self,
                 api_key: str,
                 api_url: str = JUDGE0_API_URL,
                 host: str = JUDGE0_HOST,
                 timeout: int = SANDBOX_TIMEOUT):
        self.api_key = api_key
        self.api_url = api_url
        self.host = host
        self.timeout = timeout

    def run(self, source_code: str, language_id: int, stdin: str) -> SandboxRun:
        """
        Run one program against one stdin.

        Raises:
            SandboxUnavailableError: Connection failure, auth rejection, rate limit or 5xx
            RuntimeError: Any other unexpected HTTP error
        """
        body: Dict[str, Any] = {
            "source_code": _b64encode(source_code),
            "language_id": language_id,
            "stdin": _b64encode(stdin),
        }
        headers = {
            "Content-Type": "application/json",
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.host,
        }
        params = {"base64_encoded": "true", "wait": "true"}

        try:
            resp = requests.post(self.api_url, params=params, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise SandboxUnavailableError(f"Sandbox request failed: {e}")

        if resp.status_code in UNUSABLE_STATUS_CODES or resp.status_code >= 500:
            raise SandboxUnavailableError(f"Sandbox error {resp.status_code}: {resp.text}")
        if resp.status_code >= 400:
            raise RuntimeError(f"Sandbox rejected submission {resp.status_code}: {resp.text}")

        data = resp.json()
        return SandboxRun(
            stdout=_b64decode(data.get("stdout")),
            stderr=_b64decode(data.get("stderr")),
            compile_output=_b64decode(data.get("compile_output")),
            time_seconds=float(data.get("time") or 0.0),
        )
