"""
Vertex AI REST client used as the response oracle's model backend.
"""
import json
import logging
from typing import Optional, Dict, Any, List

import requests
import google.auth
import google.auth.transport.requests
from google.oauth2 import service_account

from ...config import VERTEX_LOCATION, MODEL_NAME, LLM_TIMEOUT, MAX_OUTPUT_TOKENS

logger = logging.getLogger("llm_client")

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


class VertexRestClient:
    """REST-based client for Vertex AI Gemini models."""

    def __init__(self,
                 project: str,
                 location: str = VERTEX_LOCATION,
                 model: str = MODEL_NAME,
                 credentials_json: Optional[str] = None,
                 timeout: int = LLM_TIMEOUT):
        self.project = project
        self.location = location
        self.model = model
        self.credentials_json = credentials_json
        self.base_url = f"https://{self.location}-aiplatform.googleapis.com/v1"
        self.model_resource = f"projects/{self.project}/locations/{self.location}/publishers/google/models/{self.model}"
        self._token = None
        self.timeout = timeout

    def _refresh_token(self):
        """Refresh the OAuth token for API calls."""
        if self.credentials_json:
            creds = service_account.Credentials.from_service_account_file(self.credentials_json, scopes=SCOPES)
        else:
            creds, _ = google.auth.default(scopes=SCOPES)

        auth_req = google.auth.transport.requests.Request()
        creds.refresh(auth_req)
        self._token = creds.token

    def _post(self, url: str, body: Dict[str, Any]) -> requests.Response:
        if not self._token:
            self._refresh_token()
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }
        return requests.post(url, headers=headers, json=body, timeout=self.timeout)

    def generate_content(
        self,
        prompt_text: str,
        temperature: float = 0.0,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
        top_k: Optional[int] = None,
        top_p: Optional[float] = None,
        stop_sequences: Optional[List[str]] = None,
    ) -> str:
        """
        Send one prompt and return the model's text.

        Raises:
            RuntimeError: on any HTTP error status after one token refresh.
            requests.RequestException: on transport failures.
        """
        url = f"{self.base_url}/{self.model_resource}:generateContent"

        body: Dict[str, Any] = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": prompt_text}],
                }
            ],
            "generationConfig": {
                "temperature": float(temperature),
                "maxOutputTokens": int(max_output_tokens),
            },
        }

        if top_k is not None:
            body["generationConfig"]["topK"] = int(top_k)
        if top_p is not None:
            body["generationConfig"]["topP"] = float(top_p)
        if stop_sequences:
            body["generationConfig"]["stopSequences"] = list(stop_sequences)

        resp = self._post(url, body)
        if resp.status_code == 401:
            # Expired token
            logger.info("Vertex token rejected, refreshing")
            self._token = None
            resp = self._post(url, body)
        if resp.status_code >= 400:
            raise RuntimeError(f"Vertex REST error {resp.status_code}: {resp.text}")

        text = self._parse_response_text(resp.json())
        logger.debug("Raw LLM output: %s", repr(text[:500]))
        return text

    def _parse_response_text(self, resp_json: Dict[str, Any]) -> str:
        """
        Extract the text of the first candidate, or the raw JSON when the
        response has no text part.
        """
        # Vertex schema: candidates[0].content.parts[*].text
        cands = resp_json.get("candidates") or []
        if cands and isinstance(cands[0], dict):
            content = cands[0].get("content") or {}
            for part in content.get("parts") or []:
                if isinstance(part, dict) and isinstance(part.get("text"), str):
                    return part["text"]
            if isinstance(content.get("text"), str):
                return content["text"]

        if isinstance(resp_json.get("text"), str):
            return resp_json["text"]

        return json.dumps(resp_json, separators=(",", ":"))
