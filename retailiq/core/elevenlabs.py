"""
ElevenLabs ConvAI client.

Wraps the handful of REST endpoints the handlers use: agent CRUD, signed
conversation URLs, the voice catalogue, knowledge base uploads and
text-to-speech.

Usage:
    from retailiq.core.elevenlabs import ElevenLabsClient

    client = ElevenLabsClient()
    signed_url = client.get_signed_url("agent_123")
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from retailiq.config import ElevenLabsConfig, settings
from retailiq.errors import raise_for_upstream
from retailiq.logger import get_logger

logger = get_logger(__name__)

KNOWLEDGE_BASE_TYPES = ("text", "url", "file")


class ElevenLabsClient:
    """REST client for the ElevenLabs API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.config = ElevenLabsConfig(
            api_key=api_key or settings.elevenlabs.api_key,
            base_url=base_url or settings.elevenlabs.base_url,
        )
        self.timeout = timeout or settings.http_timeout

    def _headers(self, json_body: bool = True) -> Dict[str, str]:
        self.config.validate()
        headers = {"xi-api-key": self.config.api_key}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}{path}"

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def create_agent(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Create a ConvAI agent and return the raw response body.

        The caller decides what a missing agent_id means; an error status
        yields a body without one.
        """
        response = requests.post(
            self._url("/v1/convai/agents/create"),
            headers=self._headers(),
            json=config,
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error("Agent creation failed (%s): %s", response.status_code, response.text[:500])
        try:
            return response.json()
        except ValueError:
            return {}

    def get_agent(self, agent_id: str) -> Dict[str, Any]:
        response = requests.get(
            self._url(f"/v1/convai/agents/{agent_id}"),
            headers=self._headers(),
            timeout=self.timeout,
        )
        raise_for_upstream(response, "Failed to get agent details")
        return response.json()

    def update_agent(self, agent_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.patch(
            self._url(f"/v1/convai/agents/{agent_id}"),
            headers=self._headers(),
            json=config,
            timeout=self.timeout,
        )
        raise_for_upstream(response, "Failed to update agent")
        return response.json()

    def delete_agent(self, agent_id: str) -> None:
        response = requests.delete(
            self._url(f"/v1/convai/agents/{agent_id}"),
            headers=self._headers(json_body=False),
            timeout=self.timeout,
        )
        raise_for_upstream(response, f"Failed to delete agent {agent_id}")
        logger.info("Deleted ElevenLabs agent %s", agent_id)

    def get_signed_url(self, agent_id: str) -> Optional[str]:
        """Request a short-lived signed websocket URL for a conversation."""
        response = requests.get(
            self._url("/v1/convai/conversation/get-signed-url"),
            headers=self._headers(),
            params={"agent_id": agent_id},
            timeout=self.timeout,
        )
        raise_for_upstream(response, "Failed to create session with ElevenLabs")
        return response.json().get("signed_url")

    # ------------------------------------------------------------------
    # Voices and speech
    # ------------------------------------------------------------------

    def list_voices(self) -> List[Dict[str, Any]]:
        response = requests.get(
            self._url("/v1/voices"),
            headers=self._headers(),
            timeout=self.timeout,
        )
        if not response.ok:
            raise_for_upstream(response, f"ElevenLabs API error: {response.reason}")
        return response.json().get("voices") or []

    def text_to_speech(
        self,
        text: str,
        voice_id: str,
        stability: float = 0.5,
        similarity_boost: float = 0.5,
    ) -> bytes:
        """Synthesize speech and return the MP3 bytes."""
        response = requests.post(
            self._url(f"/v1/text-to-speech/{voice_id}"),
            headers=self._headers(),
            json={
                "text": text,
                "voice_settings": {"stability": stability, "similarity_boost": similarity_boost},
            },
            timeout=self.timeout,
        )
        raise_for_upstream(response, "Text-to-speech request failed")
        return response.content

    # ------------------------------------------------------------------
    # Knowledge base
    # ------------------------------------------------------------------

    def add_knowledge_base_document(self, kind: str, content: str) -> Dict[str, Any]:
        """
        Upload a document to the ConvAI knowledge base.

        Args:
            kind: "text", "url" or "file"; for "file", content is the URL of
                the file to fetch and re-upload
            content: Text, page URL or file URL

        Returns:
            Response body with the new document's id and name
        """
        endpoint = self._url(f"/v1/convai/knowledge-base/{kind}")
        if kind == "url":
            response = requests.post(endpoint, headers=self._headers(), json={"url": content}, timeout=self.timeout)
        elif kind == "text":
            response = requests.post(endpoint, headers=self._headers(), json={"text": content}, timeout=self.timeout)
        elif kind == "file":
            source = requests.get(content, timeout=self.timeout)
            raise_for_upstream(source, "Failed to fetch file")
            filename = content.rstrip("/").rsplit("/", 1)[-1] or "document"
            response = requests.post(
                endpoint,
                headers=self._headers(json_body=False),
                files={"file": (filename, source.content, source.headers.get("Content-Type", "application/octet-stream"))},
                timeout=self.timeout,
            )
        else:
            raise ValueError("Invalid content type")

        raise_for_upstream(response, "Failed to upload to ElevenLabs")
        return response.json()
