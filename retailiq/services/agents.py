"""
Agent services: role-play agents (text and voice), IQ personas and
conversation session bootstrap.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from retailiq.core.elevenlabs import ElevenLabsClient
from retailiq.db import Database, from_json, to_json, utcnow_iso
from retailiq.errors import UpstreamError
from retailiq.logger import get_logger
from retailiq.messages import msg
from retailiq.services.agent_config import (
    build_persona_agent,
    build_text_agent,
    build_voice_agent,
    supported_voices,
)

logger = get_logger(__name__)


def _decode_persona(row: Optional[dict]) -> Optional[dict]:
    if row is not None and "personality" in row:
        row["personality"] = from_json(row["personality"])
    return row


def delete_external_agents(elevenlabs: ElevenLabsClient, agent_ids: List[Optional[str]]) -> int:
    """Delete agents on ElevenLabs one by one; failures are logged and skipped.

    Returns:
        Number of agents deleted
    """
    deleted = 0
    for agent_id in agent_ids:
        if not agent_id:
            continue
        try:
            elevenlabs.delete_agent(agent_id)
            deleted += 1
        except (UpstreamError, requests.RequestException) as exc:
            logger.error("Error deleting ElevenLabs agent %s: %s", agent_id, exc)
    return deleted


class AgentService:
    """Creates, updates and removes ElevenLabs agents along with their local rows."""

    def __init__(self, database: Database, elevenlabs: ElevenLabsClient) -> None:
        self.db = database
        self.elevenlabs = elevenlabs

    def _create_external(self, config: Dict[str, Any]) -> str:
        result = self.elevenlabs.create_agent(config)
        agent_id = (result or {}).get("agent_id")
        if not agent_id:
            raise ValueError(msg("agent.no_id"))
        return agent_id

    # ------------------------------------------------------------------
    # Role-play agents
    # ------------------------------------------------------------------

    def create_text_agent(
        self,
        *,
        agent_details: Dict[str, Any],
        scenario: Optional[Dict[str, Any]],
        title: Optional[str],
        initial_prompt: Optional[str],
        system_prompt: Any,
        persona: Optional[Dict[str, Any]],
        user_id: Optional[str],
    ) -> dict:
        config = build_text_agent(agent_details, title, initial_prompt, system_prompt)
        agent_id = self._create_external(config)

        persona = persona or {}
        row = self.db.insert("role_play_agents", {
            "name": title,
            "voice_type": persona.get("voiceType"),
            "avatar_url": persona.get("avatar_url"),
            "is_public": True,
            "created_by": user_id,
            "elevenlabs_agent_id": agent_id,
            "document_id": persona.get("document_id"),
            "scenario_id": (scenario or {}).get("id"),
            "type": "text",
            "created_at": utcnow_iso(),
        })
        logger.info("Created text agent %s", agent_id)
        return {**row, "agent_id": agent_id}

    def create_voice_agent(
        self,
        *,
        agent_details: Dict[str, Any],
        scenario: Optional[Dict[str, Any]],
        theme_of_story: Optional[str],
        initial_prompt: Optional[str],
        system_prompt: Optional[str],
        assigned_voices: Optional[List[Dict[str, Any]]],
        user_id: Optional[str],
    ) -> dict:
        catalogue = self.db.fetch_all("SELECT id, labels, name FROM elevenlabs_voices WHERE gender IS NOT NULL")
        voices = supported_voices(assigned_voices or [], catalogue)
        config = build_voice_agent(agent_details, theme_of_story, initial_prompt, system_prompt, voices)
        agent_id = self._create_external(config)

        row = self.db.insert("role_play_agents", {
            "name": theme_of_story,
            "is_public": True,
            "created_by": user_id,
            "elevenlabs_agent_id": agent_id,
            "scenario_id": (scenario or {}).get("id"),
            "type": "voice",
            "created_at": utcnow_iso(),
        })
        logger.info("Created voice agent %s with %d voices", agent_id, len(voices))
        return {**row, "agent_id": agent_id}

    def get_agent_session(self, *, agent_id: Optional[str]) -> dict:
        """Signed URL the client uses to open the voice channel directly."""
        if not agent_id:
            raise ValueError("Agent ID is required")
        signed_url = self.elevenlabs.get_signed_url(agent_id)
        return {"signedUrl": signed_url, "agentId": agent_id}

    # ------------------------------------------------------------------
    # Personas
    # ------------------------------------------------------------------

    def generate_persona(
        self,
        *,
        name: str,
        age: str,
        personality: List[str],
        voice_type: str,
        avatar_url: str,
        is_public: bool,
        user_id: str,
        voice_id: str,
        document: Optional[Dict[str, Any]] = None,
    ) -> dict:
        agent_id = self._create_external(build_persona_agent(name, voice_id, document))
        row = self.db.insert("iq_agents", {
            "name": name,
            "age": age or "",
            "personality": to_json(personality),
            "voice_type": voice_type,
            "avatar_url": avatar_url,
            "is_public": is_public,
            "created_by": user_id,
            "elevenlabs_agent_id": agent_id,
            "document_id": (document or {}).get("id"),
            "created_at": utcnow_iso(),
        })
        logger.info("Created persona %s backed by agent %s", row.get("id"), agent_id)
        return {**_decode_persona(row), "agent_id": agent_id}

    def update_persona(
        self,
        *,
        persona_id: Optional[str],
        name: Optional[str],
        age: Optional[str] = None,
        personality: Optional[List[str]] = None,
        voice_type: Optional[str] = None,
        avatar_url: Optional[str] = None,
        is_public: Optional[bool] = None,
        kind: Optional[str] = None,
        voice_id: Optional[str] = None,
    ) -> dict:
        if not persona_id:
            raise ValueError("Missing persona ID")
        existing = self.db.fetch_one("SELECT elevenlabs_agent_id FROM iq_agents WHERE id = :id", {"id": persona_id})
        if not existing:
            raise ValueError("Persona not found")

        if existing.get("elevenlabs_agent_id"):
            self.elevenlabs.update_agent(existing["elevenlabs_agent_id"], build_persona_agent(name or "", voice_id))

        self.db.execute(
            """
            UPDATE iq_agents
            SET name = :name, age = :age, personality = :personality, voice_type = :voice_type,
                avatar_url = :avatar_url, is_public = :is_public, type = :type
            WHERE id = :id
            """,
            {
                "name": name,
                "age": age,
                "personality": to_json(personality),
                "voice_type": voice_type,
                "avatar_url": avatar_url,
                "is_public": is_public,
                "type": kind,
                "id": persona_id,
            },
        )
        return _decode_persona(self.db.fetch_one("SELECT * FROM iq_agents WHERE id = :id", {"id": persona_id}))

    def delete_persona(self, *, persona_id: Optional[str]) -> dict:
        if not persona_id:
            raise ValueError("Missing persona ID")
        existing = self.db.fetch_one("SELECT elevenlabs_agent_id FROM iq_agents WHERE id = :id", {"id": persona_id})
        if not existing:
            raise ValueError("Persona not found")

        delete_external_agents(self.elevenlabs, [existing.get("elevenlabs_agent_id")])
        self.db.execute("DELETE FROM iq_agents WHERE id = :id", {"id": persona_id})
        return {"success": True}
