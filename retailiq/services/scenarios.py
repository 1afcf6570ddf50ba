"""
Scenario services: LLM-generated scenario drafts, role-play scenario creation
and cascading deletion.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

from retailiq.config import settings
from retailiq.core.elevenlabs import ElevenLabsClient
from retailiq.core.llm import LLMProvider, Message
from retailiq.db import Database, from_json, to_json, utcnow_iso
from retailiq.logger import get_logger
from retailiq.services.agents import delete_external_agents

logger = get_logger(__name__)

SCENARIO_SYSTEM_PROMPT = (
    "You are a creative AI agent specialized in generating immersive interactive game scenarios. "
    "Always respond in valid JSON format.\n"
    "RULES:\n"
    '1. You will ONLY select character voices from the provided "Available Voices" list below.\n'
    "2. DO NOT invent new voice IDs. Always map roles to an appropriate voice_id, label, and "
    "description from the provided voices."
)

SCENARIO_REQUEST_TEMPLATE = """Voices available: {voices}
Generate a game scenario based on the title: "{title}".
The scenario may include multiple characters relevant to the theme.
Scenario difficulty level: "{difficulty}".
Return a JSON object with the following fields:
{{
  "description": "A brief description of the overall scenario tailored to its difficulty level.",
  "systemPrompt": "A narrative-rich, first-person account of the situation the Player/User is entering.",
  "initialPrompt": "A realistic opening line the Player/User would use to begin.",
  "tags": ["3-5 relevant tags"],
  "coverImageUrl": "A Pexels or Unsplash stock photo URL matching the scene.",
  "assigned_voices": [{{"role": "...", "voice_id": "...", "label": "...", "description": "..."}}]
}}
The AI Agent MUST act exclusively from the perspective of the role being described.

Scenario guidance:
{guidance}"""


def escape_input(value: Any) -> str:
    """Flatten whitespace control characters and escape double quotes."""
    text = str(value)
    for ch in ("\n", "\r", "\t"):
        text = text.replace(ch, " ")
    return text.replace('"', '\\"')


def fill_template(template: str, variables: Dict[str, str]) -> str:
    """Substitute ${name} placeholders."""
    for name, value in variables.items():
        template = template.replace("${" + name + "}", value)
    return template


def split_tags(tags: Union[str, List[str], None]) -> Optional[List[str]]:
    if isinstance(tags, str):
        return [t.strip() for t in tags.split(",")]
    return tags


def _decode_scenario(row: Optional[dict]) -> Optional[dict]:
    if row is not None:
        for column in ("tags", "assigned_voices"):
            if column in row:
                row[column] = from_json(row[column])
    return row


class ScenarioService:
    """Scenario drafting, creation and deletion."""

    def __init__(self, database: Database, elevenlabs: ElevenLabsClient, llm: Optional[LLMProvider] = None) -> None:
        self.db = database
        self.elevenlabs = elevenlabs
        self.llm = llm

    def generate_scenario(self, *, theme_of_story: Optional[str], difficulty: Optional[str]) -> Any:
        """Ask the LLM for a scenario draft built from the customer prompt template."""
        if not theme_of_story:
            raise ValueError("Theme of Story is required")

        title = escape_input(theme_of_story)
        level = escape_input(difficulty)

        template = self.db.fetch_one(
            "SELECT content FROM system_prompts WHERE LOWER(name) LIKE :pattern ORDER BY name",
            {"pattern": "customer%"},
        )
        if not template:
            raise ValueError("Failed to get system prompts")
        guidance = fill_template(template.get("content") or "", {"parsedTitle": title, "parsedDifficulty": level})

        voices = self.db.fetch_all(
            "SELECT id, category, gender, accent, age FROM elevenlabs_voices WHERE gender IS NOT NULL"
        )
        response = self.llm.chat([
            Message(role="system", content=SCENARIO_SYSTEM_PROMPT),
            Message(role="user", content=SCENARIO_REQUEST_TEMPLATE.format(
                voices=json.dumps(voices),
                title=title,
                difficulty=level,
                guidance=guidance,
            )),
        ])
        if not response.content:
            raise ValueError("Failed to generate scenario")
        return response.json()

    def generate_roleplay(
        self,
        *,
        theme_of_story: Optional[str],
        description: Optional[str],
        difficulty: Optional[str] = None,
        tags: Union[str, List[str], None] = None,
        cover_image_url: Optional[str] = None,
        initial_prompt: Optional[str] = None,
        user_id: Optional[str] = None,
        assigned_voices: Optional[List[Dict[str, Any]]] = None,
        system_prompt: Optional[str] = None,
    ) -> dict:
        """
        Store a new scenario and hand back the template agent for the client's
        follow-up create-text-agent or create-voice-agent call.
        """
        if not theme_of_story or not description:
            raise ValueError("Title and description are required")

        agent_details = self.elevenlabs.get_agent(settings.elevenlabs.template_agent_id)
        if not agent_details:
            raise ValueError("No agent details found")

        scenario = self.db.insert("scenarios", {
            "title": theme_of_story,
            "description": description,
            "difficulty": difficulty,
            "assigned_voices": to_json(assigned_voices),
            "tags": to_json(split_tags(tags)),
            "cover_image_url": cover_image_url,
            "created_by": user_id,
            "initial_prompt": initial_prompt,
            "system_prompt": system_prompt,
            "created_at": utcnow_iso(),
        })
        logger.info("Created scenario %s", scenario.get("id"))
        return {
            "agentDetails": agent_details,
            "scenario": _decode_scenario(scenario),
            "title": theme_of_story,
            "initialPrompt": initial_prompt,
            "systemPrompt": system_prompt,
            "userId": user_id,
        }

    def delete_scenario(self, *, scenario_id: Optional[str]) -> dict:
        """Delete a scenario after a best-effort removal of its ElevenLabs agents."""
        if not scenario_id:
            raise ValueError("Scenario ID is required")

        agents = self.db.fetch_all(
            "SELECT elevenlabs_agent_id FROM role_play_agents WHERE scenario_id = :id",
            {"id": scenario_id},
        )
        removed = delete_external_agents(self.elevenlabs, [a.get("elevenlabs_agent_id") for a in agents])
        logger.info("Removed %d of %d agents for scenario %s", removed, len(agents), scenario_id)

        with self.db.transaction() as tx:
            tx.execute("DELETE FROM role_play_agents WHERE scenario_id = :id", {"id": scenario_id})
            tx.execute("DELETE FROM scenarios WHERE id = :id", {"id": scenario_id})
        return {"success": True}
