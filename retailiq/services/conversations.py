"""
Conversation services: legacy persona chat, prompt testing, post-call
analysis and the local text-to-speech proxy.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Dict, List, Optional

import requests

from retailiq.config import settings
from retailiq.conversation import format_transcript
from retailiq.core.elevenlabs import ElevenLabsClient
from retailiq.core.llm import LLMProvider, Message
from retailiq.db import Database, to_json, utcnow_iso
from retailiq.errors import AnalysisParseError, raise_for_upstream
from retailiq.logger import get_logger
from retailiq.messages import msg

logger = get_logger(__name__)

START_CONVERSATION = "START_CONVERSATION"
WEBHOOK_TOLERANCE_SECONDS = 30 * 60

ANALYSIS_PROMPT = """
You are an AI call trainer assistant. Analyze the following transcript of a training call.

Please provide the analysis in JSON format with the following keys and must cover:
- active_listening (score 1-100) along with summary in 2-3 lines based on response
- empathy (score 1-100) along with summary in 2-3 lines based on response
- problem_solving (score 1-100) along with summary in 2-3 lines based on response
- negotiation (score 1-100) along with summary in 2-3 lines based on response
- technical_knowledge (score 1-100) along with summary in 2-3 lines based on response
- objection_handling (score 1-100) along with summary in 2-3 lines based on response
- product_knowledge (score 1-100) along with summary in 2-3 lines based on response
- insights (agent-specific advice for improvement as string in 3-4 lines)
Each score comes with a 2-3 line summary and an outcome (Success / Failure / Unknown).
Transcript:
{transcript}
Respond ONLY with a JSON object with these keys.
"""


def persona_system_prompt(persona: Dict[str, Any], conversation_type: Optional[str]) -> str:
    """System prompt that keeps the model in the persona's character."""
    company = f" at {persona['company']}" if persona.get("company") else ""
    traits = ", ".join(persona.get("personality") or [])
    kind = conversation_type.replace("-", " ", 1) if conversation_type else ""
    return (
        f"You are {persona.get('name')}, a {persona.get('role')}{company}.\n"
        f"Background: {persona.get('background')}\n"
        f"Personality traits: {traits}\n\n"
        f"You are having a {kind} conversation.\n\n"
        "Respond naturally and conversationally, maintaining the persona's character and "
        "professional background. Keep responses concise and focused."
    )


def sign_payload(payload: bytes, timestamp: str, secret: str) -> str:
    """HMAC-SHA256 hex digest of "<timestamp>.<payload>"."""
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    header: Optional[str],
    payload: bytes,
    secret: str,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """Check an ElevenLabs "t=<unix>,v0=<hex>" signature header."""
    if not header:
        return False
    parts = dict(p.strip().split("=", 1) for p in header.split(",") if "=" in p)
    timestamp, signature = parts.get("t"), parts.get("v0")
    if not timestamp or not signature:
        return False
    current = time.time() if now is None else now
    if int(timestamp) < current - tolerance:
        return False
    return hmac.compare_digest(sign_payload(payload, timestamp, secret), signature)


class ConversationService:
    """LLM-backed conversation helpers."""

    def __init__(
        self,
        llm: LLMProvider,
        elevenlabs: Optional[ElevenLabsClient] = None,
        database: Optional[Database] = None,
    ) -> None:
        self.llm = llm
        self.elevenlabs = elevenlabs
        self.db = database

    def chat(self, *, message: Optional[str], persona: Optional[Dict[str, Any]], conversation_type: Optional[str] = None) -> dict:
        """Reply in character and synthesize the reply with the persona's voice."""
        if not message or not persona:
            raise ValueError("Missing required parameters")

        prompt = msg("chat.start_prompt") if message == START_CONVERSATION else message
        completion = self.llm.chat(
            [
                Message(role="system", content=persona_system_prompt(persona, conversation_type)),
                Message(role="user", content=prompt),
            ],
            temperature=0.7,
            max_tokens=150,
        )
        reply = completion.content or ""
        audio = self.elevenlabs.text_to_speech(
            reply,
            voice_id=persona.get("voiceType") or "default",
            stability=0.5,
            similarity_boost=0.5,
        )
        return {"response": reply, "audio": base64.b64encode(audio).decode("ascii")}

    def test_prompt(self, *, prompt: Optional[str]) -> dict:
        if not prompt:
            raise ValueError("Prompt is required")
        completion = self.llm.chat([Message(role="user", content=prompt)], max_tokens=500)
        return {"result": completion.content or msg("prompt.no_response")}

    def analyze_call(self, body: Dict[str, Any]) -> dict:
        """
        Score a finished call and store the analysis.

        Raises:
            ValueError: Unsupported event type
            AnalysisParseError: The model did not answer with JSON
        """
        if body.get("type") != "post_call_transcription":
            raise ValueError("Invalid event type")

        data = body.get("data") or {}
        transcript: List[Dict[str, Any]] = data.get("transcript") or []
        formatted = format_transcript(transcript)

        completion = self.llm.chat([Message(role="user", content=ANALYSIS_PROMPT.format(transcript=formatted))])
        try:
            analysis = json.loads(completion.content)
        except (TypeError, ValueError):
            logger.error("Failed to parse analysis as JSON: %s", completion.content)
            raise AnalysisParseError(completion.content)

        updated = self.db.execute(
            """
            UPDATE call_analysis SET analysis = :analysis, transcript = :transcript, updated_at = :now
            WHERE conversation_id = :conversation_id AND agent_id = :agent_id AND user_id = :user_id
            """,
            {
                "analysis": to_json(analysis),
                "transcript": formatted,
                "now": utcnow_iso(),
                "conversation_id": data.get("conversation_id"),
                "agent_id": data.get("agent_id"),
                "user_id": data.get("user_id"),
            },
        )
        if not updated:
            logger.warning("No call_analysis row for conversation %s", data.get("conversation_id"))

        return {
            "agent_id": data.get("agent_id"),
            "conversation_id": data.get("conversation_id"),
            "analysis": analysis,
        }


def synthesize_local(text: Optional[str], voice_type: Optional[str] = None, url: Optional[str] = None) -> bytes:
    """Forward text to the local TTS server and return WAV bytes."""
    if not text:
        raise ValueError("No text provided")
    response = requests.post(
        url or settings.realtime.tts_server_url,
        json={"text": text, "speaker_id": voice_type or "default", "style_wav": ""},
        timeout=settings.http_timeout,
    )
    raise_for_upstream(response, "Mozilla TTS request failed")
    return response.content
