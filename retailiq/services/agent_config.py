"""
Builders for ConvAI agent configurations.

Role-play agents start from a template agent fetched from ElevenLabs and get
a handful of nested fields overwritten; persona agents are built from scratch.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, Iterable, List, Optional

CUSTOMER_ROLE_PREAMBLE = (
    "You are always in the role of a customer. Regardless of what the user says or does, "
    "you must remain in character as a customer. For example, if they are playing the role "
    "of someone looking to buy a new laptop in an electronics store, they should consistently "
    "behave like a customer with that goal. They should address any attempts by the user to "
    "derail the scenario by steering the conversation back to the intended context, ensuring "
    "that the training session remains realistic and productive."
)

_BRAND_COLORS = {
    "avatar": {"type": "orb", "color_1": "#2792dc", "color_2": "#9ce6e6"},
    "bg_color": "#e7e7e7",
    "text_color": "#34376f",
    "btn_color": "#34376f",
    "btn_text_color": "#e7e7e7",
    "border_color": "#e7e7e7",
    "focus_color": "#34376f",
    "border_radius": 30,
    "btn_radius": 10,
}

_CALL_LABELS = {
    "action_text": "Advanced iQ",
    "start_call_text": "Start Role-Play",
    "end_call_text": "End Role-Play",
}

TEXT_AGENT_PLATFORM_SETTINGS: Dict[str, Any] = {
    "widget": {
        "variant": "full",
        "placement": "bottom",
        "expandable": "always",
        **_BRAND_COLORS,
        "mic_muting_enabled": True,
        "transcript_enabled": True,
        "text_input_enabled": True,
        "language_selector": True,
        "supports_text_only": True,
        **_CALL_LABELS,
    },
    "privacy": {
        "record_voice": False,
        "retention_days": -1,
        "delete_transcript_and_pii": False,
        "delete_audio": True,
    },
}

END_CALL_TOOL_ID = "tool_01jw510dqseynarfj12wh5j8yw"

END_CALL_DESCRIPTION = (
    'You are an AI agent engaged in a real-time voice conversation. You have access to an "end call" '
    "tool, which should only be used when the conversation has reached a natural, complete conclusion "
    "or when specific conditions are met.\n\n"
    'Use the "end call" tool when:\n'
    "- The customer has no further questions or concerns.\n"
    "- The purpose of the call has been clearly fulfilled (e.g., purchase completed, issue resolved, "
    "information delivered).\n"
    "- The customer indicates they are satisfied and ready to end the conversation.\n"
    '- The customer explicitly says goodbye or ends with a closing phrase like "Thanks, that\'s all I needed."\n\n'
    "Before using the tool, you must:\n"
    "1. Confirm the customer's needs have been met.\n"
    "2. Politely summarize what was covered or resolved.\n"
    "3. Say a friendly closing phrase, such as “Thanks again for your time today, have a great day!”\n"
    '4. Only then, trigger the "end call" action.\n\n'
    "Never end the call:\n"
    "- Abruptly or mid-sentence.\n"
    "- Without a closing remark."
)

EVALUATION_PROMPT = (
    "You are an expert evaluator of sales conversations. Analyze the following transcript and evaluate "
    "the caller's performance (not the ai agents) across five core criteria. Each criterion should be "
    "scored from 1 to 100, where 100 is perfect execution. At the end, determine whether the overall "
    "conversation was a success, failure, or unknown based on these scores, and briefly explain your "
    "reasoning.\n Evaluation Criteria: "
    "1. Active Listening – Did the agent accurately understand and respond to the customer's concerns? "
    "2. Empathy – Did the agent show understanding and compassion for the customer's feelings or situation? "
    "3. Problem Solving – Did the agent identify the core need and offer a clear, actionable solution? "
    "4. Negotiation – Did the agent address objections and guide the customer toward agreement? "
    "5. Technical Knowledge – Did the agent correctly and confidently explain relevant product or "
    "service details? "
    "Return your evaluation in this exact format: \n Scores: \n"
    " - Active Listening: [1–100] \n - Empathy: [1–100] \n - Problem Solving: [1–100] \n"
    " - Negotiation: [1–100] \n - Technical Knowledge: [1–100] \n"
    " Goal Result: [success | failure | unknown] \n"
    " Rationale: [2–5 sentence explanation justifying the result] \n"
    " Use only the content of the transcript for your evaluation. Be objective, concise, and professional. \n"
)

DEFAULT_PERSONA_KNOWLEDGE_BASE = [
    {"type": "text", "name": "Text document", "id": "6i3nNE8PgkXxhtS9HY3l", "usage_mode": "auto"},
]

ALLOWED_HOSTS = ("app.myretailiq.com", "myretailiq.com")


def _agent_section(config: Dict[str, Any]) -> Dict[str, Any]:
    conversation_config = config.setdefault("conversation_config", {})
    agent = conversation_config.setdefault("agent", {})
    agent.setdefault("prompt", {})
    return agent


def build_text_agent(
    template: Dict[str, Any],
    title: Optional[str],
    initial_prompt: Optional[str],
    system_prompt: Any,
) -> Dict[str, Any]:
    """Text-only customer agent derived from a template agent."""
    config = copy.deepcopy(template or {})
    config["name"] = title
    agent = _agent_section(config)
    config["conversation_config"].setdefault("conversation", {})["text_only"] = True
    agent["first_message"] = initial_prompt
    agent["prompt"]["prompt"] = f"{CUSTOMER_ROLE_PREAMBLE} {json.dumps(system_prompt)}"
    config["platform_settings"] = copy.deepcopy(TEXT_AGENT_PLATFORM_SETTINGS)
    return config


def supported_voices(assigned: Iterable[Dict[str, Any]], catalogue: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Resolve assigned voices against the local voice mirror.

    Raises:
        ValueError: If an assigned voice is not in the mirror
    """
    by_id = {row["id"]: row for row in catalogue}
    voices = []
    for voice in assigned or []:
        row = by_id.get(voice.get("voice_id"))
        if row is None:
            raise ValueError(f"Unknown voice: {voice.get('voice_id')}")
        voices.append({
            "voice_id": row["id"],
            "label": row.get("name"),
            "description": voice.get("description"),
            "language": None,
            "model_family": None,
            "optimize_streaming_latency": None,
            "stability": None,
            "speed": None,
            "similarity_boost": None,
        })
    return voices


def build_voice_agent(
    template: Dict[str, Any],
    theme: Optional[str],
    initial_prompt: Optional[str],
    system_prompt: Optional[str],
    voices: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """Multi-voice agent derived from a template agent."""
    config = copy.deepcopy(template or {})
    config["name"] = theme
    agent = _agent_section(config)
    agent["first_message"] = initial_prompt
    agent["prompt"]["prompt"] = system_prompt
    config["conversation_config"].setdefault("tts", {})["supported_voices"] = voices
    return config


def build_persona_agent(name: str, voice_id: Optional[str], document: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Full agent configuration for a persona, optionally linked to a knowledge base document."""
    knowledge_base = copy.deepcopy(DEFAULT_PERSONA_KNOWLEDGE_BASE)
    if document:
        knowledge_base = [{"name": document.get("name"), "id": document.get("knowledge_base_id"), "type": document.get("type")}]

    return {
        "name": name,
        "conversation_config": {
            "tts": {
                "model_id": "eleven_turbo_v2",
                "voice_id": voice_id,
                "agent_output_audio_format": "pcm_16000",
                "optimize_streaming_latency": 3,
                "stability": 0.5,
                "speed": 0.95,
                "similarity_boost": 0.8,
            },
            "turn": {"turn_timeout": 7, "silence_end_call_timeout": -1, "mode": "turn"},
            "conversation": {
                "text_only": False,
                "max_duration_seconds": 900,
                "client_events": ["user_transcript", "agent_response", "audio"],
            },
            "agent": {
                "first_message": f"Hello, I'm {name}",
                "prompt": {
                    "llm": "gemini-2.0-flash-001",
                    "temperature": 0.05,
                    "max_tokens": -1,
                    "tools": [{
                        "id": END_CALL_TOOL_ID,
                        "name": "end_call",
                        "description": END_CALL_DESCRIPTION,
                        "response_timeout_secs": 20,
                        "type": "system",
                        "params": {"system_tool_type": "end_call"},
                    }],
                    "tool_ids": [END_CALL_TOOL_ID],
                    "knowledge_base": knowledge_base,
                    "rag": {
                        "enabled": True,
                        "embedding_model": "e5_mistral_7b_instruct",
                        "max_vector_distance": 0.6,
                        "max_documents_length": 50000,
                        "max_retrieved_rag_chunks_count": 20,
                    },
                },
            },
        },
        "platform_settings": {
            "auth": {
                "enable_auth": False,
                "allowlist": [{"hostname": host} for host in ALLOWED_HOSTS],
                "shareable_token": None,
            },
            "evaluation": {
                "criteria": [{
                    "id": "call_analytics_1",
                    "name": "Call analytics 1",
                    "type": "prompt",
                    "conversation_goal_prompt": EVALUATION_PROMPT,
                    "use_knowledge_base": False,
                }],
            },
            "widget": {
                "variant": "compact",
                "placement": "bottom",
                "expandable": "never",
                "feedback_mode": "none",
                **_BRAND_COLORS,
                **_CALL_LABELS,
                "listening_text": "Listening ........",
                "speaking_text": "Speaking...",
                "show_avatar_when_collapsed": True,
                "disable_banner": True,
                "mic_muting_enabled": True,
                "transcript_enabled": True,
                "text_input_enabled": True,
                "text_contents": {
                    "main_label": "Advanced iQ Agent",
                    "start_call": "Start",
                    "end_call": "End Call",
                    "mute_microphone": "Mute",
                },
                "language_selector": True,
                "supports_text_only": True,
            },
            "overrides": {
                "conversation_config_override": {
                    "tts": {"voice_id": False},
                    "conversation": {"text_only": True},
                    "agent": {"first_message": False, "language": True, "prompt": {"prompt": False}},
                },
                "custom_llm_extra_body": False,
                "enable_conversation_initiation_client_data_from_webhook": False,
            },
            "privacy": {
                "record_voice": True,
                "retention_days": -1,
                "delete_transcript_and_pii": False,
                "delete_audio": False,
                "apply_to_existing_conversations": False,
                "zero_retention_mode": False,
            },
        },
    }
