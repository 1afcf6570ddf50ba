"""
Core Module Package

This package contains the clients for the third-party services behind
the handlers:
- LLM: Chat completions for generation, persona chat and call analysis
- ElevenLabs: ConvAI agents, voices, knowledge base and speech
- Payments: Stripe customers, checkout, subscriptions and webhooks
- Auth provider: Supabase auth admin API
"""

from retailiq.core.llm import LLMProvider, OpenAIChatProvider, Message, ChatResponse
from retailiq.core.elevenlabs import ElevenLabsClient
from retailiq.core.payments import StripeClient, SignatureVerificationError
from retailiq.core.auth_provider import SupabaseAuthClient

__all__ = [
    "LLMProvider",
    "OpenAIChatProvider",
    "Message",
    "ChatResponse",
    "ElevenLabsClient",
    "StripeClient",
    "SignatureVerificationError",
    "SupabaseAuthClient",
]
