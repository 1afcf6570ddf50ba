"""
RetailIQ Backend - Source Package

Request handlers and collaborator clients behind the RetailIQ
retail-training application.

This package provides:
- Account activation, user and store-access administration
- Role-play scenario, persona and agent management on ElevenLabs ConvAI
- Knowledge base ingestion and the ElevenLabs voice catalogue mirror
- Stripe checkout, subscription updates and webhook processing
- A realtime transport adapter for the conversation UI
"""

__version__ = "1.0.0"

from retailiq.config import settings

__all__ = ["settings", "__version__"]
