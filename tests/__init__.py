"""
Test Package Initialization

This package contains all unit and integration tests for the
RetailIQ backend.

Test Structure:
- test_config.py: Configuration tests
- test_clients.py: REST client tests (ElevenLabs, Stripe, Supabase, OpenAI)
- test_api.py: CORS and error envelope tests
- test_accounts.py: Activation, admin guard and user administration
- test_billing.py: Checkout, subscriptions and Stripe webhooks
- test_agents.py: Knowledge base, agents, personas and scenarios
- test_voices.py: Voice catalogue sync and listing
- test_conversations.py: Chat, prompt testing, call analysis and TTS
- test_notifications.py: Invitation and schedule emails
- test_analytics.py: Admin analytics report
- test_realtime.py: Realtime channel tests

Run tests with:
    pytest tests/ -v
    pytest tests/ -v --cov=retailiq
"""
