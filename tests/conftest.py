"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
Handlers run against an in-memory SQLite database with the application
tables; every third-party collaborator is a MagicMock.
"""

import os
import sys
import pytest
from pathlib import Path
from unittest.mock import MagicMock

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["APP_ENV"] = "test"
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-service-role"
os.environ["ELEVEN_LABS_API_KEY"] = "test-eleven-key"
os.environ["ELEVEN_LABS_TEMPLATE_AGENT_ID"] = "template-agent"
os.environ["ELEVEN_LABS_WEBHOOK_SECRET"] = ""
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["WEBSOCKET_URL"] = ""

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

SCHEMA = [
    """
    CREATE TABLE profiles (
        id TEXT PRIMARY KEY, email TEXT, first_name TEXT, last_name TEXT, username TEXT,
        avatar_url TEXT, role TEXT, status TEXT, is_banned BOOLEAN DEFAULT 0, account_id TEXT,
        stripe_customer_id TEXT, stripe_subscription_id TEXT, subscription_status TEXT, plan_id TEXT,
        trial_ending_notification_sent BOOLEAN DEFAULT 0, created_at TEXT, updated_at TEXT
    )
    """,
    "CREATE TABLE user_activation_tokens (user_id TEXT, token TEXT, created_at TEXT, expires_at TEXT)",
    "CREATE TABLE user_store_assignments (user_id TEXT, store_id TEXT, created_at TEXT)",
    """
    CREATE TABLE user_subscriptions (
        id TEXT PRIMARY KEY, user_id TEXT, stripe_subscription_id TEXT, stripe_customer_id TEXT,
        status TEXT, current_period_start TEXT, current_period_end TEXT, subscription_tier TEXT,
        price_id TEXT, canceled_at TEXT, created_at TEXT, updated_at TEXT
    )
    """,
    """
    CREATE TABLE payments (
        id TEXT PRIMARY KEY, user_id TEXT, subscription_id TEXT, stripe_invoice_id TEXT, amount INTEGER,
        currency TEXT, status TEXT, failure_reason TEXT, billing_period_start TEXT,
        billing_period_end TEXT, created_at TEXT, updated_at TEXT
    )
    """,
    """
    CREATE TABLE elevenlabs_voices (
        id TEXT PRIMARY KEY, name TEXT, description TEXT, category TEXT, gender TEXT, accent TEXT,
        age TEXT, use_case TEXT, preview_url TEXT, labels TEXT, created_at TEXT, updated_at TEXT
    )
    """,
    """
    CREATE TABLE knowledge_base_documents (
        id TEXT PRIMARY KEY, name TEXT, content TEXT, created_by TEXT, knowledge_base_id TEXT,
        type TEXT, created_at TEXT
    )
    """,
    """
    CREATE TABLE scenarios (
        id TEXT PRIMARY KEY, title TEXT, description TEXT, difficulty TEXT, assigned_voices TEXT,
        tags TEXT, cover_image_url TEXT, created_by TEXT, initial_prompt TEXT, system_prompt TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE role_play_agents (
        id TEXT PRIMARY KEY, name TEXT, voice_type TEXT, avatar_url TEXT, is_public BOOLEAN,
        created_by TEXT, elevenlabs_agent_id TEXT, document_id TEXT, scenario_id TEXT, type TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE iq_agents (
        id TEXT PRIMARY KEY, name TEXT, age TEXT, personality TEXT, voice_type TEXT, avatar_url TEXT,
        is_public BOOLEAN, created_by TEXT, elevenlabs_agent_id TEXT, document_id TEXT, type TEXT,
        created_at TEXT
    )
    """,
    "CREATE TABLE system_prompts (id TEXT PRIMARY KEY, name TEXT, content TEXT)",
    """
    CREATE TABLE roleplay_sessions (
        id TEXT PRIMARY KEY, user_id TEXT, scenario_id TEXT, start_time TEXT, status TEXT
    )
    """,
    """
    CREATE TABLE call_analysis (
        id TEXT PRIMARY KEY, conversation_id TEXT, agent_id TEXT, user_id TEXT, analysis TEXT,
        transcript TEXT, updated_at TEXT
    )
    """,
]


@pytest.fixture
def database():
    """Fresh in-memory database with the application tables."""
    from retailiq.db import Database

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    db = Database(engine)
    for statement in SCHEMA:
        db.execute(statement)
    yield db
    engine.dispose()


@pytest.fixture
def admin_profile(database):
    """An admin caller whose bearer token is "admin-token"."""
    database.execute(
        """
        INSERT INTO profiles (id, email, first_name, last_name, role, status, is_banned, account_id, created_at)
        VALUES ('admin-1', 'admin@example.com', 'Ada', 'Admin', 'admin', 'active', 0, 'acct-1',
                '2026-01-05T10:00:00+00:00')
        """
    )
    return database.fetch_one("SELECT * FROM profiles WHERE id = 'admin-1'")


@pytest.fixture
def mock_auth_provider():
    """Auth provider that resolves "admin-token" to the admin user."""
    provider = MagicMock()

    def get_user(token):
        if token == "admin-token":
            return {"id": "admin-1", "email": "admin@example.com"}
        if token == "employee-token":
            return {"id": "emp-1", "email": "emp@example.com"}
        return None

    provider.get_user.side_effect = get_user
    return provider


@pytest.fixture
def mock_elevenlabs():
    """Mock ElevenLabs client."""
    client = MagicMock()
    client.create_agent.return_value = {"agent_id": "agent-123"}
    client.get_agent.return_value = {"name": "Template", "conversation_config": {"agent": {"prompt": {}}}}
    client.get_signed_url.return_value = "wss://signed.example.com/session"
    client.add_knowledge_base_document.return_value = {"id": "kb-1", "name": "Doc"}
    client.text_to_speech.return_value = b"audio-bytes"
    return client


@pytest.fixture
def mock_llm_provider():
    """Mock LLM provider."""
    from retailiq.core.llm import ChatResponse

    provider = MagicMock()
    provider.chat.return_value = ChatResponse(
        content="This is a test response.",
        model="gpt-4",
        usage={"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150}
    )
    return provider


@pytest.fixture
def mock_payments():
    """Mock Stripe client."""
    client = MagicMock()
    client.create_customer.return_value = {"id": "cus_new"}
    client.create_checkout_session.return_value = {"id": "cs_1", "url": "https://checkout.stripe.com/cs_1"}
    return client


@pytest.fixture
def mock_email_client():
    """Mock email client."""
    return MagicMock()


@pytest.fixture
def client(database, mock_auth_provider, mock_elevenlabs, mock_llm_provider, mock_payments, mock_email_client):
    """TestClient with every collaborator replaced."""
    from fastapi.testclient import TestClient

    import api_server

    overrides = {
        api_server.get_database: lambda: database,
        api_server.get_auth_provider: lambda: mock_auth_provider,
        api_server.get_elevenlabs: lambda: mock_elevenlabs,
        api_server.get_llm: lambda: mock_llm_provider,
        api_server.get_payments: lambda: mock_payments,
        api_server.get_email_client: lambda: mock_email_client,
    }
    api_server.app.dependency_overrides.update(overrides)
    with TestClient(api_server.app) as test_client:
        yield test_client
    api_server.app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin_profile):
    return {"Authorization": "Bearer admin-token"}
