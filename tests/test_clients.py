"""
Tests for the third-party REST clients

HTTP calls are patched at the requests boundary, Stripe calls at the SDK.
"""

import pytest
from unittest.mock import MagicMock, patch

from retailiq.errors import UpstreamError


def _response(status=200, body=None, content=b""):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.json.return_value = body if body is not None else {}
    response.content = content
    response.text = str(body)
    response.reason = "OK" if response.ok else "Error"
    return response


class TestElevenLabsClient:
    """Tests for ElevenLabsClient."""

    @pytest.fixture
    def client(self):
        from retailiq.core.elevenlabs import ElevenLabsClient
        return ElevenLabsClient(api_key="xi-key", base_url="https://api.elevenlabs.test/")

    def test_create_agent_returns_body(self, client):
        with patch("retailiq.core.elevenlabs.requests.post", return_value=_response(body={"agent_id": "a1"})) as post:
            assert client.create_agent({"name": "A"}) == {"agent_id": "a1"}

        assert post.call_args[0][0] == "https://api.elevenlabs.test/v1/convai/agents/create"
        assert post.call_args.kwargs["headers"]["xi-api-key"] == "xi-key"

    def test_create_agent_non_json_body(self, client):
        response = _response(status=500)
        response.json.side_effect = ValueError("no json")

        with patch("retailiq.core.elevenlabs.requests.post", return_value=response):
            assert client.create_agent({}) == {}

    def test_get_agent_error(self, client):
        with patch("retailiq.core.elevenlabs.requests.get", return_value=_response(404, {"detail": "agent not found"})):
            with pytest.raises(UpstreamError, match="agent not found"):
                client.get_agent("missing")

    def test_signed_url(self, client):
        body = {"signed_url": "wss://signed"}
        with patch("retailiq.core.elevenlabs.requests.get", return_value=_response(body=body)) as get:
            assert client.get_signed_url("a1") == "wss://signed"

        assert get.call_args.kwargs["params"] == {"agent_id": "a1"}

    def test_list_voices(self, client):
        body = {"voices": [{"voice_id": "v1"}]}
        with patch("retailiq.core.elevenlabs.requests.get", return_value=_response(body=body)):
            assert client.list_voices() == [{"voice_id": "v1"}]

    def test_text_knowledge_base_document(self, client):
        with patch("retailiq.core.elevenlabs.requests.post", return_value=_response(body={"id": "kb"})) as post:
            assert client.add_knowledge_base_document("text", "hello") == {"id": "kb"}

        assert post.call_args[0][0].endswith("/v1/convai/knowledge-base/text")
        assert post.call_args.kwargs["json"] == {"text": "hello"}

    def test_missing_key(self):
        from retailiq.core.elevenlabs import ElevenLabsClient

        client = ElevenLabsClient(api_key="xi-key", base_url="https://api.elevenlabs.test")
        client.config.api_key = ""

        with patch("retailiq.core.elevenlabs.requests.get") as get:
            with pytest.raises(ValueError, match="Missing ElevenLabs API key"):
                client.get_agent("a1")

        get.assert_not_called()


class TestStripeClient:
    """Tests for StripeClient."""

    @pytest.fixture
    def client(self):
        from retailiq.core.payments import StripeClient
        return StripeClient(secret_key="sk_test", api_version="2025-01-27")

    def test_checkout_session(self, client):
        with patch("retailiq.core.payments.stripe.checkout.Session.create", return_value={"url": "u"}) as create:
            assert client.create_checkout_session("cus_1", "price_1", "https://s", "https://c") == {"url": "u"}

        kwargs = create.call_args.kwargs
        assert kwargs["line_items"] == [{"price": "price_1", "quantity": 1}]
        assert kwargs["mode"] == "subscription"
        assert kwargs["customer"] == "cus_1"
        assert kwargs["api_key"] == "sk_test"
        assert kwargs["stripe_version"] == "2025-01-27"

    def test_subscription_calls(self, client):
        with patch("retailiq.core.payments.stripe.Subscription") as subscription:
            client.cancel_subscription("sub_1")
            client.resume_subscription("sub_1")
            client.retrieve_subscription("sub_1")

        assert subscription.cancel.call_args[0] == ("sub_1",)
        assert subscription.resume.call_args.kwargs["billing_cycle_anchor"] == "now"
        assert subscription.retrieve.call_args.kwargs["api_key"] == "sk_test"

    def test_error_carries_message(self, client):
        import stripe

        error = stripe.InvalidRequestError("No such price: 'price_x'", param="price", http_status=400)
        with patch("retailiq.core.payments.stripe.Customer.create", side_effect=error):
            with pytest.raises(UpstreamError, match="No such price") as excinfo:
                client.create_customer("a@b.c")

        assert excinfo.value.upstream_status == 400

    def test_missing_key(self, client):
        client.config.secret_key = ""

        with patch("retailiq.core.payments.stripe.Customer.create") as create:
            with pytest.raises(ValueError, match="Missing Stripe secret key"):
                client.create_customer("a@b.c")

        create.assert_not_called()


class TestSupabaseAuthClient:
    """Tests for SupabaseAuthClient."""

    @pytest.fixture
    def client(self):
        from retailiq.core.auth_provider import SupabaseAuthClient
        return SupabaseAuthClient(url="https://ref.supabase.test", service_role_key="srk")

    def test_get_user_with_invalid_token(self, client):
        with patch("retailiq.core.auth_provider.requests.get", return_value=_response(401, {"msg": "bad jwt"})):
            assert client.get_user("expired") is None

    def test_get_user_sends_bearer(self, client):
        with patch("retailiq.core.auth_provider.requests.get", return_value=_response(body={"id": "u1"})) as get:
            assert client.get_user("jwt-1") == {"id": "u1"}

        assert get.call_args[0][0] == "https://ref.supabase.test/auth/v1/user"
        assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer jwt-1"
        assert get.call_args.kwargs["headers"]["apikey"] == "srk"

    def test_find_user_by_email_pages(self, client):
        first_page = [{"id": f"u{i}", "email": f"u{i}@example.com"} for i in range(200)]
        second_page = [{"id": "target", "email": "target@example.com"}]
        responses = [_response(body={"users": first_page}), _response(body={"users": second_page})]

        with patch("retailiq.core.auth_provider.requests.get", side_effect=responses) as get:
            user = client.find_user_by_email("target@example.com")

        assert user["id"] == "target"
        assert [c.kwargs["params"]["page"] for c in get.call_args_list] == [1, 2]

    def test_missing_configuration(self):
        from retailiq.core.auth_provider import SupabaseAuthClient

        client = SupabaseAuthClient(url="https://ref.supabase.test", service_role_key="srk")
        client.config.service_role_key = ""

        with pytest.raises(ValueError, match="Missing Supabase configuration"):
            client.get_user_by_id("u1")

    def test_generate_link_redirect(self, client):
        with patch("retailiq.core.auth_provider.requests.post", return_value=_response(body={})) as post:
            client.generate_link("recovery", "a@b.c", redirect_to="https://app/reset-password")

        assert post.call_args.kwargs["json"] == {
            "type": "recovery", "email": "a@b.c", "redirect_to": "https://app/reset-password",
        }


class TestOpenAIChatProvider:
    """Tests for OpenAIChatProvider."""

    def test_chat(self):
        from retailiq.core.llm import Message, OpenAIChatProvider

        body = {
            "model": "gpt-4",
            "choices": [{"message": {"content": "Hello!"}, "finish_reason": "stop"}],
            "usage": {"total_tokens": 12},
        }
        provider = OpenAIChatProvider(api_key="sk", base_url="https://api.openai.test")
        with patch("retailiq.core.llm.requests.post", return_value=_response(body=body)) as post:
            result = provider.chat([Message(role="user", content="Hi")], temperature=0.7, max_tokens=150)

        assert result.content == "Hello!"
        assert result.total_tokens == 12
        sent = post.call_args.kwargs["json"]
        assert sent["messages"] == [{"role": "user", "content": "Hi"}]
        assert sent["temperature"] == 0.7
        assert sent["max_tokens"] == 150

    def test_missing_key(self):
        from retailiq.core.llm import Message, OpenAIChatProvider

        provider = OpenAIChatProvider(api_key="sk")
        provider.config.api_key = ""

        with pytest.raises(ValueError, match="OpenAI API key not configured"):
            provider.chat([Message(role="user", content="Hi")])
