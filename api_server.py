"""
FastAPI Backend Server

Exposes the RetailIQ request handlers as REST endpoints for the web client:
account administration, role-play agents and personas, the voice mirror,
billing and the conversation helpers.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from starlette.middleware.base import BaseHTTPMiddleware

from retailiq.config import settings
from retailiq.core.auth_provider import SupabaseAuthClient
from retailiq.core.elevenlabs import ElevenLabsClient
from retailiq.core.llm import LLMProvider, OpenAIChatProvider
from retailiq.core.payments import StripeClient
from retailiq.db import Database
from retailiq.errors import AnalysisParseError, AuthorizationError, UpstreamError
from retailiq.logger import get_logger, init_logging
from retailiq.messages import msg
from retailiq.services.accounts import AccountService
from retailiq.services.agents import AgentService
from retailiq.services.analytics import DEFAULT_TIME_RANGE, AnalyticsService
from retailiq.services.billing import BillingService
from retailiq.services.conversations import ConversationService, synthesize_local, verify_webhook_signature
from retailiq.services.email_client import EmailClient
from retailiq.services.guard import ADMIN_ROLES, AuthorizedUser, require_admin
from retailiq.services.knowledge_base import KnowledgeBaseService
from retailiq.services.notifications import NotificationService
from retailiq.services.scenarios import ScenarioService
from retailiq.services.voices import VoiceService

logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, stripe-signature",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Max-Age": "86400",
}


# Pydantic models for API
class RequestBody(BaseModel):
    """Base for request bodies: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True)


class ActivateUserRequest(RequestBody):
    token: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class AdminUserRequest(RequestBody):
    action: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    email: Optional[str] = None


class CheckoutRequest(RequestBody):
    plan_id: Optional[str] = Field(default=None, alias="planId")
    price_id: Optional[str] = Field(default=None, alias="priceId")


class KnowledgeBaseRequest(RequestBody):
    content: str = Field(min_length=1)
    type: Literal["text", "file", "url"]
    user_id: UUID = Field(alias="userId")


class TextAgentRequest(RequestBody):
    agent_details: Dict[str, Any] = Field(default_factory=dict, alias="agentDetails")
    scenario: Optional[Dict[str, Any]] = None
    title: Optional[str] = None
    initial_prompt: Optional[str] = Field(default=None, alias="initialPrompt")
    system_prompt: Any = Field(default=None, alias="systemPrompt")
    persona: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class VoiceAgentRequest(RequestBody):
    agent_details: Dict[str, Any] = Field(default_factory=dict, alias="agentDetails")
    scenario: Optional[Dict[str, Any]] = None
    theme_of_story: Optional[str] = Field(default=None, alias="themeOfStory")
    initial_prompt: Optional[str] = Field(default=None, alias="initialPrompt")
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    assigned_voices: Optional[List[Dict[str, Any]]] = Field(default=None, alias="assignedVoices")
    user_id: Optional[str] = Field(default=None, alias="userId")


class IdRequest(RequestBody):
    id: Optional[str] = None


class ChatRequest(RequestBody):
    message: Optional[str] = None
    persona: Optional[Dict[str, Any]] = None
    type: Optional[str] = None


class AgentSessionRequest(RequestBody):
    agent_id: Optional[str] = Field(default=None, alias="agentId")


class CreateUserRequest(RequestBody):
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    role: Optional[str] = None
    store_ids: Optional[List[str]] = Field(default=None, alias="storeIds")
    username: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")
    account_id: Optional[str] = Field(default=None, alias="accountId")


class AccessRequest(RequestBody):
    action: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    account_id: Optional[str] = Field(default=None, alias="accountId")


class InvitationEmailRequest(RequestBody):
    user_id: Optional[str] = Field(default=None, alias="userId")
    base_url: str = Field(default="", alias="baseUrl")


class ScheduleEmailRequest(RequestBody):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    base_url: str = Field(default="", alias="baseUrl")


class UpdateSubscriptionRequest(RequestBody):
    subscription_id: Optional[str] = None
    tier: Optional[str] = None
    status: Optional[str] = None


class GenerateScenarioRequest(RequestBody):
    theme_of_story: Optional[str] = Field(default=None, alias="themeOfStory")
    difficulty: Optional[str] = None


class GenerateRoleplayRequest(RequestBody):
    theme_of_story: Optional[str] = Field(default=None, alias="themeOfStory")
    description: Optional[str] = None
    difficulty: Optional[str] = None
    tags: Union[str, List[str], None] = None
    cover_image_url: Optional[str] = Field(default=None, alias="coverImageUrl")
    initial_prompt: Optional[str] = Field(default=None, alias="initialPrompt")
    user_id: Optional[str] = Field(default=None, alias="userId")
    assigned_voices: Optional[List[Dict[str, Any]]] = Field(default=None, alias="assignedVoices")
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")


class PersonaDocument(RequestBody):
    id: UUID
    content: str
    name: str
    knowledge_base_id: str
    type: Literal["text", "file", "url"]


class PersonaRequest(RequestBody):
    name: str = Field(min_length=1)
    age: str = ""
    personality: List[str] = Field(default_factory=list)
    voice_type: str = Field(alias="voiceType")
    avatar_url: str = Field(default="", alias="avatarUrl")
    is_public: bool = Field(default=False, alias="isPublic")
    user_id: str = Field(alias="userId")
    voice_id: str = Field(alias="voiceId")
    document: Optional[PersonaDocument] = None


class UpdatePersonaRequest(RequestBody):
    id: Optional[str] = None
    name: Optional[str] = None
    age: Optional[str] = None
    personality: Optional[List[str]] = None
    voice_type: Optional[str] = Field(default=None, alias="voiceType")
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")
    is_public: Optional[bool] = Field(default=None, alias="isPublic")
    type: Optional[str] = None
    voice_id: Optional[str] = Field(default=None, alias="voiceId")


class AnalyticsRequest(RequestBody):
    time_range: str = Field(default=DEFAULT_TIME_RANGE, alias="timeRange")
    include_users: bool = Field(default=True, alias="includeUsers")
    include_subscriptions: bool = Field(default=True, alias="includeSubscriptions")
    include_payments: bool = Field(default=True, alias="includePayments")


class TestPromptRequest(RequestBody):
    prompt: Optional[str] = None


class TTSRequest(RequestBody):
    text: Optional[str] = None
    voice_type: Optional[str] = Field(default=None, alias="voiceType")


# Collaborator clients, created lazily and shared across requests
@lru_cache
def get_database() -> Database:
    return Database()


@lru_cache
def get_auth_provider() -> SupabaseAuthClient:
    return SupabaseAuthClient()


@lru_cache
def get_elevenlabs() -> ElevenLabsClient:
    return ElevenLabsClient()


@lru_cache
def get_llm() -> LLMProvider:
    return OpenAIChatProvider()


@lru_cache
def get_payments() -> StripeClient:
    return StripeClient()


@lru_cache
def get_email_client() -> EmailClient:
    return EmailClient()


def admin_user(
    authorization: Optional[str] = Header(default=None),
    database: Database = Depends(get_database),
    auth: SupabaseAuthClient = Depends(get_auth_provider),
) -> AuthorizedUser:
    return require_admin(authorization, database, auth)


def account_manager(
    authorization: Optional[str] = Header(default=None),
    database: Database = Depends(get_database),
    auth: SupabaseAuthClient = Depends(get_auth_provider),
) -> AuthorizedUser:
    """Admins and super-admins may create users."""
    return require_admin(authorization, database, auth, roles=ADMIN_ROLES + ("super-admin",))


def account_service(
    database: Database = Depends(get_database),
    auth: SupabaseAuthClient = Depends(get_auth_provider),
    email: EmailClient = Depends(get_email_client),
) -> AccountService:
    return AccountService(database, auth, email)


def notification_service(
    database: Database = Depends(get_database),
    auth: SupabaseAuthClient = Depends(get_auth_provider),
    email: EmailClient = Depends(get_email_client),
) -> NotificationService:
    return NotificationService(database, auth, email)


def billing_service(
    database: Database = Depends(get_database),
    payments: StripeClient = Depends(get_payments),
) -> BillingService:
    return BillingService(database, payments)


def agent_service(
    database: Database = Depends(get_database),
    elevenlabs: ElevenLabsClient = Depends(get_elevenlabs),
) -> AgentService:
    return AgentService(database, elevenlabs)


def scenario_service(
    database: Database = Depends(get_database),
    elevenlabs: ElevenLabsClient = Depends(get_elevenlabs),
    llm: LLMProvider = Depends(get_llm),
) -> ScenarioService:
    return ScenarioService(database, elevenlabs, llm)


def voice_service(
    database: Database = Depends(get_database),
    elevenlabs: ElevenLabsClient = Depends(get_elevenlabs),
) -> VoiceService:
    return VoiceService(database, elevenlabs)


def conversation_service(
    llm: LLMProvider = Depends(get_llm),
    elevenlabs: ElevenLabsClient = Depends(get_elevenlabs),
    database: Database = Depends(get_database),
) -> ConversationService:
    return ConversationService(llm, elevenlabs, database)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and report which integrations are configured."""
    init_logging()
    logger.info(
        "RetailIQ backend starting (env=%s, supabase=%s, elevenlabs=%s, email=%s)",
        settings.app_env,
        settings.supabase.is_configured,
        settings.elevenlabs.is_configured,
        settings.email.is_configured,
    )

    yield

    logger.info("RetailIQ backend stopped")


def error_response(status_code: int, error: str, details: Any = None) -> JSONResponse:
    content: Dict[str, Any] = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


class CORSEnvelopeMiddleware(BaseHTTPMiddleware):
    """
    Answers preflight requests directly and stamps the CORS headers on every
    response. Anything a handler raised that no exception handler claimed is
    logged and reported with the 400 envelope.
    """

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(f"Unhandled error on {request.url.path}: {e}")
            response = error_response(400, str(e) or msg("error.unexpected"), f"{type(e).__name__}: {e}")

        response.headers.update(CORS_HEADERS)
        return response


app = FastAPI(
    title="RetailIQ API",
    description="Backend for the RetailIQ retail-training application",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(CORSEnvelopeMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return error_response(400, f"{field}: {message}" if field else message, errors)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    return error_response(exc.status_code, str(exc))


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.error(f"Upstream error on {request.url.path}: {exc} ({exc.upstream_status})")
    return error_response(exc.status_code, str(exc), jsonable_encoder(exc.detail))


@app.exception_handler(AnalysisParseError)
async def analysis_error_handler(request: Request, exc: AnalysisParseError):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc), "raw": exc.raw})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning(f"Rejected request on {request.url.path}: {exc}")
    return error_response(400, str(exc), f"{type(exc).__name__}: {exc}")


def request_origin(request: Request) -> str:
    return request.headers.get("origin", "")


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@app.post("/activate-user")
async def activate_user(body: ActivateUserRequest, service: AccountService = Depends(account_service)):
    """Consume an activation token and mark the profile active."""
    return await asyncio.to_thread(service.activate, token=body.token, user_id=body.user_id)


@app.post("/admin-user-management")
async def admin_user_management(
    body: AdminUserRequest,
    request: Request,
    admin: AuthorizedUser = Depends(admin_user),
    service: AccountService = Depends(account_service),
):
    """Suspend, reactivate or send a password reset to a user."""
    return await asyncio.to_thread(
        service.manage_user,
        action=body.action,
        user_id=body.user_id,
        email=body.email,
        origin=request_origin(request),
    )


@app.post("/create-user")
async def create_user(
    body: CreateUserRequest,
    request: Request,
    admin: AuthorizedUser = Depends(account_manager),
    service: AccountService = Depends(account_service),
):
    return await asyncio.to_thread(
        service.create_user,
        admin,
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
        store_ids=body.store_ids,
        username=body.username,
        avatar_url=body.avatar_url,
        account_id=body.account_id,
        origin=request_origin(request),
    )


@app.post("/manage-user-access")
async def manage_user_access(
    body: AccessRequest,
    admin: AuthorizedUser = Depends(admin_user),
    service: AccountService = Depends(account_service),
):
    return await asyncio.to_thread(
        service.manage_access, action=body.action, user_id=body.user_id, account_id=body.account_id
    )


@app.post("/send-invitation-email")
async def send_invitation_email(body: InvitationEmailRequest, service: NotificationService = Depends(notification_service)):
    return await asyncio.to_thread(service.send_invitation, user_id=body.user_id, base_url=body.base_url)


@app.post("/send-schedule-email")
async def send_schedule_email(body: ScheduleEmailRequest, service: NotificationService = Depends(notification_service)):
    return await asyncio.to_thread(service.send_schedule, session_id=body.session_id, base_url=body.base_url)


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------

@app.post("/create-checkout-session")
async def create_checkout_session(
    body: CheckoutRequest,
    request: Request,
    admin: AuthorizedUser = Depends(admin_user),
    service: BillingService = Depends(billing_service),
):
    return await asyncio.to_thread(
        service.create_checkout_session, admin, price_id=body.price_id, origin=request_origin(request)
    )


@app.post("/update-subscription")
async def update_subscription(
    body: UpdateSubscriptionRequest,
    admin: AuthorizedUser = Depends(admin_user),
    service: BillingService = Depends(billing_service),
):
    return await asyncio.to_thread(
        service.update_subscription, subscription_id=body.subscription_id, tier=body.tier, status=body.status
    )


@app.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None),
    service: BillingService = Depends(billing_service),
):
    """Verify and process a Stripe event. Per-event failures never fail the delivery."""
    payload = await request.body()
    result = await asyncio.to_thread(service.handle_webhook, payload, stripe_signature)
    return PlainTextResponse(result)


# ---------------------------------------------------------------------------
# Knowledge base, agents and personas
# ---------------------------------------------------------------------------

@app.post("/create-knowledge-base")
async def create_knowledge_base(
    body: KnowledgeBaseRequest,
    elevenlabs: ElevenLabsClient = Depends(get_elevenlabs),
    database: Database = Depends(get_database),
):
    service = KnowledgeBaseService(database, elevenlabs)
    return await asyncio.to_thread(
        service.create_document, content=body.content, kind=body.type, user_id=str(body.user_id)
    )


@app.post("/create-text-agent")
async def create_text_agent(body: TextAgentRequest, service: AgentService = Depends(agent_service)):
    return await asyncio.to_thread(
        service.create_text_agent,
        agent_details=body.agent_details,
        scenario=body.scenario,
        title=body.title,
        initial_prompt=body.initial_prompt,
        system_prompt=body.system_prompt,
        persona=body.persona,
        user_id=body.user_id,
    )


@app.post("/create-voice-agent")
async def create_voice_agent(body: VoiceAgentRequest, service: AgentService = Depends(agent_service)):
    return await asyncio.to_thread(
        service.create_voice_agent,
        agent_details=body.agent_details,
        scenario=body.scenario,
        theme_of_story=body.theme_of_story,
        initial_prompt=body.initial_prompt,
        system_prompt=body.system_prompt,
        assigned_voices=body.assigned_voices,
        user_id=body.user_id,
    )


@app.post("/get-agent-session")
async def get_agent_session(body: AgentSessionRequest, service: AgentService = Depends(agent_service)):
    return await asyncio.to_thread(service.get_agent_session, agent_id=body.agent_id)


@app.post("/generate-persona")
async def generate_persona(body: PersonaRequest, service: AgentService = Depends(agent_service)):
    document = body.document.model_dump(mode="json") if body.document else None
    return await asyncio.to_thread(
        service.generate_persona,
        name=body.name,
        age=body.age,
        personality=body.personality,
        voice_type=body.voice_type,
        avatar_url=body.avatar_url,
        is_public=body.is_public,
        user_id=body.user_id,
        voice_id=body.voice_id,
        document=document,
    )


@app.post("/update-persona")
async def update_persona(body: UpdatePersonaRequest, service: AgentService = Depends(agent_service)):
    return await asyncio.to_thread(
        service.update_persona,
        persona_id=body.id,
        name=body.name,
        age=body.age,
        personality=body.personality,
        voice_type=body.voice_type,
        avatar_url=body.avatar_url,
        is_public=body.is_public,
        kind=body.type,
        voice_id=body.voice_id,
    )


@app.api_route("/delete-persona", methods=["DELETE", "POST"])
async def delete_persona(body: IdRequest, service: AgentService = Depends(agent_service)):
    return await asyncio.to_thread(service.delete_persona, persona_id=body.id)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

@app.post("/generate-scenario")
async def generate_scenario(body: GenerateScenarioRequest, service: ScenarioService = Depends(scenario_service)):
    return await asyncio.to_thread(
        service.generate_scenario, theme_of_story=body.theme_of_story, difficulty=body.difficulty
    )


@app.post("/generate-roleplay")
async def generate_roleplay(body: GenerateRoleplayRequest, service: ScenarioService = Depends(scenario_service)):
    return await asyncio.to_thread(
        service.generate_roleplay,
        theme_of_story=body.theme_of_story,
        description=body.description,
        difficulty=body.difficulty,
        tags=body.tags,
        cover_image_url=body.cover_image_url,
        initial_prompt=body.initial_prompt,
        user_id=body.user_id,
        assigned_voices=body.assigned_voices,
        system_prompt=body.system_prompt,
    )


@app.api_route("/delete-scenario", methods=["DELETE", "POST"])
async def delete_scenario(body: IdRequest, service: ScenarioService = Depends(scenario_service)):
    return await asyncio.to_thread(service.delete_scenario, scenario_id=body.id)


# ---------------------------------------------------------------------------
# Voice catalogue
# ---------------------------------------------------------------------------

@app.api_route("/sync-elevenlabs-voices", methods=["GET", "POST"])
async def sync_elevenlabs_voices(service: VoiceService = Depends(voice_service)):
    """Replace the local voice mirror with the current ElevenLabs catalogue."""
    return await asyncio.to_thread(service.sync)


@app.get("/get-voices")
async def get_voices(
    category: Optional[str] = None,
    gender: Optional[str] = None,
    accent: Optional[str] = None,
    age: Optional[str] = None,
    use_case: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = VoiceService.DEFAULT_LIMIT,
    offset: int = 0,
    sort_by: str = "name",
    sort_order: str = "asc",
    service: VoiceService = Depends(voice_service),
):
    return await asyncio.to_thread(
        service.list_voices,
        category=category,
        gender=gender,
        accent=accent,
        age=age,
        use_case=use_case,
        search=search,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

@app.post("/chat")
async def chat(body: ChatRequest, service: ConversationService = Depends(conversation_service)):
    """Legacy persona chat with a synthesized reply."""
    return await asyncio.to_thread(
        service.chat, message=body.message, persona=body.persona, conversation_type=body.type
    )


@app.post("/test-prompt")
async def test_prompt(body: TestPromptRequest, service: ConversationService = Depends(conversation_service)):
    return await asyncio.to_thread(service.test_prompt, prompt=body.prompt)


@app.post("/convai-webhook")
async def convai_webhook(
    request: Request,
    elevenlabs_signature: Optional[str] = Header(default=None),
    service: ConversationService = Depends(conversation_service),
):
    """Analyze a finished call. The signature is checked only when a webhook secret is set."""
    payload = await request.body()
    secret = settings.elevenlabs.webhook_secret
    if secret and not verify_webhook_signature(elevenlabs_signature, payload, secret):
        raise ValueError("Invalid webhook signature")
    try:
        body = json.loads(payload or b"{}")
    except ValueError:
        raise ValueError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValueError("Invalid JSON body")
    return await asyncio.to_thread(service.analyze_call, body)


@app.post("/tts")
async def text_to_speech(body: TTSRequest):
    """Proxy text to the local TTS server and return WAV audio."""
    audio = await asyncio.to_thread(synthesize_local, body.text, body.voice_type)
    return Response(content=audio, media_type="audio/wav")


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

@app.post("/generate-analytics-report")
async def generate_analytics_report(
    body: AnalyticsRequest,
    admin: AuthorizedUser = Depends(admin_user),
    database: Database = Depends(get_database),
):
    service = AnalyticsService(database)
    return await asyncio.to_thread(
        service.generate_report,
        time_range=body.time_range,
        include_users=body.include_users,
        include_subscriptions=body.include_subscriptions,
        include_payments=body.include_payments,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api_server:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
    )
