"""
Clinic Inbox API - Main Entry Point
WhatsApp clinic inbox: conversations, AI drafts, unread counts and personas
"""
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from contextlib import asynccontextmanager
from starlette.middleware.base import BaseHTTPMiddleware
import logging

from app.config import settings
from app.api import contacts, messages, prompts, webhook, websocket as ws_router
from app.services.draft_service import DraftService, get_draft_service
from app.services.table_store import get_table_store
from app.services.websocket_service import ConnectionManager, get_connection_manager

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

OPENAPI_TAGS = [
    {"name": "health", "description": "Health check"},
    {"name": "inbox-contacts", "description": "👥 **Contacts** - Sidebar, search, views, patient context and AI takeover."},
    {"name": "inbox-messages", "description": "💬 **Messages** - Conversations, operator sends and AI draft approval."},
    {"name": "ai-prompts", "description": "🤖 **AI personas** - Persona CRUD and the single active persona."},
    {"name": "webhook", "description": "🔗 **Gateway** - Inbound patient messages and contact provisioning (X-API-Key)."},
    {"name": "websocket", "description": "⚡ **Live inbox** - Operator sessions over WebSocket (token in query string)."},
]


class ProxyHeadersMiddleware(BaseHTTPMiddleware):
    """Use the scheme reported by the reverse proxy so redirects keep https"""
    async def dispatch(self, request: Request, call_next):
        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        if forwarded_proto:
            request.scope["scheme"] = forwarded_proto
        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warm the store on startup; let in-flight drafts settle on shutdown"""
    store = get_table_store()
    logger.info(f"🏥 Clinic Inbox API starting (store={type(store).__name__}, responder={settings.AI_RESPONDER})")

    if not settings.is_auth_configured:
        logger.warning("SUPABASE_JWT_SECRET not configured - operator endpoints will reject every token")
    if not settings.is_whatsapp_configured:
        logger.warning("WHATSAPP_API_URL not configured - messages are stored but not delivered")
    if not settings.WEBHOOK_SECRET_KEY:
        logger.warning("WEBHOOK_SECRET_KEY not configured - gateway webhooks are refused")

    yield

    draft_service = get_draft_service()
    logger.info(f"Shutting down, {draft_service.total_pending()} draft(s) still pending")
    await draft_service.shutdown()


app = FastAPI(
    title="Clinic Inbox API",
    description="""
## 🏥 Clinic Inbox

Operator messages, inbound patient messages, AI draft suggestions awaiting approval,
unread counts and AI personas for a WhatsApp clinic inbox.
""",
    version=API_VERSION,
    lifespan=lifespan,
    swagger_ui_parameters={
        "defaultModelsExpandDepth": -1,
        "docExpansion": "list",
        "persistAuthorization": True,
    },
)

app.add_middleware(ProxyHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(contacts.router)   # /inbox/contacts
app.include_router(messages.router)   # /inbox/contacts/{id}/messages, /inbox/messages/{id}
app.include_router(prompts.router)    # /ai/prompts
app.include_router(webhook.router)    # /webhook
if settings.WEBSOCKET_ENABLED:
    app.include_router(ws_router.router)  # /ws/inbox


def custom_openapi():
    """OpenAPI schema with the operator (Bearer) and gateway (X-API-Key) schemes"""
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(
        title=app.title,
        version=API_VERSION,
        description=app.description,
        routes=app.routes,
    )
    schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "Supabase access token of the clinic operator"
        },
        "ApiKeyAuth": {
            "type": "apiKey",
            "in": "header",
            "name": "X-API-Key",
            "description": "Shared key of the WhatsApp gateway"
        }
    }
    schema["security"] = [{"BearerAuth": []}]
    schema["tags"] = OPENAPI_TAGS

    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi


@app.get("/", tags=["health"], summary="API Health Check")
def root(
    connection_manager: ConnectionManager = Depends(get_connection_manager),
    draft_service: DraftService = Depends(get_draft_service)
):
    """Health check with the wiring the process is running with"""
    return {
        "status": "healthy",
        "message": "Clinic Inbox API",
        "version": API_VERSION,
        "store": "memory" if settings.use_memory_store else "supabase",
        "ai_responder": settings.AI_RESPONDER,
        "whatsapp_delivery": settings.is_whatsapp_configured,
        "live_sessions": connection_manager.get_connection_count(),
        "pending_drafts": draft_service.total_pending(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, ws_ping_interval=20.0, ws_ping_timeout=60.0)
