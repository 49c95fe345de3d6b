"""FastAPI application — Telegram webhook plus a small admin API.

Endpoints:

  POST   /telegram/webhook          Telegram Bot API updates
  GET    /health                    Health check (uptime, active wizards)
  GET    /api/sessions              Active wizard sessions          (admin)
  GET    /api/sessions/{user_id}    One session with collected data (admin)
  DELETE /api/sessions/{user_id}    Cancel a user's wizard          (admin)
  GET    /api/wizards               Registered wizard templates     (admin)

Everything the bot needs (store, repositories, registry, engine, channel,
gateway) is built in the lifespan handler, so a malformed template fails
startup rather than a user's conversation.
"""

from __future__ import annotations

# Load .env into os.environ before Settings is instantiated
from dotenv import load_dotenv
load_dotenv()

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Any

# Configure root logger early so every backoffice.* logger has a handler
# when run via `uvicorn backoffice.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from gateway.telegram import TelegramClient

from backoffice.auth import require_admin_token, webhook_secret_ok
from backoffice.channels import TelegramChannel
from backoffice.commits import CommitHandler, build_handlers
from backoffice.config import Settings, settings
from backoffice.conversation import ConversationGateway
from backoffice.engine import WizardEngine
from backoffice.models.invoice import CompanyInfo
from backoffice.repositories import (
    CustomerRepository,
    DocumentStore,
    InvoiceRepository,
    JsonlDocumentStore,
    MemoryDocumentStore,
    MessageLog,
    PaymentRepository,
    WorkOrderRepository,
)
from backoffice.sessions import SessionStore
from backoffice.wizards.registry import TemplateRegistry, load_default_registry
from backoffice.wizards.schema import WizardTemplate

log = logging.getLogger("backoffice.app")

_START_TIME = time.time()


@dataclass
class Services:
    """Everything built at startup, kept on ``app.state.services``."""

    store: DocumentStore
    customers: CustomerRepository
    work_orders: WorkOrderRepository
    invoices: InvoiceRepository
    payments: PaymentRepository
    messages: MessageLog
    handlers: dict[str, CommitHandler]
    registry: TemplateRegistry
    sessions: SessionStore
    engine: WizardEngine
    telegram: TelegramClient
    gateway: ConversationGateway


def build_services(config: Settings, telegram: TelegramClient | None = None) -> Services:
    """Wire the application.  Raises ``TemplateRegistryError`` on bad templates."""
    store: DocumentStore
    if config.data_dir:
        store = JsonlDocumentStore(config.data_dir)
        log.info("Using JSONL document store in %s", config.data_dir)
    else:
        store = MemoryDocumentStore()
        log.info("Using in-memory document store")

    customers = CustomerRepository(store)
    work_orders = WorkOrderRepository(
        store, customers, hourly_rate=config.hourly_rate, default_vat_rate=config.default_vat_rate
    )
    invoices = InvoiceRepository(
        store,
        work_orders,
        customers,
        company=CompanyInfo(
            nombre=config.company_name,
            nif=config.company_nif,
            direccion=config.company_address,
            ciudad=config.company_city,
            telefono=config.company_phone,
            email=config.company_email,
        ),
        series=config.invoice_series,
        due_days=config.invoice_due_days,
        default_vat_rate=config.default_vat_rate,
    )
    payments = PaymentRepository(store, invoices)
    messages = MessageLog(store, max_per_user=config.message_history_per_user)

    handlers = build_handlers(customers, work_orders, invoices, payments)
    registry = load_default_registry(handler_names=handlers)
    sessions = SessionStore(idle_timeout=config.session_idle_timeout)
    engine = WizardEngine(registry, sessions, handlers)

    telegram = telegram or TelegramClient(config.telegram_bot_token, api_url=config.telegram_api_url)
    gateway = ConversationGateway(
        engine,
        TelegramChannel(telegram),
        customers,
        work_orders,
        invoices,
        messages=messages,
        company_name=config.company_name,
    )
    return Services(
        store=store,
        customers=customers,
        work_orders=work_orders,
        invoices=invoices,
        payments=payments,
        messages=messages,
        handlers=handlers,
        registry=registry,
        sessions=sessions,
        engine=engine,
        telegram=telegram,
        gateway=gateway,
    )


async def _sweep_sessions(sessions: SessionStore, interval: float) -> None:
    """Drop idle wizard sessions every ``interval`` seconds, forever."""
    while True:
        await asyncio.sleep(interval)
        expired = sessions.sweep()
        if expired:
            log.info("Swept %d idle session(s); %d active", expired, len(sessions))


def create_app(config: Settings | None = None, telegram: TelegramClient | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or settings

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        for warning in config.validate_startup():
            log.warning(warning)

        services = build_services(config, telegram)
        app.state.services = services
        sweeper = asyncio.create_task(
            _sweep_sessions(services.sessions, config.session_sweep_interval_seconds)
        )
        log.info("Back office ready: %d wizard(s)", len(services.registry))
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            await services.telegram.close()
            log.info("Back office stopped")

    app = FastAPI(
        title="Workshop Back Office",
        description="Telegram back office for a vehicle repair shop",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = config

    def _services(request: Request) -> Services:
        return request.app.state.services

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Lightweight health check — confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({
            "status": "ok",
            "uptime": uptime,
            "active_sessions": len(_services(request).sessions),
        })

    # ── Telegram webhook ───────────────────────────────────────

    @app.post("/telegram/webhook")
    async def telegram_webhook(
        request: Request,
        x_telegram_bot_api_secret_token: str | None = Header(default=None),
    ) -> JSONResponse:
        """Handle one Telegram update.

        Always answers 200 once the secret checks out: Telegram redelivers
        anything else, and a failed reply is not worth a replay.
        """
        if not webhook_secret_ok(config.telegram_webhook_secret, x_telegram_bot_api_secret_token):
            log.warning("Webhook call with bad secret token")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid secret token")

        try:
            update = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not JSON")
        if not isinstance(update, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Update must be an object")

        try:
            await _services(request).gateway.handle_update(update)
        except Exception:
            log.exception("Failed to handle update %s", update.get("update_id"))
        return JSONResponse({"ok": True})

    # ── Admin API ──────────────────────────────────────────────

    @app.get("/api/sessions", dependencies=[Depends(require_admin_token)])
    async def list_sessions(request: Request) -> JSONResponse:
        """Summary of all active wizard sessions."""
        active = _services(request).sessions.active()
        return JSONResponse({
            "sessions": [s.to_dict() for s in active],
            "count": len(active),
        })

    @app.get("/api/sessions/{user_id}", dependencies=[Depends(require_admin_token)])
    async def get_session(user_id: str, request: Request) -> JSONResponse:
        """Detailed state of one user's session."""
        session = _services(request).engine.session(user_id)
        if session is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        return JSONResponse(session.to_dict(detail=True))

    @app.delete("/api/sessions/{user_id}", dependencies=[Depends(require_admin_token)])
    async def cancel_session(user_id: str, request: Request) -> JSONResponse:
        """Cancel a user's wizard, e.g. one stuck on a failing commit."""
        cancelled = await _services(request).engine.cancel(user_id)
        if cancelled.intent is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        log.info("Session for %s cancelled via admin API", user_id)
        return JSONResponse({"cancelled": cancelled.intent})

    @app.get("/api/wizards", dependencies=[Depends(require_admin_token)])
    async def list_wizards(request: Request) -> JSONResponse:
        """Registered wizard templates and their commit handlers."""
        services = _services(request)
        return JSONResponse({"wizards": [
            _describe_template(t, services.handlers) for t in services.registry
        ]})

    return app


def _describe_template(template: WizardTemplate, handlers: dict[str, CommitHandler]) -> dict[str, Any]:
    return {
        "intent": template.intent,
        "title": template.title,
        "commit": template.commit,
        "commit_description": handlers[template.commit].description,
        "steps": [
            {
                "key": s.key,
                "label": s.display_label,
                "type": s.field_type.value,
                "required": s.required,
                "depends_on": s.depends_on,
            }
            for s in template.steps
        ],
    }


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "backoffice.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
