"""
Session endpoints:
  POST /auth/login            — credential sign-in, returns a session token
  POST /auth/signup           — register (logged in, or awaiting email confirmation)
  POST /auth/forgot-password  — send a password-reset email
  POST /auth/logout           — sign out at the BaaS and drop the session
  GET  /auth/session          — current user, profile and roles
"""
import logging

from fastapi import APIRouter, Depends, status
from opentelemetry import trace

from unfriendable.clients.baas import BaasClient
from unfriendable.clients.errors import BackendError
from unfriendable.clients.session_store import SessionStore, new_session_id
from unfriendable.config import settings
from unfriendable.dependencies import (
    SessionContext,
    build_context,
    get_baas,
    get_current_session,
    get_session_store,
)
from unfriendable.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    SessionResponse,
    SignupRequest,
    SignupResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    baas: BaasClient = Depends(get_baas),
    store: SessionStore = Depends(get_session_store),
):
    with tracer.start_as_current_span("login"):
        session = await baas.auth.sign_in_with_password(body.email, body.password)
        session_id = new_session_id()
        await store.save(session_id, session)
        ctx = await build_context(session_id, session, baas)
        logger.info("User %s signed in", session.user_id)
        return LoginResponse(session_token=session_id, **ctx.as_response().model_dump())


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    body: SignupRequest,
    baas: BaasClient = Depends(get_baas),
    store: SessionStore = Depends(get_session_store),
):
    """
    Register a new account. The BaaS creates the `users` row (and the
    CREATED_ACCOUNT happening) from the username/display_name metadata.
    """
    with tracer.start_as_current_span("signup"):
        result = await baas.auth.sign_up(
            body.email, body.password, body.username.strip(), body.display_name.strip()
        )
        if result.session is None:
            logger.info("Signup for %s awaiting email confirmation", body.email)
            return SignupResponse(
                status="confirmation_required",
                message="Account created! Please check your email to confirm your account.",
            )

        session_id = new_session_id()
        await store.save(session_id, result.session)
        ctx = await build_context(session_id, result.session, baas)
        logger.info("Created account %s (id=%s)", body.username, result.session.user_id)
        return SignupResponse(
            status="logged_in",
            message="Account created and logged in!",
            session_token=session_id,
            session=ctx.as_response(),
        )


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(body: ForgotPasswordRequest, baas: BaasClient = Depends(get_baas)):
    with tracer.start_as_current_span("forgot_password"):
        await baas.auth.reset_password_for_email(
            body.email, redirect_to=settings.password_reset_redirect_url
        )
        return MessageResponse(message=f"A password reset link has been sent to {body.email}.")


@router.post("/logout", response_model=MessageResponse)
async def logout(
    ctx: SessionContext = Depends(get_current_session),
    baas: BaasClient = Depends(get_baas),
    store: SessionStore = Depends(get_session_store),
):
    with tracer.start_as_current_span("logout"):
        try:
            await baas.auth.sign_out(ctx.session.access_token)
        except BackendError as exc:
            # the local session goes regardless
            logger.warning("BaaS sign-out failed for %s: %s", ctx.session.user_id, exc)
        await store.delete(ctx.session_id)
        return MessageResponse(message="Signed out.")


@router.get("/session", response_model=SessionResponse)
async def current_session(ctx: SessionContext = Depends(get_current_session)):
    return ctx.as_response()
