"""HTTP routes for the registration, login and session flows."""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import HTMLResponse

from .. import __version__
from ..auth.login import secure_compare
from ..errors import AuthFailure, Forbidden
from ..services import AuthServices
from ..store import ROLES
from .deps import (
    clear_session_cookie, client_ip, current_session, get_services,
    session_token, set_session_cookie,
)
from .schemas import (
    LoginRequest, RegisterRequest, SendOtpRequest, SendUserIdRequest,
    VerifyOtpRequest,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Registration
# ============================================

@router.post("/api/send-otp")
def send_otp(body: SendOtpRequest, services: AuthServices = Depends(get_services)):
    code = services.registration.start(body.email or "")
    payload = {"success": True, "message": "OTP sent successfully"}
    if code is not None:
        payload["otp"] = code
    return payload


@router.post("/api/verify-otp")
def verify_otp(body: VerifyOtpRequest, services: AuthServices = Depends(get_services)):
    temporary_user_id = services.registration.verify_code(body.email or "", body.otp or "")
    return {
        "success": True,
        "userId": temporary_user_id,
        "temporaryUserId": temporary_user_id,
        "message": "Email verified successfully",
    }


@router.post("/api/auth/register")
def register(body: RegisterRequest, response: Response,
             services: AuthServices = Depends(get_services)):
    result = services.registration.complete(
        temporary_user_id=body.temporary_user_id or "",
        email=body.email or "",
        password=body.password or "",
        role=body.role or "",
        name=body.name or "",
    )
    set_session_cookie(response, result.token, services.settings)
    return {"success": True, "user": result.user.public()}


@router.post("/api/send-user-id")
def send_user_id(body: SendUserIdRequest, request: Request,
                 services: AuthServices = Depends(get_services)):
    session = current_session(request, services)
    if session is None:
        raise AuthFailure("Authentication required")
    if not secure_compare(session.user_id, (body.user_id or "").strip().upper()):
        raise Forbidden()
    # Only ever mailed to the account's own address
    if body.email and body.email.strip() != session.email:
        raise Forbidden()
    services.registration.send_user_id(session.email, session.user_id,
                                       body.user_name or session.name)
    return {"success": True, "message": "User ID sent successfully to your email"}


# ============================================
# Login & session
# ============================================

@router.post("/api/auth/login")
def login(body: LoginRequest, request: Request, response: Response,
          services: AuthServices = Depends(get_services)):
    result = services.login.login(
        body.identifier or "",
        body.password or "",
        client_ip(request, services.settings),
    )
    set_session_cookie(response, result.token, services.settings)
    return {"success": True, "user": result.user.public()}


@router.get("/api/auth/session")
def get_session(request: Request, services: AuthServices = Depends(get_services)):
    session = current_session(request, services)
    return {"user": session.user() if session else None}


@router.post("/api/auth/logout")
def logout(request: Request, response: Response,
           services: AuthServices = Depends(get_services)):
    services.login.logout(session_token(request, services.settings))
    clear_session_cookie(response, services.settings)
    return {"success": True, "message": "Logged out successfully"}


# ============================================
# Pages
# ============================================

@router.get("/health")
def health_check(services: AuthServices = Depends(get_services)):
    return {
        "status": "healthy",
        "app_name": services.settings.APP_NAME,
        "version": __version__,
        "environment": services.settings.ENVIRONMENT,
    }


@router.get("/login", response_class=HTMLResponse)
def login_page():
    # returnTo is read by the client after POST /api/auth/login; never rendered here
    return HTMLResponse(
        "<h1>Sign in</h1><p>Sign in with your User ID or email to continue.</p>"
    )


@router.get("/unauthorized", response_class=HTMLResponse)
def unauthorized():
    return HTMLResponse(
        "<h1>Access denied</h1><p>Your account does not have access to this page.</p>",
        status_code=403,
    )


@router.get("/{role}/dashboard")
def dashboard(role: str, request: Request, services: AuthServices = Depends(get_services)):
    if role not in ROLES:
        return Response(status_code=404)
    session = current_session(request, services)
    if session is None:
        raise AuthFailure("Authentication required")
    if session.role != role:
        raise Forbidden()
    return {"role": role, "user": session.user()}
