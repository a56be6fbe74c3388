"""Email login codes, session token, and the Gmail OAuth consent flow."""
import html
import logging
import os
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, EmailStr, Field
import httpx

from ..deps import get_current_user, require_admin
from ..services import email as email_service
from ..services import jwt, oauth, otp, users


log = logging.getLogger("chatflow.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RequestOtpRequest(BaseModel):
    email: EmailStr
    displayName: Optional[str] = Field(None, max_length=255)


class RequestOtpResponse(BaseModel):
    success: bool
    message: str
    isNewUser: bool


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6, pattern="^[0-9]{6}$")


class UserProfile(BaseModel):
    id: str
    email: str
    display_name: Optional[str]
    profile_picture_url: Optional[str]
    phone_number: Optional[str]
    role: str
    is_active: bool
    verified_at: Optional[str]
    last_login_at: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class VerifyOtpResponse(BaseModel):
    success: bool
    token: str
    user: UserProfile


@router.post("/request-otp", response_model=RequestOtpResponse)
def request_otp(request: RequestOtpRequest, http_request: Request):
    """Email a one-time login code, creating the account on first use."""
    email_addr = request.email.lower()

    if otp.check_rate_limit(email_addr):
        raise HTTPException(
            status_code=429,
            detail="Too many login code requests. Please try again later."
        )

    user = users.find_user_by_email(email_addr)
    is_new_user = user is None

    if is_new_user:
        try:
            user = users.create_user(email_addr, request.displayName)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is inactive")

    code = otp.generate_otp()
    otp.store_otp(
        user.id, code,
        request_ip=http_request.client.host if http_request.client else None,
        user_agent=http_request.headers.get("user-agent"),
    )

    result = email_service.send_login_code(email_addr, code, otp.get_otp_config()["expiry_minutes"])
    if not result.get("success"):
        raise HTTPException(
            status_code=500,
            detail=f"Failed to deliver login code: {result.get('error')}"
        )

    return RequestOtpResponse(
        success=True,
        message="Login code sent to your email",
        isNewUser=is_new_user
    )


@router.post("/verify-otp", response_model=VerifyOtpResponse)
def verify_otp(request: VerifyOtpRequest):
    """Verify the login code and issue a JWT."""
    email_addr = request.email.lower()

    user = users.find_user_by_email(email_addr)
    if not user:
        raise HTTPException(status_code=400, detail="No active login code found for this user")

    success, error_msg = otp.validate_otp(user.id, request.otp)
    if not success:
        raise HTTPException(status_code=400, detail=error_msg)

    users.update_last_login(user.id)
    user = users.find_user_by_id(user.id)

    token = jwt.generate_jwt(str(user.id), user.email, user.role)
    return VerifyOtpResponse(success=True, token=token, user=UserProfile(**user.to_dict()))


@router.get("/me", response_model=UserProfile)
def me(user: users.User = Depends(get_current_user)):
    return UserProfile(**user.to_dict())


@router.post("/logout")
def logout(user: users.User = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy
    return {"success": True, "message": "Logged out successfully"}


# Gmail OAuth consent

def _result_page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    page = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; max-width: 560px; margin: 60px auto;">
    <h1>{html.escape(title)}</h1>
    <p>{html.escape(body)}</p>
    <p>You can close this window.</p>
</body>
</html>"""
    return HTMLResponse(content=page, status_code=status_code)


@router.get("/google")
def google_authorize(admin: users.User = Depends(require_admin)):
    """Google consent URL for an offline gmail.send grant, bound to the calling admin."""
    try:
        auth_url = oauth.build_google_authorize_url(str(admin.id))
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))
    log.info(f"Gmail OAuth flow started by {admin.email}")
    return {"authUrl": auth_url}


@router.get("/google/callback")
async def google_callback(code: Optional[str] = None, state: Optional[str] = None,
                          error: Optional[str] = None):
    if error:
        return _result_page("Authorization failed", f"Google returned an error: {error}", 400)

    user_id = oauth.validate_oauth_state(state)
    if not code or not user_id:
        return _result_page("Authorization failed", "Missing code or invalid state. Please start again.", 400)

    admin = users.find_user_by_id(UUID(user_id))
    if not admin or not admin.is_active or admin.role != "admin":
        log.warning(f"Gmail OAuth callback for non-admin user {user_id} rejected")
        return _result_page("Authorization failed", "Only an administrator can connect Gmail.", 403)

    try:
        tokens = await oauth.exchange_code_for_tokens(code)
    except httpx.HTTPError as e:
        log.error(f"Google token exchange failed: {e}")
        return _result_page("Authorization failed", "Could not exchange the authorization code.", 400)

    try:
        oauth.store_refresh_token(tokens)
    except ValueError as e:
        return _result_page("Authorization failed", f"{e}. Revoke access in your Google account and retry.", 400)

    log.info(f"Gmail connected by {admin.email}")
    return _result_page("Gmail connected", "ChatFlow can now send email through this Gmail account.")


@router.get("/google/status")
def google_status(admin: users.User = Depends(require_admin)):
    """Where Gmail credentials come from, if anywhere."""
    client_configured = oauth.get_google_client() is not None
    config = email_service.get_gmail_config()
    return {
        "client_configured": client_configured,
        "configured": config is not None,
        "source": config["token_source"] if config else None,
        "sender": os.environ.get("GMAIL_SERVICE_ACCOUNT_EMAIL"),
        "mode": email_service.get_email_mode(),
    }
