from typing import Optional
from fastapi import APIRouter, Body, Depends, Header, Request
from fastapi.responses import JSONResponse
from mediahub.api.dependencies import ACCESS_COOKIE, REFRESH_COOKIE, get_auth_service, get_current_user
from mediahub.core.config import settings
from mediahub.core.tokens import token_issuer
from mediahub.schemas.user_schema import Identity, LoginRequest, RefreshRequest, TokenPair
from mediahub.services.auth_service import AuthService
from mediahub.utils.responses import success_response
from mediahub.utils.timing import timeit

router = APIRouter(prefix="/auth")


def _set_token_cookies(response: JSONResponse, tokens: TokenPair) -> JSONResponse:
    config = token_issuer.config
    common = {"httponly": True, "secure": settings.COOKIE_SECURE, "samesite": settings.COOKIE_SAMESITE}
    response.set_cookie(ACCESS_COOKIE, tokens.access_token, max_age=int(config.access_ttl.total_seconds()), **common)
    response.set_cookie(
        REFRESH_COOKIE,
        tokens.refresh_token,
        max_age=int(config.refresh_ttl.total_seconds()),
        path=f"{settings.API_V1_STR}/auth",
        **common,
    )
    return response


def _clear_token_cookies(response: JSONResponse) -> JSONResponse:
    common = {"httponly": True, "secure": settings.COOKIE_SECURE, "samesite": settings.COOKIE_SAMESITE}
    response.delete_cookie(ACCESS_COOKIE, **common)
    response.delete_cookie(REFRESH_COOKIE, path=f"{settings.API_V1_STR}/auth", **common)
    return response


@router.post("/login")
@timeit("api.login")
async def login(payload: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    result = await auth.login(payload.identifier, payload.password)
    response = success_response(
        {
            "user": result.user,
            "access_token": result.tokens.access_token,
            "refresh_token": result.tokens.refresh_token,
            "token_type": result.tokens.token_type,
        },
        message="User logged in successfully",
    )
    return _set_token_cookies(response, result.tokens)


@router.post("/refresh")
@timeit("api.refresh")
async def refresh(
    request: Request,
    payload: Optional[RefreshRequest] = Body(default=None),
    x_refresh_token: Optional[str] = Header(default=None),
    auth: AuthService = Depends(get_auth_service),
):
    presented = (
        request.cookies.get(REFRESH_COOKIE)
        or (payload.refresh_token if payload else None)
        or x_refresh_token
    )
    user, tokens = await auth.refresh(presented)
    response = success_response(
        {
            "user": user,
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "token_type": tokens.token_type,
        },
        message="Access token refreshed",
    )
    return _set_token_cookies(response, tokens)


@router.post("/logout")
async def logout(current_user: Identity = Depends(get_current_user), auth: AuthService = Depends(get_auth_service)):
    await auth.logout(current_user.id)
    return _clear_token_cookies(success_response({}, message="User logged out"))
