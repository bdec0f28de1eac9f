# storefront/auth/controller.py
import json
from urllib.parse import quote

from fastapi import APIRouter, Request, Response
from fastapi.responses import RedirectResponse

from . import oauth
from . import service
from ..core.config import settings
from ..core.exceptions import StorefrontError
from ..core.rate_limiter import limiter, AUTH_LIMIT
from ..database.core import DbSession
from ..logging import logger

router = APIRouter(prefix='/api/auth', tags=['auth'])


def _success_redirect(user) -> RedirectResponse:
    user_payload = json.dumps({
        "_id": user.id,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
        "role": user.role,
        "isAdmin": user.is_admin,
        "profilePicture": user.profile_picture,
    })
    redirect_url = f"{settings.frontend_base_url}/oauth/callback?user={quote(user_payload)}&success=true"
    response = RedirectResponse(url=redirect_url, status_code=302)
    # set during a cross-site redirect, hence SameSite=lax
    service.issue_login(response, user, remember_me=True, samesite="lax")
    return response


def _failure_redirect(provider: str) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.frontend_base_url}/login?error={provider}_failed", status_code=302)


async def _start(provider: str, request: Request):
    client = oauth.get_oauth_client(provider)
    logger.info(f"{provider} OAuth login initiated")
    return await client.authorize_redirect(request, oauth.callback_url(provider))


async def _finish(provider: str, request: Request, db):
    try:
        profile = await oauth.fetch_profile(provider, request)
        user = oauth.find_or_create_oauth_user(db, profile)
    except StorefrontError as e:
        logger.warning(f"{provider} OAuth callback refused: {e.user_message}")
        return _failure_redirect(provider)
    except Exception as e:
        logger.error(f"{provider} OAuth callback error: {repr(e)}")
        return _failure_redirect(provider)
    return _success_redirect(user)


@router.api_route("/google", methods=["GET", "POST"])
@limiter.limit(AUTH_LIMIT)
async def google_login(request: Request):
    """Redirect the browser to Google's consent screen."""
    return await _start(oauth.GOOGLE, request)


@router.get("/google/callback", name="google_callback")
async def google_callback(request: Request, db: DbSession):
    """Handle the callback from Google after user authorization."""
    return await _finish(oauth.GOOGLE, request, db)


@router.api_route("/facebook", methods=["GET", "POST"])
@limiter.limit(AUTH_LIMIT)
async def facebook_login(request: Request):
    """Redirect the browser to Facebook's consent screen."""
    return await _start(oauth.FACEBOOK, request)


@router.get("/facebook/callback", name="facebook_callback")
async def facebook_callback(request: Request, db: DbSession):
    """Handle the callback from Facebook after user authorization."""
    return await _finish(oauth.FACEBOOK, request, db)


@router.post("/logout")
async def logout(request: Request, response: Response):
    """Clear the auth cookie and revoke the presented token."""
    service.revoke_token(service.extract_token(request))
    service.clear_auth_cookie(response)
    return {"message": "Logged out successfully"}


@router.get("/status")
async def auth_status():
    """Report which OAuth providers are configured."""
    return {
        "google": oauth.provider_configured(oauth.GOOGLE),
        "facebook": oauth.provider_configured(oauth.FACEBOOK),
    }
