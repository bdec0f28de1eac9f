# storefront/auth/oauth.py

from dataclasses import dataclass
from typing import Optional

from authlib.integrations.starlette_client import OAuth
from fastapi import Request
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import AuthorizationError, ErrorCode, StorefrontError
from ..logging import logger
from ..users.models import User, OAUTH_NO_PASSWORD

GOOGLE = "google"
FACEBOOK = "facebook"
PROVIDERS = (GOOGLE, FACEBOOK)

PROVIDER_ID_COLUMNS = {
    GOOGLE: "google_id",
    FACEBOOK: "facebook_id",
}


@dataclass
class OAuthProfile:
    provider: str
    provider_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    picture: Optional[str] = None


def provider_configured(provider: str) -> bool:
    if provider == GOOGLE:
        return bool(settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET)
    if provider == FACEBOOK:
        return bool(settings.FACEBOOK_APP_ID and settings.FACEBOOK_APP_SECRET)
    return False


def get_oauth_client(provider: str):
    """Get a configured OAuth client for the provider."""
    if not provider_configured(provider):
        logger.error(f"{provider} OAuth requested but client credentials are missing")
        raise StorefrontError(
            code=ErrorCode.SERVICE_UNAVAILABLE,
            user_message=f"{provider.capitalize()} login is not configured",
        )

    # Create a new OAuth instance for each request
    oauth_instance = OAuth()
    if provider == GOOGLE:
        oauth_instance.register(
            name=GOOGLE,
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            server_metadata_url='https://accounts.google.com/.well-known/openid-configuration',
            client_kwargs={'scope': 'openid email profile'}
        )
    else:
        oauth_instance.register(
            name=FACEBOOK,
            client_id=settings.FACEBOOK_APP_ID,
            client_secret=settings.FACEBOOK_APP_SECRET,
            access_token_url='https://graph.facebook.com/oauth/access_token',
            authorize_url='https://www.facebook.com/dialog/oauth',
            api_base_url='https://graph.facebook.com/',
            client_kwargs={'scope': 'email public_profile'}
        )
    return oauth_instance.create_client(provider)


def callback_url(provider: str) -> str:
    return f"{settings.BACKEND_URL.rstrip('/')}/api/auth/{provider}/callback"


async def fetch_profile(provider: str, request: Request) -> OAuthProfile:
    """Complete the authorization code exchange and normalise the returned profile."""
    client = get_oauth_client(provider)
    token = await client.authorize_access_token(request)

    if provider == GOOGLE:
        info = token.get('userinfo')
        if not info:
            resp = await client.get('https://openidconnect.googleapis.com/v1/userinfo', token=token)
            info = resp.json()
        return OAuthProfile(
            provider=GOOGLE,
            provider_id=str(info['sub']),
            email=info.get('email'),
            first_name=info.get('given_name'),
            last_name=info.get('family_name'),
            picture=info.get('picture'),
        )

    resp = await client.get('me?fields=id,email,first_name,last_name,picture.type(large)', token=token)
    info = resp.json()
    picture = (info.get('picture') or {}).get('data', {}).get('url')
    return OAuthProfile(
        provider=FACEBOOK,
        provider_id=str(info['id']),
        email=info.get('email'),
        first_name=info.get('first_name'),
        last_name=info.get('last_name'),
        picture=picture,
    )


def find_or_create_oauth_user(db: Session, profile: OAuthProfile) -> User:
    """
    Resolve an OAuth login to a local account.

    1. A user already carrying this provider id.
    2. A user with the same email: the provider id is linked to it and the
       email is marked verified, so no duplicate account is created.
    3. Otherwise a new verified user with an unusable password.
    """
    column = getattr(User, PROVIDER_ID_COLUMNS[profile.provider])
    email = profile.email.strip().lower() if profile.email else None

    user = db.query(User).filter(column == profile.provider_id).first()
    linked = None
    if user is None and email:
        linked = db.query(User).filter(User.email == email).first()

    if user is not None:
        logger.info(f"{profile.provider} login for existing user {user.id}")
    elif linked is not None:
        user = linked
        setattr(user, PROVIDER_ID_COLUMNS[profile.provider], profile.provider_id)
        user.is_email_verified = True
        if profile.picture and not user.profile_picture:
            user.profile_picture = profile.picture
        logger.info(f"Linked {profile.provider} account to existing user {user.id}")
    else:
        user = User(
            first_name=profile.first_name or "User",
            last_name=profile.last_name or "",
            email=email or f"{profile.provider}_{profile.provider_id}@oauth.local",
            password=OAUTH_NO_PASSWORD,
            is_email_verified=True,
            is_active=True,
            profile_picture=profile.picture,
        )
        setattr(user, PROVIDER_ID_COLUMNS[profile.provider], profile.provider_id)
        db.add(user)
        logger.info(f"Created new user via {profile.provider} login: {user.email}")

    if not user.is_active:
        db.rollback()
        raise AuthorizationError("Account is deactivated", code=ErrorCode.ACCOUNT_DEACTIVATED)

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(user)
    return user
