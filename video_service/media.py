"""Upload grants for direct client-to-CDN uploads (ImageKit client upload auth).

The browser uploads the file straight to the media service. This module only
asks the ImageKit SDK for a short-lived grant: a one-time token, an expiry
timestamp and an HMAC-SHA1 signature over ``token + expire`` keyed with the
private key. The media service recomputes the signature and rejects stale or
reused grants.
"""

import time
from functools import lru_cache

from fastapi import HTTPException
from imagekitio import ImageKit

from .config import settings
from .exceptions import MediaSigningError
from .logger import logger
from .schemas import ErrorCode, Identity, UploadAuthParameters, UploadAuthResponse


@lru_cache(maxsize=1)
def media_client() -> ImageKit:
    """Shared SDK client; it holds the keys and makes no network calls on its own."""
    return ImageKit(
        public_key=settings.MEDIA_PUBLIC_KEY,
        private_key=settings.MEDIA_PRIVATE_KEY,
        url_endpoint=settings.MEDIA_URL_ENDPOINT,
    )


def issue_upload_grant(identity: Identity | None, now: float | None = None) -> UploadAuthResponse:
    """Sign a fresh upload grant for an authenticated caller.

    Raises:
        HTTPException: 401 when there is no identity
        MediaSigningError: the grant could not be signed
    """
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={
                "error": ErrorCode.UNAUTHORIZED,
                "message": "Authentication required",
                "details": {}
            }
        )

    expire = int(now if now is not None else time.time()) + settings.MEDIA_UPLOAD_GRANT_TTL
    try:
        # The SDK generates the uuid4 token when none is passed
        params = media_client().get_authentication_parameters(expire=expire)
        auth_parameters = UploadAuthParameters(
            token=params["token"], expire=params["expire"], signature=params["signature"]
        )
    except Exception as e:
        logger.error(f"Failed to sign upload grant for user id={identity.user_id}: {e}", exc_info=True)
        raise MediaSigningError("Failed to generate upload auth parameters") from e

    logger.info(f"Upload grant issued: user_id={identity.user_id} expire={expire}")
    return UploadAuthResponse(
        auth_parameters=auth_parameters,
        public_key=settings.MEDIA_PUBLIC_KEY,
        upload_endpoint=settings.MEDIA_UPLOAD_ENDPOINT,
    )
