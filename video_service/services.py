"""Business logic layer for registration, sign-in and the video catalog.

Validation of request shape happens in the schemas; this layer applies the
rules that need the database (duplicate emails, credential checks) and the
server-side defaults for new videos.
"""

from fastapi import HTTPException

from .schemas import (
    ErrorCode,
    RegisterResponse,
    Token,
    Transformation,
    UserLogin,
    UserRegister,
    VideoCreate,
    VideoOut,
)
from .crud import (
    insert_user,
    select_user_by_email,
    insert_video,
    select_videos,
    select_video,
)
from .auth import burn_password_check, hash_password, issue_session_token, verify_password
from .models import (
    DEFAULT_VIDEO_HEIGHT,
    DEFAULT_VIDEO_QUALITY,
    DEFAULT_VIDEO_WIDTH,
    Video,
)
from .logger import logger

INVALID_CREDENTIALS_DETAIL = {
    "error": ErrorCode.INVALID_CREDENTIALS,
    "message": "Invalid email or password",
    "details": {}
}

# ==================== Helper Functions ====================


def _convert_to_video_out(video: Video) -> VideoOut:
    """Convert ORM Video model to VideoOut schema."""
    return VideoOut(
        id=video.id,
        title=video.title,
        description=video.description,
        video_url=video.video_url,
        thumbnail_url=video.thumbnail_url,
        controls=video.controls,
        transformation=Transformation(
            height=video.transformation_height,
            width=video.transformation_width,
            quality=video.transformation_quality,
        ),
        created_at=video.created_at,
        updated_at=video.updated_at,
    )


def _duplicate_email(email: str) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={
            "error": ErrorCode.DUPLICATE_EMAIL,
            "message": "User already registered",
            "details": {"email": email}
        }
    )


# ==================== Authentication ====================


async def register_user(data: UserRegister) -> RegisterResponse:
    """Register a new user. The password is stored only as a bcrypt hash."""
    logger.info(f"Registering new user: {data.email}")

    existing_user = await select_user_by_email(data.email)
    if existing_user:
        logger.warning(f"Registration failed - email already exists: {data.email}")
        raise _duplicate_email(data.email)

    hashed_password = hash_password(data.password)

    try:
        user = await insert_user(data.email, hashed_password)
    except ValueError as e:
        # Lost a race with a concurrent registration for the same email
        logger.warning(f"Registration failed on insert - email already exists: {data.email}")
        raise _duplicate_email(data.email) from e

    logger.info(f"User registered successfully: id={user.id} email={user.email}")
    return RegisterResponse(message="User registered successfully")


async def authenticate_user(data: UserLogin) -> Token:
    """Verify credentials and issue a session token.

    Unknown email and wrong password fail with the same 401 body, and both
    paths run one bcrypt comparison.
    """
    logger.info(f"Authentication attempt for user: {data.email}")

    user = await select_user_by_email(data.email)

    if user is None:
        burn_password_check(data.password)
        logger.warning(f"Authentication failed - user not found: {data.email}")
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS_DETAIL)

    if not verify_password(data.password, user.hashed_password):
        logger.warning(f"Authentication failed - invalid password for user: {data.email}")
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS_DETAIL)

    access_token, expires_at = issue_session_token(user.id, user.email)
    logger.info(f"Authentication successful for user: {data.email} (id={user.id})")

    return Token(access_token=access_token, token_type="bearer", expires_at=expires_at)


# ==================== Video Catalog ====================


async def list_videos() -> list[VideoOut]:
    """Return the whole catalog, newest first. An empty catalog is an empty list."""
    videos = await select_videos()
    logger.debug(f"Listing videos: found {len(videos)}")
    return [_convert_to_video_out(v) for v in videos]


async def get_video(video_id: int) -> VideoOut:
    """Retrieve a single video by ID."""
    video = await select_video(video_id)
    if not video:
        logger.warning(f"Video not found: id={video_id}")
        raise HTTPException(
            status_code=404,
            detail={
                "error": ErrorCode.VIDEO_NOT_FOUND,
                "message": f"Video with ID {video_id} does not exist",
                "details": {"video_id": video_id}
            }
        )
    return _convert_to_video_out(video)


def build_video_fields(data: VideoCreate) -> dict:
    """Apply server-side defaults. Dimensions are fixed; quality defaults to 100."""
    quality = DEFAULT_VIDEO_QUALITY
    if data.transformation is not None and data.transformation.quality is not None:
        quality = data.transformation.quality

    return {
        "title": data.title,
        "description": data.description,
        "video_url": data.video_url,
        "thumbnail_url": data.thumbnail_url,
        "controls": True if data.controls is None else data.controls,
        "transformation_height": DEFAULT_VIDEO_HEIGHT,
        "transformation_width": DEFAULT_VIDEO_WIDTH,
        "transformation_quality": quality,
    }


async def create_video(data: VideoCreate) -> VideoOut:
    """Store a new video record."""
    fields = build_video_fields(data)
    video = await insert_video(fields)
    logger.info(f"Video created: id={video.id} title={video.title!r}")
    return _convert_to_video_out(video)
