import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, status, Depends, UploadFile, File, Form, Request, Response
from pymongo.errors import DuplicateKeyError
from app.schemas import (
    APIResponse,
    UserRegister,
    UserLogin,
    RefreshTokenRequest,
    PasswordChange,
    UserDetailsUpdate,
)
from app.auth import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    get_password_hash,
    verify_password,
    decode_token,
    issue_tokens,
    get_current_user,
)
from app.config import settings
from app.database import get_database
from app.models import UserInDB, utc_now
from app.queries import user_pipeline, channel_profile_pipeline, watch_history_pipeline
from app.utils.deletion_queue import DeletionQueue, get_deletion_queue
from app.utils.identifiers import validate_object_id
from app.utils.rate_limit import limiter, RATE_LIMIT_REGISTER, RATE_LIMIT_LOGIN, RATE_LIMIT_REFRESH, RATE_LIMIT_IMAGE_UPLOAD
from app.utils.storage import MediaStorage, get_storage
from app.utils.uploads import store_image, validate_form

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str):
    options = {"httponly": True, "secure": settings.COOKIE_SECURE, "samesite": "lax"}
    response.set_cookie(ACCESS_COOKIE, access_token, **options)
    response.set_cookie(REFRESH_COOKIE, refresh_token, **options)


async def _fetch_user(db, user_id) -> dict:
    users = await db.users.aggregate(user_pipeline(user_id)).to_list(length=1)
    if not users:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User does not exist"
        )
    return users[0]


@router.post("/register", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_REGISTER)
async def register_user(
    request: Request,
    response: Response,
    username: str = Form(...),
    email: str = Form(...),
    full_name: str = Form(...),
    password: str = Form(...),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None),
    db=Depends(get_database),
    storage: MediaStorage = Depends(get_storage),
    queue: DeletionQueue = Depends(get_deletion_queue),
):
    """
    Register a new user with an avatar and an optional cover image
    Rate limit: 3 per hour per IP
    """
    user_data = validate_form(
        UserRegister, username=username, email=email, full_name=full_name, password=password
    )

    existing = await db.users.find_one(
        {"$or": [{"username": user_data.username}, {"email": user_data.email}]}
    )
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with email or username already exists"
        )

    avatar_url = await store_image(storage, avatar, "Avatar")
    try:
        cover_image_url = await store_image(storage, cover_image, "Cover image", required=False)
    except HTTPException:
        await queue.add_to_queue(avatar_url)
        raise

    user = UserInDB(
        username=user_data.username,
        email=user_data.email,
        password=get_password_hash(user_data.password),
        full_name=user_data.full_name,
        avatar=avatar_url,
        cover_image=cover_image_url or "",
    )

    try:
        result = await db.users.insert_one(user.to_document())
    except DuplicateKeyError:
        # Lost a race with a concurrent registration; the blobs are now orphans
        await queue.add_to_queue(avatar_url)
        await queue.add_to_queue(cover_image_url)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with email or username already exists"
        )

    logger.info("Registered user %s", user_data.username)
    created = await _fetch_user(db, result.inserted_id)
    return APIResponse(statusCode=201, data=created, message="User registered successfully")


@router.post("/login", response_model=APIResponse)
@limiter.limit(RATE_LIMIT_LOGIN)
async def login_user(
    request: Request,
    response: Response,
    credentials: UserLogin,
    db=Depends(get_database),
):
    """
    Login with username or email and password
    Rate limit: 10 per hour per IP
    """
    if credentials.username:
        query = {"username": credentials.username.strip().lower()}
    else:
        query = {"email": credentials.email.strip().lower()}

    user = await db.users.find_one(query)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User does not exist"
        )

    if not verify_password(credentials.password, user["password"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user credentials"
        )

    access_token, refresh_token = await issue_tokens(db, user)
    _set_auth_cookies(response, access_token, refresh_token)

    return APIResponse(
        message="User logged in successfully",
        data={
            "user": await _fetch_user(db, user["_id"]),
            "accessToken": access_token,
            "refreshToken": refresh_token,
        }
    )


@router.post("/logout", response_model=APIResponse)
async def logout_user(
    response: Response,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    await db.users.update_one(
        {"_id": current_user["_id"]},
        {"$unset": {"refresh_token": ""}}
    )
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return APIResponse(data={}, message="User logged out")


@router.post("/refresh-token", response_model=APIResponse)
@limiter.limit(RATE_LIMIT_REFRESH)
async def refresh_access_token(
    request: Request,
    response: Response,
    body: Optional[RefreshTokenRequest] = None,
    db=Depends(get_database),
):
    """
    Rotate the token pair. The refresh token comes from the cookie or the body,
    and must be the one last issued to the user.
    """
    incoming = request.cookies.get(REFRESH_COOKIE) or (body.refreshToken if body else None)
    if not incoming:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Refresh token is required"
        )

    user_id = decode_token(incoming, settings.REFRESH_SECRET_KEY)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token"
        )

    user = await db.users.find_one({"_id": validate_object_id(user_id, "user")})
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token"
        )

    if user.get("refresh_token") != incoming:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token is expired or used"
        )

    access_token, refresh_token = await issue_tokens(db, user)
    _set_auth_cookies(response, access_token, refresh_token)

    return APIResponse(
        message="Access token refreshed",
        data={"accessToken": access_token, "refreshToken": refresh_token}
    )


@router.post("/change-password", response_model=APIResponse)
async def change_password(
    passwords: PasswordChange,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    # The current user is loaded without its hash
    user = await db.users.find_one({"_id": current_user["_id"]})
    if not verify_password(passwords.old_password, user["password"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid old password"
        )

    await db.users.update_one(
        {"_id": current_user["_id"]},
        {"$set": {"password": get_password_hash(passwords.new_password), "updated_at": utc_now()}}
    )
    return APIResponse(data={}, message="Password changed successfully")


@router.get("/me", response_model=APIResponse)
async def get_me(current_user: dict = Depends(get_current_user), db=Depends(get_database)):
    user = await _fetch_user(db, current_user["_id"])
    return APIResponse(data=user, message="User fetched successfully")


@router.patch("/me", response_model=APIResponse)
async def update_account_details(
    details: UserDetailsUpdate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    taken = await db.users.find_one({"email": details.email, "_id": {"$ne": current_user["_id"]}})
    if taken:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email is already in use"
        )

    try:
        await db.users.update_one(
            {"_id": current_user["_id"]},
            {"$set": {"full_name": details.full_name, "email": details.email, "updated_at": utc_now()}}
        )
    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email is already in use"
        )

    user = await _fetch_user(db, current_user["_id"])
    return APIResponse(data=user, message="Account details updated successfully")


async def _replace_image(db, storage, queue, current_user, upload, field, label) -> dict:
    url = await store_image(storage, upload, label)
    await db.users.update_one(
        {"_id": current_user["_id"]},
        {"$set": {field: url, "updated_at": utc_now()}}
    )
    # The old blob goes only after the new reference is stored
    await queue.add_to_queue(current_user.get(field))
    return await _fetch_user(db, current_user["_id"])


@router.patch("/avatar", response_model=APIResponse)
@limiter.limit(RATE_LIMIT_IMAGE_UPLOAD)
async def update_avatar(
    request: Request,
    response: Response,
    avatar: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
    storage: MediaStorage = Depends(get_storage),
    queue: DeletionQueue = Depends(get_deletion_queue),
):
    """
    Replace the user's avatar
    Rate limit: 5 per hour per IP
    """
    user = await _replace_image(db, storage, queue, current_user, avatar, "avatar", "Avatar")
    return APIResponse(data=user, message="Avatar updated successfully")


@router.patch("/cover-image", response_model=APIResponse)
@limiter.limit(RATE_LIMIT_IMAGE_UPLOAD)
async def update_cover_image(
    request: Request,
    response: Response,
    cover_image: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
    storage: MediaStorage = Depends(get_storage),
    queue: DeletionQueue = Depends(get_deletion_queue),
):
    user = await _replace_image(db, storage, queue, current_user, cover_image, "cover_image", "Cover image")
    return APIResponse(data=user, message="Cover image updated successfully")


@router.get("/channel/{username}", response_model=APIResponse)
async def get_channel_profile(
    username: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    if not username.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username is missing"
        )

    channels = await db.users.aggregate(
        channel_profile_pipeline(username.strip(), current_user["_id"])
    ).to_list(length=1)
    if not channels:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Channel does not exist"
        )
    return APIResponse(data=channels[0], message="User channel fetched successfully")


@router.get("/history", response_model=APIResponse)
async def get_watch_history(current_user: dict = Depends(get_current_user), db=Depends(get_database)):
    """Watched videos, most recent first"""
    history = current_user.get("watch_history", [])
    videos = []
    if history:
        found = await db.videos.aggregate(
            watch_history_pipeline(history, current_user["_id"])
        ).to_list(length=None)
        by_id = {video["_id"]: video for video in found}
        videos = [by_id[video_id] for video_id in reversed(history) if video_id in by_id]
    return APIResponse(data=videos, message="Watch history fetched successfully")
