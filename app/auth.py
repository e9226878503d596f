import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from bson import ObjectId
from app.config import settings
from app.database import get_database

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer(auto_error=False)

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

# Never hand these back with the current user
PRIVATE_USER_FIELDS = {"password": 0, "refresh_token": 0}


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _encode(data: dict, secret: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, secret, algorithm=settings.ALGORITHM)


def create_access_token(user: dict, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(
        {"sub": str(user["_id"]), "username": user["username"], "email": user["email"]},
        settings.SECRET_KEY,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user: dict, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(
        # jti keeps two tokens minted in the same second distinct
        {"sub": str(user["_id"]), "jti": uuid.uuid4().hex},
        settings.REFRESH_SECRET_KEY,
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_token(token: str, secret: str) -> Optional[str]:
    """Return the user id carried by a token, or None if it is invalid or expired"""
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        return None
    return user_id


async def issue_tokens(db, user: dict) -> Tuple[str, str]:
    """Create an access/refresh pair and remember the refresh token on the user"""
    access_token = create_access_token(user)
    refresh_token = create_refresh_token(user)
    result = await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"refresh_token": refresh_token}}
    )
    if result.matched_count == 0:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Something went wrong while generating the tokens"
        )
    return access_token, refresh_token


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db=Depends(get_database)
):
    """Attach the current user from a Bearer header or the accessToken cookie"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = credentials.credentials if credentials else request.cookies.get(ACCESS_COOKIE)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized request",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = decode_token(token, settings.SECRET_KEY)
    if user_id is None:
        raise credentials_exception

    user = await db.users.find_one({"_id": ObjectId(user_id)}, PRIVATE_USER_FIELDS)
    if user is None:
        raise credentials_exception

    return user
