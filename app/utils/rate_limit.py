from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from app.config import settings


def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request, checking for proxy headers
    """
    # X-Forwarded-For can contain multiple IPs, get the first one (client IP)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    # Fallback to direct connection IP
    return get_remote_address(request)


# Initialize rate limiter
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["200 per minute"],  # Default limit for all endpoints
    storage_uri="memory://",  # Use in-memory storage
    headers_enabled=True,  # Add rate limit info to response headers
    enabled=settings.RATE_LIMIT_ENABLED
)

# Custom rate limit strings for different endpoint types

# VERY STRICT: Account creation (3 per hour per IP)
RATE_LIMIT_REGISTER = "3 per hour"

# STRICT: Login attempts (10 per hour per IP to prevent brute force)
RATE_LIMIT_LOGIN = "10 per hour"

# STRICT: Token refresh
RATE_LIMIT_REFRESH = "30 per hour"

# STRICT: Video upload (5 per hour per IP)
RATE_LIMIT_VIDEO_UPLOAD = "5 per hour"

# MODERATE: Comment and tweet creation (20 per hour per IP to prevent spam)
RATE_LIMIT_POST_CREATE = "20 per hour"

# MODERATE: Likes and subscriptions
RATE_LIMIT_TOGGLE = "100 per hour"

# MODERATE: Avatar and cover image upload (5 per hour per IP)
RATE_LIMIT_IMAGE_UPLOAD = "5 per hour"
