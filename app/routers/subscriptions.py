from fastapi import APIRouter, HTTPException, status, Depends, Request, Response
from pymongo.errors import DuplicateKeyError
from app.schemas import APIResponse
from app.auth import get_current_user
from app.database import get_database
from app.models import SubscriptionInDB
from app.queries import subscription_pipeline, subscribers_pipeline, channels_pipeline
from app.utils.access import find_or_404
from app.utils.identifiers import validate_object_id
from app.utils.pagination import PageParams, paginate_or_404
from app.utils.rate_limit import limiter, RATE_LIMIT_TOGGLE

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("/{channel_id}", response_model=APIResponse)
@limiter.limit(RATE_LIMIT_TOGGLE)
async def toggle_subscription(
    request: Request,
    response: Response,
    channel_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Subscribe to a channel, or unsubscribe if already subscribed
    Rate limit: 100 per hour per IP
    """
    channel = await find_or_404(db.users, channel_id, "Channel")
    if channel["_id"] == current_user["_id"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot subscribe to your own channel"
        )

    query = {"subscriber": current_user["_id"], "channel": channel["_id"]}
    removed = await db.subscriptions.find_one_and_delete(query)
    if removed:
        return APIResponse(data={}, message="Unsubscribed successfully")

    subscription = SubscriptionInDB(subscriber=current_user["_id"], channel=channel["_id"])
    try:
        result = await db.subscriptions.insert_one(subscription.to_document())
    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Already subscribed to this channel"
        )

    created = await db.subscriptions.aggregate(
        subscription_pipeline({"_id": result.inserted_id})
    ).to_list(length=1)
    response.status_code = status.HTTP_201_CREATED
    return APIResponse(
        statusCode=201,
        data=created[0] if created else {},
        message="Subscribed successfully"
    )


@router.get("/subscribers/{channel_id}", response_model=APIResponse)
async def get_channel_subscribers(
    channel_id: str,
    params: PageParams = Depends(),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """Subscribers of a channel, each with their own subscriber count"""
    channel = validate_object_id(channel_id, "channel")
    page = await paginate_or_404(
        db.subscriptions,
        subscribers_pipeline(channel, current_user["_id"]),
        params,
        "No subscribers found"
    )
    return APIResponse(data=page, message="Subscribers fetched successfully")


@router.get("/channels/{subscriber_id}", response_model=APIResponse)
async def get_subscribed_channels(
    subscriber_id: str,
    params: PageParams = Depends(),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    subscriber = validate_object_id(subscriber_id, "subscriber")
    page = await paginate_or_404(
        db.subscriptions,
        channels_pipeline(subscriber),
        params,
        "No subscribed channels found"
    )
    return APIResponse(data=page, message="Subscribed channels fetched successfully")
