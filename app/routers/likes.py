from fastapi import APIRouter, HTTPException, status, Depends, Request, Response
from pymongo.errors import DuplicateKeyError
from app.schemas import APIResponse
from app.auth import get_current_user
from app.database import get_database
from app.models import LikeInDB
from app.queries import like_pipeline, visible_videos, LIKE_TARGETS
from app.utils.access import find_or_404
from app.utils.pagination import PageParams, paginate_or_404
from app.utils.pipeline import Sort
from app.utils.rate_limit import limiter, RATE_LIMIT_TOGGLE

router = APIRouter(prefix="/likes", tags=["likes"])


async def toggle_like(db, response: Response, user: dict, target: str, raw_id: str) -> APIResponse:
    """
    Remove the caller's like on a video, comment or tweet if there is one,
    otherwise add it. The unique index settles concurrent double likes.
    """
    collection, _ = LIKE_TARGETS[target]
    label = target.capitalize()
    visibility = visible_videos(user["_id"]) if target == "video" else None
    liked = await find_or_404(db[collection], raw_id, label, visibility)
    if target == "comment":
        # Comments go out of sight with their video
        await find_or_404(db.videos, liked["video"], "Video", visible_videos(user["_id"]))

    query = {"liked_by": user["_id"], target: liked["_id"]}
    removed = await db.likes.find_one_and_delete(query)
    if removed:
        return APIResponse(data={}, message=f"{label} unliked successfully")

    like = LikeInDB(liked_by=user["_id"], **{target: liked["_id"]})
    try:
        result = await db.likes.insert_one(like.to_document())
    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{label} is already liked"
        )

    created = await db.likes.aggregate(
        like_pipeline({"_id": result.inserted_id}, target, user["_id"])
    ).to_list(length=1)
    response.status_code = status.HTTP_201_CREATED
    return APIResponse(
        statusCode=201,
        data=created[0] if created else {},
        message=f"{label} liked successfully"
    )


@router.post("/video/{video_id}", response_model=APIResponse)
@limiter.limit(RATE_LIMIT_TOGGLE)
async def toggle_video_like(
    request: Request,
    response: Response,
    video_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    return await toggle_like(db, response, current_user, "video", video_id)


@router.post("/comment/{comment_id}", response_model=APIResponse)
@limiter.limit(RATE_LIMIT_TOGGLE)
async def toggle_comment_like(
    request: Request,
    response: Response,
    comment_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    return await toggle_like(db, response, current_user, "comment", comment_id)


@router.post("/tweet/{tweet_id}", response_model=APIResponse)
@limiter.limit(RATE_LIMIT_TOGGLE)
async def toggle_tweet_like(
    request: Request,
    response: Response,
    tweet_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    return await toggle_like(db, response, current_user, "tweet", tweet_id)


@router.get("/videos", response_model=APIResponse)
async def get_liked_videos(
    params: PageParams = Depends(),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """Videos the caller liked, most recently liked first, each with its owner"""
    page = await paginate_or_404(
        db.likes,
        like_pipeline(
            {"liked_by": current_user["_id"], "video": {"$exists": True}}, "video", current_user["_id"], Sort()
        ),
        params,
        "No liked videos found"
    )
    return APIResponse(data=page, message="Liked videos fetched successfully")
