from fastapi import APIRouter, Depends
from app.schemas import APIResponse
from app.auth import get_current_user
from app.database import get_database
from app.queries import channel_stats_pipeline, video_pipeline
from app.utils.pagination import PageParams, paginate_or_404
from app.utils.pipeline import Sort

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=APIResponse)
async def get_channel_stats(current_user: dict = Depends(get_current_user), db=Depends(get_database)):
    """Subscriber, video, view and like totals for the caller's channel"""
    channel_id = current_user["_id"]

    totals = await db.videos.aggregate(channel_stats_pipeline(channel_id)).to_list(length=1)
    stats = {
        "total_subscribers": await db.subscriptions.count_documents({"channel": channel_id}),
        "total_videos": 0,
        "total_views": 0,
        "total_likes": 0,
    }
    if totals:
        for key in ("total_videos", "total_views", "total_likes"):
            stats[key] = totals[0].get(key) or 0

    return APIResponse(data=stats, message="Channel stats fetched successfully")


@router.get("/videos", response_model=APIResponse)
async def get_channel_videos(
    params: PageParams = Depends(),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """Every video of the caller, published or not"""
    page = await paginate_or_404(
        db.videos,
        video_pipeline({"owner": current_user["_id"]}, current_user["_id"], Sort()),
        params,
        "No videos found"
    )
    return APIResponse(data=page, message="Channel videos fetched successfully")
