import logging
import re
from typing import Optional
from fastapi import APIRouter, HTTPException, status, Depends, UploadFile, File, Form, Query, Request, Response
from app.schemas import APIResponse, VideoUpload, VideoUpdate
from app.auth import get_current_user
from app.database import get_database
from app.models import VideoInDB, utc_now
from app.queries import video_pipeline, visible_videos, VIDEO_SORT_FIELDS
from app.utils.access import find_or_404, find_owned
from app.utils.deletion_queue import DeletionQueue, get_deletion_queue
from app.utils.identifiers import validate_object_id
from app.utils.pagination import PageParams, paginate_or_404
from app.utils.pipeline import Sort
from app.utils.rate_limit import limiter, RATE_LIMIT_VIDEO_UPLOAD
from app.utils.storage import MediaStorage, get_storage
from app.utils.uploads import store_image, store_video, validate_form

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


async def _fetch_video(db, video_id, viewer_id) -> dict:
    videos = await db.videos.aggregate(
        video_pipeline({"_id": video_id}, viewer_id)
    ).to_list(length=1)
    if not videos:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Video not found"
        )
    return videos[0]


@router.get("/", response_model=APIResponse)
async def list_videos(
    params: PageParams = Depends(),
    query: Optional[str] = Query(None, description="Search in title and description"),
    sort_by: Optional[str] = Query(None),
    sort_type: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None, description="Only videos of this channel"),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    List videos, newest first unless sorted otherwise.
    Unpublished videos are only listed for their owner.
    """
    sort = Sort.from_query(sort_by, sort_type, allowed=VIDEO_SORT_FIELDS)

    conditions = [visible_videos(current_user["_id"])]
    if user_id:
        conditions.append({"owner": validate_object_id(user_id, "user")})
    if query and query.strip():
        # Search text is matched literally
        pattern = {"$regex": re.escape(query.strip()), "$options": "i"}
        conditions.append({"$or": [{"title": pattern}, {"description": pattern}]})

    match = conditions[0] if len(conditions) == 1 else {"$and": conditions}
    page = await paginate_or_404(
        db.videos, video_pipeline(match, current_user["_id"], sort), params, "No videos found"
    )
    return APIResponse(data=page, message="Videos fetched successfully")


@router.post("/", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_VIDEO_UPLOAD)
async def publish_video(
    request: Request,
    response: Response,
    title: str = Form(...),
    description: str = Form(...),
    duration: float = Form(0),
    video_file: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
    storage: MediaStorage = Depends(get_storage),
    queue: DeletionQueue = Depends(get_deletion_queue),
):
    """
    Publish a new video
    Rate limit: 5 per hour per IP
    """
    video_data = validate_form(VideoUpload, title=title, description=description, duration=duration)

    video_url = await store_video(storage, video_file)
    try:
        thumbnail_url = await store_image(storage, thumbnail, "Thumbnail")
    except HTTPException:
        await queue.add_to_queue(video_url)
        raise

    video = VideoInDB(
        owner=current_user["_id"],
        video_file=video_url,
        thumbnail=thumbnail_url,
        title=video_data.title,
        description=video_data.description,
        duration=video_data.duration,
    )
    result = await db.videos.insert_one(video.to_document())
    logger.info("Video %s published by %s", result.inserted_id, current_user["username"])

    created = await _fetch_video(db, result.inserted_id, current_user["_id"])
    return APIResponse(statusCode=201, data=created, message="Video published successfully")


@router.get("/{video_id}", response_model=APIResponse)
async def get_video(
    video_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    video = await find_or_404(db.videos, video_id, "Video", visible_videos(current_user["_id"]))
    return APIResponse(
        data=await _fetch_video(db, video["_id"], current_user["_id"]),
        message="Video fetched successfully"
    )


@router.patch("/toggle/publish/{video_id}", response_model=APIResponse)
async def toggle_publish_status(
    video_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    video = await find_owned(db.videos, video_id, "Video", current_user)
    await db.videos.update_one(
        {"_id": video["_id"]},
        {"$set": {"is_published": not video.get("is_published", True), "updated_at": utc_now()}}
    )
    return APIResponse(
        data=await _fetch_video(db, video["_id"], current_user["_id"]),
        message="Publish status toggled successfully"
    )


@router.patch("/{video_id}", response_model=APIResponse)
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
    storage: MediaStorage = Depends(get_storage),
    queue: DeletionQueue = Depends(get_deletion_queue),
):
    """Update title, description and/or thumbnail of an owned video"""
    video = await find_owned(db.videos, video_id, "Video", current_user)
    changes = validate_form(VideoUpdate, title=title, description=description)

    update_fields = changes.model_dump(exclude_none=True)
    has_thumbnail = thumbnail is not None and bool(thumbnail.filename)
    if not update_fields and not has_thumbnail:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide a title, description or thumbnail to update"
        )

    if has_thumbnail:
        update_fields["thumbnail"] = await store_image(storage, thumbnail, "Thumbnail")

    update_fields["updated_at"] = utc_now()
    await db.videos.update_one({"_id": video["_id"]}, {"$set": update_fields})

    if has_thumbnail:
        await queue.add_to_queue(video.get("thumbnail"))

    return APIResponse(
        data=await _fetch_video(db, video["_id"], current_user["_id"]),
        message="Video updated successfully"
    )


@router.delete("/{video_id}", response_model=APIResponse)
async def delete_video(
    video_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
    queue: DeletionQueue = Depends(get_deletion_queue),
):
    """
    Delete an owned video along with its comments, every like on it or on its
    comments, and its playlist and watch history entries. Blobs are removed
    in the background.
    """
    video = await find_owned(db.videos, video_id, "Video", current_user)
    vid = video["_id"]

    comments = await db.comments.find({"video": vid}, {"_id": 1}).to_list(length=None)
    comment_ids = [comment["_id"] for comment in comments]

    await db.videos.delete_one({"_id": vid})
    await db.likes.delete_many({"$or": [{"video": vid}, {"comment": {"$in": comment_ids}}]})
    await db.comments.delete_many({"video": vid})
    await db.playlists.update_many({"videos": vid}, {"$pull": {"videos": vid}})
    await db.users.update_many({"watch_history": vid}, {"$pull": {"watch_history": vid}})

    await queue.add_to_queue(video.get("video_file"))
    await queue.add_to_queue(video.get("thumbnail"))

    logger.info("Video %s deleted with %d comments", vid, len(comment_ids))
    return APIResponse(data={}, message="Video deleted successfully")


@router.post("/{video_id}/view", response_model=APIResponse)
async def record_view(
    video_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """Count a view and move the video to the end of the viewer's history"""
    video = await find_or_404(db.videos, video_id, "Video", visible_videos(current_user["_id"]))

    await db.videos.update_one({"_id": video["_id"]}, {"$inc": {"views": 1}})
    # A field can't be pulled and pushed in the same update
    await db.users.update_one({"_id": current_user["_id"]}, {"$pull": {"watch_history": video["_id"]}})
    await db.users.update_one({"_id": current_user["_id"]}, {"$push": {"watch_history": video["_id"]}})

    return APIResponse(
        data=await _fetch_video(db, video["_id"], current_user["_id"]),
        message="View recorded"
    )
