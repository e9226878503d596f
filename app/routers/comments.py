from typing import Optional
from fastapi import APIRouter, HTTPException, status, Depends, Query, Request, Response
from app.schemas import APIResponse, CommentCreate
from app.auth import get_current_user
from app.database import get_database
from app.models import CommentInDB, utc_now
from app.queries import comment_pipeline, visible_videos
from app.utils.access import find_or_404, find_owned
from app.utils.pagination import PageParams, paginate_or_404
from app.utils.pipeline import Sort
from app.utils.rate_limit import limiter, RATE_LIMIT_POST_CREATE

router = APIRouter(prefix="/comments", tags=["comments"])


async def _fetch_comment(db, comment_id, viewer_id) -> dict:
    comments = await db.comments.aggregate(
        comment_pipeline({"_id": comment_id}, viewer_id)
    ).to_list(length=1)
    if not comments:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Comment not found"
        )
    return comments[0]


@router.get("/{video_id}", response_model=APIResponse)
async def get_video_comments(
    video_id: str,
    params: PageParams = Depends(),
    sort_type: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """Comments of a video with author, like count and whether the caller liked each"""
    video = await find_or_404(db.videos, video_id, "Video", visible_videos(current_user["_id"]))
    sort = Sort.from_query("created_at", sort_type)
    page = await paginate_or_404(
        db.comments,
        comment_pipeline({"video": video["_id"]}, current_user["_id"], sort),
        params,
        "No comments found"
    )
    return APIResponse(data=page, message="Comments fetched successfully")


@router.post("/{video_id}", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_POST_CREATE)
async def add_comment(
    request: Request,
    response: Response,
    video_id: str,
    comment_data: CommentCreate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Comment on a video
    Rate limit: 20 per hour per IP
    """
    video = await find_or_404(db.videos, video_id, "Video", visible_videos(current_user["_id"]))

    comment = CommentInDB(owner=current_user["_id"], video=video["_id"], content=comment_data.content)
    result = await db.comments.insert_one(comment.to_document())

    return APIResponse(
        statusCode=201,
        data=await _fetch_comment(db, result.inserted_id, current_user["_id"]),
        message="Comment added successfully"
    )


@router.patch("/{comment_id}", response_model=APIResponse)
async def update_comment(
    comment_id: str,
    comment_data: CommentCreate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    comment = await find_owned(db.comments, comment_id, "Comment", current_user)
    # The response embeds the video, which may have been unpublished since
    await find_or_404(db.videos, comment["video"], "Video", visible_videos(current_user["_id"]))
    await db.comments.update_one(
        {"_id": comment["_id"]},
        {"$set": {"content": comment_data.content, "updated_at": utc_now()}}
    )
    return APIResponse(
        data=await _fetch_comment(db, comment["_id"], current_user["_id"]),
        message="Comment updated successfully"
    )


@router.delete("/{comment_id}", response_model=APIResponse)
async def delete_comment(
    comment_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    comment = await find_owned(db.comments, comment_id, "Comment", current_user)
    await db.comments.delete_one({"_id": comment["_id"]})
    await db.likes.delete_many({"comment": comment["_id"]})
    return APIResponse(data={}, message="Comment deleted successfully")
