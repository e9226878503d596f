from fastapi import APIRouter, HTTPException, status, Depends
from app.schemas import APIResponse, PlaylistCreate, PlaylistUpdate
from app.auth import get_current_user
from app.database import get_database
from app.models import PlaylistInDB, utc_now
from app.queries import playlist_pipeline, visible_videos
from app.utils.access import find_or_404, find_owned
from app.utils.identifiers import validate_object_id
from app.utils.pagination import PageParams, paginate_or_404
from app.utils.pipeline import Sort

router = APIRouter(prefix="/playlists", tags=["playlists"])


def _in_stored_order(playlist: dict) -> dict:
    order = playlist.pop("video_order", [])
    by_id = {video["_id"]: video for video in playlist.get("videos", [])}
    playlist["videos"] = [by_id[video_id] for video_id in order if video_id in by_id]
    return playlist


async def _fetch_playlist(db, playlist_id, viewer_id) -> dict:
    playlists = await db.playlists.aggregate(
        playlist_pipeline({"_id": playlist_id}, viewer_id)
    ).to_list(length=1)
    if not playlists:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Playlist not found"
        )
    return _in_stored_order(playlists[0])


@router.post("/", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
async def create_playlist(
    playlist_data: PlaylistCreate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    playlist = PlaylistInDB(
        owner=current_user["_id"],
        name=playlist_data.name,
        description=playlist_data.description,
    )
    result = await db.playlists.insert_one(playlist.to_document())
    return APIResponse(
        statusCode=201,
        data=await _fetch_playlist(db, result.inserted_id, current_user["_id"]),
        message="Playlist created successfully"
    )


@router.get("/user/{user_id}", response_model=APIResponse)
async def get_user_playlists(
    user_id: str,
    params: PageParams = Depends(),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    owner = validate_object_id(user_id, "user")
    page = await paginate_or_404(
        db.playlists,
        playlist_pipeline({"owner": owner}, current_user["_id"], Sort()),
        params,
        "No playlists found"
    )
    page["items"] = [_in_stored_order(playlist) for playlist in page["items"]]
    return APIResponse(data=page, message="Playlists fetched successfully")


@router.get("/{playlist_id}", response_model=APIResponse)
async def get_playlist(
    playlist_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """A playlist with its videos, owner and totals over the videos"""
    playlist = await find_or_404(db.playlists, playlist_id, "Playlist")
    return APIResponse(
        data=await _fetch_playlist(db, playlist["_id"], current_user["_id"]),
        message="Playlist fetched successfully"
    )


@router.patch("/add/{video_id}/{playlist_id}", response_model=APIResponse)
async def add_video_to_playlist(
    video_id: str,
    playlist_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """Adding a video that is already in the playlist leaves it unchanged"""
    vid = validate_object_id(video_id, "video")
    playlist = await find_owned(db.playlists, playlist_id, "Playlist", current_user)
    video = await find_or_404(db.videos, vid, "Video", visible_videos(current_user["_id"]))

    await db.playlists.update_one(
        {"_id": playlist["_id"]},
        {"$addToSet": {"videos": video["_id"]}, "$set": {"updated_at": utc_now()}}
    )
    return APIResponse(
        data=await _fetch_playlist(db, playlist["_id"], current_user["_id"]),
        message="Video added to playlist"
    )


@router.patch("/remove/{video_id}/{playlist_id}", response_model=APIResponse)
async def remove_video_from_playlist(
    video_id: str,
    playlist_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    vid = validate_object_id(video_id, "video")
    playlist = await find_owned(db.playlists, playlist_id, "Playlist", current_user)
    if vid not in playlist.get("videos", []):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Video is not in this playlist"
        )

    await db.playlists.update_one(
        {"_id": playlist["_id"]},
        {"$pull": {"videos": vid}, "$set": {"updated_at": utc_now()}}
    )
    return APIResponse(
        data=await _fetch_playlist(db, playlist["_id"], current_user["_id"]),
        message="Video removed from playlist"
    )


@router.patch("/{playlist_id}", response_model=APIResponse)
async def update_playlist(
    playlist_id: str,
    changes: PlaylistUpdate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    playlist = await find_owned(db.playlists, playlist_id, "Playlist", current_user)

    update_fields = changes.model_dump(exclude_none=True)
    if not update_fields:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide a name or description to update"
        )
    update_fields["updated_at"] = utc_now()

    await db.playlists.update_one({"_id": playlist["_id"]}, {"$set": update_fields})
    return APIResponse(
        data=await _fetch_playlist(db, playlist["_id"], current_user["_id"]),
        message="Playlist updated successfully"
    )


@router.delete("/{playlist_id}", response_model=APIResponse)
async def delete_playlist(
    playlist_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    playlist = await find_owned(db.playlists, playlist_id, "Playlist", current_user)
    await db.playlists.delete_one({"_id": playlist["_id"]})
    return APIResponse(data={}, message="Playlist deleted successfully")
