"""
Per-resource read shapes.

Every read and every write response of a resource goes through the same
pipeline here, so a freshly created row looks exactly like a fetched one.
"""
from typing import List, Optional
from bson import ObjectId
from app.utils.pipeline import (
    Filter,
    Join,
    Flatten,
    Derive,
    Reshape,
    Sort,
    build_pipeline,
    count_of,
    contains,
    sum_of,
    keep_if,
)

# Public projection of a joined user
OWNER_FIELDS = ["username", "full_name", "avatar"]

USER_FIELDS = [
    "username", "email", "full_name", "avatar", "cover_image",
    "watch_history", "created_at", "updated_at",
]

VIDEO_FIELDS = [
    "video_file", "thumbnail", "title", "description", "duration", "views",
    "is_published", "owner", "created_at", "updated_at",
]

VIDEO_SORT_FIELDS = ("created_at", "views", "duration", "title")


def visible_videos(viewer_id: ObjectId, prefix: str = "") -> dict:
    """Published videos, plus every video of the viewer's own"""
    return {"$or": [{f"{prefix}is_published": True}, {f"{prefix}owner": viewer_id}]}


def user_pipeline(user_id: ObjectId) -> List[dict]:
    return build_pipeline(
        Filter({"_id": user_id}),
        Reshape(USER_FIELDS),
    )


def channel_profile_pipeline(username: str, viewer_id: ObjectId) -> List[dict]:
    return build_pipeline(
        Filter({"username": username.lower()}),
        Join("subscriptions", "_id", as_field="subscribers", foreign_field="channel", fields=["subscriber"]),
        Join("subscriptions", "_id", as_field="subscribed_to", foreign_field="subscriber", fields=["channel"]),
        Derive(
            subscriber_count=count_of("subscribers"),
            subscribed_to_count=count_of("subscribed_to"),
            is_subscribed=contains(viewer_id, "subscribers.subscriber"),
        ),
        Reshape([
            "username", "email", "full_name", "avatar", "cover_image",
            "subscriber_count", "subscribed_to_count", "is_subscribed", "created_at",
        ]),
    )


def watch_history_pipeline(video_ids: List[ObjectId], viewer_id: ObjectId) -> List[dict]:
    """History order is kept on the user document, callers reorder the result"""
    return build_pipeline(
        Filter({"$and": [{"_id": {"$in": video_ids}}, visible_videos(viewer_id)]}),
        Join("users", "owner", fields=OWNER_FIELDS),
        Flatten("owner"),
        Reshape(VIDEO_FIELDS),
    )


def video_pipeline(match: dict, viewer_id: ObjectId, sort: Optional[Sort] = None) -> List[dict]:
    return build_pipeline(
        Filter(match),
        sort,
        Join("users", "owner", fields=OWNER_FIELDS),
        Flatten("owner"),
        Join("likes", "_id", as_field="likes", foreign_field="video", fields=["liked_by"]),
        Derive(
            likes_count=count_of("likes"),
            is_liked=contains(viewer_id, "likes.liked_by"),
        ),
        Reshape(VIDEO_FIELDS + ["likes_count", "is_liked"]),
    )


def comment_pipeline(match: dict, viewer_id: ObjectId, sort: Optional[Sort] = None) -> List[dict]:
    return build_pipeline(
        Filter(match),
        sort,
        Join("videos", "video", fields=["title", "description", "duration", "thumbnail"]),
        Flatten("video"),
        Join("users", "owner", fields=OWNER_FIELDS),
        Flatten("owner"),
        Join("likes", "_id", as_field="likes", foreign_field="comment", fields=["liked_by"]),
        Derive(
            likes_count=count_of("likes"),
            is_liked=contains(viewer_id, "likes.liked_by"),
        ),
        Reshape(["content", "video", "owner", "likes_count", "is_liked", "created_at", "updated_at"]),
    )


def tweet_pipeline(match: dict, viewer_id: ObjectId, sort: Optional[Sort] = None) -> List[dict]:
    return build_pipeline(
        Filter(match),
        sort,
        Join("users", "owner", fields=OWNER_FIELDS),
        Flatten("owner"),
        Join("likes", "_id", as_field="likes", foreign_field="tweet", fields=["liked_by"]),
        Derive(
            likes_count=count_of("likes"),
            is_liked=contains(viewer_id, "likes.liked_by"),
        ),
        Reshape(["content", "owner", "likes_count", "is_liked", "created_at", "updated_at"]),
    )


# What a like embeds about the thing it points at
LIKE_TARGETS = {
    "video": ("videos", ["title", "thumbnail", "video_file", "duration", "views", "is_published", "owner"]),
    "comment": ("comments", ["content", "video", "owner"]),
    "tweet": ("tweets", ["content", "owner"]),
}


def like_pipeline(match: dict, target: str, viewer_id: ObjectId, sort: Optional[Sort] = None) -> List[dict]:
    """
    A like with its author, its target and the target's owner. Likes on videos
    the viewer may not see are left out.
    """
    collection, fields = LIKE_TARGETS[target]
    return build_pipeline(
        Filter(match),
        sort,
        Join("users", "liked_by", fields=OWNER_FIELDS),
        Flatten("liked_by"),
        Join(collection, target, fields=fields),
        Flatten(target),
        Filter(visible_videos(viewer_id, "video.")) if target == "video" else None,
        Join("users", f"{target}.owner", as_field=f"{target}.owner", fields=OWNER_FIELDS),
        Flatten(f"{target}.owner"),
        Reshape(["liked_by", target, "created_at"]),
    )


def subscription_pipeline(match: dict) -> List[dict]:
    return build_pipeline(
        Filter(match),
        Join("users", "subscriber", fields=OWNER_FIELDS),
        Flatten("subscriber"),
        Join("users", "channel", fields=OWNER_FIELDS),
        Flatten("channel"),
        Reshape(["subscriber", "channel", "created_at"]),
    )


def subscribers_pipeline(channel_id: ObjectId, viewer_id: ObjectId) -> List[dict]:
    """Who follows a channel, and whether the viewer follows each of them back"""
    return build_pipeline(
        Filter({"channel": channel_id}),
        Sort(),
        Join("users", "subscriber", fields=OWNER_FIELDS),
        Flatten("subscriber"),
        Join(
            "subscriptions", "subscriber._id",
            as_field="subscriber.subscribers", foreign_field="channel", fields=["subscriber"],
        ),
        Derive(**{
            "subscriber.subscriber_count": count_of("subscriber.subscribers"),
            "subscriber.is_subscribed": contains(viewer_id, "subscriber.subscribers.subscriber"),
        }),
        Reshape([
            "subscriber._id", "subscriber.username", "subscriber.full_name",
            "subscriber.avatar", "subscriber.subscriber_count",
            "subscriber.is_subscribed", "created_at",
        ]),
    )


def channels_pipeline(subscriber_id: ObjectId) -> List[dict]:
    return build_pipeline(
        Filter({"subscriber": subscriber_id}),
        Sort(),
        Join("users", "channel", fields=OWNER_FIELDS),
        Flatten("channel"),
        Join(
            "subscriptions", "channel._id",
            as_field="channel.subscribers", foreign_field="channel", fields=["subscriber"],
        ),
        Derive(**{"channel.subscriber_count": count_of("channel.subscribers")}),
        Reshape([
            "channel._id", "channel.username", "channel.full_name",
            "channel.avatar", "channel.subscriber_count", "created_at",
        ]),
    )


def playlist_pipeline(match: dict, viewer_id: ObjectId, sort: Optional[Sort] = None) -> List[dict]:
    """
    A playlist with its owner and the videos the viewer may see. $lookup
    loses the stored order, so the stored ids come back as ``video_order``
    for the caller to reorder by.
    """
    visible = {"$or": [
        {"$eq": ["$$video.is_published", True]},
        {"$eq": ["$$video.owner", viewer_id]},
    ]}
    return build_pipeline(
        Filter(match),
        sort,
        Derive(video_order="$videos"),
        Join("videos", "videos", fields=["title", "thumbnail", "duration", "views", "owner", "is_published"]),
        Derive(videos=keep_if("videos", visible, "video")),
        Join("users", "owner", fields=OWNER_FIELDS),
        Flatten("owner"),
        Derive(
            total_videos=count_of("videos"),
            total_views=sum_of("videos.views"),
            total_duration=sum_of("videos.duration"),
        ),
        Reshape([
            "name", "description", "owner", "videos", "total_videos",
            "total_views", "total_duration", "video_order", "created_at", "updated_at",
        ]),
    )


def channel_stats_pipeline(owner_id: ObjectId) -> List[dict]:
    """Totals over every video of a channel, published or not"""
    return build_pipeline(
        Filter({"owner": owner_id}),
        Join("likes", "_id", as_field="likes", foreign_field="video", fields=["liked_by"]),
        Derive(likes_count=count_of("likes")),
    ) + [{
        "$group": {
            "_id": None,
            "total_videos": {"$sum": 1},
            "total_views": {"$sum": "$views"},
            "total_likes": {"$sum": "$likes_count"},
        }
    }]
