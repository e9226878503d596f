"""
Unit tests for the aggregation stage builder.
"""

import pytest
from bson import ObjectId
from fastapi import HTTPException

from app.utils.pipeline import (
    Filter,
    Join,
    Flatten,
    Derive,
    Reshape,
    Sort,
    SortDirection,
    build_pipeline,
    count_of,
    contains,
    sum_of,
    keep_if,
)
from app.queries import video_pipeline, like_pipeline, playlist_pipeline


class TestStageRendering:
    """Each stage renders to raw MongoDB stages."""

    def test_filter_renders_match(self):
        assert Filter({"owner": "x"}).render() == [{"$match": {"owner": "x"}}]

    def test_join_without_fields_is_plain_lookup(self):
        stages = Join("users", "owner").render()
        assert stages == [{
            "$lookup": {"from": "users", "localField": "owner", "foreignField": "_id", "as": "owner"}
        }]

    def test_join_with_fields_narrows_joined_documents(self):
        stages = Join("users", "owner", fields=["username", "avatar"]).render()
        assert len(stages) == 2
        mapped = stages[1]["$addFields"]["owner"]["$map"]
        assert mapped["input"] == "$owner"
        assert mapped["in"] == {
            "_id": "$$joined._id",
            "username": "$$joined.username",
            "avatar": "$$joined.avatar",
        }

    def test_join_into_dotted_field_goes_through_temporary_field(self):
        stages = Join("users", "video.owner", as_field="video.owner").render()
        assert stages[0]["$lookup"]["as"] == "_joined_video_owner"
        assert stages[-2] == {"$addFields": {"video.owner": "$_joined_video_owner"}}
        assert stages[-1] == {"$project": {"_joined_video_owner": 0}}

    def test_required_flatten_drops_unmatched_rows(self):
        assert Flatten("owner").render() == [
            {"$unwind": {"path": "$owner", "preserveNullAndEmptyArrays": False}}
        ]

    def test_optional_flatten_keeps_rows(self):
        stage = Flatten("owner", required=False).render()[0]
        assert stage["$unwind"]["preserveNullAndEmptyArrays"] is True

    def test_derive_renders_add_fields(self):
        stage = Derive(likes_count=count_of("likes")).render()
        assert stage == [{"$addFields": {"likes_count": {"$size": "$likes"}}}]

    def test_reshape_is_inclusion_projection(self):
        assert Reshape(["title", "owner.username"]).render() == [
            {"$project": {"title": 1, "owner.username": 1}}
        ]
        assert Reshape(["title"], include_id=False).render() == [
            {"$project": {"title": 1, "_id": 0}}
        ]

    @pytest.mark.parametrize("field", ["password", "refresh_token", "owner.password"])
    def test_reshape_rejects_sensitive_fields(self, field):
        with pytest.raises(ValueError):
            Reshape(["username", field])


class TestSort:
    """Sort parsing from query parameters."""

    def test_defaults_to_newest_first(self):
        sort = Sort.from_query(None, None)
        assert sort.field == "created_at"
        assert sort.direction == SortDirection.DESC
        assert sort.render() == [{"$sort": {"created_at": -1, "_id": -1}}]

    def test_ascending_is_case_insensitive(self):
        sort = Sort.from_query("views", "ASC", allowed=("created_at", "views"))
        assert sort.render() == [{"$sort": {"views": 1, "_id": 1}}]

    def test_field_outside_whitelist_is_rejected(self):
        with pytest.raises(HTTPException) as exc:
            Sort.from_query("password", "asc", allowed=("created_at",))
        assert exc.value.status_code == 400

    def test_bad_direction_is_rejected(self):
        with pytest.raises(HTTPException) as exc:
            Sort.from_query("created_at", "sideways")
        assert exc.value.status_code == 400


class TestBuildPipeline:
    """Composition and expression helpers."""

    def test_none_stages_are_skipped(self):
        pipeline = build_pipeline(Filter({"a": 1}), None, Sort())
        assert pipeline == [{"$match": {"a": 1}}, {"$sort": {"created_at": -1, "_id": -1}}]

    def test_expression_helpers(self):
        viewer = ObjectId()
        assert contains(viewer, "likes.liked_by") == {
            "$cond": {"if": {"$in": [viewer, "$likes.liked_by"]}, "then": True, "else": False}
        }
        assert sum_of("videos.views") == {"$sum": "$videos.views"}
        assert keep_if("videos", {"$eq": ["$$video.is_published", True]}, "video") == {
            "$filter": {"input": "$videos", "as": "video", "cond": {"$eq": ["$$video.is_published", True]}}
        }

    def test_video_pipeline_sorts_before_joining(self):
        pipeline = video_pipeline({"is_published": True}, ObjectId(), Sort())
        assert list(pipeline[0]) == ["$match"]
        assert list(pipeline[1]) == ["$sort"]
        assert "password" not in pipeline[-1]["$project"]

    def test_like_pipeline_embeds_target_owner(self):
        pipeline = like_pipeline({"_id": ObjectId()}, "video", ObjectId())
        lookups = [stage["$lookup"] for stage in pipeline if "$lookup" in stage]
        assert [lookup["from"] for lookup in lookups] == ["users", "videos", "users"]
        assert pipeline[-1] == {"$project": {"liked_by": 1, "video": 1, "created_at": 1}}

    def test_video_likes_are_filtered_by_visibility(self):
        viewer = ObjectId()
        pipeline = like_pipeline({"_id": ObjectId()}, "video", viewer)
        assert {"$match": {"$or": [{"video.is_published": True}, {"video.owner": viewer}]}} in pipeline

        tweet_pipeline = like_pipeline({"_id": ObjectId()}, "tweet", viewer)
        assert [stage for stage in tweet_pipeline if "$match" in stage] == [tweet_pipeline[0]]

    def test_playlist_pipeline_keeps_stored_order(self):
        pipeline = playlist_pipeline({"_id": ObjectId()}, ObjectId())
        assert pipeline[1] == {"$addFields": {"video_order": "$videos"}}
        assert "video_order" in pipeline[-1]["$project"]
