from fastapi import APIRouter, HTTPException, status, Depends, Request, Response
from app.schemas import APIResponse, TweetCreate
from app.auth import get_current_user
from app.database import get_database
from app.models import TweetInDB, utc_now
from app.queries import tweet_pipeline
from app.utils.access import find_owned
from app.utils.identifiers import validate_object_id
from app.utils.pagination import PageParams, paginate_or_404
from app.utils.pipeline import Sort
from app.utils.rate_limit import limiter, RATE_LIMIT_POST_CREATE

router = APIRouter(prefix="/tweets", tags=["tweets"])


async def _fetch_tweet(db, tweet_id, viewer_id) -> dict:
    tweets = await db.tweets.aggregate(
        tweet_pipeline({"_id": tweet_id}, viewer_id)
    ).to_list(length=1)
    if not tweets:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tweet not found"
        )
    return tweets[0]


@router.post("/", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_POST_CREATE)
async def create_tweet(
    request: Request,
    response: Response,
    tweet_data: TweetCreate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Post a tweet
    Rate limit: 20 per hour per IP
    """
    tweet = TweetInDB(owner=current_user["_id"], content=tweet_data.content)
    result = await db.tweets.insert_one(tweet.to_document())
    return APIResponse(
        statusCode=201,
        data=await _fetch_tweet(db, result.inserted_id, current_user["_id"]),
        message="Tweet created successfully"
    )


@router.get("/user/{user_id}", response_model=APIResponse)
async def get_user_tweets(
    user_id: str,
    params: PageParams = Depends(),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    owner = validate_object_id(user_id, "user")
    page = await paginate_or_404(
        db.tweets,
        tweet_pipeline({"owner": owner}, current_user["_id"], Sort()),
        params,
        "No tweets found"
    )
    return APIResponse(data=page, message="Tweets fetched successfully")


@router.patch("/{tweet_id}", response_model=APIResponse)
async def update_tweet(
    tweet_id: str,
    tweet_data: TweetCreate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    tweet = await find_owned(db.tweets, tweet_id, "Tweet", current_user)
    await db.tweets.update_one(
        {"_id": tweet["_id"]},
        {"$set": {"content": tweet_data.content, "updated_at": utc_now()}}
    )
    return APIResponse(
        data=await _fetch_tweet(db, tweet["_id"], current_user["_id"]),
        message="Tweet updated successfully"
    )


@router.delete("/{tweet_id}", response_model=APIResponse)
async def delete_tweet(
    tweet_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    tweet = await find_owned(db.tweets, tweet_id, "Tweet", current_user)
    await db.tweets.delete_one({"_id": tweet["_id"]})
    await db.likes.delete_many({"tweet": tweet["_id"]})
    return APIResponse(data={}, message="Tweet deleted successfully")
