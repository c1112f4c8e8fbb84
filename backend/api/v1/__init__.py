"""Version 1 of the HTTP API."""

from fastapi import APIRouter

from . import comments, follows, likes, posts, search, users

api_router = APIRouter()
api_router.include_router(posts.router)
api_router.include_router(comments.router)
api_router.include_router(likes.router)
api_router.include_router(follows.router)
api_router.include_router(users.router)
api_router.include_router(search.router)


@api_router.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


__all__ = ["api_router"]
