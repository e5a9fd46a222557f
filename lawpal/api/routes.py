from fastapi import APIRouter

from lawpal.api.endpoints import auth, conversations, oauth, profile

api_router = APIRouter(prefix="/auth")
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(oauth.router, tags=["oauth"])
api_router.include_router(profile.router, prefix="/profile", tags=["profile"])
api_router.include_router(conversations.router, prefix="/conversations", tags=["conversations"])
