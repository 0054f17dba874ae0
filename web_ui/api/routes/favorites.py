"""Favorites API routes for devotionals and verses the user marked"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from core.app_session import AppSession
from utils.logger import logger
from web_ui.api.middleware.session import get_session
from web_ui.api.schemas.devotional_schemas import (
    FavoriteAddRequest,
    FavoriteItem,
    FavoritesResponse,
    FavoriteSyncResponse,
)

router = APIRouter()


@router.get("", response_model=FavoritesResponse)
def get_favorites(type: Optional[str] = None, session: AppSession = Depends(get_session)):
    """Get the user's favorites, optionally filtered by type"""
    favorites = session.library.favorites(session.user_id, type)
    return FavoritesResponse(favorites=[FavoriteItem(**f.to_dict()) for f in favorites])


@router.post("", response_model=FavoriteItem)
def add_favorite(request: FavoriteAddRequest, session: AppSession = Depends(get_session)):
    favorite = session.library.add_favorite(
        session.user_id, request.type, request.reference_id, request.title, request.content
    )
    logger.info(f"Added {request.type} '{request.reference_id}' to favorites")
    return FavoriteItem(**favorite.to_dict())


@router.delete("/{type}/{reference_id}")
def remove_favorite(type: str, reference_id: str, session: AppSession = Depends(get_session)):
    if not session.library.remove_favorite(session.user_id, type, reference_id):
        raise HTTPException(status_code=404, detail="Favorite not found")
    return {"success": True}


@router.post("/sync", response_model=FavoriteSyncResponse)
def sync_favorites(session: AppSession = Depends(get_session)):
    return FavoriteSyncResponse(pulled=session.library.sync_favorites(session.user_id))
