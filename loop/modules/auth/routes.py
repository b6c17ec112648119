from fastapi import APIRouter, Depends
from loop.core.dependencies import get_current_user
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me")
async def get_me(current_user: Dict = Depends(get_current_user)):
    """Get the user identified by the bearer token."""
    return current_user
