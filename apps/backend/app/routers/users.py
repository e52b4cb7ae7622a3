"""
routers/users.py

GET /users        -> every user
GET /users/{id}   -> one user, or 404 {"message": "User not found"}

Non-developer summary:
----------------------
A fixed, in-memory list of users. It exists so the pipeline has something
ordinary to protect; there is no database behind it.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..schemas.common import MessageBody, User

router = APIRouter(prefix="/users", tags=["users"])

USERS: List[User] = [
    User(id=1, name="Alice"),
    User(id=2, name="Bob"),
]


def find_user(raw_id: str) -> Optional[User]:
    """Look a user up by the path segment; anything non-numeric matches nobody."""
    try:
        user_id = int(raw_id)
    except ValueError:
        return None
    return next((u for u in USERS if u.id == user_id), None)


@router.get("", response_model=List[User])
async def list_users():
    return USERS


@router.get("/{user_id}", response_model=User, responses={404: {"model": MessageBody}})
async def get_user(user_id: str):
    user = find_user(user_id)
    if user is None:
        return JSONResponse(status_code=404, content={"message": "User not found"})
    return user
