"""Session endpoints."""

from fastapi import APIRouter, Request

from fluxfolio.dependencies import CurrentUser, DBSession, bearer_token
from fluxfolio.repositories.user_repo import SessionRepository

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/whoami")
async def whoami(user: CurrentUser) -> dict:
    return {"user_id": user.user_id, "username": user.username}


@router.post("/logout")
async def logout(request: Request, user: CurrentUser, db: DBSession) -> dict:
    await SessionRepository(db).revoke(bearer_token(request))
    await db.commit()
    return {"success": True}
