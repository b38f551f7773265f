# routers/v1/auth.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from config import settings
from deps.auth import login_for_access_token, get_current_user
from models import User

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token")
def issue_token(resp=Depends(login_for_access_token)):
    # dashboard pages read the token back from the cookie
    out = JSONResponse(resp)
    out.set_cookie(
        "access_token",
        resp["access_token"],
        httponly=True,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return out


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role_name,
        "is_active": user.is_active,
    }
