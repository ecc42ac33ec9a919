from fastapi import APIRouter, Depends, Request, Response

from modeler.api.deps import RequestContext, get_context
from modeler.api.middleware import session_token
from modeler.auth.permissions import is_superuser
from modeler.auth.sessions import authenticate, create_session, end_session, sign_up
from modeler.config import COOKIE_SECURE, SESSION_COOKIE_NAME, SESSION_TTL_HOURS
from modeler.schemas import SignInRequest, SignUpRequest

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _user_view(user) -> dict:
    data = user.to_dict()
    data["is_superuser"] = is_superuser(user)
    return data


@router.post("/sign-up", status_code=201)
def register(body: SignUpRequest, ctx: RequestContext = Depends(get_context)):
    user = sign_up(ctx.db, body.email, body.password, body.full_name)
    return {"user": _user_view(user)}


@router.post("/sign-in")
def login(body: SignInRequest, response: Response, ctx: RequestContext = Depends(get_context)):
    user = authenticate(ctx.db, body.email, body.password)
    token = create_session(ctx.db, user)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=SESSION_TTL_HOURS * 3600,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    return {"user": _user_view(user)}


@router.post("/sign-out")
def logout(request: Request, response: Response, ctx: RequestContext = Depends(get_context)):
    end_session(ctx.db, session_token(request))
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/me")
def me(ctx: RequestContext = Depends(get_context)):
    return {"user": _user_view(ctx.require_user())}
