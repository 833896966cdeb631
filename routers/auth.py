from typing import Annotated, Optional

from db import SessionDep
from errors import NotAuthenticated
from fastapi import APIRouter, Cookie, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from itsdangerous import BadSignature, URLSafeTimedSerializer
from models import Profile, User, UserType
from passlib.context import CryptContext
from pydantic import ValidationError
from schemas import LoginData, ProfileRead, UserCreate, UserRead
from sqlmodel import select

from config import TEMPLATES_DIR, get_settings

router = APIRouter(tags=["auth"])
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

settings = get_settings()
serializer = URLSafeTimedSerializer(settings.secret_key)

SESSION_COOKIE = "session"

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(user_id: str) -> str:
    """
    Store the user id in a signed token.
    Example data:
        {"user_id": "6f1c..."}
    """
    return serializer.dumps({"user_id": user_id})


def verify_session_token(token: str, max_age_seconds: Optional[int] = None) -> Optional[dict]:
    """
    Returns {'user_id': ...} if valid, or None if the token is invalid/expired.
    """
    if max_age_seconds is None:
        max_age_seconds = settings.session_max_age
    try:
        return serializer.loads(token, max_age=max_age_seconds)
    except BadSignature:
        return None


def _set_session_cookie(response, user_id: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=create_session_token(user_id),
        httponly=True,
        secure=False,
        samesite="lax",
        max_age=settings.session_max_age,
    )


def get_optional_user(
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> Optional[User]:
    """
    Reads the 'session' cookie and returns the logged-in User,
    or None if not logged in / invalid.
    """
    if session_token is None:
        return None

    data = verify_session_token(session_token)
    if not data:
        return None

    return session.get(User, data["user_id"])


OptionalUserDep = Annotated[Optional[User], Depends(get_optional_user)]


def get_current_user(user: OptionalUserDep) -> User:
    """Like get_optional_user, but raises 401 when nobody is logged in."""
    if user is None:
        raise NotAuthenticated("Not logged in")
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


def dashboard_url(user: User) -> str:
    return "/business" if user.user_type == UserType.BUSINESS else "/shelter"


def user_read(session: SessionDep, user: User) -> UserRead:
    profile = session.exec(select(Profile).where(Profile.user_id == user.id)).first()
    return UserRead(
        id=user.id,
        email=user.email,
        user_type=user.user_type,
        profile=ProfileRead.model_validate(profile) if profile else None,
    )


def _is_json(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("application/json")


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request, current: OptionalUserDep):
    if current is not None:
        return RedirectResponse(url=dashboard_url(current), status_code=303)

    return templates.TemplateResponse(request, "login.html", {"current_user": None})


@router.get("/register", response_class=HTMLResponse)
def register_page(request: Request, current: OptionalUserDep):
    if current is not None:
        return RedirectResponse(url=dashboard_url(current), status_code=303)

    return templates.TemplateResponse(request, "register.html", {"current_user": None})


@router.post("/register")
async def register(request: Request, session: SessionDep):
    """
    Register a business or shelter account and its profile.
    Accepts either JSON (API/Swagger) or form-data (from HTML form).
    """
    is_json = _is_json(request)

    try:
        if is_json:
            user_in = UserCreate(**(await request.json()))
        else:
            form = await request.form()
            user_in = UserCreate(
                **{k: v for k, v in form.items() if isinstance(v, str) and v}
            )
    except ValidationError as exc:
        if is_json:
            raise HTTPException(
                status_code=422,
                detail=exc.errors(include_url=False, include_context=False),
            )
        return templates.TemplateResponse(
            request,
            "register.html",
            {"current_user": None, "error": "Please fill in every required field."},
            status_code=400,
        )

    existing = session.exec(
        select(User).where(User.email == user_in.email)
    ).first()

    if existing:
        if is_json:
            raise HTTPException(status_code=400, detail="Email already registered")

        return templates.TemplateResponse(
            request,
            "register.html",
            {"current_user": None, "error": "Email already registered"},
            status_code=400,
        )

    user = User(
        email=user_in.email,
        password_hash=hash_password(user_in.password),
        user_type=user_in.user_type,
    )
    session.add(user)
    session.flush()

    profile = Profile(
        user_id=user.id,
        user_type=user_in.user_type,
        **user_in.model_dump(
            include={
                "business_name",
                "shelter_name",
                "address",
                "phone",
                "description",
                "contact_person",
            }
        ),
    )

    session.add(profile)
    session.commit()
    session.refresh(user)

    if is_json:
        resp = JSONResponse(
            {"message": "Registration successful", "user_type": user.user_type.value},
            status_code=201,
        )
    else:
        resp = RedirectResponse(url=dashboard_url(user), status_code=303)

    _set_session_cookie(resp, user.id)
    return resp


@router.post("/login")
async def login(request: Request, session: SessionDep):
    """
    Log in with email + password and set a signed cookie.

    Accepts either JSON (API/Swagger) or form-data (from HTML form).
    """
    is_json = _is_json(request)

    try:
        if is_json:
            payload = LoginData(**(await request.json()))
        else:
            form = await request.form()
            payload = LoginData(
                email=form.get("email") or "",
                password=form.get("password") or "",
            )

        user = session.exec(
            select(User).where(User.email == payload.email)
        ).first()

        if user is None or not verify_password(payload.password, user.password_hash):
            raise HTTPException(
                status_code=400, detail="Invalid email or password"
            )

    except (HTTPException, ValidationError) as exc:
        if is_json:
            if isinstance(exc, ValidationError):
                raise HTTPException(
                    status_code=422,
                    detail=exc.errors(include_url=False, include_context=False),
                )
            raise

        detail = exc.detail if isinstance(exc, HTTPException) else "All fields are required"
        return templates.TemplateResponse(
            request,
            "login.html",
            {"current_user": None, "error": detail},
            status_code=400,
        )

    if is_json:
        resp = JSONResponse(
            {"message": "Login successful", "user_type": user.user_type.value}
        )
    else:
        resp = RedirectResponse(url=dashboard_url(user), status_code=303)

    _set_session_cookie(resp, user.id)
    return resp


@router.post("/logout")
def logout():
    """
    Clear the session cookie and redirect to home.
    """
    response = RedirectResponse(url="/", status_code=303)
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/me", response_model=UserRead)
def read_me(session: SessionDep, current: CurrentUserDep):
    """
    Get the currently logged-in user and their profile.
    """
    return user_read(session, current)
