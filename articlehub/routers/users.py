import pydantic
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile as StarletteUploadFile

from articlehub.database import get_db
from articlehub.dependencies import get_asset_manager, get_current_user, spool_upload
from articlehub.errors import ValidationError
from articlehub.models import User
from articlehub.schemas import ProfileEnvelope, UserCreateEnvelope, UserEnvelope, UserPatch
from articlehub.services import user_service
from articlehub.services.assets import AssetManager
from articlehub.services.serializers import profile_to_dict, user_to_dict

router = APIRouter(prefix="/api", tags=["users"])

_DUPLICATE_DETAIL = "A user with this username or email already exists"


@router.post("/users", status_code=201, response_model=UserEnvelope)
async def create_user(data: UserCreateEnvelope, db: AsyncSession = Depends(get_db)):
    try:
        user = await user_service.create_user(db, data.user)
    except IntegrityError:
        raise HTTPException(status_code=409, detail=_DUPLICATE_DETAIL)
    return {"user": user_to_dict(user)}


@router.get("/user", response_model=UserEnvelope)
async def current_user(user: User = Depends(get_current_user)):
    return {"user": user_to_dict(user)}


@router.put("/user", response_model=UserEnvelope)
async def update_current_user(
    request: Request,
    user: User = Depends(get_current_user),
    assets: AssetManager = Depends(get_asset_manager),
    db: AsyncSession = Depends(get_db),
):
    form = await request.form()
    fields = {k: form[k] for k in ("username", "email", "bio") if isinstance(form.get(k), str)}
    try:
        patch = UserPatch(**fields)
    except pydantic.ValidationError as exc:
        raise ValidationError({str(e["loc"][0]): e["msg"] for e in exc.errors()})

    upload = form.get("uploadFile")
    avatar = await spool_upload(upload if isinstance(upload, StarletteUploadFile) else None, assets.tmp_dir)
    try:
        user = await user_service.update_user(
            db, assets, user, patch, avatar=avatar, remove_photo=form.get("removePhoto") == "true"
        )
    except IntegrityError:
        raise HTTPException(status_code=409, detail=_DUPLICATE_DETAIL)
    return {"user": user_to_dict(user)}


@router.get("/profiles/{username}", response_model=ProfileEnvelope)
async def get_profile(username: str, db: AsyncSession = Depends(get_db)):
    user = await user_service.get_by_username(db, username)
    return {"profile": profile_to_dict(user)}
