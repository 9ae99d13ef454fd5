import json

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile as StarletteUploadFile

from articlehub.database import get_db
from articlehub.dependencies import (
    PaginationParams,
    get_asset_manager,
    get_current_user,
    get_optional_user,
    spool_upload,
)
from articlehub.errors import ValidationError
from articlehub.models import User
from articlehub.schemas import (
    ArticleEnvelope,
    ArticleListResponse,
    ArticlePatch,
    BodyImageResponse,
    CommentCreateEnvelope,
    CommentEnvelope,
    CommentListEnvelope,
)
from articlehub.services import article_service, comment_service, votes
from articlehub.services.assets import AssetManager

router = APIRouter(prefix="/api/articles", tags=["articles"])


def _parse_name_list(raw, field: str) -> list[str] | None:
    """Decode a JSON array of strings sent as a multipart form field."""
    if not isinstance(raw, str):
        return None
    try:
        value = json.loads(raw) if raw.strip() else []
    except json.JSONDecodeError:
        raise ValidationError({field: "must be a JSON array of strings"})
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError({field: "must be a JSON array of strings"})
    return value


@router.get("", response_model=ArticleListResponse)
async def list_articles(
    tag: str | None = None,
    author: str | None = None,
    upvoted: str | None = None,
    downvoted: str | None = None,
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.list_articles(
        db,
        viewer,
        tag=tag,
        author=author,
        upvoted=upvoted,
        downvoted=downvoted,
        limit=pagination.limit,
        offset=pagination.offset,
    )


@router.post("", status_code=201, response_model=ArticleEnvelope)
async def create_article(
    title: str | None = Form(None),
    body: str | None = Form(None),
    description: str | None = Form(None),
    tagList: str | None = Form(None),
    uploadFile: UploadFile | None = File(None),
    user: User = Depends(get_current_user),
    assets: AssetManager = Depends(get_asset_manager),
    db: AsyncSession = Depends(get_db),
):
    cover = await spool_upload(uploadFile, assets.tmp_dir)
    try:
        tag_list = _parse_name_list(tagList, "tagList")
    except ValidationError:
        if cover is not None:
            await assets.discard(cover)
        raise
    article = await article_service.create_article(
        db, assets, user, title, body, description, tag_list, cover
    )
    return {"article": await article_service.article_view(db, article, user)}


@router.get("/{slug}", response_model=ArticleEnvelope)
async def get_article(
    slug: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article(db, slug)
    return {"article": await article_service.article_view(db, article, viewer)}


@router.put("/{slug}", response_model=ArticleEnvelope)
async def update_article(
    slug: str,
    request: Request,
    user: User = Depends(get_current_user),
    assets: AssetManager = Depends(get_asset_manager),
    db: AsyncSession = Depends(get_db),
):
    # Read the raw form so a field sent empty ("clear it") is
    # distinguishable from a field not sent at all.
    form = await request.form()
    article = await article_service.get_article(db, slug)

    upload = form.get("uploadFile")
    cover = await spool_upload(upload if isinstance(upload, StarletteUploadFile) else None, assets.tmp_dir)
    try:
        fields = {k: form[k] for k in ("title", "description", "body") if isinstance(form.get(k), str)}
        tag_list = _parse_name_list(form.get("tagList"), "tagList")
        if tag_list is not None:
            fields["tag_list"] = tag_list
        retained = _parse_name_list(form.get("imgFileList"), "imgFileList")
    except ValidationError:
        if cover is not None:
            await assets.discard(cover)
        raise

    article = await article_service.update_article(
        db,
        assets,
        article,
        user,
        ArticlePatch(**fields),
        cover=cover,
        remove_cover=form.get("removeImage") == "true",
        retained_imgs=retained,
    )
    return {"article": await article_service.article_view(db, article, user)}


@router.delete("/{slug}", status_code=204)
async def delete_article(
    slug: str,
    user: User = Depends(get_current_user),
    assets: AssetManager = Depends(get_asset_manager),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article(db, slug)
    await article_service.delete_article(db, assets, article, user)


@router.put("/imgs/{slug}", response_model=BodyImageResponse)
async def attach_body_image(
    slug: str,
    file: UploadFile | None = File(None),
    user: User = Depends(get_current_user),
    assets: AssetManager = Depends(get_asset_manager),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article(db, slug)
    upload = await spool_upload(file, assets.tmp_dir)
    if upload is None:
        raise ValidationError({"file": "is required"})
    filename = await article_service.attach_body_image(db, assets, article, user, upload)
    return {"file": filename}


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------

@router.post("/{slug}/upvote", response_model=ArticleEnvelope)
async def upvote(slug: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    article = await votes.upvote(db, user, await article_service.get_article(db, slug))
    return {"article": await article_service.article_view(db, article, user)}


@router.delete("/{slug}/upvote", response_model=ArticleEnvelope)
async def cancel_upvote(slug: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    article = await votes.cancel_upvote(db, user, await article_service.get_article(db, slug))
    return {"article": await article_service.article_view(db, article, user)}


@router.post("/{slug}/downvote", response_model=ArticleEnvelope)
async def downvote(slug: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    article = await votes.downvote(db, user, await article_service.get_article(db, slug))
    return {"article": await article_service.article_view(db, article, user)}


@router.delete("/{slug}/downvote", response_model=ArticleEnvelope)
async def cancel_downvote(slug: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    article = await votes.cancel_downvote(db, user, await article_service.get_article(db, slug))
    return {"article": await article_service.article_view(db, article, user)}


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

@router.get("/{slug}/articleComments", response_model=CommentListEnvelope)
async def list_comments(slug: str, db: AsyncSession = Depends(get_db)):
    article = await article_service.get_article(db, slug)
    return {"articleComments": await comment_service.list_comments(db, article)}


@router.post("/{slug}/articleComments", status_code=201, response_model=CommentEnvelope)
async def add_comment(
    slug: str,
    data: CommentCreateEnvelope,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article(db, slug)
    comment = await comment_service.attach(db, article, user, data.articleComment.body)
    return {"articleComment": comment}


@router.delete("/{slug}/articleComments/{comment_id}", status_code=204)
async def remove_comment(
    slug: str,
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article(db, slug)
    comment = await comment_service.get_comment(db, article, comment_id)
    await comment_service.detach(db, article, comment, user)
