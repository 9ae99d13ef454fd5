from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from articlehub.database import get_db
from articlehub.schemas import TagListResponse
from articlehub.services import article_service

router = APIRouter(prefix="/api/tags", tags=["tags"])


@router.get("", response_model=TagListResponse)
async def list_tags(db: AsyncSession = Depends(get_db)):
    return {"tags": await article_service.get_tags(db)}
