"""Dashboard statistics."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin
from app.db.session import get_db

from . import service
from .schemas import TodayStatsResponse

router = APIRouter(prefix="/api/v1/stats", tags=["stats"])


@router.get("/today", response_model=TodayStatsResponse, dependencies=[Depends(require_admin)])
async def get_today_stats(db: AsyncSession = Depends(get_db)) -> TodayStatsResponse:
    return await service.get_today_stats(db)
