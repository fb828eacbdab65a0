from fastapi import APIRouter, Depends, HTTPException

from app.db import get_db
from app.deps import get_owner_id
from app.models.stats import StatsOut, StudyTimeResponse, StudyTimeUpdate
from app.services.stats import get_stats, record_study_time
from app.utils.time import now_local

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=StatsOut)
async def my_stats(owner_id: str = Depends(get_owner_id)):
    return await get_stats(get_db(), owner_id=owner_id, now=now_local())


@router.get("/{user_id}", response_model=StatsOut)
async def user_stats(user_id: str, owner_id: str = Depends(get_owner_id)):
    if user_id != owner_id:
        raise HTTPException(status_code=403, detail="Stats belong to another user")
    return await get_stats(get_db(), owner_id=owner_id, now=now_local())


@router.post("/update-time", response_model=StudyTimeResponse)
async def update_time(payload: StudyTimeUpdate, owner_id: str = Depends(get_owner_id)):
    result = await record_study_time(get_db(), owner_id=owner_id, minutes=payload.minutes, now=now_local())
    return {"success": True, **result}
