from fastapi import APIRouter, Depends, Query

from app.db import get_db
from app.deps import get_owner_id
from app.models.review import DueCardsOut, ReviewCreate, ReviewResponse
from app.services.review import card_doc_to_out, list_due_cards, review_card
from app.utils.time import now_local

router = APIRouter(prefix="/api/spaced-repetition", tags=["review"])


@router.post("/review", response_model=ReviewResponse)
async def submit_review(payload: ReviewCreate, owner_id: str = Depends(get_owner_id)):
    update = await review_card(
        get_db(),
        owner_id=owner_id,
        card_id=payload.cardId,
        quality=payload.quality,
        now=now_local(),
    )
    return {
        "interval": update["interval"],
        "nextReviewAt": update["nextReviewAt"],
        "repetitions": update["repetitions"],
        "easeFactor": update["easeFactor"],
    }


@router.get("/due", response_model=DueCardsOut)
async def due(
    limit: int = Query(default=20, ge=1, le=200),
    owner_id: str = Depends(get_owner_id),
):
    docs = await list_due_cards(get_db(), owner_id=owner_id, now=now_local(), limit=limit)
    items = [card_doc_to_out(doc) for doc in docs]
    return {"items": items, "total": len(items)}
