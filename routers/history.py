from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from database import get_db
import schemas
from services.comparisons import user_history

router = APIRouter(
    prefix="/history",
    tags=["History"],
)


# ユーザーが実行した比較結果（新しい順）
@router.get("", response_model=list[schemas.HistoryItem])
def read_history(
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(default=None),
):
    return user_history(db, x_user_id)
