# routers/health.py
from fastapi import APIRouter, Request

router = APIRouter()

@router.get("/", summary="헬스 체크", tags=["health"])
def root(request: Request):
    queue = getattr(request.app.state, "queue", None)
    return {
        "message": "부재중 전화 자동 진단 FastAPI 동작 중",
        "queue": queue.stats() if queue is not None else None,
    }
