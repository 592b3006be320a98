# relay/routers/health.py
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])

@router.get("/", response_class=PlainTextResponse)
async def liveness():
    return "Portfolio Backend is Running"

@router.get("/health")
async def health_root():
    return {"status": "ok"}
