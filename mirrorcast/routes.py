import os

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from mirrorcast.vars import STATIC_DIR

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/", include_in_schema=False)
async def index():
    index_file = os.path.join(STATIC_DIR, "index.html")
    if not os.path.isfile(index_file):
        raise HTTPException(status_code=404, detail="No index page")
    return FileResponse(index_file)
