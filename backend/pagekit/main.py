from contextlib import asynccontextmanager
from pathlib import PurePosixPath

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel
import asyncio

from pagekit.asset_manager import get_asset_manager
from pagekit.config import get_settings
from pagekit.errors import PackagingError, ScrapeInputError, SchemaValidationError, SessionNotFoundError
from pagekit.exporter import EXPORT_MODES, export_template
from pagekit.pipeline import convert_page
from pagekit.session_store import AssetType, is_safe_filename, is_session_id


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: storage directory + cleanup scheduler
    manager = get_asset_manager()
    await manager.initialize()
    yield
    await manager.shutdown()


app = FastAPI(title="pagekit", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".bmp": "image/bmp",
    ".ico": "image/x-icon",
    ".avif": "image/avif",
    ".tiff": "image/tiff",
    ".woff2": "font/woff2",
    ".woff": "font/woff",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",
    ".css": "text/css",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
}

# Max violations returned to the client
MAX_REPORTED_ERRORS = 8


def mime_type_for(filename: str) -> str:
    return MIME_TYPES.get(PurePosixPath(filename).suffix.lower(), "application/octet-stream")


def _require_session_id(session_id: str):
    if not is_session_id(session_id):
        raise HTTPException(status_code=400, detail="Invalid session id")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class ConvertRequest(BaseModel):
    capture: dict
    session_id: str | None = None
    mode: str = "template"  # "template" or "kit"


class ProcessRequest(BaseModel):
    capture: dict
    base_url: str | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/assets/stats")
async def asset_stats():
    return await get_asset_manager().get_stats()


@app.post("/assets/cleanup")
async def asset_cleanup():
    return await get_asset_manager().scheduler.trigger_manual_cleanup()


@app.post("/assets/sessions")
async def create_asset_session(request: ProcessRequest):
    """Create a session and download every asset the capture references."""
    try:
        processed = await get_asset_manager().process_webpage(request.capture, base_url=request.base_url)
    except ScrapeInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        **processed.report.to_dict(),
        "asset_urls": processed.asset_map.as_dict(),
    }


@app.get("/assets/{session_id}/metadata")
async def asset_session_metadata(session_id: str):
    _require_session_id(session_id)
    session = await get_asset_manager().store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return session.model_dump(mode="json")


@app.get("/assets/{session_id}/{asset_type}/{filename}")
async def serve_asset(session_id: str, asset_type: str, filename: str):
    _require_session_id(session_id)
    if asset_type not in {t.value for t in AssetType}:
        raise HTTPException(status_code=400, detail=f"Invalid asset type: {asset_type}")
    if not is_safe_filename(filename):
        raise HTTPException(status_code=400, detail="Invalid filename")

    data = await get_asset_manager().store.get_asset(session_id, asset_type, filename)
    if data is None:
        raise HTTPException(status_code=404, detail="Asset not found")

    headers = {
        "Cache-Control": "public, max-age=3600",
        "X-Session-Id": session_id,
    }
    if asset_type == AssetType.FONTS.value:
        headers["Access-Control-Allow-Origin"] = "*"
    return Response(content=data, media_type=mime_type_for(filename), headers=headers)


@app.delete("/assets/{session_id}")
async def delete_asset_session(session_id: str):
    _require_session_id(session_id)
    deleted = await get_asset_manager().store.delete_session(session_id)
    if not deleted:
        raise HTTPException(status_code=409, detail="Session is locked")
    return {"deleted": True, "session_id": session_id}


@app.post("/convert")
async def convert_endpoint(request: ConvertRequest):
    """
    Convert a captured page into a template. With a session id, image URLs
    are pointed at that session's local copies; kit mode also bundles them.
    """
    if request.mode not in EXPORT_MODES:
        raise HTTPException(status_code=400, detail=f"Unknown mode: {request.mode}")

    manager = get_asset_manager()
    asset_map = None
    if request.session_id:
        _require_session_id(request.session_id)
        if await manager.store.get_session(request.session_id) is None:
            raise HTTPException(status_code=404, detail="Session not found or expired")
        asset_map = await manager.store.asset_url_map(request.session_id)

    try:
        template = await asyncio.to_thread(convert_page, request.capture, asset_map)
    except ScrapeInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SchemaValidationError as e:
        raise HTTPException(status_code=422, detail={
            "message": "Generated template failed validation",
            "errors": e.errors[:MAX_REPORTED_ERRORS],
        })

    if request.mode == "template":
        return template

    assets = []
    if request.session_id:
        try:
            assets = await manager.kit_assets(request.session_id)
        except SessionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
    try:
        result = export_template(template, mode="kit", assets=assets,
                                 min_size_ratio=get_settings().kit_min_size_ratio)
    except PackagingError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )
