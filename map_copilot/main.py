import logging

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response

from map_copilot.agent.routes import router as agent_router
from map_copilot.services.places import PlacesUpstreamError, fetch_photo

app = FastAPI(title="Map Copilot")
logger = logging.getLogger("uvicorn.error")

app.include_router(agent_router)


@app.get("/places/photo")
async def places_photo(ref: str = Query(..., min_length=1), maxwidth: int = Query(640, ge=64, le=1600)):
    """
    Proxy for the Google Place Photo API.
    Map popups load place photos from here.
    """
    try:
        r = await fetch_photo(ref, maxwidth)
    except PlacesUpstreamError as e:
        logger.error("places photo config error: %s", e)
        raise HTTPException(status_code=500, detail=e.message)
    except Exception:
        logger.exception("places photo request failed")
        raise HTTPException(status_code=500, detail="Upstream error")

    if r.status_code != 200 or not r.content:
        raise HTTPException(status_code=404, detail="Photo not found")

    headers = {"Cache-Control": "public, max-age=86400"}
    return Response(
        content=r.content,
        media_type=r.headers.get("content-type", "image/jpeg"),
        headers=headers,
    )
