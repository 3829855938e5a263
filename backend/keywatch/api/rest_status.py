"""REST endpoints for health, session views, and transcript export."""
from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse
from keywatch.analysis.correlation import nearest_counterpart
from keywatch.services.session_registry import session_registry
from keywatch.session.controller import SessionController
from keywatch.transcript.export import export_filename
from keywatch.core.errors import ExportError
from keywatch.core.logging import logger

router = APIRouter()


async def _get_session(session_id: str) -> SessionController:
    controller = await session_registry.get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return controller


@router.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Status, version, and number of live sessions
    """
    return {
        "status": "ok",
        "version": "0.1.0",
        "sessions": len(await session_registry.list_session_ids())
    }


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    """Session status summary."""
    controller = await _get_session(session_id)
    return controller.state.summary()


@router.get("/sessions/{session_id}/keywords")
async def get_session_keywords(session_id: str):
    """Current keyword set with counts and targets."""
    controller = await _get_session(session_id)
    return {"keywords": controller.keywords.to_list()}


@router.get("/sessions/{session_id}/detections")
async def get_session_detections(session_id: str):
    """
    Recent detections, newest first, each with its nearest counterpart.

    Args:
        session_id: Session identifier

    Returns:
        Detection log and total mention count
    """
    controller = await _get_session(session_id)
    matcher = controller.state.matcher
    detections = []
    for event in reversed(matcher.log):
        item = event.to_dict()
        counterpart = nearest_counterpart(matcher.dataset, event)
        if counterpart is not None:
            other, offset = counterpart
            item["counterpart"] = {"keyword": other.keyword, "offset_seconds": round(offset, 1)}
        detections.append(item)
    return {"detections": detections, "mention_count": matcher.mention_count}


@router.get("/sessions/{session_id}/correlation")
async def get_session_correlation(session_id: str):
    """Chart data derived from the full detection history."""
    controller = await _get_session(session_id)
    return controller.correlation().to_dict()


@router.get("/sessions/{session_id}/export")
async def export_session_transcript(session_id: str):
    """
    Download the session transcript as a text file.

    Raises:
        HTTPException: 404 for an unknown session, 409 when there is no transcript yet
    """
    controller = await _get_session(session_id)
    try:
        text = controller.export_text()
    except ExportError as e:
        raise HTTPException(status_code=409, detail=str(e))

    filename = export_filename(controller.now())
    logger.info(f"Exported transcript for session {session_id} as {filename}")
    return PlainTextResponse(
        text,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
