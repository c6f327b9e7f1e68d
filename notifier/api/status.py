# notifier/api/status.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from notifier.errors import NotifierError
from notifier.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["operations"])


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not started")
    return container


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/debug/consumer-status")
async def consumer_status(container: ServiceContainer = Depends(get_container)):
    """
    State of both consumer lanes (startedAt, lastMessageAt, lastError and
    counters) plus the scheduled jobs.
    """
    return container.status()


@router.post("/recommendations/{user_id}")
async def run_recommendations(user_id: str, container: ServiceContainer = Depends(get_container)):
    """Runs the recommendation engine for one user and publishes the result."""
    if container.producer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Recommendation events are disabled (no event bus configured)",
        )
    try:
        recommendation_set = await container.engine.generate_and_send(user_id)
    except NotifierError as e:
        logger.error("On-demand recommendations failed for user %s: %s", user_id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process recommendations: {e}",
        )
    return recommendation_set.model_dump(mode="json")
