"""FastAPI dependencies for watch progress.

Provides dependency injection for:
- Progress service and store
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from starlette.datastructures import State

from .service import ProgressError, ProgressService
from .store import CassandraProgressStore


async def get_progress_service(request: Request) -> ProgressService:
    """Get progress service from app state."""
    service = getattr(request.app.state, "progress_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service not available",
        )
    return service


def get_progress_store(app_state: State) -> CassandraProgressStore | None:
    """Get the progress store from app state (None when storage is down)."""
    return getattr(app_state, "progress_store", None)


ProgressServiceDep = Annotated[ProgressService, Depends(get_progress_service)]


def handle_progress_error(error: ProgressError) -> HTTPException:
    """Convert progress errors to HTTP exceptions."""
    status_map = {
        "progress_not_found": status.HTTP_404_NOT_FOUND,
        "store_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
