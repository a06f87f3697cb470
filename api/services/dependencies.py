"""FastAPI dependencies.

Routes receive the wired services through ``Depends(get_pipeline_services)``;
tests replace it with ``app.dependency_overrides``.
"""

from core.services import Services, get_services


def get_pipeline_services() -> Services:
    """Process-wide services (built lazily on the first request)."""
    return get_services()
