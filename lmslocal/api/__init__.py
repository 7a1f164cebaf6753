"""HTTP API for the LMSLocal competition server."""

from lmslocal.api.routes import router

__all__ = ["router"]
