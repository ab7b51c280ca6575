"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, constants) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
RATE_LIMIT_DEFAULT = os.getenv("RATE_LIMIT_DEFAULT", "100/15minutes")
RATE_LIMIT_AUTH = os.getenv("RATE_LIMIT_AUTH", "5/15minutes")

if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address, enabled=False)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address, default_limits=[RATE_LIMIT_DEFAULT])

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------
INVALID_CREDENTIALS_RESPONSE = HTTPException(
    status_code=401, detail="Email/username or password is incorrect"
)

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from dline.api.routes.auth import router as auth_router  # noqa: E402
from dline.api.routes.teams import router as teams_router  # noqa: E402
from dline.api.routes.defenders import router as defenders_router  # noqa: E402
from dline.api.routes.lines import router as lines_router  # noqa: E402
from dline.api.routes.games import router as games_router  # noqa: E402
from dline.api.routes.points import router as points_router  # noqa: E402
from dline.api.routes.selected_defenders import router as selected_defenders_router  # noqa: E402
from dline.api.routes.export import router as export_router  # noqa: E402
from dline.api.routes.sockets import router as sockets_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(teams_router)
router.include_router(defenders_router)
router.include_router(lines_router)
router.include_router(games_router)
router.include_router(points_router)
router.include_router(selected_defenders_router)
router.include_router(export_router)
router.include_router(sockets_router)
