"""URL redirection endpoint."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import RedirectResponse

from app.api.dependencies import get_shortener_service
from app.db.session import get_db
from app.services.exceptions import (
    InvalidShortCodeError,
    StoreUnavailableError,
    URLNotFoundError,
)
from app.services.shortener import ShortenedURLService

router = APIRouter(tags=["redirect"])

REDIRECT_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
}


@router.get(
    "/{short_code}",
    response_class=RedirectResponse,
    status_code=status.HTTP_302_FOUND
)
async def redirect_to_long_url(
    short_code: str,
    db: AsyncSession = Depends(get_db),
    shortener_service: ShortenedURLService = Depends(get_shortener_service)
):
    """Redirect to the long URL; the click is counted by the service."""
    try:
        long_url = await shortener_service.resolve(db, short_code)
    except InvalidShortCodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except URLNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return RedirectResponse(
        url=long_url,
        status_code=status.HTTP_302_FOUND,
        headers=REDIRECT_HEADERS
    )
