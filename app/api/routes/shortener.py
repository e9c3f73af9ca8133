from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import schemas
from app.api.dependencies import get_base_url, get_shortener_service
from app.db.session import get_db
from app.services.exceptions import (
    AliasTakenError,
    CodeSpaceExhaustedError,
    InvalidShortCodeError,
    MaliciousURLError,
    StoreUnavailableError,
    URLNotFoundError,
    URLValidationError,
)
from app.services.shortener import ShortenedURLService

router = APIRouter(tags=["shortener"])


def client_ip(request: Request) -> Optional[str]:
    """Client address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()[:45] or None
    return request.client.host if request.client else None


@router.post(
    "/shorten",
    response_model=schemas.ShortenResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"model": schemas.ShortenResponse, "description": "Existing short code reused"},
        400: {"model": schemas.ErrorResponse, "description": "Invalid URL, alias or expiration"},
        403: {"model": schemas.ErrorResponse, "description": "URL flagged as malicious"},
        409: {"model": schemas.ErrorResponse, "description": "Alias already taken"},
        503: {"model": schemas.ErrorResponse, "description": "Store unavailable"}
    }
)
async def shorten_url(
    payload: schemas.ShortenRequest,
    request: Request,
    response: Response,
    alias: Optional[str] = Query(None, description="Custom alias, overrides the body field"),
    db: AsyncSession = Depends(get_db),
    shortener_service: ShortenedURLService = Depends(get_shortener_service),
    base_url: str = Depends(get_base_url)
):
    custom_alias = alias or payload.alias or None
    try:
        result = await shortener_service.shorten(
            db=db,
            long_url=payload.long_url,
            expires_in=payload.expires_in,
            creator_ip=client_ip(request),
            custom_alias=custom_alias
        )
    except AliasTakenError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MaliciousURLError as e:
        logger.warning(f"Refused malicious URL from {client_ip(request)}")
        raise HTTPException(status_code=403, detail=str(e))
    except URLValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (StoreUnavailableError, CodeSpaceExhaustedError) as e:
        raise HTTPException(status_code=503, detail=str(e))

    if not result.created:
        response.status_code = status.HTTP_200_OK

    return schemas.ShortenResponse(
        short_url=f"{base_url}/{result.short_code}",
        short_code=result.short_code,
        long_url=result.long_url,
        expires_in=payload.expires_in if result.created else None,
        custom_alias=result.is_custom_alias
    )


@router.get(
    "/stats/{short_code}",
    response_model=schemas.StatsResponse,
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Malformed short code"},
        404: {"model": schemas.ErrorResponse, "description": "URL not found"}
    }
)
async def get_url_stats(
    short_code: str = Path(..., description="The short code of the URL"),
    db: AsyncSession = Depends(get_db),
    shortener_service: ShortenedURLService = Depends(get_shortener_service)
):
    try:
        stats = await shortener_service.get_stats(db, short_code)
    except InvalidShortCodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except URLNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return schemas.StatsResponse(stats=schemas.URLStats(**stats.model_dump()))
