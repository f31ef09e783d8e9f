"""Pair generation endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...errors import CrawlCancelled
from ...schemas.pairs import PairRequest, PairResponse
from ...services.crawl import service as crawl_service

router = APIRouter(prefix="/pairs", tags=["pairs"])


@router.post("/generate", response_model=PairResponse, status_code=status.HTTP_200_OK)
def generate(payload: PairRequest) -> PairResponse:
    try:
        result = crawl_service.generate_pairs(
            payload.origin.to_query(),
            payload.destination.to_query(),
            payload.equipment,
            payload.options,
        )
    except CrawlCancelled as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error generating pairs: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate pairs: {str(exc)}",
        ) from exc
    return PairResponse.from_result(result)


@router.delete("/cache", status_code=status.HTTP_200_OK)
def invalidate_cache() -> dict:
    """Drop cached pairs and reload the city catalog on next request."""
    crawl_service.invalidate_all()
    return {"status": "success", "message": "Pair cache and city catalog cache cleared"}
