from typing import Any

from fastapi import APIRouter, Body, Header, HTTPException, Query
from starlette import status

from predictions.models import (
    PredictionCreatedResponse,
    PredictionListResponse,
    PredictionsDeletedResponse,
)
from predictions.services.prediction import (
    ForbiddenError,
    InternalError,
    InvalidInputError,
    PredictionService,
)

SERVER_ERROR = "Server error"


def make_prediction_router(prediction_service: PredictionService) -> APIRouter:
    router = APIRouter(prefix="/api/predictions", tags=["predictions"])

    @router.post(
        "",
        status_code=status.HTTP_201_CREATED,
        response_model=PredictionCreatedResponse,
        summary="Save a prediction",
    )
    async def create_prediction(
        payload: Any = Body(None, description="Prediction fields"),
    ):
        try:
            prediction = await prediction_service.create(payload)
        except InvalidInputError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": e.message, "field": e.field},
            )
        except InternalError:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=SERVER_ERROR,
            )
        return PredictionCreatedResponse(
            id=prediction.id, created_at=prediction.created_at
        )

    @router.get(
        "",
        response_model=PredictionListResponse,
        summary="List the most recent predictions",
    )
    async def list_predictions(
        limit: str | None = Query(None, description="1-200, defaults to 50"),
    ):
        try:
            results = await prediction_service.list_latest(limit)
        except InternalError:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=SERVER_ERROR,
            )
        return PredictionListResponse(results=results)

    @router.delete(
        "",
        response_model=PredictionsDeletedResponse,
        summary="Delete every prediction",
    )
    async def delete_predictions(
        x_admin_key: str | None = Header(None, description="Admin secret"),
        admin_key: str | None = Query(
            None, alias="adminKey", description="Admin secret"
        ),
    ):
        try:
            deleted_count = await prediction_service.delete_all(
                x_admin_key or admin_key
            )
        except ForbiddenError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden"
            )
        except InternalError:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=SERVER_ERROR,
            )
        return PredictionsDeletedResponse(deleted_count=deleted_count)

    return router
