import hmac
import logging
import math
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from predictions.models import Prediction, PredictionCreate
from predictions.repositories.prediction import PredictionRepository

log = logging.getLogger("predictions")

DEFAULT_LIMIT = 50
MIN_LIMIT = 1
MAX_LIMIT = 200

FIELD_MESSAGES = {
    "name": "Invalid name",
    "percent": "Invalid percent (0-100)",
    "body": "Invalid request body",
}


class InvalidInputError(Exception):
    def __init__(self, field: str):
        self.field = field
        self.message = FIELD_MESSAGES.get(field, f"Invalid {field}")
        super().__init__(self.message)


class ForbiddenError(Exception):
    pass


class InternalError(Exception):
    pass


def parse_limit(raw: str | None) -> int:
    """Turn the ``limit`` query value into a row count in [1, 200].

    Missing, non-numeric and zero values fall back to the default before
    clamping; fractional values are truncated.
    """
    if raw is None:
        return DEFAULT_LIMIT
    try:
        value = float(raw.strip())
    except ValueError:
        return DEFAULT_LIMIT
    if math.isnan(value) or value == 0:
        value = DEFAULT_LIMIT
    return int(min(MAX_LIMIT, max(MIN_LIMIT, value)))


def validate_prediction(payload: Any) -> PredictionCreate:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidInputError("body")
    try:
        return PredictionCreate.model_validate(payload)
    except ValidationError as e:
        loc = e.errors()[0]["loc"]
        raise InvalidInputError(str(loc[0]) if loc else "body") from e


def utc_now() -> datetime:
    # BSON dates keep milliseconds only
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


class PredictionService:
    def __init__(
        self,
        prediction_repository: PredictionRepository,
        admin_key: str | None = None,
    ):
        self.prediction_repository = prediction_repository
        self.admin_key = admin_key

    @property
    def delete_guarded(self) -> bool:
        return bool(self.admin_key)

    async def create(self, payload: Any) -> Prediction:
        data = validate_prediction(payload)
        now = utc_now()
        document = data.model_dump(by_alias=True)
        document["createdAt"] = now
        document["updatedAt"] = now
        try:
            saved = await self.prediction_repository.insert(document)
        except PyMongoError as e:
            log.error(f"Failed to save prediction: {e}", exc_info=True)
            raise InternalError from e
        return Prediction.from_document(saved)

    async def list_latest(self, limit: str | None = None) -> list[Prediction]:
        count = parse_limit(limit)
        try:
            documents = await self.prediction_repository.find_latest(count)
        except PyMongoError as e:
            log.error(f"Failed to list predictions: {e}", exc_info=True)
            raise InternalError from e
        return [Prediction.from_document(d) for d in documents]

    def check_admin_key(self, supplied: str | None) -> None:
        if not self.delete_guarded:
            return
        if supplied is None or not hmac.compare_digest(
            supplied.encode(), self.admin_key.encode()
        ):
            raise ForbiddenError

    async def delete_all(self, supplied_key: str | None = None) -> int:
        self.check_admin_key(supplied_key)
        try:
            return await self.prediction_repository.delete_all()
        except PyMongoError as e:
            log.error(f"Failed to delete predictions: {e}", exc_info=True)
            raise InternalError from e


def make_prediction_service(
    prediction_repository: PredictionRepository,
    admin_key: str | None = None,
) -> PredictionService:
    return PredictionService(
        prediction_repository=prediction_repository,
        admin_key=admin_key,
    )
