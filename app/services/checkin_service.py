"""Check-in service: records a visit to a known café."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from app.adapters.store.base import CAFES_TABLE, CHECKINS_TABLE, AbstractStore, Row
from app.core.errors import NotFoundAppError, ValidationAppError

logger = logging.getLogger(__name__)


class CheckInService:
    """Records visits to cafés already present in the store.

    Attributes:
        store: Store holding ``cafes`` and ``checkins``.
    """

    def __init__(
        self,
        store: AbstractStore,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self._clock = clock

    def check_in(self, cafe_id: str) -> Row:
        """Record a check-in for ``cafe_id`` and return the stored row.

        Raises:
            ValidationAppError: If cafe_id is blank.
            NotFoundAppError: If no café has this id.
            StoreUnavailableAppError: If the store fails.
        """
        cafe_id = (cafe_id or "").strip()
        if not cafe_id:
            raise ValidationAppError(code="invalid_cafe_id", message="Missing or invalid cafe_id")

        if self.store.get(CAFES_TABLE, "id", cafe_id) is None:
            raise NotFoundAppError(
                code="cafe_not_found",
                message="Cafe not found",
                details={"cafe_id": cafe_id},
            )

        check_in = self.store.insert(CHECKINS_TABLE, {"cafe_id": cafe_id, "created_at": self._clock()})
        logger.info("checkin.created", extra={"cafe_id": cafe_id, "checkin_id": check_in["id"]})
        return check_in
