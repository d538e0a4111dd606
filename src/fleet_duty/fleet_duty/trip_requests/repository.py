from __future__ import annotations

from typing import Iterable, Protocol


class TripRequestRepository(Protocol):
    """The slice of trip-request storage the scheduling core reads and links."""

    def count_pending(self) -> int:
        raise NotImplementedError

    def get_requestor_ids(self, request_ids: Iterable[int]) -> list[int]:
        raise NotImplementedError

    def find_scheduled(self, request_ids: Iterable[int], *, exclude_schedule_id: int | None = None) -> set[int]:
        """Ids among ``request_ids`` already linked to another active schedule."""

        raise NotImplementedError

    def mark_scheduled(self, request_ids: Iterable[int], *, schedule_id: int) -> None:
        raise NotImplementedError

    def mark_pending(self, request_ids: Iterable[int]) -> None:
        raise NotImplementedError
