"""
Pagination / checkpoint manager.

Each query gets its own folder under the output directory. ``status.json``
in that folder records the combination's progress and, while the company
listing is being paged, where to resume:

    {
      "combination": "آب",
      "status": "pending",
      "startedAt": "2025-01-01T10:00:00",
      "workerId": "Worker-0",
      "paginationStatus": {
        "currentMinRow": 2001,
        "perPage": 1000,
        "totalProcessed": 2000,
        "isFirstBatch": false,
        "lastUpdated": "2025-01-01T10:02:00"
      }
    }
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from config_schemas import CombinationState, CombinationStatus, PaginationStatus
from credential_store import read_json_file, write_json_file

logger = logging.getLogger(__name__)

STATUS_FILENAME = "status.json"


class CheckpointManager:
    """Reads and writes status.json for every query folder under output_dir"""

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def get_query_folder(self, query: str) -> Path:
        folder = self.output_dir / query
        folder.mkdir(parents=True, exist_ok=True)
        return folder

    def status_path(self, query: str) -> Path:
        return self.output_dir / query / STATUS_FILENAME

    def load_status(self, query: str) -> Optional[CombinationStatus]:
        data = read_json_file(self.status_path(query))
        if not data:
            return None
        try:
            return CombinationStatus.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid status file for {query}: {e}")
            return None

    def _write(self, status: CombinationStatus) -> None:
        write_json_file(self.status_path(status.combination), status.to_json_dict())

    def get_pagination_status(self, query: str) -> Optional[PaginationStatus]:
        """Resume point of an interrupted listing scan, if any"""
        status = self.load_status(query)
        if status is None or status.status == CombinationState.COMPLETED:
            return None
        return status.pagination_status

    def is_completed(self, query: str) -> bool:
        status = self.load_status(query)
        return status is not None and status.status == CombinationState.COMPLETED

    def mark_started(self, query: str, worker_id: Optional[str] = None) -> CombinationStatus:
        self.get_query_folder(query)
        previous = self.load_status(query)
        if previous is not None and previous.status == CombinationState.COMPLETED:
            # a finished scan starts over from the first row
            previous = None

        status = CombinationStatus(
            combination=query,
            status=CombinationState.PENDING,
            worker_id=worker_id,
            pagination_status=previous.pagination_status if previous else None,
        )
        if previous is not None and previous.pagination_status is not None:
            status.started_at = previous.started_at
        self._write(status)
        return status

    def save_pagination_status(self, query: str, min_row: int, per_page: int,
                               total_processed: int, is_first_batch: bool) -> PaginationStatus:
        status = self.load_status(query) or CombinationStatus(combination=query)
        status.pagination_status = PaginationStatus(
            current_min_row=min_row,
            per_page=per_page,
            total_processed=total_processed,
            is_first_batch=is_first_batch,
            last_updated=datetime.now(),
        )
        self._write(status)
        logger.debug(f"Checkpoint for {query}: next row {min_row}, {total_processed} processed")
        return status.pagination_status

    def mark_completed(self, query: str) -> CombinationStatus:
        status = self.load_status(query) or CombinationStatus(combination=query)
        status.status = CombinationState.COMPLETED
        status.completed_at = datetime.now()
        status.error = None
        self._write(status)
        return status

    def mark_failed(self, query: str, error: str) -> CombinationStatus:
        status = self.load_status(query) or CombinationStatus(combination=query)
        status.status = CombinationState.FAILED
        status.error = error
        self._write(status)
        return status

    def reset(self, query: str) -> bool:
        """Forget a query's progress; True if there was any"""
        path = self.status_path(query)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Reset checkpoint for {query}")
        return True
