"""Sequential transcription queue with per-item failure isolation."""

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .exceptions import AudioScribeError, EngineUnavailableError, InvalidTransitionError
from .models import ItemStatus, StatusKind, WorkItem
from .transcript_generator import TranscriptGenerator
from .utils import output_path_for

logger = logging.getLogger(__name__)

StatusListener = Callable[[WorkItem], None]

# Legal moves: Pending -> Processing -> Completed | Failed.
_TRANSITIONS = {
    StatusKind.PENDING: (StatusKind.PROCESSING,),
    StatusKind.PROCESSING: (StatusKind.COMPLETED, StatusKind.FAILED),
    StatusKind.COMPLETED: (),
    StatusKind.FAILED: (),
}

class TranscriptionQueue:
    """
    Ordered collection of work items, transcribed one at a time.

    Items are appended as pending and processed in insertion order. At most
    one item is ever processing. A failing item is marked failed with a
    readable reason and the queue moves on to the next pending item.

    Callers may append and read from any thread. Only the driver
    (``process_next``) changes an item's status, and only one driver pass
    runs at a time; a call made while another pass is active returns
    immediately and the active pass picks up the new work.
    """

    def __init__(
        self,
        generator: TranscriptGenerator,
        locale: str,
        on_status_change: Optional[StatusListener] = None,
        on_progress: Optional[Callable[[WorkItem, float], None]] = None
    ):
        self.generator = generator
        self.locale = locale
        self.on_status_change = on_status_change
        self.on_progress = on_progress
        self._items: List[WorkItem] = []
        self._index: Dict[str, WorkItem] = {}
        self._processing_id: Optional[str] = None
        self._driving = False
        self._lock = threading.RLock()

    # --- Read access ---

    @property
    def items(self) -> Tuple[WorkItem, ...]:
        with self._lock:
            return tuple(self._items)

    @property
    def processing_id(self) -> Optional[str]:
        return self._processing_id

    @property
    def is_idle(self) -> bool:
        with self._lock:
            return self._processing_id is None and self._next_pending() is None

    def get(self, item_id: str) -> Optional[WorkItem]:
        with self._lock:
            return self._index.get(item_id)

    def counts(self) -> Dict[StatusKind, int]:
        with self._lock:
            counts = {kind: 0 for kind in StatusKind}
            for item in self._items:
                counts[item.status.kind] += 1
            return counts

    # --- Mutation ---

    def add_file(self, source_path: str, output_path: Optional[str] = None, auto_start: bool = True) -> WorkItem:
        """
        Appends a pending item for an audio file.

        Args:
            source_path: Audio file to transcribe.
            output_path: Transcript destination. Defaults to the source path
                         with the output format's extension.
            auto_start: Run the driver right away if no pass is active.

        Returns:
            The new WorkItem.
        """
        if output_path is None:
            output_path = output_path_for(source_path, self.generator.output_format.file_extension)
        item = WorkItem(source_path=source_path, output_path=output_path)
        with self._lock:
            self._items.append(item)
            self._index[item.id] = item
        logger.info(f"Queued {item.file_name} (id {item.id})")
        self._notify(item)
        if auto_start:
            self.process_next()
        return item

    def process_next(self) -> None:
        """
        Drives the queue until no pending item remains.

        Each item is processed to a terminal status before the next one is
        selected. Returns immediately if another pass is already running.

        Raises:
            EngineUnavailableError: If the engine cannot run at all. The
                current item is marked failed before the error propagates.
        """
        with self._lock:
            if self._driving or self._processing_id is not None:
                return
            self._driving = True

        try:
            while True:
                with self._lock:
                    item = self._next_pending()
                    if item is None:
                        self._driving = False
                        logger.debug("Queue idle.")
                        return
                    self._transition(item, ItemStatus.processing())
                    self._processing_id = item.id
                self._notify(item)
                self._run(item)
        finally:
            with self._lock:
                self._driving = False

    # --- Internals ---

    def _next_pending(self) -> Optional[WorkItem]:
        return next((item for item in self._items if item.status.kind is StatusKind.PENDING), None)

    def _transition(self, item: WorkItem, status: ItemStatus) -> None:
        if status.kind not in _TRANSITIONS[item.status.kind]:
            raise InvalidTransitionError(
                f"Item {item.id} cannot move from {item.status.kind.value} to {status.kind.value}"
            )
        item.status = status

    def _finish(self, item: WorkItem, status: ItemStatus) -> None:
        with self._lock:
            self._transition(item, status)
            self._processing_id = None
        self._notify(item)

    def _notify(self, item: WorkItem) -> None:
        if self.on_status_change is None:
            return
        try:
            self.on_status_change(item)
        except Exception as e:
            # A broken listener must not strand the item or stall the queue.
            logger.error(f"Status listener failed for {item.file_name} ({item.status.description}): {e}", exc_info=True)

    def _report_progress(self, item: WorkItem, ratio: float) -> None:
        item.progress = ratio
        if self.on_progress is None:
            return
        try:
            self.on_progress(item, ratio)
        except Exception as e:
            logger.error(f"Progress listener failed for {item.file_name}: {e}", exc_info=True)

    def _run(self, item: WorkItem) -> None:
        logger.info(f"Processing {item.file_name} -> {item.output_path}")
        try:
            self.generator.generate(
                item.source_path,
                item.output_path,
                self.locale,
                on_progress=lambda ratio: self._report_progress(item, ratio)
            )
        except EngineUnavailableError as e:
            logger.critical(f"Recognition engine unavailable: {e}")
            self._finish(item, ItemStatus.failed(str(e)))
            raise
        except KeyboardInterrupt:
            logger.warning(f"Transcription of {item.file_name} interrupted by user.")
            self._finish(item, ItemStatus.failed("Cancelled by user"))
            raise
        except AudioScribeError as e:
            logger.error(f"Transcription failed for {item.file_name}: {e}")
            self._finish(item, ItemStatus.failed(str(e)))
        except Exception as e:
            logger.error(f"An unexpected error occurred processing '{item.file_name}': {e}", exc_info=True)
            self._finish(item, ItemStatus.failed(f"Unexpected error: {e}"))
        else:
            item.progress = 1.0
            logger.info(f"Completed {item.file_name}")
            self._finish(item, ItemStatus.completed())
