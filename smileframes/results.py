from __future__ import annotations

from typing import Callable, Iterable, List, Optional

from smileframes.clustering.temporal_cluster import select_results
from smileframes.models import ExtractedFrame, ProcessingOptions, ProcessingStats
from smileframes.utils.logging import setup_logger


logger = setup_logger()

ProgressCallback = Callable[[ProcessingStats], None]


class ResultAccumulator:
    """Progress counters plus the sorted, capped result list of one run."""

    def __init__(
        self,
        options: ProcessingOptions,
        total_frames: int = 0,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.options = options
        self.total_frames = int(total_frames)
        self.processed_frames = 0
        self.is_processing = False
        self._on_progress = on_progress
        self._results: List[ExtractedFrame] = []

    @property
    def results(self) -> List[ExtractedFrame]:
        return list(self._results)

    def snapshot(self) -> ProcessingStats:
        return ProcessingStats(
            total_frames=self.total_frames,
            processed_frames=self.processed_frames,
            smiling_faces=len(self._results),
            is_processing=self.is_processing,
        )

    def _emit(self) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(self.snapshot())
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def start(self) -> None:
        self.is_processing = True
        self._emit()

    def update(self, best_frames: Iterable[ExtractedFrame]) -> None:
        self._results = select_results(best_frames, self.options)

    def record_sample(self) -> None:
        self.processed_frames += 1
        self._emit()

    def finalize(self) -> List[ExtractedFrame]:
        self._results = select_results(self._results, self.options)
        return list(self._results)

    def finish(self) -> None:
        self.is_processing = False
        self._emit()
