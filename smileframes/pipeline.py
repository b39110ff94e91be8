from __future__ import annotations

import asyncio
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, List, Optional

import numpy as np
from tqdm import tqdm

from smileframes.clustering.temporal_cluster import TemporalClusterer
from smileframes.config import ExtractorConfig, VideoConfig
from smileframes.detectors.face_detector import FaceDetector
from smileframes.errors import (
    ConcurrentRunRejected,
    DetectionUnavailable,
    OverallTimeout,
    SampleError,
    SeekFailed,
    SeekTimeout,
)
from smileframes.models import ExtractedFrame, ProcessingOptions
from smileframes.quality.smile import SmileScorer
from smileframes.results import ProgressCallback, ResultAccumulator
from smileframes.utils.image import encode_jpeg, to_analysis_raster
from smileframes.utils.logging import setup_logger
from smileframes.utils.video import SampleSchedule, VideoInput, VideoSource, open_video


logger = setup_logger()

SourceOpener = Callable[[VideoInput, VideoConfig], VideoSource]


class SmileExtractor:
    """
    Scans a video on a time grid and keeps the best genuine-smile frames.

    One run at a time. All blocking work of a run (open, seek/decode, detect,
    encode, release) goes through a single worker thread, so samples are
    strictly sequential and teardown always follows in-flight work.
    """

    def __init__(
        self,
        detector: FaceDetector,
        config: Optional[ExtractorConfig] = None,
        open_source: SourceOpener = open_video,
    ) -> None:
        self.detector = detector
        self.config = config or ExtractorConfig()
        self._open_source = open_source
        self.scorer = SmileScorer(self.config.smile, self.config.geometry)
        self.clusterer = TemporalClusterer(self.config.cluster.min_gap, self.config.cluster.window)
        self._is_processing = False
        self._should_stop = False

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    def stop(self) -> None:
        """Ask the active run to finish at its next suspension point."""
        self._should_stop = True

    async def process_video(
        self,
        source: VideoInput,
        options: Optional[ProcessingOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ExtractedFrame]:
        if self._is_processing:
            raise ConcurrentRunRejected("Video processing already in progress")
        self._is_processing = True
        self._should_stop = False
        options = options or ProcessingOptions()
        try:
            return await asyncio.wait_for(
                self._run(source, options, on_progress),
                timeout=self.config.overall_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Video processing exceeded {self.config.overall_timeout:.0f}s")
            raise OverallTimeout(
                "Video processing timeout. This can happen with very large files. "
                "Try processing in smaller segments."
            ) from e
        finally:
            self._is_processing = False

    async def _run(
        self,
        source: VideoInput,
        options: ProcessingOptions,
        on_progress: Optional[ProgressCallback],
    ) -> List[ExtractedFrame]:
        loop = asyncio.get_running_loop()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="smileframes")
        opening: Optional[Future] = None
        accumulator: Optional[ResultAccumulator] = None
        self.clusterer.clear()
        try:
            opening = executor.submit(self._open_source, source, self.config.video)
            video = await asyncio.wrap_future(opening)
            if self._should_stop:
                logger.info("Stop requested while opening the video")
                return []
            try:
                await loop.run_in_executor(executor, self.detector.initialize)
            except DetectionUnavailable:
                raise
            except Exception as e:
                raise DetectionUnavailable(f"Face detection failed to initialize: {e}") from e
            if self._should_stop:
                logger.info("Stop requested while loading face models")
                return []

            schedule = SampleSchedule.for_duration(video.duration, self.config.sampling)
            accumulator = ResultAccumulator(options, total_frames=schedule.total, on_progress=on_progress)
            logger.info(
                f"Processing {video.duration / 60.0:.1f} minute video at {schedule.fps:g} FPS "
                f"({schedule.total} samples)"
            )
            accumulator.start()

            for t in tqdm(schedule, total=schedule.total, desc="Scanning video", disable=not self.config.show_progress):
                if self._should_stop:
                    logger.info(f"Stop requested at {t:.2f}s")
                    break
                completed = await self._process_sample(loop, executor, video, t, accumulator)
                if not completed:
                    break
                accumulator.record_sample()
                await asyncio.sleep(self.config.sampling.inter_sample_delay)

            results = accumulator.finalize()
            logger.info(
                f"Processed {accumulator.processed_frames}/{schedule.total} samples, "
                f"{len(self.clusterer)} smile clusters -> {len(results)} frames"
            )
            return results
        finally:
            if accumulator is not None:
                accumulator.finish()
            self.clusterer.clear()
            await self._teardown(loop, executor, opening)

    async def _seek(self, loop, executor, video: VideoSource, t: float) -> np.ndarray:
        fut = loop.run_in_executor(executor, video.read_at, t)
        try:
            frame = await asyncio.wait_for(fut, timeout=self.config.video.seek_timeout)
        except asyncio.TimeoutError as e:
            raise SeekTimeout(f"Video seek to {t:.2f}s timed out after {self.config.video.seek_timeout:g}s") from e
        if frame is None:
            raise SeekFailed(f"No frame decoded at {t:.2f}s")
        return frame

    def _detect(self, frame: np.ndarray):
        vc = self.config.video
        raster = to_analysis_raster(frame, vc.max_analysis_width, vc.max_analysis_height)
        return self.detector.detect(raster)

    async def _process_sample(
        self,
        loop,
        executor,
        video: VideoSource,
        t: float,
        accumulator: ResultAccumulator,
    ) -> bool:
        """Evaluate one instant. Returns False if a stop was requested mid-sample."""
        try:
            frame = await self._seek(loop, executor, video, t)
        except SampleError as e:
            logger.warning(f"Skipping sample: {e}")
            return not self._should_stop
        if self._should_stop:
            return False

        try:
            faces = await asyncio.wait_for(
                loop.run_in_executor(executor, self._detect, frame),
                timeout=self.config.detection_timeout,
            )
        except DetectionUnavailable:
            raise
        except asyncio.TimeoutError:
            logger.warning(f"Detection at {t:.2f}s timed out after {self.config.detection_timeout:g}s")
            return not self._should_stop
        except Exception as e:
            logger.warning(f"Detection error at {t:.2f}s: {e}")
            return not self._should_stop
        if self._should_stop:
            return False

        verdict = self.scorer.evaluate_frame(faces)
        if not verdict.has_genuine_smile:
            return True

        h, w = frame.shape[:2]
        extracted = ExtractedFrame(timestamp=float(t), confidence=verdict.best.confidence, image=b"", width=w, height=h)
        cluster = self.clusterer.add(extracted)
        # Only a cluster's representative carries JPEG bytes.
        if cluster.best is extracted:
            image = await loop.run_in_executor(executor, encode_jpeg, frame, self.config.video.jpeg_quality)
            cluster.replace(extracted, replace(extracted, image=image))
        accumulator.update(self.clusterer.best_frames())
        logger.debug(
            f"Smile at {t:.2f}s ({verdict.genuine_faces}/{verdict.faces} faces), "
            f"confidence {extracted.confidence * 100:.1f}%, cluster size {len(cluster)}, "
            f"results {len(accumulator.results)}"
        )
        return not self._should_stop

    async def _teardown(self, loop, executor: ThreadPoolExecutor, opening: Optional[Future]) -> None:
        def _release() -> None:
            # Runs after the open on the same worker, so `opening` is settled here
            # even when the run was cancelled while the source was still opening.
            if opening is None or opening.cancelled() or opening.exception() is not None:
                return
            opening.result().release()

        # Queued behind any in-flight open, seek or detection on the same worker.
        fut = loop.run_in_executor(executor, _release)
        executor.shutdown(wait=False)
        try:
            await asyncio.wait_for(asyncio.shield(fut), timeout=self.config.teardown_timeout)
        except asyncio.TimeoutError:
            logger.warning("Video release still pending; it will complete in the background")
        except Exception as e:
            logger.warning(f"Failed to release video: {e}")
