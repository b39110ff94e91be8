#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import json
import os
import signal
import sys
import time
from pathlib import Path

# Add project root to sys.path for the "smileframes" package
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from smileframes.config import ExtractorConfig  # noqa: E402
from smileframes.detectors.face_detector import FaceDetectionService  # noqa: E402
from smileframes.errors import SmileFramesError  # noqa: E402
from smileframes.models import ProcessingOptions, ProcessingStats  # noqa: E402
from smileframes.pipeline import SmileExtractor  # noqa: E402
from smileframes.utils.fs import ensure_dir, save_frames, write_json  # noqa: E402
from smileframes.utils.logging import setup_logger  # noqa: E402


def main() -> None:
    ap = argparse.ArgumentParser(description="Extract genuine smile frames from a video")
    ap.add_argument("--input", required=True, help="Input video file")
    ap.add_argument("--out", required=True, help="Output directory for frames and results.json")
    ap.add_argument("--max-extract", type=int, default=5, help="Maximum frames to keep")
    ap.add_argument("--extract-all", action="store_true", help="Keep every distinct smile, ignoring --max-extract")
    ap.add_argument("--sample-fps", type=float, help="Override the adaptive sample rate")
    ap.add_argument("--status-json", help="Optional status.json path to write progress")
    ap.add_argument("--log-level", default=None, help="Logging level (default: SMILEFRAMES_LOG_LEVEL or INFO)")
    args = ap.parse_args()

    logger = setup_logger(args.log_level)
    out_root = ensure_dir(args.out)

    config = ExtractorConfig.from_env()
    config.show_progress = True
    if args.sample_fps is not None:
        config.sampling.sample_fps = args.sample_fps
    options = ProcessingOptions(extract_all=args.extract_all, max_extract=args.max_extract)

    def write_status(stats: ProcessingStats) -> None:
        if not args.status_json:
            return
        try:
            pct = 100.0 * stats.processed_frames / max(1, stats.total_frames)
            data = {
                "total_frames": stats.total_frames,
                "processed_frames": stats.processed_frames,
                "smiling_faces": stats.smiling_faces,
                "is_processing": stats.is_processing,
                "percent": round(pct, 2),
                "timestamp": time.time(),
            }
            p = Path(args.status_json)
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(json.dumps(data), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not write status file: {e}")

    extractor = SmileExtractor(FaceDetectionService(), config)

    async def _run():
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, extractor.stop)
        except (NotImplementedError, RuntimeError):
            pass
        return await extractor.process_video(args.input, options, on_progress=write_status)

    try:
        frames = asyncio.run(_run())
    except SmileFramesError as e:
        logger.error(str(e))
        raise SystemExit(1)

    paths = save_frames(frames, out_root)
    write_json(
        out_root / "results.json",
        {
            "source": os.path.abspath(args.input),
            "options": {"extract_all": options.extract_all, "max_extract": options.max_extract},
            "frames": [dict(f.to_dict(), path=p.name) for f, p in zip(frames, paths)],
        },
    )
    logger.info(f"Saved {len(frames)} smile frames to {out_root}")


if __name__ == "__main__":
    main()
