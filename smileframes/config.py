from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


Bands = Tuple[Tuple[float, float], ...]

MAX_SOURCE_BYTES = 10 * 1024 * 1024 * 1024


@dataclass
class VideoConfig:
    # Analysis raster bounds; export snapshots always use source resolution.
    max_analysis_width: int = 1200
    max_analysis_height: int = 900
    seek_timeout: float = 10.0
    jpeg_quality: int = 98
    max_source_bytes: int = MAX_SOURCE_BYTES
    # Forward seeks up to this many frames are served by grab() instead of a container seek.
    grab_ahead_frames: int = 30


@dataclass
class SamplingConfig:
    sample_fps: Optional[float] = None
    default_fps: float = 2.0
    # (minimum duration in seconds, fps), longest first
    long_video_rates: Tuple[Tuple[float, float], ...] = ((3600.0, 0.5), (1800.0, 1.0))
    inter_sample_delay: float = 0.0

    def rate_for(self, duration: float) -> float:
        if self.sample_fps is not None:
            return float(self.sample_fps)
        for min_duration, fps in self.long_video_rates:
            if duration > min_duration:
                return float(fps)
        return float(self.default_fps)


@dataclass
class GeometryThresholds:
    crinkle_relaxed_ratio: float = 0.40
    crinkle_tight_ratio: float = 0.28
    curvature_full_lift: float = 0.15
    min_reference_distance: float = 1e-6
    width_bands: Bands = ((0.65, 0.30), (0.58, 0.20), (0.52, 0.10))
    curvature_bands: Bands = ((0.60, 0.25), (0.35, 0.17), (0.15, 0.08))
    crinkle_bands: Bands = ((0.60, 0.25), (0.35, 0.17), (0.15, 0.08))
    symmetry_bands: Bands = ((0.95, 0.20), (0.88, 0.14), (0.80, 0.07))


@dataclass
class SmileThresholds:
    learned_weight: float = 0.4
    geometry_weight: float = 0.6
    prefilter_happy: float = 0.2
    min_happy: float = 0.2
    min_geometry: float = 0.45
    min_confidence: float = 0.65
    crinkle_bonus_at: float = 0.6
    crinkle_bonus: float = 0.05
    symmetry_bonus_at: float = 0.95
    symmetry_bonus: float = 0.03
    wide_open_width_at: float = 0.6
    wide_open_openness_at: float = 0.12
    wide_open_bonus: float = 0.04


@dataclass
class ClusterConfig:
    min_gap: float = 1.5
    window: float = 4.0


@dataclass
class ExtractorConfig:
    video: VideoConfig = field(default_factory=VideoConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    geometry: GeometryThresholds = field(default_factory=GeometryThresholds)
    smile: SmileThresholds = field(default_factory=SmileThresholds)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    detection_timeout: float = 30.0
    overall_timeout: float = 1800.0
    teardown_timeout: float = 10.0
    show_progress: bool = False

    @classmethod
    def from_env(cls) -> "ExtractorConfig":
        cfg = cls()
        env = os.environ
        if env.get("SMILEFRAMES_SAMPLE_FPS"):
            cfg.sampling.sample_fps = float(env["SMILEFRAMES_SAMPLE_FPS"])
        cfg.sampling.inter_sample_delay = float(env.get("SMILEFRAMES_SAMPLE_DELAY", cfg.sampling.inter_sample_delay))
        cfg.video.max_analysis_width = int(env.get("SMILEFRAMES_MAX_ANALYSIS_WIDTH", cfg.video.max_analysis_width))
        cfg.video.max_analysis_height = int(env.get("SMILEFRAMES_MAX_ANALYSIS_HEIGHT", cfg.video.max_analysis_height))
        cfg.video.seek_timeout = float(env.get("SMILEFRAMES_SEEK_TIMEOUT", cfg.video.seek_timeout))
        cfg.video.jpeg_quality = int(env.get("SMILEFRAMES_JPEG_QUALITY", cfg.video.jpeg_quality))
        cfg.cluster.min_gap = float(env.get("SMILEFRAMES_MIN_GAP", cfg.cluster.min_gap))
        cfg.cluster.window = float(env.get("SMILEFRAMES_CLUSTER_WINDOW", cfg.cluster.window))
        cfg.detection_timeout = float(env.get("SMILEFRAMES_DETECTION_TIMEOUT", cfg.detection_timeout))
        cfg.overall_timeout = float(env.get("SMILEFRAMES_OVERALL_TIMEOUT", cfg.overall_timeout))
        return cfg
