from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional

from smileframes.models import ExtractedFrame, ProcessingOptions


class SmileCluster:
    """
    Accepted frames believed to show the same smile event.

    Only the current representative keeps its JPEG bytes; members that lose
    the slot are kept as timestamp/confidence records.
    """

    def __init__(self, frame: ExtractedFrame) -> None:
        self.frames: List[ExtractedFrame] = [frame]
        self.avg_timestamp: float = float(frame.timestamp)

    def _recompute(self) -> None:
        self.avg_timestamp = sum(f.timestamp for f in self.frames) / len(self.frames)

    def _shed_payloads(self) -> None:
        best = self.best
        self.frames = [f if f is best or not f.image else replace(f, image=b"") for f in self.frames]

    def add(self, frame: ExtractedFrame) -> None:
        self.frames.append(frame)
        self._recompute()
        self._shed_payloads()

    def absorb(self, other: "SmileCluster") -> None:
        self.frames.extend(other.frames)
        self.frames.sort(key=lambda f: f.timestamp)
        self._recompute()
        self._shed_payloads()

    def replace(self, old: ExtractedFrame, new: ExtractedFrame) -> None:
        """Swap a member for an updated copy of itself (e.g. once its image is encoded)."""
        for i, f in enumerate(self.frames):
            if f is old:
                self.frames[i] = new
                return
        raise ValueError(f"Frame {old.id} is not a member of this cluster")

    @property
    def best(self) -> ExtractedFrame:
        # Earliest frame wins ties, so a member that lost the slot never regains it.
        best = self.frames[0]
        for f in self.frames[1:]:
            if (f.confidence, -f.timestamp) > (best.confidence, -best.timestamp):
                best = f
        return best

    def nearest_gap(self, timestamp: float) -> float:
        return min(abs(f.timestamp - timestamp) for f in self.frames)

    def __len__(self) -> int:
        return len(self.frames)


class TemporalClusterer:
    """
    Temporal diversity filter plus clustering.

    A frame closer than `min_gap` to an existing member is not a distinct
    result: it joins that member's cluster (merging every cluster it touches)
    and competes for the representative slot. Otherwise it joins the nearest
    cluster whose running-average timestamp is within `window`, or opens a new
    cluster. Members of different clusters stay at least `min_gap` apart.
    """

    def __init__(self, min_gap: float = 1.5, window: float = 4.0) -> None:
        self.min_gap = float(min_gap)
        self.window = float(window)
        self._clusters: List[SmileCluster] = []

    @property
    def clusters(self) -> List[SmileCluster]:
        return list(self._clusters)

    def is_diverse(self, timestamp: float) -> bool:
        return all(c.nearest_gap(timestamp) >= self.min_gap for c in self._clusters)

    def add(self, frame: ExtractedFrame) -> SmileCluster:
        t = float(frame.timestamp)
        conflicts = [c for c in self._clusters if c.nearest_gap(t) < self.min_gap]
        if conflicts:
            target = conflicts[0]
            for other in conflicts[1:]:
                target.absorb(other)
                self._clusters.remove(other)
            target.add(frame)
            return target

        target: Optional[SmileCluster] = None
        for c in self._clusters:
            d = abs(c.avg_timestamp - t)
            if d <= self.window and (target is None or d < abs(target.avg_timestamp - t)):
                target = c
        if target is None:
            target = SmileCluster(frame)
            self._clusters.append(target)
        else:
            target.add(frame)
        return target

    def best_frames(self) -> List[ExtractedFrame]:
        return [c.best for c in self._clusters]

    def clear(self) -> None:
        self._clusters = []

    def __len__(self) -> int:
        return len(self._clusters)


def select_results(frames: Iterable[ExtractedFrame], options: ProcessingOptions) -> List[ExtractedFrame]:
    """Sort by confidence (highest first, earlier timestamp on ties) and apply the cap."""
    ordered = sorted(frames, key=lambda f: (-f.confidence, f.timestamp))
    if not options.extract_all and len(ordered) > options.max_extract:
        return ordered[: options.max_extract]
    return ordered
