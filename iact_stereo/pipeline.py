"""Wire the analysis steps together: clean -> parametrize -> classify -> reconstruct.

Also holds the event aggregation barrier used when Moments arrive one image
at a time (stream processing) instead of one event at a time, and the CSV
writer for the final table.
"""

import logging
import os
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from .classifier import GammaClassifier
from .cleaning import clean_event
from .config import DEFAULT_CONFIG, resolve_config
from .containers import ArrayEvent, MonteCarloTruth, ReconstructedEvent
from .hillas import hillas_parameters_from_images
from .instrument import TelescopeArray
from .stereo import StereoReconstructor

logger = logging.getLogger(__name__)

__all__ = ["EventResult", "process_event", "process_events", "EventAggregator", "write_events_csv",
           "CSV_COLUMNS", "MC_CSV_COLUMNS"]

CSV_COLUMNS = ["id", "direction_x", "direction_y", "direction_z", "position_x", "position_y", "prediction"]
MC_CSV_COLUMNS = ["id", "mc_alt", "mc_az", "mc_energy", "mc_core_x", "mc_core_y",
                  "alt", "az", "core_x", "core_y", "prediction"]


@dataclass(frozen=True)
class EventResult:
    event: ReconstructedEvent
    moments: list = field(default_factory=list)
    gammaness: float = float("nan")
    mc: Optional[MonteCarloTruth] = None
    # ids of images skipped because their telescope is not in the array
    unknown_telescopes: tuple = ()


def process_event(event: ArrayEvent, array: TelescopeArray, config: dict = None,
                  classifier: Optional[GammaClassifier] = None) -> EventResult:
    """Run the full chain on one event.

    Images of telescopes missing from `array` are dropped one by one and
    reported in `EventResult.unknown_telescopes`; the other images of the
    event are processed as usual.
    """
    config = resolve_config(config)
    unknown = []
    images = clean_event(event, array, config, unknown=unknown)
    moments = hillas_parameters_from_images(images, min_pixels=config["min_pixels"])

    gammaness = np.nan
    if classifier is not None:
        gammaness = classifier.predict_event(moments, n_triggered=event.n_triggered)

    reference = (event.mc.alt, event.mc.az) if event.mc is not None else None
    reco = StereoReconstructor(array, config).reconstruct(
        moments, event.pointing_alt, event.pointing_az, reference=reference
    )
    if reco.event_id is None:
        # no image at all, keep the id for bookkeeping
        reco = ReconstructedEvent.invalid(event.event_id, 0, reco.reason)
    return EventResult(reco, moments, gammaness, event.mc, tuple(unknown))


def process_events(events, array: TelescopeArray, config: dict = None,
                   classifier: Optional[GammaClassifier] = None, n_jobs: int = 1,
                   progress: bool = True) -> list:
    """Process many events, in parallel with joblib when ``n_jobs != 1``.

    Events are independent, so the result order follows the input order but
    nothing else depends on it.
    """
    config = resolve_config(config)
    events = tqdm(events, desc="Reconstructing events", disable=not progress)
    start = time.perf_counter()
    results = Parallel(n_jobs=n_jobs)(
        delayed(process_event)(event, array, config, classifier) for event in events
    )
    elapsed = time.perf_counter() - start
    n_valid = sum(r.event.valid for r in results)
    logger.info("Reconstructed %d events (%d valid) in %.2f s", len(results), n_valid, elapsed)
    n_unknown = sum(len(r.unknown_telescopes) for r in results)
    if n_unknown:
        logger.error("%d images of unknown telescopes were skipped", n_unknown)
    return results


@dataclass
class _Window:
    opened: float
    expected: int
    pointing: tuple
    reference: Optional[tuple]
    moments: list = field(default_factory=list)


class EventAggregator:
    """Collect Moments per event and reconstruct each event exactly once.

    An event closes when `expected` Moments arrived or, at the latest, when
    its window of `window_seconds` has passed (checked in `add` and
    `expire`). Moments arriving for an already closed event are dropped and
    counted in `n_late`. Only the ids of the last `max_closed` closed events
    are remembered for that check.
    """

    def __init__(self, reconstructor: StereoReconstructor, window_seconds: float = None,
                 clock=time.monotonic, max_closed: int = 10000):
        self.reconstructor = reconstructor
        self.window_seconds = DEFAULT_CONFIG["window_seconds"] if window_seconds is None else window_seconds
        self.clock = clock
        self.max_closed = max_closed
        self._pending = {}
        self._closed = OrderedDict()
        self.n_late = 0

    @property
    def n_pending(self) -> int:
        return len(self._pending)

    @property
    def n_closed_tracked(self) -> int:
        return len(self._closed)

    def add(self, moments, pointing, expected: int, reference=None) -> list:
        """Add the Moments of one image.

        Returns the events closed by this call: the image's own event if it
        is now complete, plus every window that expired meanwhile. A late
        image is dropped, but expired windows are still returned.

        Raises UnknownTelescope, before touching any window, when the image
        belongs to a telescope outside the array.
        """
        self.reconstructor.array.telescope(moments.telescope_id)
        event_id = moments.event_id
        if event_id in self._closed:
            self.n_late += 1
            logger.warning("Dropping late image of telescope %s for closed event %s",
                           moments.telescope_id, event_id)
            return self.expire()

        window = self._pending.get(event_id)
        if window is None:
            window = _Window(self.clock(), expected, tuple(pointing), reference)
            self._pending[event_id] = window
        window.moments.append(moments)

        closed = []
        if len(window.moments) >= window.expected:
            closed.append(self._close(event_id))
        return closed + self.expire()

    def expire(self) -> list:
        """Close all windows older than `window_seconds`, possibly with partial data."""
        now = self.clock()
        stale = [eid for eid, w in self._pending.items() if now - w.opened >= self.window_seconds]
        for event_id in stale:
            window = self._pending[event_id]
            logger.debug("Window of event %s expired with %d/%d images",
                         event_id, len(window.moments), window.expected)
        return [self._close(event_id) for event_id in stale]

    def flush(self) -> list:
        """Close every pending window."""
        return [self._close(event_id) for event_id in list(self._pending)]

    def _close(self, event_id) -> ReconstructedEvent:
        window = self._pending.pop(event_id)
        self._closed[event_id] = None
        while len(self._closed) > self.max_closed:
            self._closed.popitem(last=False)
        return self.reconstructor.reconstruct(window.moments, *window.pointing, reference=window.reference)


def _row(result: EventResult) -> dict:
    event = result.event
    return {
        "id": event.event_id,
        "direction_x": event.direction[0],
        "direction_y": event.direction[1],
        "direction_z": event.direction[2],
        "position_x": event.impact[0],
        "position_y": event.impact[1],
        "prediction": result.gammaness,
    }


def _mc_row(result: EventResult) -> dict:
    event, mc = result.event, result.mc
    nan = float("nan")
    return {
        "id": event.event_id,
        "mc_alt": mc.alt if mc is not None else nan,
        "mc_az": mc.az if mc is not None else nan,
        "mc_energy": mc.energy if mc is not None else nan,
        "mc_core_x": mc.core_x if mc is not None else nan,
        "mc_core_y": mc.core_y if mc is not None else nan,
        "alt": event.alt,
        "az": event.az,
        "core_x": event.impact[0],
        "core_y": event.impact[1],
        "prediction": result.gammaness,
    }


def write_events_csv(results, path, mc: bool = False) -> int:
    """Write valid reconstructed events with their gammaness; invalid ones are skipped.

    With ``mc=True`` the rows hold the simulated truth next to the
    reconstructed alt / az (rad) and core position instead of the direction
    vector (columns `MC_CSV_COLUMNS`). Returns the number of rows written.
    """
    results = list(results)
    row, columns = (_mc_row, MC_CSV_COLUMNS) if mc else (_row, CSV_COLUMNS)
    df = pd.DataFrame([row(r) for r in results if r.event.valid], columns=columns)
    os.makedirs(os.path.dirname(str(path)) or ".", exist_ok=True)
    df.to_csv(path, index=False)
    logger.info("Saved %d of %d events to %s", len(df), len(results), path)
    return len(df)
