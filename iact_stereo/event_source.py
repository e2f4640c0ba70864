"""Read (and write) array events stored as JSON.

File layout, plain or gzipped::

    {"events": [
        {"event_id": 1,
         "pointing": {"alt": 70.0, "az": 0.0},
         "images": {"1": [...], "4": [...]},
         "mc": {"alt": 70.5, "az": 1.2, "core_x": 50.0, "core_y": -20.0, "energy": 1.3}}
    ]}

A bare list of events is accepted as well. Angles in files are in degrees.
"""

import gzip
import json
import logging
from itertools import islice

import numpy as np

from .containers import ArrayEvent, MonteCarloTruth

logger = logging.getLogger(__name__)

__all__ = ["EventSource", "event_from_dict", "event_to_dict", "write_events"]


def _open(path, mode):
    path = str(path)
    return gzip.open(path, mode) if path.endswith(".gz") else open(path, mode)


def event_from_dict(data: dict) -> ArrayEvent:
    pointing = data.get("pointing", {"alt": 90.0, "az": 0.0})
    mc = None
    if data.get("mc"):
        m = data["mc"]
        mc = MonteCarloTruth(
            alt=np.deg2rad(m["alt"]),
            az=np.deg2rad(m["az"]),
            core_x=m.get("core_x", np.nan),
            core_y=m.get("core_y", np.nan),
            energy=m.get("energy", np.nan),
        )
    images = {int(tel_id): np.asarray(image, dtype=np.float64) for tel_id, image in data["images"].items()}
    return ArrayEvent(
        event_id=int(data["event_id"]),
        pointing_alt=np.deg2rad(pointing["alt"]),
        pointing_az=np.deg2rad(pointing["az"]),
        images=images,
        mc=mc,
    )


def event_to_dict(event: ArrayEvent) -> dict:
    data = {
        "event_id": int(event.event_id),
        "pointing": {"alt": float(np.rad2deg(event.pointing_alt)), "az": float(np.rad2deg(event.pointing_az))},
        "images": {str(tel_id): np.asarray(image).tolist() for tel_id, image in event.images.items()},
    }
    if event.mc is not None:
        data["mc"] = {
            "alt": float(np.rad2deg(event.mc.alt)),
            "az": float(np.rad2deg(event.mc.az)),
            "core_x": float(event.mc.core_x),
            "core_y": float(event.mc.core_y),
            "energy": float(event.mc.energy),
        }
    return data


class EventSource:
    """Iterate over the ArrayEvents of a JSON event file.

    The file is parsed on first iteration; iterating again re-reads it.
    """

    def __init__(self, path, max_events: int = None):
        self.path = path
        self.max_events = max_events

    def _records(self):
        with _open(self.path, "rt") as f:
            data = json.load(f)
        records = data["events"] if isinstance(data, dict) else data
        logger.info("Reading %d events from %s", len(records), self.path)
        return records

    def __iter__(self):
        records = self._records()
        for record in islice(records, self.max_events):
            yield event_from_dict(record)

    def __len__(self):
        n = len(self._records())
        return n if self.max_events is None else min(n, self.max_events)


def write_events(events, path) -> int:
    """Store events in the format read by EventSource. Returns the number written."""
    records = [event_to_dict(e) for e in events]
    with _open(path, "wt") as f:
        json.dump({"events": records}, f)
    logger.info("Wrote %d events to %s", len(records), path)
    return len(records)
