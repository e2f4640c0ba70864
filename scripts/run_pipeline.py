#!/usr/bin/env python3
"""Throughput check: run the full chain over the events of a file, repeated N times."""
import argparse
import logging
import time
from itertools import cycle, islice

from iact_stereo.classifier import GammaClassifier
from iact_stereo.config import load_config
from iact_stereo.event_source import EventSource
from iact_stereo.instrument import TelescopeArray
from iact_stereo.pipeline import process_events


def main():
    ap = argparse.ArgumentParser(description="Benchmark: events per second of clean -> hillas -> reconstruct")
    ap.add_argument("events", help="Event file (.json or .json.gz)")
    ap.add_argument("--array", required=True, help="Telescope array definition")
    ap.add_argument("--classifier", default=None, help="Optional classifier dump (joblib)")
    ap.add_argument("--config", default=None, help="Optional JSON config")
    ap.add_argument("-N", "--n-events", type=int, default=10000, help="Number of events to process")
    ap.add_argument("-j", "--n-jobs", type=int, default=-1, help="joblib workers")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    config = load_config(args.config)
    array = TelescopeArray.from_json(args.array)
    classifier = GammaClassifier.load(args.classifier, array) if args.classifier else None
    events = list(EventSource(args.events))  # read once, then cycle in memory

    start = time.perf_counter()
    results = process_events(islice(cycle(events), args.n_events), array, config,
                             classifier=classifier, n_jobs=args.n_jobs, progress=False)
    elapsed = time.perf_counter() - start

    print(f"Reconstructed {len(results)} events in {elapsed:.1f} s. "
          f"That's {len(results) / elapsed:.0f} events per second")


if __name__ == "__main__":
    main()
