import argparse
import logging
import os

from .analysis import ResolutionAnalyzer
from .classifier import GammaClassifier
from .config import load_config
from .event_source import EventSource
from .instrument import TelescopeArray
from .pipeline import process_events, write_events_csv

logger = logging.getLogger("iact-stereo")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="IACT stereo pipeline: clean -> hillas -> classify -> reconstruct -> csv")
    ap.add_argument("events", help="Event file (.json or .json.gz)")
    ap.add_argument("--array", required=True, help="Telescope array definition (.json or .json.gz)")
    ap.add_argument("--classifier", default=None, help="joblib dump of the gamma/hadron classifier")
    ap.add_argument("--config", default=None, help="JSON file overriding cleaning levels and reconstruction settings")
    ap.add_argument("-o", "--output", default=os.path.join("outputs", "reconstructed_events.csv"),
                    help="Output CSV")
    ap.add_argument("--mc", action="store_true",
                    help="Write simulated truth next to alt / az and core instead of the direction vector")
    ap.add_argument("-n", "--max-events", type=int, default=None, help="Stop after this many events")
    ap.add_argument("-j", "--n-jobs", type=int, default=1, help="Parallel workers (joblib), -1 for all cores")
    ap.add_argument("--plots", default=None, help="Directory for resolution plots (needs MC truth)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = load_config(args.config)
    array = TelescopeArray.from_json(args.array)
    classifier = GammaClassifier.load(args.classifier, array) if args.classifier else None
    events = EventSource(args.events, max_events=args.max_events)

    results = process_events(events, array, config, classifier=classifier, n_jobs=args.n_jobs)
    write_events_csv(results, args.output, mc=args.mc)

    analyzer = ResolutionAnalyzer(results)
    summary = analyzer.summary()
    logger.info("%d/%d events reconstructed, r68 = %.3f deg",
                summary["n_valid"], summary["n_events"], summary["r68_deg"])
    if args.plots:
        analyzer.plot_theta2(out_png=os.path.join(args.plots, "theta2.png"))
        analyzer.plot_resolution_vs_multiplicity(out_png=os.path.join(args.plots, "resolution_vs_multiplicity.png"))
        if classifier is not None:
            analyzer.plot_gammaness(out_png=os.path.join(args.plots, "gammaness.png"))

    unknown = sorted({tel_id for r in results for tel_id in r.unknown_telescopes})
    if unknown:
        logger.error("Telescope ids %s are not in %s, their images were skipped", unknown, args.array)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
