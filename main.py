"""Command line entry point for the vehicle detection tally."""

from __future__ import annotations

import argparse
import logging
from typing import List

from vehicle_tally import DetectionConfig, DetectionMonitor, VehicleDetectionService
from vehicle_tally.errors import VehicleTallyError
from vehicle_tally.imaging import VideoFrameSource

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--mode", choices=["auto", "simulation"], default="auto")
    parser.add_argument("--model", dest="model_path", default="weights/yolov8n.pt")
    parser.add_argument("--device", default=None, help="Inference device, e.g. cpu or cuda")
    parser.add_argument("--confidence", type=float, default=0.3, help="Score threshold")
    parser.add_argument("--history-limit", type=int, default=1000)
    parser.add_argument("--load-timeout", type=float, default=60.0)
    parser.add_argument("--seed", type=int, default=None, help="Simulation random seed")
    parser.add_argument(
        "--placeholder-plates",
        action="store_true",
        help="Attach random placeholder plate strings (not plate recognition)",
    )
    parser.add_argument("--export-dir", default=None, help="Write a JSON export here when done")
    parser.add_argument("-v", "--verbose", action="store_true")

    commands = parser.add_subparsers(dest="command", required=True)

    detect = commands.add_parser("detect", help="Detect vehicles in image files")
    detect.add_argument("images", nargs="+")

    monitor = commands.add_parser("monitor", help="Detect periodically on video frames")
    monitor.add_argument("--video", default=None, help="Video file path")
    monitor.add_argument("--camera", type=int, default=None, help="Camera device index")
    monitor.add_argument("--interval", type=float, default=2.0)
    monitor.add_argument("--cycles", type=int, default=None)

    simulate = commands.add_parser("simulate", help="Tally simulated detections")
    simulate.add_argument("--cycles", type=int, default=10)
    return parser


def build_config(args: argparse.Namespace) -> DetectionConfig:
    return DetectionConfig(
        mode=args.mode,
        model_path=args.model_path,
        device=args.device,
        confidence_threshold=args.confidence,
        history_limit=args.history_limit,
        load_timeout=args.load_timeout,
        placeholder_plates=args.placeholder_plates,
        simulation_seed=args.seed,
        monitor_interval=getattr(args, "interval", 2.0),
    )


def _run_detect(service: VehicleDetectionService, images: List[str]) -> None:
    for image in images:
        try:
            detections = service.detect_path(image)
        except (FileNotFoundError, VehicleTallyError) as exc:
            logger.error("Detection failed for %s: %s", image, exc)
            continue
        logger.info("%s: %d vehicles", image, len(detections))
        for detection in detections:
            logger.info(
                "  %s %.2f at (%.0f, %.0f)",
                detection.category.value,
                detection.confidence,
                detection.bbox.x,
                detection.bbox.y,
            )


def _run_monitor(service: VehicleDetectionService, args: argparse.Namespace) -> None:
    frame_source = None
    if args.video is not None or args.camera is not None:
        frame_source = VideoFrameSource(args.video if args.video is not None else args.camera)
    monitor = DetectionMonitor(service, frame_source, interval=args.interval)
    try:
        monitor.run(max_cycles=args.cycles)
    finally:
        if frame_source is not None:
            frame_source.close()


def _log_summary(service: VehicleDetectionService) -> None:
    summary = service.summary()
    if summary.most_common is not None:
        logger.info("Most common vehicle: %s", summary.most_common.value)
        shares = {
            category.value: round(share, 1)
            for category, share in summary.percentages.items()
            if share
        }
        logger.info("Share of total (%%): %s", shares)
    if summary.rate_per_minute is not None:
        logger.info("Detection rate: %.1f per minute", summary.rate_per_minute)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    service = VehicleDetectionService(build_config(args))
    real = service.initialize()
    logger.info("Detection source: %s", "model" if real else "simulation")

    try:
        if args.command == "detect":
            _run_detect(service, args.images)
        elif args.command == "monitor":
            _run_monitor(service, args)
        else:
            for _ in range(args.cycles):
                service.simulate_frame()

        snapshot = service.snapshot()
        logger.info("Totals: %s", snapshot.as_dict())
        _log_summary(service)
        if args.export_dir:
            service.export_to(args.export_dir)
    finally:
        service.close()


if __name__ == "__main__":
    main()
