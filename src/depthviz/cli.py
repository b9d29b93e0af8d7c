"""Command-line interface for depthviz."""

import argparse
import logging
import sys
from pathlib import Path

from tabulate import tabulate

from depthviz.config import DepthVizConfig, Palette
from depthviz.frame import EffectiveRange
from depthviz.pipeline import BatchResult, build_visualizer
from depthviz.visualization import render_annotated_preview, render_legend

logger = logging.getLogger(__name__)


def init_config(
    source_dir: Path,
    output_dir: str,
    config_path: Path,
) -> DepthVizConfig:
    """Generate a DepthVizConfig for a directory of depth captures.

    Args:
        source_dir: Directory containing per-frame ``.npz`` captures.
        output_dir: Output directory for rendered artifacts.
        config_path: Path where the generated config YAML will be saved.

    Returns:
        The generated DepthVizConfig.

    Raises:
        SystemExit: If the source directory is missing or holds no frames.
    """
    if not source_dir.is_dir():
        print(f"Error: Source directory does not exist: {source_dir}", file=sys.stderr)
        sys.exit(1)

    frame_files = sorted(source_dir.glob("*.npz"))
    if not frame_files:
        print(f"Error: No .npz frames found in {source_dir}", file=sys.stderr)
        sys.exit(1)

    config = DepthVizConfig(
        source_path=str(source_dir.resolve()),
        output_dir=output_dir,
    )
    config.to_yaml(config_path)

    print(f"Found {len(frame_files)} frame(s) in {source_dir}")
    print(f"  first: {frame_files[0].name}")
    print(f"  last:  {frame_files[-1].name}")
    print(f"Config written to {config_path}")
    return config


def format_batch_summary(result: BatchResult) -> str:
    """Render a BatchResult as a grid table."""
    stats = result.statistics
    rows = [
        ["Status", result.status.value],
        ["Frames rendered", result.frames_rendered],
        ["Frames failed", result.frames_failed],
        ["Write failures", result.write_failures],
    ]
    if stats.min_distance is not None:
        rows.extend(
            [
                ["Min distance (m)", f"{stats.min_distance:.2f}"],
                ["Max distance (m)", f"{stats.max_distance:.2f}"],
                ["Mean distance (m)", f"{stats.mean_distance:.2f}"],
            ]
        )
    return tabulate(rows, headers=["Metric", "Value"], tablefmt="grid")


def run_command(
    config_path: Path,
    verbose: bool = False,
    quiet: bool = False,
    fps: float = 0.0,
) -> BatchResult:
    """Execute one extraction batch from a config file.

    Args:
        config_path: Path to the config YAML file.
        verbose: If True, set logging to DEBUG level.
        quiet: If True, suppress the progress bar.
        fps: Frame rate of the source recording (0 = unknown).

    Returns:
        The BatchResult of the run.

    Raises:
        SystemExit: If the config cannot be loaded or the batch did not
            complete.
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    # Silence noisy third-party loggers
    for name in ("matplotlib", "PIL"):
        logging.getLogger(name).setLevel(logging.WARNING)

    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        sys.exit(1)

    try:
        config = DepthVizConfig.from_yaml(config_path)
    except Exception as e:
        print(f"Error: Failed to load config: {e}", file=sys.stderr)
        sys.exit(1)

    if quiet:
        config = config.model_copy(
            update={"runtime": config.runtime.model_copy(update={"quiet": True})}
        )

    visualizer = build_visualizer(config, fps=fps)
    result = visualizer.process_batch(config)

    print(format_batch_summary(result))

    effective_range, viz_config, _ = visualizer.get_latest_calibration()
    image, _ = visualizer.get_latest_preview()
    if config.output_dir and effective_range is not None and image is not None:
        output_dir = Path(config.output_dir)
        render_legend(
            effective_range,
            viz_config.palette,
            output_dir / "legend.png",
            log_scale=viz_config.log_scale,
        )
        render_annotated_preview(
            image,
            effective_range,
            viz_config.palette,
            output_dir / "latest_preview.png",
            title=f"Frame {visualizer.preview.channel.latest_sequence_index()}",
            log_scale=viz_config.log_scale,
        )
        logger.info("Legend written to %s", output_dir / "legend.png")

    if not result.success:
        print(f"Error: {result.message}", file=sys.stderr)
        sys.exit(1)
    return result


def legend_command(
    min_distance: float,
    max_distance: float,
    palette: str,
    output_path: Path,
    log_scale: bool = False,
) -> None:
    """Render a standalone distance legend.

    Args:
        min_distance: Near bound (meters).
        max_distance: Far bound (meters).
        palette: Palette name.
        output_path: Path of the PNG to write.
        log_scale: Whether the legend uses logarithmic spacing.

    Raises:
        SystemExit: If the range or palette is invalid.
    """
    try:
        effective_range = EffectiveRange(min_distance, max_distance)
        resolved = Palette(palette.strip().lower())
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    render_legend(effective_range, resolved, output_path, log_scale=log_scale)
    print(f"Legend written to {output_path}")


def main() -> None:
    """Main entry point for the depthviz CLI."""
    parser = argparse.ArgumentParser(
        prog="depthviz",
        description="Render distance-colored heatmaps from recorded depth sequences.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init subcommand
    init_parser = subparsers.add_parser(
        "init",
        help="Generate config for a depth sequence directory",
    )
    init_parser.add_argument(
        "--source",
        type=Path,
        required=True,
        help="Directory containing per-frame .npz depth captures",
    )
    init_parser.add_argument(
        "--output-dir",
        type=str,
        required=True,
        help="Output directory for rendered artifacts",
    )
    init_parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to output config YAML file (default: config.yaml)",
    )

    # run subcommand
    run_parser = subparsers.add_parser(
        "run",
        help="Render a depth sequence to heatmaps",
    )
    run_parser.add_argument(
        "config",
        type=Path,
        help="Path to config YAML file",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    run_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress the progress bar",
    )
    run_parser.add_argument(
        "--fps",
        type=float,
        default=0.0,
        help="Recording frame rate, used by sampling.target_fps (default: unknown)",
    )

    # legend subcommand
    legend_parser = subparsers.add_parser(
        "legend",
        help="Render a distance legend for a palette and range",
    )
    legend_parser.add_argument("--min", type=float, default=10.0, dest="min_distance")
    legend_parser.add_argument("--max", type=float, default=50.0, dest="max_distance")
    legend_parser.add_argument(
        "--palette",
        type=str,
        default=Palette.JET.value,
        help=f"One of {[p.value for p in Palette]} (default: jet)",
    )
    legend_parser.add_argument("--log-scale", action="store_true")
    legend_parser.add_argument(
        "--output",
        type=Path,
        default=Path("legend.png"),
        help="Output PNG path (default: legend.png)",
    )

    args = parser.parse_args()

    # Dispatch
    if args.command == "init":
        init_config(
            source_dir=args.source,
            output_dir=args.output_dir,
            config_path=args.config,
        )
    elif args.command == "run":
        run_command(
            config_path=args.config,
            verbose=args.verbose,
            quiet=args.quiet,
            fps=args.fps,
        )
    elif args.command == "legend":
        legend_command(
            min_distance=args.min_distance,
            max_distance=args.max_distance,
            palette=args.palette,
            output_path=args.output,
            log_scale=args.log_scale,
        )
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
