#!/usr/bin/env python3
"""Command-line entry point of the alignment/efficiency analysis."""

import argparse
import os
import pathlib

from tbalign.utils.config import load_config, parse_value, set_nested_value
from tbalign.version import __version__


def main(config, tracks, hits, run_id, force, nsigma, log_dir, config_overrides):
    """Main driver for the alignment and efficiency analysis.

    Performs these basic functions:
    - Update the configuration with the command-line arguments
    - Run the two analysis passes

    Parameters
    ----------
    config : str
        Path to the configuration file
    tracks : List[str]
        List of paths to the track prediction files
    hits : List[str]
        List of paths to the sensor hit files
    run_id : int
        ID of the run to analyze
    force : bool
        Force the alignment to be computed from the data
    nsigma : float
        Multiplier applied to the X cut when matching tracks and hits
    log_dir : str
        Path to the directory for storing the outputs
    config_overrides : List[str]
        List of config overrides in the form "key.path=value"

    Returns
    -------
    Dict[int, float]
        Overall efficiency of each sensor
    """
    cfg = load_config(config)
    for block in ("base", "align"):
        cfg.setdefault(block, {})

    # Propagate the configuration parent directory to enable relative paths
    cfg["base"]["parent_path"] = str(pathlib.Path(config).parent)

    # Override the input files
    if tracks is not None or hits is not None:
        reader = cfg.setdefault("io", {}).setdefault("reader", {"name": "text"})
        if tracks is not None:
            reader["track_file"] = tracks
        if hits is not None:
            reader["hit_file"] = hits

    # Override the run and the alignment parameters
    if run_id is not None:
        cfg["base"]["run_id"] = run_id
    if force:
        cfg["align"]["force"] = True
    if nsigma is not None:
        cfg["align"]["nsigma"] = nsigma
    if log_dir is not None:
        cfg["base"]["log_dir"] = log_dir

    # Apply any generic config overrides from --set arguments
    for override in config_overrides or []:
        if "=" not in override:
            raise ValueError(
                f"Invalid --set format: '{override}'. Expected format: 'key.path=value'"
            )

        key_path, value_str = override.split("=", 1)
        set_nested_value(cfg, key_path.strip(), parse_value(value_str.strip()))

    # Import the driver only once the configuration is valid
    from tbalign.main import run

    return run(cfg)


def cli():
    """Parse the command-line arguments and run the analysis."""
    parser = argparse.ArgumentParser(
        description="Telescope/sensor alignment and sensor efficiency analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tbalign -c config.yaml                          Run with a configuration file
  tbalign -c config.yaml --run 12 --force         Force the alignment of run 12
  tbalign -c config.yaml --set align.nsigma=2.0   Override config parameters
""",
    )

    parser.add_argument(
        "--version", "-v", action="version", version=f"tbalign {__version__}"
    )

    parser.add_argument(
        "-c", "--config", required=True, help="Path to the configuration file"
    )

    parser.add_argument(
        "-t", "--tracks", nargs="+", help="Paths to the track prediction files"
    )

    parser.add_argument(
        "-H", "--hits", nargs="+", help="Paths to the sensor hit files"
    )

    parser.add_argument(
        "-r", "--run", type=int, dest="run_id", help="ID of the run to analyze"
    )

    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Compute the alignment from the data even if calibration files exist",
    )

    parser.add_argument(
        "--nsigma", type=float, help="Multiplier applied to the X matching cut"
    )

    parser.add_argument(
        "--log-dir", help="Path to the directory for storing the outputs"
    )

    parser.add_argument(
        "--set",
        action="append",
        dest="config_overrides",
        metavar="KEY=VALUE",
        help="Override any config parameter using dot notation "
        "(e.g., --set align.nsigma=2.0). Can be used multiple times.",
    )

    args = parser.parse_args()
    if not os.path.isfile(args.config):
        parser.error(f"Configuration file not found: {args.config}")

    main(
        args.config,
        args.tracks,
        args.hits,
        args.run_id,
        args.force,
        args.nsigma,
        args.log_dir,
        args.config_overrides,
    )


if __name__ == "__main__":
    cli()
