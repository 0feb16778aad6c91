import argparse
import logging
import sys
from gpbridge.cli.cli import (
    load_columns,
    plot_columns,
    print_datablock,
    print_description,
    print_palette,
    run_repl,
)
from gpbridge.data.datablock import ShapeMismatchError
from gpbridge.session import manager
from gpbridge.session.process import GnuplotError
from gpbridge.utils import config
from gpbridge.utils.logger import configure_logging, get_logger

logger: logging.Logger


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="gnuplot bridge driver")
    parser.add_argument(
        "--mode",
        type=str,
        choices=["datablock", "plot", "palette", "describe", "repl"],
        default="plot",
        help="Run mode: print a data block, plot, print a palette, describe data, or start a REPL.",
    )
    parser.add_argument(
        "--csv",
        type=str,
        default=None,
        help="Path to a CSV file with the data. Required in datablock and describe modes.",
    )
    parser.add_argument(
        "--columns",
        type=str,
        default=None,
        help="Comma-separated column names to use (all columns if omitted).",
    )
    parser.add_argument(
        "--spec",
        type=str,
        default="",
        help="Plot element applied to the data, e.g. \"w lp t 'data'\".",
    )
    parser.add_argument(
        "--command",
        type=str,
        action="append",
        default=[],
        help="gnuplot command sent before the data (may be repeated).",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Export the plot to this file instead of showing it.",
    )
    parser.add_argument(
        "--term",
        type=str,
        default=None,
        help="Terminal used with --output (default: pngcairo).",
    )
    parser.add_argument(
        "--save-script",
        type=str,
        default=None,
        help="Save the plot as a gnuplot script.",
    )
    parser.add_argument(
        "--palette",
        type=str,
        default="viridis",
        help="Colormap name used in palette mode.",
    )
    parser.add_argument(
        "--linetypes",
        action="store_true",
        help="In palette mode, also print line type definitions.",
    )
    parser.add_argument(
        "--dry",
        action="store_true",
        help="Do not start gnuplot (only scripts and data blocks are produced).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for debug logs, -vv also logs gnuplot traffic).",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional path to write logs to a file.",
    )
    return parser


def parse_arguments(argv=None) -> argparse.Namespace:
    return create_argument_parser().parse_args(argv)


def determine_logging_level(arguments: argparse.Namespace) -> int:
    if hasattr(arguments, "verbose") and arguments.verbose > 0:
        return logging.DEBUG
    return logging.INFO


def initialize_logging(arguments: argparse.Namespace) -> None:
    global logger
    logging_level = determine_logging_level(arguments)
    configure_logging(level=logging_level, log_file=arguments.log_file)
    logger = get_logger(__name__)


def initialize_options(arguments: argparse.Namespace) -> None:
    options = config.load_options()
    if arguments.dry:
        options.dry = True
    if arguments.verbose > 1:
        options.verbose = True
    config.apply_options(config.options, options)


def require_csv(arguments: argparse.Namespace) -> None:
    if not arguments.csv:
        raise ValueError(f"--csv is required in {arguments.mode} mode")


def run_mode(arguments: argparse.Namespace) -> None:
    if arguments.mode == "palette":
        print_palette(arguments.palette, with_linetypes=arguments.linetypes)
        return
    if arguments.mode == "repl":
        run_repl()
        return

    if arguments.mode in ("datablock", "describe"):
        require_csv(arguments)
    dataframe = load_columns(arguments.csv, arguments.columns) if arguments.csv else None

    if arguments.mode == "datablock":
        print_datablock(dataframe)
    elif arguments.mode == "describe":
        print_description(dataframe)
    else:
        plot_columns(
            dataframe,
            commands=arguments.command,
            spec=arguments.spec,
            output=arguments.output,
            term=arguments.term,
            script=arguments.save_script,
        )


def main(argv=None) -> int:
    arguments = parse_arguments(argv)
    initialize_logging(arguments)
    initialize_options(arguments)

    try:
        run_mode(arguments)
    except (GnuplotError, ShapeMismatchError, FileNotFoundError, ValueError, TypeError) as error:
        logger.error("%s", error)
        return 1
    finally:
        manager.quit_all()
    return 0


if __name__ == "__main__":
    sys.exit(main())
