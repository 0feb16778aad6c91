"""Command-line interface logic for the driver modes."""

import logging
import sys
from pathlib import Path
from typing import Callable, Iterable, Optional, TextIO
import pandas as pd
from gpbridge.analysis.palettes import linetypes, palette
from gpbridge.data.datablock import arrays_to_datablock
from gpbridge.session import manager
from gpbridge.session.process import GnuplotError
from gpbridge.utils.logger import get_logger

REPL_PROMPT = "gnuplot> "
REPL_CONTINUATION_PROMPT = "> "
REPL_EXIT_COMMANDS = ("quit", "exit", "q")

logger: logging.Logger = get_logger(__name__)


def load_columns(csv_path: str, columns: Optional[str] = None) -> pd.DataFrame:
    """Read a CSV file and keep the comma-separated `columns` (all if omitted)."""
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found at {path}")
    dataframe = pd.read_csv(path)
    if not columns:
        return dataframe
    names = [name.strip() for name in columns.split(",") if name.strip()]
    missing = [name for name in names if name not in dataframe.columns]
    if missing:
        raise ValueError(f"Unknown column(s): {', '.join(missing)}")
    return dataframe[names]


def print_datablock(dataframe: pd.DataFrame, stream: TextIO = sys.stdout) -> None:
    """Write the data block representation of the columns of `dataframe`."""
    lines = arrays_to_datablock(*(dataframe[column] for column in dataframe.columns))
    stream.write("\n".join(lines) + "\n")


def print_palette(name: str, stream: TextIO = sys.stdout, with_linetypes: bool = False) -> None:
    stream.write(palette(name))
    if with_linetypes:
        stream.write(linetypes(name))


def print_description(dataframe: pd.DataFrame) -> None:
    """Log a summary description of the columns."""
    logger.info("\n--- Data Description ---")
    logger.info("\n%s", dataframe.describe().to_markdown())


def plot_columns(
    dataframe: Optional[pd.DataFrame],
    commands: Iterable[str] = (),
    spec: str = "",
    output: Optional[str] = None,
    term: Optional[str] = None,
    script: Optional[str] = None,
) -> str:
    """
    Plot the columns of `dataframe` on the default session.

    Returns:
        str: The session name.
    """
    args: list = list(commands)
    if dataframe is not None:
        args.append(dataframe)
        if spec:
            args.append(spec)
    elif spec:
        args.append(f"plot {spec}")

    sid = manager.gp(*args, defer=output is not None)
    if script:
        manager.save_script(script, sid)
    if output:
        manager.export(output, term or "pngcairo", sid)
    return sid


def _read_command(
    read_line: Callable[[str], str], prompt: str = REPL_PROMPT
) -> str:
    """Read one command, joining lines ending with a backslash."""
    parts: list[str] = []
    line = read_line(prompt)
    while line.endswith("\\"):
        parts.append(line[:-1])
        line = read_line(REPL_CONTINUATION_PROMPT)
    parts.append(line)
    return "".join(parts)


def run_repl(
    read_line: Callable[[str], str] = input,
    stream: TextIO = sys.stdout,
    sid: Optional[str] = None,
) -> None:
    """Forward commands to a gnuplot session until EOF or `quit`."""
    logger.info("--- gnuplot REPL (session %s) ---", sid or "default")
    while True:
        try:
            command = _read_command(read_line).strip()
        except EOFError:
            stream.write("\n")
            return
        if command in REPL_EXIT_COMMANDS:
            return
        if not command:
            continue
        try:
            output = manager.gpexec(command, sid)
        except GnuplotError as error:
            logger.error("%s", error)
            continue
        if output:
            stream.write(output + "\n")
