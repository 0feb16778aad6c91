"""Registry of named gnuplot sessions and the high level plotting API."""

import os
import re
import shutil
import tempfile
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Union
import pandas as pd
from gpbridge.data.dataset import DatasetBin, DatasetText
from gpbridge.session.process import GnuplotError, GnuplotProcess
from gpbridge.session.specs import (
    AbstractGPCommand,
    GPCommand,
    GPNamedDataset,
    GPPlotCommand,
    GPPlotDataCommand,
    parse_specs,
)
from gpbridge.utils import config
from gpbridge.utils.logger import get_logger
import gpbridge.recipes  # noqa: F401  (registers the implicit recipes)

logger = get_logger(__name__)

USING_CLAUSE_PATTERN = re.compile(r"(.*) using 1")
USER_USING_PATTERN = re.compile(r"\b(u|us|usi|usin|using) +[\d,(]")
PLOT_ELEMENT_SEPARATOR = ", \\\n  "


@dataclass
class Session:
    """
    State of a single named session.

    Attributes:
        sid (str): Session name.
        process (GnuplotProcess | None): The gnuplot process, None in dry mode.
        specs (list): Commands and datasets accumulated since the last reset.
        datasent (list[bool]): Whether the dataset of each spec was already sent.
    """

    sid: str
    process: Optional[GnuplotProcess] = None
    specs: list[AbstractGPCommand] = field(default_factory=list)
    datasent: list[bool] = field(default_factory=list)

    @property
    def is_dry(self) -> bool:
        return self.process is None

    def add_spec(self, spec: AbstractGPCommand) -> None:
        self.specs.append(spec)
        self.datasent.append(False)

    def delete_binaries(self) -> None:
        for spec in self.specs:
            if isinstance(spec, GPPlotDataCommand) and isinstance(spec.data, DatasetBin):
                spec.data.delete()

    def clear(self) -> None:
        self.delete_binaries()
        self.specs.clear()
        self.datasent.clear()


sessions: "OrderedDict[str, Session]" = OrderedDict()


def _resolve(sid: Optional[str]) -> str:
    return config.options.default if sid is None else sid


def _require_process(session: Session) -> GnuplotProcess:
    if session.process is None:
        raise GnuplotError(f"Feature not available in dry mode (session {session.sid!r})")
    return session.process


def get_session(sid: Optional[str] = None) -> Session:
    """Return the session named `sid`, creating it (and its process) if needed."""
    sid = _resolve(sid)
    if sid not in sessions:
        options = config.options
        if options.dry:
            session = Session(sid)
        else:
            session = Session(
                sid,
                GnuplotProcess(
                    sid,
                    cmd=options.cmd,
                    verbose=options.verbose,
                    timeout=options.timeout,
                    term=options.term,
                ),
            )
        if options.init:
            session.add_spec(GPCommand.from_lines(options.init))
        sessions[sid] = session
        logger.debug("Session %r created (dry=%s)", sid, session.is_dry)
    return sessions[sid]


def session_names() -> list[str]:
    return list(sessions.keys())


def reset(sid: Optional[str] = None) -> None:
    session = get_session(sid)
    session.clear()
    if session.process is not None:
        session.process.reset()
    if config.options.init:
        session.add_spec(GPCommand.from_lines(config.options.init))


def quit(sid: Optional[str] = None) -> int:
    """Quit the session `sid` and its gnuplot process (if any); return the exit code."""
    sid = _resolve(sid)
    if sid not in sessions:
        return 0
    session = sessions.pop(sid)
    exit_code = session.process.quit() if session.process is not None else 0
    session.delete_binaries()
    return exit_code


def quit_all() -> None:
    for sid in list(sessions.keys()):
        quit(sid)


def gpexec(cmd: str, sid: Optional[str] = None) -> str:
    """Execute a gnuplot command on the session `sid` and return its output."""
    return _require_process(get_session(sid)).exec(cmd)


# ---------------------------------------------------------------------
def _drop_duplicated_using(source: str, plot_element: str) -> str:
    automatic = USING_CLAUSE_PATTERN.match(source)
    if automatic is not None and USER_USING_PATTERN.search(plot_element):
        return automatic.group(1)
    return source


def _dataset_name(position: int) -> str:
    return f"$data{position + 1}"


def _plot_line(elements: list[str], is3d: bool) -> str:
    keyword = "splot" if is3d else "plot"
    return f"{keyword} \\\n  " + PLOT_ELEMENT_SEPARATOR.join(elements)


def collect_datablocks(session: Session, only_pending: bool = False) -> list[tuple[str, DatasetText]]:
    """Return the `(name, dataset)` pairs of every text dataset in the session."""
    out: list[tuple[str, DatasetText]] = []
    for position, spec in enumerate(session.specs):
        if only_pending and session.datasent[position]:
            continue
        if isinstance(spec, GPNamedDataset):
            out.append((spec.name, spec.data))
        elif isinstance(spec, GPPlotDataCommand) and isinstance(spec.data, DatasetText):
            out.append((_dataset_name(position), spec.data))
    return out


def collect_commands(session: Session, term: str = "", output: str = "") -> list[str]:
    """
    Assemble the gnuplot commands producing the plot of a session.

    Data blocks are referenced by name and must be defined beforehand
    (see `collect_datablocks`).
    """
    commands: list[str] = ["reset"]
    if term:
        commands += ["unset multiplot", f"set term {term}"]
    if output:
        commands.append(f"set output '{output.replace(chr(39), chr(39) * 2)}'")

    slotted = [spec for spec in session.specs if hasattr(spec, "mid")]
    mids = [spec.mid for spec in slotted]
    last_mid = max(mids, default=1)
    for mid in range(1, last_mid + 1):
        positions = [
            position
            for position, spec in enumerate(session.specs)
            if getattr(spec, "mid", None) == mid
        ]
        if not positions:
            commands.append("set multiplot next")
            continue

        elements: list[str] = []
        is3d = False
        for position in positions:
            spec = session.specs[position]
            if isinstance(spec, GPCommand):
                commands.append(spec.cmd)
            elif isinstance(spec, GPPlotCommand):
                elements.append(spec.cmd)
                is3d |= spec.is3d
            elif isinstance(spec, GPPlotDataCommand):
                if isinstance(spec.data, DatasetText):
                    source = _dataset_name(position)
                else:
                    source = _drop_duplicated_using(spec.data.source, spec.cmd).strip()
                elements.append(f"{source} {spec.cmd}".rstrip())
                is3d |= spec.is3d
        if elements:
            commands.append(_plot_line(elements, is3d))

    if last_mid > 1:
        commands.append("unset multiplot")
    if output:
        commands.append("set output")
    return commands


def execall(session: Session, term: str = "", output: str = "") -> None:
    """Send pending data blocks and all commands of `session` to gnuplot."""
    process = session.process
    if process is None:
        return
    former_term = process.terminal() if term else ""

    for position, spec in enumerate(session.specs):
        if session.datasent[position]:
            continue
        if isinstance(spec, GPNamedDataset):
            process.send_data(spec.name, spec.data.data, spec.data.preview)
        elif isinstance(spec, GPPlotDataCommand) and isinstance(spec.data, DatasetText):
            process.send_data(
                _dataset_name(position), spec.data.data, spec.data.preview
            )
        session.datasent[position] = True

    for command in collect_commands(session, term=term, output=output):
        process.exec(command)
    if term:
        process.exec(f"set term {former_term}")


def dispatch(
    *args: Any,
    session: Optional[str] = None,
    append: bool = False,
    defer: bool = False,
    is3d: bool = False,
    **keywords: Any,
) -> str:
    target = get_session(session)
    if not append:
        reset(target.sid)

    for spec in parse_specs(
        *args,
        is3d=is3d,
        preferred_format=config.options.preferred_format,
        **keywords,
    ):
        if is3d and isinstance(spec, (GPPlotCommand, GPPlotDataCommand)):
            spec = replace(spec, is3d=True)
        target.add_spec(spec)

    if not defer:
        execall(target)
    return target.sid


def gp(
    *args: Any,
    session: Optional[str] = None,
    append: bool = False,
    defer: bool = False,
    **keywords: Any,
) -> str:
    """
    Add commands and data to a session, then draw the plot.

    Args:
        *args: See `parse_specs`.
        session: Session name (default session if omitted).
        append: Keep the current content of the session instead of resetting it.
        defer: Do not send anything to gnuplot yet.
        **keywords: Keyword shortcuts such as `xrange=(0, 1)` or `title="..."`.

    Returns:
        str: The session name.
    """
    return dispatch(*args, session=session, append=append, defer=defer, **keywords)


def gsp(
    *args: Any,
    session: Optional[str] = None,
    append: bool = False,
    defer: bool = False,
    **keywords: Any,
) -> str:
    """Same as `gp`, but produces a 3D plot (splot)."""
    return dispatch(
        *args, session=session, append=append, defer=defer, is3d=True, **keywords
    )


# ---------------------------------------------------------------------
def script_text(session: Session, data_directory: Optional[Path] = None) -> str:
    """Return a self-contained gnuplot script reproducing the session plot."""
    lines: list[str] = []
    for name, dataset in collect_datablocks(session):
        lines.append(f"{name} << EOD")
        lines.append(dataset.data)
        lines.append("EOD")

    commands = collect_commands(session)
    if data_directory is not None:
        for spec in session.specs:
            if isinstance(spec, GPPlotDataCommand) and isinstance(spec.data, DatasetBin):
                copied = data_directory / Path(spec.data.file).name
                commands = [
                    command.replace(spec.data.file, str(copied)) for command in commands
                ]
    lines += commands
    return "\n".join(lines) + "\n"


def save_script(path: Union[str, Path], sid: Optional[str] = None) -> Path:
    """
    Save the session as a gnuplot script.

    Binary datasets are copied into a directory named after the script.
    """
    path = Path(path)
    session = get_session(sid)
    binaries = [
        spec.data
        for spec in session.specs
        if isinstance(spec, GPPlotDataCommand) and isinstance(spec.data, DatasetBin)
    ]
    data_directory = None
    if binaries:
        data_directory = path.parent / path.stem
        data_directory.mkdir(parents=True, exist_ok=True)
        for dataset in binaries:
            shutil.copy(dataset.file, data_directory / Path(dataset.file).name)

    path.write_text(script_text(session, data_directory))
    logger.info("Script saved to: %s", path)
    return path


def export(output: Union[str, Path], term: str, sid: Optional[str] = None) -> Path:
    """Render the session plot into `output` using the gnuplot terminal `term`."""
    session = get_session(sid)
    _require_process(session)
    execall(session, term=term, output=str(output))
    logger.info("Plot saved to: %s", output)
    return Path(output)


def write_table(*args: Any, is3d: bool = False, **keywords: Any) -> list[str]:
    """
    Run commands in a temporary session with `set table` and return the table lines.

    Raises:
        GnuplotError: In dry mode, or if gnuplot reports an error.
    """
    if config.options.dry:
        raise GnuplotError("Feature not available in dry mode")
    descriptor, table_path = tempfile.mkstemp(prefix="gpbridge-table-", suffix=".txt")
    os.close(descriptor)
    sid = f"table{os.getpid()}"
    session = get_session(sid)
    try:
        session.clear()
        process = _require_process(session)
        process.reset()
        for spec in parse_specs(
            "set term unknown", f"set table '{table_path}'", *args, is3d=is3d, **keywords
        ):
            if is3d and isinstance(spec, (GPPlotCommand, GPPlotDataCommand)):
                spec = replace(spec, is3d=True)
            session.add_spec(spec)
        execall(session)
        process.exec("unset table")
        return Path(table_path).read_text().splitlines()
    finally:
        quit(sid)
        os.remove(table_path)


# ---------------------------------------------------------------------
def terminal(sid: Optional[str] = None) -> str:
    return _require_process(get_session(sid)).terminal()


def terminals() -> list[str]:
    return _require_process(get_session()).terminals()


def gpvars(sid: Optional[str] = None) -> dict[str, Any]:
    return _require_process(get_session(sid)).gpvars()


def gpmargins(sid: Optional[str] = None) -> dict[str, float]:
    """Left, right, bottom and top margins of the current plot, in screen coordinates."""
    variables = gpvars(sid)
    x_scale = variables["TERM_XSIZE"] / variables["TERM_SCALE"]
    y_scale = variables["TERM_YSIZE"] / variables["TERM_SCALE"]
    return {
        "l": variables["TERM_XMIN"] / x_scale,
        "r": variables["TERM_XMAX"] / x_scale,
        "b": variables["TERM_YMIN"] / y_scale,
        "t": variables["TERM_YMAX"] / y_scale,
    }


def gpranges(sid: Optional[str] = None) -> dict[str, list[float]]:
    """Current X, Y, Z and color box ranges."""
    variables = gpvars(sid)
    return {
        axis: [variables[f"{prefix}_MIN"], variables[f"{prefix}_MAX"]]
        for axis, prefix in (("x", "X"), ("y", "Y"), ("z", "Z"), ("cb", "CB"))
    }


def show_specs(sid: Optional[str] = None) -> pd.DataFrame:
    """Return (and log) an overview of the specs stored in a session."""
    session = get_session(sid)
    rows = []
    for position, spec in enumerate(session.specs):
        rows.append(
            {
                "type": type(spec).__name__,
                "mid": getattr(spec, "mid", None),
                "is3d": getattr(spec, "is3d", None),
                "dataset": type(getattr(spec, "data", None)).__name__
                if hasattr(spec, "data")
                else None,
                "command": getattr(spec, "cmd", getattr(spec, "name", "")),
                "sent": session.datasent[position],
            }
        )
    overview = pd.DataFrame(rows, columns=["type", "mid", "is3d", "dataset", "command", "sent"])
    logger.info("Session id: %s\n%s", session.sid, overview.to_markdown())
    return overview


def stats(sid: Optional[str] = None) -> dict[str, str]:
    """Run gnuplot's `stats` command on every dataset of a session."""
    session = get_session(sid)
    process = _require_process(session)
    execall(session)
    out: dict[str, str] = {}
    for position, spec in enumerate(session.specs):
        if isinstance(spec, GPNamedDataset):
            name, source = spec.name, spec.name
        elif isinstance(spec, GPPlotDataCommand):
            name = _dataset_name(position)
            if isinstance(spec.data, DatasetText):
                source = name
            else:
                source = spec.data.source.strip()
        else:
            continue
        logger.info("sid=%s name=%s source=%s", session.sid, name, source)
        out[name] = process.exec(f"stats {source}")
    return out
