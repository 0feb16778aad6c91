"""Management of an external gnuplot process.

Commands are written to gnuplot's stdin. Replies are read from its
stderr (where gnuplot's `print` writes) between two marker lines, so
that the output of each command can be told apart from spontaneous
messages.
"""

import queue
import re
import shlex
import subprocess
import sys
import threading
from typing import Any, Callable, Optional
from gpbridge.utils.logger import get_logger, get_session_logger

logger = get_logger(__name__)

CAPTURE_BEGIN = "GNUPLOT_CAPTURE_BEGIN"
CAPTURE_END = "GNUPLOT_CAPTURE_END"
PAGER_TOKENS = ("Press return for more:",)
MINIMUM_VERSION = (5, 0)
QUIT_TIMEOUT_SECONDS = 5.0
VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)")


class GnuplotError(RuntimeError):
    """gnuplot could not be started, replied with an error, or did not reply."""


def parse_version(text: str) -> tuple[int, int]:
    """Extract `(major, minor)` from the output of `gnuplot --version`."""
    for token in text.split():
        match = VERSION_PATTERN.match(token)
        if match:
            return int(match.group(1)), int(match.group(2))
    raise GnuplotError(f"Can't identify gnuplot version from: {text.strip()!r}")


def gnuplot_version(cmd: str = "gnuplot") -> tuple[int, int]:
    try:
        completed = subprocess.run(
            shlex.split(cmd) + ["--version"],
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as error:
        raise GnuplotError(f"gnuplot executable not found: {cmd}") from error
    if completed.returncode != 0:
        raise GnuplotError(f"An error occurred while running: {cmd} --version")
    return parse_version(completed.stdout)


def parse_gpvars(text: str) -> dict[str, Any]:
    """
    Parse the output of `show var all` into a dictionary.

    The `GPVAL_` prefix is stripped from variable names; quoted values are
    returned as strings, numeric values as int or float.
    """
    out: dict[str, Any] = {}
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("GPVAL_"):
            line = line[len("GPVAL_"):]
        parts = [part.strip() for part in line.split("=")]
        if len(parts) != 2 or not parts[0] or not parts[1]:
            continue
        key, value = parts
        if value.startswith('"'):
            out[key] = value[1:-1] if value.endswith('"') else value[1:]
            continue
        for convert in (int, float):
            try:
                out[key] = convert(value)
                break
            except ValueError:
                continue
        else:
            out[key] = value
    return out


class CaptureChannel:
    """
    Collect the lines of gnuplot replies delimited by capture markers.

    Lines outside a capture are logged. When gnuplot's pager is active the
    end marker may be swallowed, so a new one with a fresh id is requested
    through `resend`; end markers with any other id are stale and ignored.
    """

    _END_OF_REPLY = object()

    def __init__(
        self,
        sid: str,
        resend: Optional[Callable[[str], None]] = None,
        verbose: bool = False,
    ):
        self._log = get_session_logger(__name__, sid)
        self._resend = resend
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._capture_id = 0
        self._saving = False
        self.verbose = verbose
        self.closed = False
        self._stale_replies = 0

    def is_pager_prompt(self, partial_line: str) -> bool:
        if partial_line not in PAGER_TOKENS:
            return False
        self._capture_id += 1
        if self._resend is not None:
            self._resend(f"\nprint '{CAPTURE_END} {self._capture_id}'\n")
        return True

    def feed(self, line: str) -> None:
        if line == CAPTURE_BEGIN:
            self._saving = True
        elif line == f"{CAPTURE_END} {self._capture_id}":
            self._saving = False
            self._capture_id = 0
            self._queue.put(self._END_OF_REPLY)
        elif CAPTURE_END in line:
            pass
        else:
            if line and (self.verbose or not self._saving):
                self._log.info("-> %s", line)
            if self._saving:
                self._queue.put(line)

    def close(self) -> None:
        self.closed = True
        self._queue.put(self._END_OF_REPLY)

    def _next_item(self, timeout: Optional[float]) -> Any:
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty as error:
            raise GnuplotError(
                f"No reply from gnuplot within {timeout} seconds"
            ) from error
        if item is self._END_OF_REPLY and self.closed:
            raise GnuplotError("The gnuplot process terminated while replying")
        return item

    def take_reply(self, timeout: Optional[float] = None) -> list[str]:
        """
        Block until a whole reply has been captured and return its lines.

        A reply that timed out is left unfinished in the queue; its remaining
        lines are discarded up to its end marker before the next reply is read.
        """
        if self.closed and self._queue.empty():
            raise GnuplotError("The gnuplot process is no longer running")
        while self._stale_replies:
            while self._next_item(timeout) is not self._END_OF_REPLY:
                pass
            self._stale_replies -= 1
        lines: list[str] = []
        while True:
            try:
                item = self._next_item(timeout)
            except GnuplotError:
                if not self.closed:
                    self._stale_replies += 1
                raise
            if item is self._END_OF_REPLY:
                return lines
            lines.append(item)


class GnuplotProcess:
    """
    A running gnuplot process bound to a session id.

    Attributes:
        sid (str): The session id, used to tag log records.
        cmd (str): The command used to start gnuplot.
        verbose (bool): Log every command and reply line.
        timeout (float): Seconds to wait for each reply.
        term (str): Terminal set whenever the process is reset.
    """

    def __init__(
        self,
        sid: str,
        cmd: str = "gnuplot",
        verbose: bool = False,
        timeout: float = 30.0,
        term: str = "",
    ):
        version = gnuplot_version(cmd)
        if version < MINIMUM_VERSION:
            raise GnuplotError(
                "gnuplot ver. >= %d.%d is required, but %d.%d was found."
                % (MINIMUM_VERSION + version)
            )

        self.sid = sid
        self.cmd = cmd
        self.verbose = verbose
        self.timeout = timeout
        self.term = term
        self._log = get_session_logger(__name__, sid)
        self._lock = threading.RLock()
        self._process = subprocess.Popen(
            shlex.split(cmd),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        self._channel = CaptureChannel(sid, resend=self._write, verbose=verbose)
        self._readers = [
            threading.Thread(target=self._read_errors, daemon=True),
            threading.Thread(target=self._forward_output, daemon=True),
        ]
        for reader in self._readers:
            reader.start()
        self._log.debug("Started gnuplot %d.%d (pid %d)", *version, self._process.pid)

        self.exec("set encoding utf8")
        self.reset()

    def _read_errors(self) -> None:
        stream = self._process.stderr
        line = ""
        try:
            while True:
                char = stream.read(1)
                if char == "":
                    break
                if char == "\r":
                    continue
                if char == "\n":
                    self._channel.feed(line)
                    line = ""
                    continue
                line += char
                if self._channel.is_pager_prompt(line):
                    line = ""
        except (OSError, ValueError) as error:
            self._log.error("Error occurred while reading gnuplot replies: %s", error)
        finally:
            self._channel.close()
            if self.verbose:
                self._log.info("Process terminated")

    def _forward_output(self) -> None:
        for line in self._process.stdout:
            sys.stdout.write(line)
            sys.stdout.flush()

    def _write(self, text: str) -> None:
        try:
            self._process.stdin.write(text)
            self._process.stdin.flush()
        except (BrokenPipeError, ValueError) as error:
            raise GnuplotError("Writing on gnuplot STDIN pipe failed") from error

    def is_running(self) -> bool:
        return self._process.poll() is None

    def send(self, cmd: str) -> None:
        """Write a command without waiting for any reply."""
        if self.verbose and CAPTURE_END not in cmd and CAPTURE_BEGIN not in cmd:
            self._log.info("%s", cmd)
        else:
            self._log.debug("%s", cmd)
        self._write(cmd.strip() + "\n")

    def send_data(self, name: str, data: str, preview: Optional[list[str]] = None) -> None:
        """Define the inline data block `name` with the given text."""
        if self.verbose:
            self._log.info("%s << EOD", name)
            for line in preview if preview is not None else data.split("\n"):
                self._log.info("%s", line)
            self._log.info("EOD")
        with self._lock:
            self._write(f"{name} << EOD\n{data}\nEOD\n")

    def capture(self, cmd: str) -> str:
        """Send a command and return whatever gnuplot prints in reply."""
        with self._lock:
            self.send(f"print '{CAPTURE_BEGIN}'")
            self.send(cmd)
            self.send(f"print '{CAPTURE_END} 0'")
            return "\n".join(self._channel.take_reply(self.timeout))

    def exec(self, cmd: str) -> str:
        """
        Execute a command and return its output.

        Raises:
            GnuplotError: If gnuplot reports an error (GPVAL_ERRNO != 0).
        """
        with self._lock:
            out = self.capture(cmd)
            verbose = self.verbose
            self.verbose = self._channel.verbose = False
            try:
                errno = self.capture("print GPVAL_ERRNO")
                if errno.strip() != "0":
                    message = self.capture("print GPVAL_ERRMSG")
                    self._write("reset error\n")
                    raise GnuplotError(f"Gnuplot error: {message}")
            finally:
                self.verbose = self._channel.verbose = verbose
            return out

    def reset(self) -> None:
        self._log.debug("-------------------------------------------")
        self.exec("unset multiplot")
        self.exec("set output")
        self.exec("reset session")
        if self.term:
            self.exec(f"set term {self.term}")

    def quit(self) -> int:
        """Close gnuplot's stdin, wait for it to exit and return the exit code."""
        if self._process.stdin and not self._process.stdin.closed:
            try:
                self._process.stdin.close()
            except BrokenPipeError:
                pass
        try:
            exit_code = self._process.wait(timeout=QUIT_TIMEOUT_SECONDS)
        except subprocess.TimeoutExpired:
            self._log.warning("gnuplot did not exit, terminating it")
            self._process.kill()
            exit_code = self._process.wait()
        for reader in self._readers:
            reader.join(timeout=QUIT_TIMEOUT_SECONDS)
        self._log.debug("Exit code: %d", exit_code)
        return exit_code

    def terminal(self) -> str:
        return self.exec("print GPVAL_TERM, ' ', GPVAL_TERMOPTIONS")

    def terminals(self) -> list[str]:
        return self.exec("print GPVAL_TERMINALS").strip().split()

    def gpvars(self) -> dict[str, Any]:
        return parse_gpvars(self.exec("show var all"))
