import logging
import shutil
import pytest
from gpbridge.session.process import (
    CAPTURE_BEGIN,
    CAPTURE_END,
    CaptureChannel,
    GnuplotError,
    GnuplotProcess,
    gnuplot_version,
    parse_gpvars,
    parse_version,
)


def test_parse_version():
    assert parse_version("gnuplot 5.4 patchlevel 2\n") == (5, 4)
    with pytest.raises(GnuplotError):
        parse_version("no version here")


def test_missing_executable():
    with pytest.raises(GnuplotError):
        gnuplot_version("surely-not-a-gnuplot-binary")


def test_parse_gpvars():
    text = "\n".join(
        [
            "\tVariables beginning with GPVAL_:",
            '\tGPVAL_TERM = "unknown"',
            "\tGPVAL_X_MIN = -10.0",
            "\tGPVAL_ERRNO = 0",
            "\tpi = 3.14159265358979",
            "\tGPVAL_TERMINALS = ",
        ]
    )
    variables = parse_gpvars(text)
    assert variables["TERM"] == "unknown"
    assert variables["X_MIN"] == -10.0
    assert variables["ERRNO"] == 0
    assert variables["pi"] == pytest.approx(3.14159265358979)
    assert "TERMINALS" not in variables


def test_capture_channel_collects_reply():
    channel = CaptureChannel("test")
    for line in [CAPTURE_BEGIN, "first", "second", f"{CAPTURE_END} 0"]:
        channel.feed(line)
    assert channel.take_reply(timeout=1) == ["first", "second"]


def test_capture_channel_logs_spontaneous_output(caplog):
    channel = CaptureChannel("test")
    with caplog.at_level(logging.INFO):
        channel.feed("warning: something")
    assert "GNUPLOT (test) -> warning: something" in caplog.text


def test_capture_channel_pager_prompt_requests_new_end_marker():
    sent = []
    channel = CaptureChannel("test", resend=sent.append)
    channel.feed(CAPTURE_BEGIN)
    channel.feed("line")
    assert channel.is_pager_prompt("Press return for more:")
    assert sent == [f"\nprint '{CAPTURE_END} 1'\n"]

    # the first end marker is now stale
    channel.feed(f"{CAPTURE_END} 0")
    channel.feed("more")
    channel.feed(f"{CAPTURE_END} 1")
    assert channel.take_reply(timeout=1) == ["line", "more"]


def test_capture_channel_timeout():
    channel = CaptureChannel("test")
    with pytest.raises(GnuplotError):
        channel.take_reply(timeout=0.01)


def test_capture_channel_recovers_after_timeout():
    channel = CaptureChannel("test")
    channel.feed(CAPTURE_BEGIN)
    channel.feed("slow reply")
    with pytest.raises(GnuplotError):
        channel.take_reply(timeout=0.01)

    # the late end marker closes the abandoned reply
    for line in [f"{CAPTURE_END} 0", CAPTURE_BEGIN, "second", f"{CAPTURE_END} 0"]:
        channel.feed(line)
    assert channel.take_reply(timeout=1) == ["second"]
    for line in [CAPTURE_BEGIN, "third", f"{CAPTURE_END} 0"]:
        channel.feed(line)
    assert channel.take_reply(timeout=1) == ["third"]


def test_capture_channel_closed():
    channel = CaptureChannel("test")
    channel.feed(CAPTURE_BEGIN)
    channel.close()
    with pytest.raises(GnuplotError):
        channel.take_reply(timeout=1)


@pytest.mark.gnuplot
def test_process_exec_and_quit():
    process = GnuplotProcess("live", cmd=shutil.which("gnuplot"), term="unknown")
    try:
        assert process.exec("print 'hello'") == "hello"
        assert "unknown" in process.terminal()
        assert "unknown" in process.terminals()
        assert process.gpvars()["TERM"] == "unknown"
    finally:
        assert process.quit() == 0
    assert not process.is_running()
