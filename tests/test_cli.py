import io
import logging
from pathlib import Path
import pytest
import driver
from gpbridge.cli.cli import load_columns, plot_columns, run_repl
from gpbridge.session import manager
from gpbridge.session.process import GnuplotError


@pytest.fixture
def csv_path(tmp_path: Path) -> Path:
    path = tmp_path / "data.csv"
    path.write_text("a,b,label\n1,3.5,x\n2,4.5,y\n")
    return path


def test_load_columns(csv_path: Path):
    dataframe = load_columns(str(csv_path), "b, a")
    assert list(dataframe.columns) == ["b", "a"]
    with pytest.raises(ValueError):
        load_columns(str(csv_path), "missing")
    with pytest.raises(FileNotFoundError):
        load_columns(str(csv_path.with_name("nope.csv")))


def test_datablock_mode(csv_path: Path, capsys):
    assert driver.main(["--mode", "datablock", "--csv", str(csv_path), "--columns", "a,label"]) == 0
    assert capsys.readouterr().out == ' 1 "x"\n 2 "y"\n'


def test_palette_mode(capsys):
    assert driver.main(["--mode", "palette", "--palette", "viridis", "--linetypes"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("set palette defined (0.0 '#440154'")
    assert "set linetype cycle 256" in out


def test_describe_mode(csv_path: Path, caplog):
    with caplog.at_level(logging.INFO):
        assert driver.main(["--mode", "describe", "--csv", str(csv_path)]) == 0
    assert "| mean" in caplog.text


def test_plot_mode_saves_script(csv_path: Path, tmp_path: Path):
    script = tmp_path / "plot.gp"
    code = driver.main(
        [
            "--dry",
            "--csv", str(csv_path),
            "--columns", "a,b",
            "--command", "set grid",
            "--spec", "w lp t 'b'",
            "--save-script", str(script),
        ]
    )
    assert code == 0
    text = script.read_text()
    assert "set grid" in text
    assert "$data2 w lp t 'b'" in text
    assert " 1 3.5" in text


def test_missing_csv_is_an_error(tmp_path: Path, caplog):
    code = driver.main(["--mode", "datablock", "--csv", str(tmp_path / "none.csv")])
    assert code == 1
    assert "CSV file not found" in caplog.text


def test_datablock_mode_requires_csv(caplog):
    assert driver.main(["--mode", "datablock"]) == 1
    assert "--csv is required" in caplog.text


def test_plot_function_without_data():
    sid = plot_columns(None, spec="sin(x) w l")
    assert manager.collect_commands(manager.get_session(sid))[-1] == "plot \\\n  sin(x) w l"


def test_repl_joins_continuation_lines(monkeypatch):
    received = []

    def fake_gpexec(command, sid=None):
        received.append(command)
        if command == "bad":
            raise GnuplotError("Gnuplot error: invalid command")
        return "ok"

    monkeypatch.setattr(manager, "gpexec", fake_gpexec)
    lines = iter(["print \\", "1", "", "bad", "quit", "never read"])
    stream = io.StringIO()
    run_repl(read_line=lambda prompt: next(lines), stream=stream)
    assert received == ["print 1", "bad"]
    assert stream.getvalue() == "ok\n"


def test_repl_stops_on_eof():
    def end_of_input(prompt):
        raise EOFError

    stream = io.StringIO()
    run_repl(read_line=end_of_input, stream=stream)
    assert stream.getvalue() == "\n"
