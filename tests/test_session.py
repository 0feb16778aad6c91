from pathlib import Path
import numpy as np
import pandas as pd
import pytest
from gpbridge.data.dataset import DatasetBin
from gpbridge.session import manager
from gpbridge.session.process import GnuplotError


def test_dry_session_has_no_process():
    session = manager.get_session()
    assert session.is_dry
    assert manager.session_names() == ["default"]


def test_collect_commands_single_plot():
    sid = manager.gp("set grid", [1, 2, 3], "w l t 'data'", xr=(0, 4))
    commands = manager.collect_commands(manager.get_session(sid))
    assert commands == [
        "reset",
        "set xrange [0:4]",
        "set grid",
        "plot \\\n  $data3 w l t 'data'",
    ]


def test_append_keeps_previous_specs():
    manager.gp("plot sin(x)")
    manager.gp("plot cos(x)", append=True)
    (line,) = [c for c in manager.collect_commands(manager.get_session()) if c.startswith("plot")]
    assert line == "plot \\\n  sin(x), \\\n  cos(x)"


def test_without_append_session_is_reset():
    manager.gp("plot sin(x)")
    manager.gp("plot cos(x)")
    assert len(manager.get_session().specs) == 1


def test_multiplot_slots():
    manager.gp("set multiplot layout 1,3", 1, "plot sin(x)", 3, "plot cos(x)")
    commands = manager.collect_commands(manager.get_session())
    assert commands == [
        "reset",
        "set multiplot layout 1,3",
        "plot \\\n  sin(x)",
        "set multiplot next",
        "plot \\\n  cos(x)",
        "unset multiplot",
    ]


def test_gsp_produces_splot():
    manager.gsp([1, 2], [3, 4], [5, 6], "w p")
    commands = manager.collect_commands(manager.get_session())
    assert commands[-1].startswith("splot")


def test_term_and_output():
    manager.gp("plot x")
    commands = manager.collect_commands(manager.get_session(), term="png", output="a.png")
    assert commands[:4] == ["reset", "unset multiplot", "set term png", "set output 'a.png'"]
    assert commands[-1] == "set output"


def test_named_sessions_are_independent():
    manager.gp("plot x", session="first")
    manager.gp("plot y", session="second")
    assert manager.session_names() == ["first", "second"]
    assert manager.quit("first") == 0
    assert manager.session_names() == ["second"]


def test_init_commands(options):
    options.init = ["set grid", "set key left"]
    manager.gp("plot x")
    assert manager.collect_commands(manager.get_session())[1] == "set grid;\nset key left"


def test_save_script_with_text_data(tmp_path: Path):
    manager.gp([1, 2, 3], "w l")
    path = manager.save_script(tmp_path / "plot.gp")
    assert path.read_text() == (
        "$data1 << EOD\n 1\n 2\n 3\nEOD\nreset\nplot \\\n  $data1 w l\n"
    )


def test_save_script_copies_binary_data(tmp_path: Path):
    manager.gp(np.arange(6).reshape(2, 3), "w image")
    session = manager.get_session()
    dataset = session.specs[0].data
    assert isinstance(dataset, DatasetBin)

    script = manager.save_script(tmp_path / "image.gp")
    copied = tmp_path / "image" / Path(dataset.file).name
    assert copied.exists()
    assert str(copied) in script.read_text()
    assert dataset.file not in script.read_text()


def test_binary_files_are_removed_on_reset():
    manager.gp(np.ones((2, 2)))
    dataset = manager.get_session().specs[0].data
    assert Path(dataset.file).exists()
    manager.reset()
    assert not Path(dataset.file).exists()


def test_duplicated_using_clause_is_dropped():
    source = " 'f.bin' binary record=3 format='%float64%float64' using 1:2"
    assert manager._drop_duplicated_using(source, "u 2:1 w l") == " 'f.bin' binary record=3 format='%float64%float64'"
    assert manager._drop_duplicated_using(source, "w l") == source


def test_show_specs():
    manager.gp("set grid", [1, 2], "w l")
    overview = manager.show_specs()
    assert isinstance(overview, pd.DataFrame)
    assert overview["type"].tolist() == ["GPCommand", "GPPlotDataCommand"]
    assert overview["dataset"].tolist()[1] == "DatasetText"


@pytest.mark.parametrize(
    "call",
    [
        lambda: manager.gpexec("print 1"),
        lambda: manager.gpvars(),
        lambda: manager.terminal(),
        lambda: manager.export("out.png", "png"),
        lambda: manager.write_table("plot x"),
    ],
)
def test_dry_mode_rejects_process_features(call):
    with pytest.raises(GnuplotError):
        call()


@pytest.mark.gnuplot
def test_gpexec_with_gnuplot(live_options):
    assert manager.gpexec("print 1 + 2") == "3"
    with pytest.raises(GnuplotError):
        manager.gpexec("this is not a command")
    assert manager.gpexec("print 2 * 3") == "6"


@pytest.mark.gnuplot
def test_plot_and_query_ranges(live_options):
    manager.gp([1, 2, 3], [4, 5, 6], "w l", xr=(0, 10))
    ranges = manager.gpranges()
    assert ranges["x"] == [0, 10]
    assert "TERM" in manager.gpvars()


@pytest.mark.gnuplot
def test_write_table(live_options):
    lines = manager.write_table("plot [0:2] x")
    assert any(line.strip() and not line.startswith("#") for line in lines)
