import os
import pytest
from gpbridge.utils.config import Options, apply_options, load_options, options_from_mapping


def test_defaults():
    options = options_from_mapping({})
    assert options == Options()
    assert options.cmd == "gnuplot"
    assert options.default == "default"
    assert options.preferred_format == "auto"


def test_options_from_environment():
    options = options_from_mapping(
        {
            "GNUPLOT_COMMAND": "/opt/bin/gnuplot -persist",
            "GPBRIDGE_DRY": "yes",
            "GPBRIDGE_DEFAULT_SESSION": "main",
            "GPBRIDGE_TERM": "pngcairo",
            "GPBRIDGE_VERBOSE": "0",
            "GPBRIDGE_PREFERRED_FORMAT": "TEXT",
            "GPBRIDGE_TIMEOUT": "2.5",
        }
    )
    assert options.cmd == "/opt/bin/gnuplot -persist"
    assert options.dry is True
    assert options.default == "main"
    assert options.term == "pngcairo"
    assert options.verbose is False
    assert options.preferred_format == "text"
    assert options.timeout == 2.5


def test_invalid_timeout_falls_back(caplog):
    options = options_from_mapping({"GPBRIDGE_TIMEOUT": "soon"})
    assert options.timeout == Options().timeout
    assert "GPBRIDGE_TIMEOUT" in caplog.text


def test_invalid_preferred_format():
    with pytest.raises(ValueError):
        Options(preferred_format="json")


def test_load_options_reads_dotenv(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("GPBRIDGE_DEFAULT_SESSION=fromdotenv\n")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GPBRIDGE_DEFAULT_SESSION", raising=False)
    options = load_options()
    os.environ.pop("GPBRIDGE_DEFAULT_SESSION", None)
    assert options.default == "fromdotenv"


def test_apply_options_in_place():
    target = Options()
    apply_options(target, Options(dry=True, init=["set grid"]))
    assert target.dry is True
    assert target.init == ["set grid"]
