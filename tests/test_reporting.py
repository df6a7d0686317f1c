import io
import sys

import pytest

from gdslab.reporting import Tee, print_header, significance_stars, stage_log


def test_tee_writes_to_every_stream():
    a, b = io.StringIO(), io.StringIO()
    tee = Tee(a, b)
    tee.write("hello")
    assert a.getvalue() == b.getvalue() == "hello"


def test_print_header_levels(capsys):
    print_header("weights", level=1)
    print_header("lag", level=2)
    print_header("detail", level=3)
    out = capsys.readouterr().out
    assert "WEIGHTS" in out
    assert "[lag]" in out
    assert "--- detail ---" in out


@pytest.mark.parametrize("p, stars", [
    (0.001, "***"), (0.03, "**"), (0.07, "*"), (0.5, ""), (float('nan'), ""),
])
def test_significance_stars(p, stars):
    assert significance_stars(p) == stars


def test_stage_log_mirrors_output_and_restores_stdout(tmp_path, capsys):
    log_file = tmp_path / "logs" / "stage.txt"
    original = sys.stdout
    with stage_log(log_file):
        print("inside the stage")
    assert sys.stdout is original
    assert "inside the stage" in log_file.read_text()
    assert "inside the stage" in capsys.readouterr().out


def test_stage_log_reraises_and_logs_error(tmp_path):
    log_file = tmp_path / "stage.txt"
    original = sys.stdout
    with pytest.raises(ValueError, match="boom"):
        with stage_log(log_file):
            raise ValueError("boom")
    assert sys.stdout is original
    text = log_file.read_text()
    assert "ERROR: boom" in text
    assert "Traceback" in text
