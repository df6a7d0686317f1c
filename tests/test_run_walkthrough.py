import pytest

from gdslab.config import CourseConfig
from gdslab.run_walkthrough import STAGE_ORDER, STAGES, main, run_walkthrough


def test_every_stage_is_registered():
    assert set(STAGE_ORDER) == set(STAGES)


def test_list_stages(capsys):
    with pytest.raises(SystemExit) as exc:
        main(['--list-stages'])
    assert exc.value.code == 0
    out = capsys.readouterr().out
    for stage in STAGE_ORDER:
        assert stage in out


def test_show_config(project_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main(['--config', project_path, '--show-config'])
    assert exc.value.code == 0
    assert "income" in capsys.readouterr().out


def test_unknown_stage_on_command_line(project_path):
    with pytest.raises(SystemExit) as exc:
        main(['-c', project_path, '-s', 'bogus'])
    assert exc.value.code == 2


def test_unknown_stage(project_path, capsys):
    with pytest.raises(SystemExit) as exc:
        run_walkthrough(project_path, stages=['weights', 'bogus'])
    assert exc.value.code == 1
    assert "Unknown stage 'bogus'" in capsys.readouterr().out


def test_failing_stage_exits(project_path, capsys):
    # weights need the preprocessed dataset
    with pytest.raises(SystemExit) as exc:
        run_walkthrough(project_path, stages=['weights'])
    assert exc.value.code == 1
    assert "ERROR in stage 'weights'" in capsys.readouterr().out


def test_selected_stages(project_path):
    main(['-c', project_path, '-s', 'preprocessing', 'weights', 'autocorrelation'])
    config = CourseConfig.load(project_path)
    assert config.get_dataset_path().exists()
    assert config.get_weights_path().exists()
    assert (config.paths.results / "spatial_autocorrelation" / "lisa_results_income.csv").exists()
    assert not (config.paths.results / "regression").exists()


def test_full_walkthrough(project_path, capsys):
    main(['-c', project_path])
    assert "WALKTHROUGH COMPLETED SUCCESSFULLY" in capsys.readouterr().out

    config = CourseConfig.load(project_path)
    results = config.paths.results
    for stage in ['preprocessing', 'eda', 'spatial_weights', 'spatial_autocorrelation',
                  'choropleths', 'clustering', 'regression']:
        assert any((results / stage).iterdir()), stage
    assert (config.paths.assets / "maps" / "lisa_clusters_explorer.html").exists()
