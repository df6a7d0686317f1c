import pandas as pd
import pytest

from gdslab.analysis.exploratory_data_analysis import (
    correlation_matrix,
    describe_variables,
    numeric_variables,
    run_eda,
)


@pytest.fixture
def table(lattice):
    return pd.DataFrame(lattice.drop(columns="geometry"))


def test_numeric_variables_default_to_numeric_columns(table):
    cols = numeric_variables(table)
    assert 'geo_id' not in cols
    assert {'income', 'x1', 'x2', 'price'} <= set(cols)


def test_numeric_variables_validation(table):
    with pytest.raises(ValueError, match="not found"):
        numeric_variables(table, ['income', 'nope'])
    with pytest.raises(ValueError, match="not numeric"):
        numeric_variables(table, ['geo_id'])


def test_describe_variables(table):
    summary = describe_variables(table, ['income', 'x1'])
    assert summary.index.tolist() == ['income', 'x1']
    assert {'mean', 'std', 'skewness', 'missing'} <= set(summary.columns)
    assert summary.loc['income', 'count'] == len(table)
    assert summary.loc['x1', 'missing'] == 0


def test_correlation_matrix(table):
    corr = correlation_matrix(table, ['price', 'x1', 'x2'])
    assert corr.loc['price', 'price'] == pytest.approx(1.0)
    assert corr.loc['price', 'x1'] > 0.5
    assert corr.loc['price', 'x2'] < 0


def test_run_eda(project):
    from gdslab.preprocessing.data_loading import run_preprocessing

    run_preprocessing(project)
    summary, corr = run_eda(project)
    assert summary.index[0] == 'income'
    assert list(corr.columns) == ['income', 'checker', 'x1', 'x2']
    assert (project.paths.results / "eda" / "summary_statistics.csv").exists()
    assert (project.paths.assets / "eda" / "correlation_heatmap.png").exists()
    assert (project.paths.assets / "eda" / "distribution_income.png").exists()
