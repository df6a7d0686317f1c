import numpy as np
import pandas as pd
import pytest

from gdslab.analysis.regression import (
    coefficient_table,
    fit_ols,
    fit_spatial_error,
    fit_spatial_lag,
    information_criteria,
    likelihood_ratio_test,
    prepare_design,
    recommend_model,
    run_regression,
    variance_inflation,
)
from gdslab.analysis.spatial_weights import build_weights, transform_weights


@pytest.fixture
def queen(lattice):
    return transform_weights(build_weights(lattice, kind="queen"), "r")


@pytest.fixture
def design(lattice):
    return prepare_design(lattice, 'price', ['x1', 'x2'])


class TestPrepareDesign:
    def test_shapes(self, lattice, design):
        y, X, names, name_y = design
        assert y.shape == (len(lattice), 1)
        assert X.shape == (len(lattice), 2)
        assert names == ['x1', 'x2']
        assert name_y == 'price'

    def test_log_target(self, lattice):
        y, _, _, name_y = prepare_design(lattice, 'income', ['x1'], log_target=True)
        assert name_y == 'log_income'
        np.testing.assert_allclose(y.flatten(), np.log1p(lattice['income'].values))

    def test_log_target_out_of_domain(self, lattice):
        frame = lattice.copy()
        frame.loc[0, 'income'] = -2.0
        with pytest.raises(ValueError, match="log1p"):
            prepare_design(frame, 'income', ['x1'], log_target=True)

    def test_standardize(self, lattice):
        _, X, _, _ = prepare_design(lattice, 'price', ['x1', 'x2'], standardize=True)
        np.testing.assert_allclose(X.mean(axis=0), 0.0, atol=1e-12)
        np.testing.assert_allclose(X.std(axis=0), 1.0)

    def test_no_covariates(self, lattice):
        with pytest.raises(ValueError, match="at least one covariate"):
            prepare_design(lattice, 'price', [])

    def test_missing_column(self, lattice):
        with pytest.raises(ValueError, match="not found"):
            prepare_design(lattice, 'price', ['x1', 'nope'])

    def test_missing_values(self, lattice):
        frame = lattice.copy()
        frame.loc[4, 'x2'] = np.nan
        with pytest.raises(ValueError, match="Missing values"):
            prepare_design(frame, 'price', ['x1', 'x2'])


def test_variance_inflation_of_independent_covariates(design):
    _, X, names, _ = design
    vif = variance_inflation(X, names)
    assert vif['variable'].tolist() == names
    assert (vif['VIF'] < 2).all()


class TestOLS:
    def test_recovers_coefficients(self, design, queen):
        y, X, names, name_y = design
        result = fit_ols(y, X, queen, names, name_y)
        coefs = result['coefficients'].set_index('variable')['coefficient']
        assert coefs.index[0] == 'CONSTANT'
        assert coefs['CONSTANT'] == pytest.approx(2.0, abs=0.1)
        assert coefs['x1'] == pytest.approx(1.5, abs=0.1)
        assert coefs['x2'] == pytest.approx(-1.0, abs=0.1)
        assert result['r2'] > 0.95
        assert result['n_params'] == 3

    def test_spatial_diagnostics_are_reported(self, design, queen):
        y, X, names, name_y = design
        result = fit_ols(y, X, queen, names, name_y)
        for key in ['lm_lag', 'lm_error', 'rlm_lag', 'rlm_error', 'lm_sarma']:
            stat, p = result[key]
            assert 0.0 <= p <= 1.0
        assert len(result['moran_res']) == 3
        assert len(result['residuals']) == len(y)

    def test_coefficient_table_columns(self, design, queen):
        y, X, names, name_y = design
        table = coefficient_table(fit_ols(y, X, queen, names, name_y)['model'])
        assert list(table.columns) == ['variable', 'coefficient', 'std_error', 'statistic', 'p_value']
        assert len(table) == 3
        assert table['variable'].tolist() == ['CONSTANT', 'x1', 'x2']


class TestSpatialModels:
    def test_lag_model(self, lattice, queen):
        y, X, names, name_y = prepare_design(lattice, 'income', ['x1', 'x2'])
        result = fit_spatial_lag(y, X, queen, names, name_y)
        assert -1 < result['rho'] < 1
        # income follows a smooth trend, so the lag term dominates
        assert result['rho'] > 0.5
        assert result['n_params'] == 4

    def test_error_model(self, lattice, queen):
        y, X, names, name_y = prepare_design(lattice, 'income', ['x1', 'x2'])
        result = fit_spatial_error(y, X, queen, names, name_y)
        assert -1 < result['lam'] < 1
        assert np.isfinite(result['logll'])


class TestModelComparison:
    def test_information_criteria(self):
        results = {
            'ols': {'n_params': 3, 'logll': -100.0},
            'lag': {'n_params': 4, 'logll': -90.0},
            'error': None,
        }
        table = information_criteria(results, n_obs=50)
        assert table['model'].tolist() == ['ols', 'lag']
        assert table.loc[0, 'AIC'] == pytest.approx(206.0)
        assert table.loc[1, 'BIC'] == pytest.approx(4 * np.log(50) + 180.0)

    def test_likelihood_ratio(self):
        lrt = likelihood_ratio_test({'n_params': 3, 'logll': -100.0},
                                    {'n_params': 4, 'logll': -90.0}, "OLS vs lag")
        assert lrt['lrt_statistic'] == pytest.approx(20.0)
        assert lrt['df'] == 1
        assert lrt['p_value'] < 0.001
        assert lrt['significant_5pct']

    def test_likelihood_ratio_without_gain(self):
        lrt = likelihood_ratio_test({'n_params': 3, 'logll': -100.0},
                                    {'n_params': 4, 'logll': -100.0}, "no gain")
        assert lrt['p_value'] == pytest.approx(1.0)
        assert not lrt['significant_5pct']


def _lm(lag, error, rlag=(0.0, 1.0), rerror=(0.0, 1.0)):
    return {'lm_lag': lag, 'lm_error': error, 'rlm_lag': rlag, 'rlm_error': rerror}


@pytest.mark.parametrize("tests, expected", [
    (_lm((0.5, 0.5), (0.4, 0.6)), 'ols'),
    (_lm((9.0, 0.001), (0.4, 0.6)), 'lag'),
    (_lm((0.4, 0.6), (9.0, 0.001)), 'error'),
    (_lm((9.0, 0.001), (8.0, 0.002), (6.0, 0.01), (0.5, 0.4)), 'lag'),
    (_lm((9.0, 0.001), (8.0, 0.002), (0.5, 0.4), (6.0, 0.01)), 'error'),
    (_lm((9.0, 0.001), (8.0, 0.002), (5.0, 0.02), (7.0, 0.008)), 'error'),
    (_lm((9.0, 0.001), (8.0, 0.002), (0.5, 0.4), (0.4, 0.5)), 'lag'),
    (_lm((np.nan, np.nan), (np.nan, np.nan)), 'ols'),
])
def test_recommend_model(tests, expected):
    assert recommend_model(tests) == expected


def test_run_regression(prepared):
    results = run_regression(prepared)
    out_dir = prepared.paths.results / "regression"
    assert set(results['models']) == {'ols', 'lag', 'error'}
    assert results['recommendation'] in {'ols', 'lag', 'error'}
    for key in ['ols', 'lag', 'error']:
        assert (out_dir / f"coefficients_{key}.csv").exists()
        assert (out_dir / f"summary_{key}.txt").exists()
    assert (out_dir / "variance_inflation.csv").exists()
    criteria = pd.read_csv(out_dir / "information_criteria.csv")
    assert criteria['model'].tolist() == ['ols', 'lag', 'error']
    lrt = pd.read_csv(out_dir / "lrt_test_results.csv")
    assert len(lrt) == 2
