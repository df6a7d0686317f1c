import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from gdslab.visualization.choropleth import (
    assign_classes,
    class_table,
    classify,
    compare_schemes,
    normalize_scheme,
    plot_choropleth,
    run_choropleths,
)


@pytest.mark.parametrize("name", ["FisherJenks", "fisher_jenks", "fisher-jenks", "Fisher Jenks"])
def test_scheme_names_are_normalized(name):
    assert normalize_scheme(name) == "fisherjenks"


def test_unknown_scheme():
    with pytest.raises(ValueError, match="Unknown classification scheme"):
        classify(np.arange(10), scheme="rainbow")


class TestClassify:
    def test_quantiles_are_balanced(self):
        y = np.arange(50, dtype=float)
        classifier = classify(y, scheme="quantiles", k=5)
        assert classifier.k == 5
        assert list(classifier.counts) == [10] * 5

    def test_equal_interval_bins(self):
        y = np.linspace(0, 100, 21)
        classifier = classify(y, scheme="equal_interval", k=4)
        np.testing.assert_allclose(classifier.bins, [25, 50, 75, 100])

    def test_fisher_jenks_separates_groups(self):
        y = np.concatenate([np.full(10, 1.0), np.full(10, 50.0), np.full(10, 100.0)])
        classifier = classify(y, scheme="fisher_jenks", k=3)
        assert sorted(classifier.counts) == [10, 10, 10]

    def test_missing_values_are_dropped(self):
        y = np.array([1.0, 2.0, np.nan, 4.0, 5.0, np.nan, 7.0])
        classifier = classify(y, scheme="quantiles", k=2)
        assert sum(classifier.counts) == 5

    def test_all_missing(self):
        with pytest.raises(ValueError):
            classify(np.array([np.nan, np.nan]))

    def test_user_defined(self):
        with pytest.raises(ValueError, match="bins"):
            classify(np.arange(10), scheme="user_defined")
        classifier = classify(np.arange(10), scheme="user_defined", bins=[3, 9])
        assert list(classifier.counts) == [4, 6]

    @pytest.mark.parametrize("scheme", ["box_plot", "std_mean"])
    def test_schemes_without_k_ignore_it(self, scheme):
        y = np.random.default_rng(0).normal(size=100)
        few = classify(y, scheme=scheme, k=3)
        many = classify(y, scheme=scheme, k=9)
        assert few.k == many.k
        np.testing.assert_allclose(few.bins, many.bins)

    def test_k_below_two(self):
        with pytest.raises(ValueError):
            classify(np.arange(10), scheme="quantiles", k=1)


def test_class_table():
    y = np.arange(1, 21, dtype=float)
    table = class_table(classify(y, scheme="equal_interval", k=4))
    assert table['count'].sum() == 20
    assert table['lower'].iloc[0] == 1.0
    assert table['upper'].iloc[-1] == 20.0
    np.testing.assert_allclose(table['lower'].iloc[1:].values, table['upper'].iloc[:-1].values)


@pytest.mark.parametrize("scheme", ["box_plot", "std_mean"])
def test_class_table_bounds_are_ordered(scheme):
    # lowest edge falls below the data minimum for these schemes
    y = np.linspace(10.0, 20.0, 41)
    table = class_table(classify(y, scheme=scheme))
    assert (table["lower"] <= table["upper"]).all()
    assert table["lower"].iloc[0] <= y.min()
    assert table["count"].sum() == len(y)


def test_compare_schemes():
    y = np.random.default_rng(1).lognormal(size=80)
    comparison = compare_schemes(y, ["quantiles", "equal_interval", "fisher_jenks"], k=5)
    assert comparison['scheme'].tolist() == ["quantiles", "equal_interval", "fisher_jenks"]
    assert comparison['gadf'].between(0, 1).all()
    assert (comparison['k'] == 5).all()


def test_assign_classes(lattice):
    gdf = lattice.copy()
    gdf.loc[3, 'income'] = np.nan
    out = assign_classes(gdf, 'income', scheme="quantiles", k=4)
    assert out.loc[3, 'income_class'] == -1
    assert set(out['income_class'].drop(3)) == {0, 1, 2, 3}
    assert 'income_class' not in gdf.columns


def test_assign_classes_missing_column(lattice):
    with pytest.raises(ValueError):
        assign_classes(lattice, 'nope')


def test_plot_choropleth(lattice):
    fig, ax = plt.subplots()
    returned = plot_choropleth(lattice, 'income', scheme="fisher_jenks", k=4, ax=ax)
    assert returned is ax
    assert "income" in ax.get_title()
    assert ax.get_legend() is not None
    plt.close(fig)


def test_run_choropleths(project):
    from gdslab.preprocessing.data_loading import run_preprocessing

    run_preprocessing(project)
    comparison = run_choropleths(project)
    assert comparison['scheme'].tolist() == ['quantiles', 'equal_interval']

    results = project.paths.results / "choropleths"
    breaks = pd.read_csv(results / "class_breaks_income.csv")
    assert breaks['count'].sum() == 49
    assets = project.paths.assets / "choropleths"
    assert (assets / "choropleth_income_quantiles.png").exists()
    assert (assets / "choropleth_income_equalinterval.png").exists()
