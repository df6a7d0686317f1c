#!/usr/bin/env python3
"""
Regression Module
=================
Linear regression of the target on its covariates, followed by the
spatial diagnostics and spatial models introduced in the course.

Models:
1. OLS with residual Moran's I and Lagrange Multiplier tests
2. Spatial lag model: y = ρWy + Xβ + ε (maximum likelihood)
3. Spatial error model: y = Xβ + u, u = λWu + ε (maximum likelihood)

The LM tests feed the classic Anselin decision rule used to recommend
one of the three specifications.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
import warnings
import numpy as np
import pandas as pd
import geopandas as gpd
from scipy import stats

from libpysal.weights import W
from spreg import OLS, ML_Lag, ML_Error
from sklearn.preprocessing import StandardScaler
from statsmodels.stats.outliers_influence import variance_inflation_factor

from ..config import CourseConfig, load_config
from ..reporting import print_header, stage_log, significance_stars
from .spatial_weights import load_walkthrough_inputs


NAN_TEST = (np.nan, np.nan)


def prepare_design(gdf: pd.DataFrame, target: str, covariates: List[str],
                   log_target: bool = False,
                   standardize: bool = False) -> Tuple[np.ndarray, np.ndarray, List[str], str]:
    """
    Build the spreg design: ``y`` as an n x 1 column and ``X`` without constant.

    Returns:
        (y, X, covariate names, name of y)
    """
    if not covariates:
        raise ValueError("Regression needs at least one covariate")
    missing = [col for col in [target] + list(covariates) if col not in gdf.columns]
    if missing:
        raise ValueError(f"Column(s) not found in dataset: {missing}")

    frame = gdf[[target] + list(covariates)].astype(float)
    if frame.isna().any().any():
        bad = frame.columns[frame.isna().any()].tolist()
        raise ValueError(f"Missing values in regression variables: {bad}")

    y = frame[target].values
    name_y = target
    if log_target:
        if (y <= -1).any():
            raise ValueError(f"log1p transform needs '{target}' > -1")
        y = np.log1p(y)
        name_y = f"log_{target}"

    X = frame[list(covariates)].values
    if standardize:
        X = StandardScaler().fit_transform(X)

    return y.reshape(-1, 1), X, list(covariates), name_y


def variance_inflation(X: np.ndarray, names: List[str]) -> pd.DataFrame:
    """Variance inflation factor per covariate (constant included in the design)"""
    exog = np.column_stack([np.ones(X.shape[0]), X])
    vifs = [variance_inflation_factor(exog, i + 1) for i in range(X.shape[1])]
    return pd.DataFrame({'variable': names, 'VIF': vifs})


def coefficient_table(model) -> pd.DataFrame:
    """Coefficients, standard errors and test statistics of a spreg model"""
    names = list(model.name_x)
    betas = np.asarray(model.betas).flatten()
    std_err = np.asarray(model.std_err).flatten()
    tests = getattr(model, 't_stat', None) or getattr(model, 'z_stat', None) or []

    n = min(len(names), len(betas), len(std_err), len(tests))
    return pd.DataFrame({
        'variable': names[:n],
        'coefficient': betas[:n],
        'std_error': std_err[:n],
        'statistic': [float(t[0]) for t in tests[:n]],
        'p_value': [float(t[1]) for t in tests[:n]],
    })


def _test(model, attr: str) -> Tuple[float, float]:
    value = getattr(model, attr, None)
    if value is None:
        return NAN_TEST
    return float(value[0]), float(value[1])


def fit_ols(y, X, w: W, names: List[str], name_y: str = "y",
            white_test: bool = False, name_ds: str = "course_dataset") -> Dict[str, Any]:
    """OLS with spatial diagnostics on the residuals"""
    model = OLS(
        y, X, w=w,
        spat_diag=True,
        moran=True,
        white_test=white_test,
        name_y=name_y,
        name_x=names,
        name_w=f"W({w.transform})",
        name_ds=name_ds,
    )

    moran_res = getattr(model, 'moran_res', None)
    return {
        'model': model,
        'coefficients': coefficient_table(model),
        'r2': float(model.r2),
        'adj_r2': float(model.ar2),
        'logll': float(model.logll),
        'aic': float(model.aic),
        'schwarz': float(model.schwarz),
        'n_params': int(len(model.betas)),
        'moran_res': tuple(float(v) for v in moran_res) if moran_res is not None else (np.nan,) * 3,
        'lm_lag': _test(model, 'lm_lag'),
        'lm_error': _test(model, 'lm_error'),
        'rlm_lag': _test(model, 'rlm_lag'),
        'rlm_error': _test(model, 'rlm_error'),
        'lm_sarma': _test(model, 'lm_sarma'),
        'residuals': np.asarray(model.u).flatten(),
    }


def fit_spatial_lag(y, X, w: W, names: List[str], name_y: str = "y",
                    name_ds: str = "course_dataset") -> Dict[str, Any]:
    """Maximum likelihood spatial lag model"""
    with warnings.catch_warnings():
        # spreg warns about the default impacts computation on every fit
        warnings.simplefilter("ignore", category=FutureWarning)
        model = ML_Lag(y, X, w=w, name_y=name_y, name_x=names,
                       name_w=f"W({w.transform})", name_ds=name_ds)

    return {
        'model': model,
        'coefficients': coefficient_table(model),
        'rho': float(model.rho),
        'pr2': float(model.pr2),
        'logll': float(model.logll),
        'aic': float(model.aic),
        'schwarz': float(model.schwarz),
        'n_params': int(len(model.betas)),
        'residuals': np.asarray(model.u).flatten(),
    }


def fit_spatial_error(y, X, w: W, names: List[str], name_y: str = "y",
                      name_ds: str = "course_dataset") -> Dict[str, Any]:
    """Maximum likelihood spatial error model"""
    model = ML_Error(y, X, w=w, name_y=name_y, name_x=names,
                     name_w=f"W({w.transform})", name_ds=name_ds)

    return {
        'model': model,
        'coefficients': coefficient_table(model),
        'lam': float(model.lam),
        'pr2': float(model.pr2),
        'logll': float(model.logll),
        'aic': float(model.aic),
        'schwarz': float(model.schwarz),
        'n_params': int(len(model.betas)),
        'residuals': np.asarray(model.u).flatten(),
    }


def information_criteria(results: Dict[str, Optional[Dict[str, Any]]], n_obs: int) -> pd.DataFrame:
    """Compute AIC and BIC for model comparison"""
    criteria = []

    for name, result in results.items():
        if result is None:
            continue

        k = result['n_params']
        logll = result['logll']

        criteria.append({
            'model': name,
            'log_likelihood': logll,
            'n_params': k,
            'AIC': 2 * k - 2 * logll,
            'BIC': k * np.log(n_obs) - 2 * logll,
        })

    return pd.DataFrame(criteria, columns=['model', 'log_likelihood', 'n_params', 'AIC', 'BIC'])


def likelihood_ratio_test(restricted: Dict[str, Any], unrestricted: Dict[str, Any],
                          test_name: str) -> Dict[str, Any]:
    """Likelihood ratio test of a restricted model against a nesting model"""
    lrt_stat = 2 * (unrestricted['logll'] - restricted['logll'])
    df = abs(unrestricted['n_params'] - restricted['n_params'])
    p_value = float(stats.chi2.sf(max(lrt_stat, 0.0), df)) if df > 0 else np.nan

    return {
        'test': test_name,
        'lrt_statistic': lrt_stat,
        'df': df,
        'p_value': p_value,
        'significant_5pct': bool(p_value < 0.05),
    }


def recommend_model(ols_result: Dict[str, Any], alpha: float = 0.05) -> str:
    """
    Anselin's decision rule on the OLS Lagrange Multiplier tests.

    Returns one of ``ols``, ``lag`` or ``error``.
    """
    lm_lag, p_lag = ols_result['lm_lag']
    lm_err, p_err = ols_result['lm_error']
    if np.isnan(p_lag) or np.isnan(p_err):
        return 'ols'

    lag_sig = p_lag < alpha
    err_sig = p_err < alpha
    if not lag_sig and not err_sig:
        return 'ols'
    if lag_sig and not err_sig:
        return 'lag'
    if err_sig and not lag_sig:
        return 'error'

    rlm_lag, rp_lag = ols_result['rlm_lag']
    rlm_err, rp_err = ols_result['rlm_error']
    rlag_sig = rp_lag < alpha
    rerr_sig = rp_err < alpha
    if rlag_sig and not rerr_sig:
        return 'lag'
    if rerr_sig and not rlag_sig:
        return 'error'
    if rlag_sig and rerr_sig:
        return 'lag' if rlm_lag >= rlm_err else 'error'
    return 'lag' if lm_lag >= lm_err else 'error'


def print_ols_diagnostics(result: Dict[str, Any]):
    I, z, p = result['moran_res']
    print(f"    ✓ R²: {result['r2']:.4f} (adjusted {result['adj_r2']:.4f})")
    print(f"    ✓ Moran's I (residuals): {I:.4f}, z={z:.3f}, p={p:.4f} {significance_stars(p)}")
    for label, key in [("LM lag", 'lm_lag'), ("LM error", 'lm_error'),
                       ("Robust LM lag", 'rlm_lag'), ("Robust LM error", 'rlm_error'),
                       ("LM SARMA", 'lm_sarma')]:
        stat, p_value = result[key]
        print(f"    {label:20s}: {stat:9.4f}  p={p_value:.4f} {significance_stars(p_value)}")


def run_regression(config: Optional[CourseConfig] = None,
                   gdf: Optional[gpd.GeoDataFrame] = None,
                   w: Optional[W] = None) -> Dict[str, Any]:
    """
    Main execution function for the regression stage.

    Args:
        config: CourseConfig instance. If None, loads from default.
        gdf: Optional dataset; loaded from disk when omitted.
        w: Optional weights; loaded from disk when omitted.
    """
    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("regression")
    settings = config.regression

    with stage_log(results_dir / 'regression_log.txt'):
        print_header("REGRESSION")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Models: {', '.join(settings.models)}")

        print_header("1. LOADING DATA", level=2)
        gdf, w = load_walkthrough_inputs(config, gdf, w)

        print_header("2. DATA PREPARATION", level=2)
        y, X, names, name_y = prepare_design(
            gdf, config.data.target, config.data.covariates,
            log_target=settings.log_target, standardize=settings.standardize
        )
        n_obs = len(y)
        print(f"    ✓ Observations: {n_obs}")
        print(f"    ✓ Dependent: {name_y}")
        print(f"    ✓ Covariates ({len(names)}): {names}")

        vif_df = variance_inflation(X, names)
        for _, row in vif_df.iterrows():
            flag = " ⚠" if row['VIF'] > settings.vif_threshold else ""
            print(f"    VIF {row['variable']:30s}: {row['VIF']:8.2f}{flag}")
        vif_df.to_csv(results_dir / 'variance_inflation.csv', index=False)

        fits = {
            'ols': ("3. OLS", lambda: fit_ols(y, X, w, names, name_y, white_test=settings.white_test)),
            'lag': ("4. SPATIAL LAG MODEL", lambda: fit_spatial_lag(y, X, w, names, name_y)),
            'error': ("5. SPATIAL ERROR MODEL", lambda: fit_spatial_error(y, X, w, names, name_y)),
        }

        results = {}
        for key in settings.models:
            title, fit = fits[key]
            print_header(title, level=2)
            try:
                results[key] = fit()
            except Exception as e:
                print(f"    ✗ Error fitting {key}: {e}")
                results[key] = None
                continue

            result = results[key]
            if key == 'ols':
                print_ols_diagnostics(result)
            elif key == 'lag':
                print(f"    ✓ Rho (spatial lag): {result['rho']:.4f}")
            else:
                print(f"    ✓ Lambda (error lag): {result['lam']:.4f}")
            print(f"    ✓ Log-likelihood: {result['logll']:.2f}")

            coef_df = result['coefficients']
            print(coef_df.round(4).to_string(index=False))
            coef_df.to_csv(results_dir / f'coefficients_{key}.csv', index=False)
            with open(results_dir / f'summary_{key}.txt', 'w', encoding='utf-8') as f:
                f.write(result['model'].summary)

        successful = {k: v for k, v in results.items() if v is not None}
        if not successful:
            print("\n    ⚠ WARNING: No models could be fit successfully.")
            print_header("REGRESSION INCOMPLETE")
            return {'models': results}

        print_header("6. MODEL COMPARISON", level=2)
        ic_df = information_criteria(results, n_obs)
        print(ic_df.round(2).to_string(index=False))
        ic_df.to_csv(results_dir / 'information_criteria.csv', index=False)

        lrt_results = []
        for key, label in [('lag', "OLS vs spatial lag"), ('error', "OLS vs spatial error")]:
            if results.get('ols') and results.get(key):
                lrt = likelihood_ratio_test(results['ols'], results[key], label)
                lrt_results.append(lrt)
                print(f"    {label}: LR={lrt['lrt_statistic']:.4f}, df={lrt['df']}, "
                      f"p={lrt['p_value']:.6f} {significance_stars(lrt['p_value'])}")
        lrt_df = pd.DataFrame(lrt_results)
        if lrt_results:
            lrt_df.to_csv(results_dir / 'lrt_test_results.csv', index=False)

        recommendation = None
        if results.get('ols'):
            recommendation = recommend_model(results['ols'], alpha=config.autocorrelation.significance)
            print(f"\n    Recommended specification (LM decision rule): {recommendation}")
        if len(ic_df) > 0:
            print(f"    Best model by AIC: {ic_df.loc[ic_df['AIC'].idxmin(), 'model']}")

        print(f"\n    ✓ Results saved to: {results_dir}")

    return {
        'models': results,
        'information_criteria': ic_df,
        'lrt': lrt_df,
        'vif': vif_df,
        'recommendation': recommendation,
    }


if __name__ == "__main__":
    run_regression()
