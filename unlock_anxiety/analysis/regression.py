"""
Ordinal regression on the analysis table.

Formulas follow the mixed-model convention

    severity ~ ratio_home_median + age + elapsed_years + (1 | canonical_id)

statsmodels has no ordinal mixed model, so two adapters are offered:
- fit_ordinal: proportional-odds model on the fixed effects, with standard
  errors clustered on the random-effect group
- fit_linear_mixed: linear mixed model (random intercept, optional random
  slopes) treating the outcome as continuous
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from loguru import logger
from statsmodels.miscmodels.ordinal_model import OrderedModel

RANDOM_TERM = re.compile(r"\(\s*([^()|]+?)\s*\|\s*([A-Za-z_][A-Za-z0-9_]*)\s*\)")
NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class ModelFormula:
    """Parsed `outcome ~ fixed + (random | group)` formula."""

    outcome: str
    fixed_effects: List[str]
    random_effects: List[str] = field(default_factory=list)
    group: Optional[str] = None

    @property
    def fixed_formula(self) -> str:
        return f"{self.outcome} ~ {' + '.join(self.fixed_effects)}"

    @property
    def re_formula(self) -> Optional[str]:
        """Random-effects formula for mixedlm; None means intercept only."""
        slopes = [r for r in self.random_effects if r != "1"]
        if not slopes:
            return None
        return "~" + " + ".join(self.random_effects)

    @property
    def columns(self) -> List[str]:
        cols = [self.outcome] + self.fixed_effects
        cols += [r for r in self.random_effects if r != "1" and r not in cols]
        if self.group:
            cols.append(self.group)
        return cols


def parse_formula(formula: str) -> ModelFormula:
    """
    Parse a formula with at most one `(terms | group)` random-effect term.

    Fixed and random terms must be plain column names.
    """
    if formula.count("~") != 1:
        raise ValueError(f"Formula needs exactly one '~': {formula!r}")
    lhs, rhs = (s.strip() for s in formula.split("~"))
    if not NAME.match(lhs):
        raise ValueError(f"Invalid outcome {lhs!r}")

    random_terms = RANDOM_TERM.findall(rhs)
    if len(random_terms) > 1:
        raise ValueError("Only one random-effect term is supported")
    rhs = RANDOM_TERM.sub("", rhs)

    fixed = [t.strip() for t in rhs.split("+") if t.strip()]
    bad = [t for t in fixed if not NAME.match(t)]
    if bad or not fixed or "(" in rhs or "|" in rhs:
        raise ValueError(f"Invalid fixed effects in {formula!r}: {bad or rhs}")

    random_effects, group = [], None
    if random_terms:
        terms, group = random_terms[0]
        random_effects = [t.strip() for t in terms.split("+") if t.strip()]
        if not all(t == "1" or NAME.match(t) for t in random_effects):
            raise ValueError(f"Invalid random effects {terms!r}")

    return ModelFormula(lhs, fixed, random_effects, group)


@dataclass
class RegressionResult:
    method: str
    formula: str
    coefficients: pd.DataFrame
    n_obs: int
    n_groups: int
    converged: bool

    def to_frame(self) -> pd.DataFrame:
        return self.coefficients.copy()

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "formula": self.formula,
            "n_obs": self.n_obs,
            "n_groups": self.n_groups,
            "converged": self.converged,
            "coefficients": self.coefficients.to_dict(orient="records"),
        }


def _coefficient_table(params, conf_int, pvalues) -> pd.DataFrame:
    conf_int = pd.DataFrame(conf_int, index=params.index)
    return pd.DataFrame(
        {
            "term": params.index,
            "coef": params.values,
            "ci_lower": conf_int.iloc[:, 0].values,
            "ci_upper": conf_int.iloc[:, 1].values,
            "p_value": np.asarray(pvalues),
        }
    )


def _prepare(table: pd.DataFrame, model: ModelFormula) -> pd.DataFrame:
    missing = set(model.columns) - set(table.columns)
    if missing:
        raise ValueError(f"Analysis table lacks model columns: {sorted(missing)}")
    data = table[model.columns].dropna().reset_index(drop=True)
    if data.empty:
        raise ValueError("No complete rows to fit")
    return data


def fit_ordinal(
    table: pd.DataFrame,
    formula: str,
    link: str = "logit",
    cluster: bool = True,
    maxiter: int = 2000,
) -> RegressionResult:
    """
    Fit a proportional-odds model.

    Args:
        table: Analysis table
        formula: Model formula; the random-effect group, if any, is used
            for cluster-robust standard errors
        link: 'logit' or 'probit'
        cluster: Cluster standard errors on the group
        maxiter: Optimizer iterations

    Returns:
        RegressionResult with slope and threshold coefficients
    """
    model = parse_formula(formula)
    data = _prepare(table, model)

    endog = data[model.outcome].astype(int)
    exog = data[model.fixed_effects].astype(float)
    fit_kwargs = {"method": "bfgs", "maxiter": maxiter, "disp": False}
    n_groups = 0
    if model.group:
        groups = pd.Categorical(data[model.group]).codes
        n_groups = int(len(np.unique(groups)))
        if cluster:
            fit_kwargs.update(cov_type="cluster", cov_kwds={"groups": groups})

    logger.info(f"Fitting ordinal {link} model on {len(data)} rows: {formula}")
    result = OrderedModel(endog, exog, distr=link).fit(**fit_kwargs)
    converged = bool(result.mle_retvals.get("converged", False))
    if not converged:
        logger.warning("Ordinal model did not converge")

    return RegressionResult(
        method=f"ordinal_{link}",
        formula=formula,
        coefficients=_coefficient_table(result.params, result.conf_int(), result.pvalues),
        n_obs=len(data),
        n_groups=n_groups,
        converged=converged,
    )


def fit_linear_mixed(table: pd.DataFrame, formula: str, maxiter: int = 2000) -> RegressionResult:
    """Fit a linear mixed model with the formula's random-effect structure."""
    model = parse_formula(formula)
    if not model.group:
        raise ValueError("Linear mixed model needs a random-effect group, e.g. (1 | canonical_id)")
    data = _prepare(table, model)

    logger.info(f"Fitting linear mixed model on {len(data)} rows: {formula}")
    md = smf.mixedlm(
        model.fixed_formula, data, groups=data[model.group], re_formula=model.re_formula
    )
    result = None
    for method in ["lbfgs", "cg"]:
        try:
            result = md.fit(reml=True, method=method, maxiter=maxiter)
        except np.linalg.LinAlgError as e:
            logger.warning(f"Method {method} failed: {e}")
            continue
        if result.converged:
            break
    if result is None:
        raise RuntimeError("Linear mixed model could not be fitted")

    fe = result.fe_params.index
    return RegressionResult(
        method="linear_mixed",
        formula=formula,
        coefficients=_coefficient_table(
            result.fe_params, result.conf_int().loc[fe], result.pvalues.loc[fe]
        ),
        n_obs=len(data),
        n_groups=int(data[model.group].nunique()),
        converged=bool(result.converged),
    )
