"""
scikit-learn adapter.

``FormulaStandardizer`` wraps ``standardize()`` and ``PredictionMapper`` in the
estimator API so a standardization step can sit inside a Pipeline: ``fit``
computes and stores the parameters from training data only, ``transform``
replays them on any table.

Example:
    >>> step = FormulaStandardizer("y ~ x + f", random=False)
    >>> X_train_std = step.fit_transform(train_df)
    >>> X_test_std = step.transform(test_df)
"""
import logging
from typing import Optional

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.utils.validation import check_is_fitted

from standardize.config.settings import StandardizeConfig
from standardize.engine import TransformEngine
from standardize.prediction import PredictionMapper, selected_roles

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class FormulaStandardizer(TransformerMixin, BaseEstimator):
    """
    Formula-driven standardization as a scikit-learn transformer.

    Args:
        formula: Regression formula
        family: Regression family token
        scale: Target scale for predictors and contrasts
        offset: Optional name of an offset column
        response: Include the response in transformed output
        fixed: Include fixed-effect variables (and the offset)
        random: Include random-effect grouping factors
        n_jobs: Threads used to transform independent variables

    Attributes:
        model_: The fitted StandardizedModel
    """

    def __init__(
        self,
        formula: str,
        family: str = 'gaussian',
        scale: float = 1.0,
        offset: Optional[str] = None,
        response: bool = False,
        fixed: bool = True,
        random: bool = True,
        n_jobs: int = 1
    ):
        self.formula = formula
        self.family = family
        self.scale = scale
        self.offset = offset
        self.response = response
        self.fixed = fixed
        self.random = random
        self.n_jobs = n_jobs

    def fit(self, X: pd.DataFrame, y=None) -> 'FormulaStandardizer':
        """Compute standardization parameters from the training table ``X``."""
        config = StandardizeConfig(scale=self.scale, family=self.family, n_jobs=self.n_jobs)
        self.model_ = TransformEngine(config).fit(self.formula, X, offset=self.offset)
        self.feature_names_in_ = np.asarray(list(X.columns), dtype=object)
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Replay the stored parameters on ``X``."""
        check_is_fitted(self, 'model_')
        return PredictionMapper(self.model_, n_jobs=self.n_jobs).transform(
            X, response=self.response, fixed=self.fixed, random=self.random
        )

    def get_feature_names_out(self, input_features=None) -> np.ndarray:
        """Names of the columns ``transform`` produces."""
        check_is_fitted(self, 'model_')
        roles = selected_roles(self.response, self.fixed, self.random)
        return np.asarray(self.model_.columns_for(roles), dtype=object)
