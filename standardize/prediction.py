"""
Prediction-time replay of stored transforms.

``PredictionMapper`` maps new raw data onto the standardized scale of a
fitted ``StandardizedModel``. Every column is produced from the stored
descriptor alone; no statistic is ever re-estimated from the new data.

Policy for values not seen at fit time:
    - factor levels outside the stored level set raise UnseenLevelError
    - grouping keys outside the stored group set raise UnseenGroupError,
      both for grouping factors and for grouped-continuous variables
Missing values are not unseen values; they stay missing.

Usage:
    model = standardize("y ~ x + f + (1 | g)", train_df)
    new_std = model.predict(test_df)                  # fixed + random
    fixed_only = model.predict(test_df, random=False)
"""
import logging
from typing import TYPE_CHECKING, List

import pandas as pd

from standardize.descriptors import Descriptor, replay, required_variables
from standardize.exceptions import MissingVariableError
from standardize.formula.terms import Role
from standardize.parallel import map_ordered

if TYPE_CHECKING:
    from standardize.model import StandardizedModel

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def selected_roles(response: bool, fixed: bool, random: bool) -> List[str]:
    """Descriptor roles included for the requested subsets."""
    roles = []
    if response:
        roles.append(Role.RESPONSE.value)
    if fixed:
        roles.extend([Role.FIXED.value, Role.OFFSET.value])
    if random:
        roles.append(Role.RANDOM_GROUP.value)
    return roles


class PredictionMapper:
    """
    Replays a model's descriptors on new data.

    Attributes:
        model: The StandardizedModel whose parameters are replayed
        n_jobs: Number of threads used to transform independent variables
    """

    def __init__(self, model: 'StandardizedModel', n_jobs: int = 1):
        self.model = model
        self.n_jobs = n_jobs

    def select(self, response: bool = False, fixed: bool = True, random: bool = True) -> List[Descriptor]:
        """
        Descriptors for the requested subsets, in the model's column order.

        Random-slope variables such as ``x`` in ``(1 + x | g)`` are standardized
        as fixed-effect terms, so they come with ``fixed=True``; the random
        subset holds only the grouping factors.
        """
        roles = selected_roles(response, fixed, random)
        return [d for d in self.model.descriptors.values() if d.role in roles]

    def transform(
        self,
        newdata: pd.DataFrame,
        response: bool = False,
        fixed: bool = True,
        random: bool = True
    ) -> pd.DataFrame:
        """
        Standardize new data with the stored fit-time parameters.

        Args:
            newdata: Raw table with the variables the selected terms need
            response: Include the response
            fixed: Include fixed-effect variables and the offset
            random: Include random-effect grouping factors

        Returns:
            DataFrame with the selected columns, named and typed as in
            ``model.data`` and indexed like ``newdata``

        Raises:
            MissingVariableError: If ``newdata`` lacks a needed column
            UnseenLevelError: If a factor has a level not seen when fitting
            UnseenGroupError: If a group was not seen when fitting
        """
        if not isinstance(newdata, pd.DataFrame):
            raise ValueError(f"newdata must be a DataFrame, got {type(newdata)}")

        descriptors = self.select(response, fixed, random)
        needed = []
        for d in descriptors:
            needed.extend(required_variables(d))
        missing = [v for v in dict.fromkeys(needed) if v not in newdata.columns]
        if missing:
            raise MissingVariableError(missing)

        if not descriptors:
            logger.warning("No variables selected for prediction; returning an empty table")
            return pd.DataFrame(index=newdata.index)

        def replay_one(descriptor: Descriptor) -> pd.DataFrame:
            logger.debug(f"Replaying {descriptor.kind.value} transform for '{descriptor.name}'")
            return replay(descriptor, newdata)

        frames = map_ordered(replay_one, descriptors, self.n_jobs)
        result = pd.concat(frames, axis=1)
        logger.info(
            f"Standardized {len(result):,} new rows into {result.shape[1]} columns"
        )
        return result


def predict(
    model: 'StandardizedModel',
    newdata: pd.DataFrame,
    response: bool = False,
    fixed: bool = True,
    random: bool = True,
    n_jobs: int = 1
) -> pd.DataFrame:
    """Convenience wrapper around ``PredictionMapper.transform``."""
    return PredictionMapper(model, n_jobs=n_jobs).transform(
        newdata, response=response, fixed=fixed, random=random
    )
