"""
Standardization engine.

Takes a regression formula and a training table and returns a
``StandardizedModel``:

1. the formula is parsed into typed terms
2. under a gaussian family the response is scaled to mean 0 and standard
   deviation exactly 1 (within groups for ``scale_by``); other families copy
   it through unchanged
3. an offset is divided by the response standard deviation (gaussian only)
4. random-effect grouping variables become grouping factors
5. every other term is classified and its parameters computed:
   continuous -> mean/sd, grouped continuous -> per-group mean/sd,
   factors -> sum or scaled polynomial contrasts, ``poly`` -> scaled
   orthogonal polynomial basis
6. each descriptor is replayed on the training table and the formula is
   rewritten with sanitized column names

The input table is never modified. Either the whole model is produced or an
exception is raised; there are no partial results.

Usage:
    from standardize import standardize

    model = standardize("rt ~ scale_by(freq ~ subject) + cond + (1 | subject)", df)
    model.formula   # 'rt ~ scale_by_freq_subject + cond + (1 | subject)'
    model.data      # standardized table
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from standardize.classify import VariableClass, classify_term
from standardize.config.constants import GAUSSIAN_FAMILIES
from standardize.config.settings import StandardizeConfig
from standardize.contrasts import build_poly_contrast, build_sum_contrast
from standardize.descriptors import (
    ContinuousDescriptor,
    Descriptor,
    GroupedContinuousDescriptor,
    GroupingFactorDescriptor,
    IdentityDescriptor,
    OffsetDescriptor,
    OrderedFactorDescriptor,
    PolynomialDescriptor,
    Source,
    UnorderedFactorDescriptor,
    output_columns,
    replay,
)
from standardize.exceptions import (
    DegenerateFactorError,
    FormulaError,
    MissingVariableError,
    ZeroVarianceError,
)
from standardize.formula.names import NameSanitizer, expanded_names, rewrite_formula
from standardize.formula.nodes import Call, Variable, deparse
from standardize.formula.terms import ParsedFormula, Role, Term, Wrapper, parse_formula
from standardize.levels import observed_levels, ordered_levels, sort_levels
from standardize.model import StandardizedModel
from standardize.parallel import map_ordered
from standardize.scaling import (
    compute_grouped_params,
    compute_scaling_params,
    evaluate_poly_basis,
    fit_poly_basis,
    require_numeric,
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def is_gaussian(family: str) -> bool:
    """Whether a family token names the gaussian (identity) family."""
    return family.strip().lower() in GAUSSIAN_FAMILIES


def term_source(term: Term) -> Source:
    """Numeric source of a continuous, response or offset term."""
    if term.wrapper is Wrapper.EXPRESSION:
        return Source(expression=term.expression, requires=term.variables)
    return Source(variable=term.variable, log=term.wrapper is Wrapper.LOG)


class TransformEngine:
    """
    Computes transform parameters from training data and builds the model.

    Attributes:
        config: Explicit settings (scale, family, n_jobs)
    """

    def __init__(self, config: Optional[StandardizeConfig] = None):
        self.config = config or StandardizeConfig()

    @property
    def gaussian(self) -> bool:
        return is_gaussian(self.config.family)

    # ------------------------------------------------------------------
    # response and offset
    # ------------------------------------------------------------------

    def _fit_response(self, term: Term, name: str, data: pd.DataFrame) -> Descriptor:
        role = Role.RESPONSE.value
        source = term_source(term)

        if not self.gaussian:
            if term.wrapper is Wrapper.GROUPED_SCALE:
                raise FormulaError(
                    f"scale_by() on the response requires a gaussian family, "
                    f"got '{self.config.family}'"
                )
            return IdentityDescriptor(name, term.raw, role, source)

        if term.wrapper is Wrapper.GROUPED_SCALE:
            params = compute_grouped_params(
                data[term.variable], data[term.grouping], term.variable, term.grouping
            )
            return GroupedContinuousDescriptor(name, term.raw, role, source, params, target=1.0)

        values = require_numeric(source.values(data), source.label)
        params = compute_scaling_params(values, source.label)
        return ContinuousDescriptor(name, term.raw, role, source, params, target=1.0)

    def _fit_offset(self, term: Term, name: str, response: Descriptor) -> OffsetDescriptor:
        role = Role.OFFSET.value
        source = term_source(term)
        if response.kind is VariableClass.CONTINUOUS:
            return OffsetDescriptor(name, term.raw, role, source, divisor=response.params.scale)
        if response.kind is VariableClass.GROUPED_CONTINUOUS:
            return OffsetDescriptor(name, term.raw, role, source, grouped=response.params)
        return OffsetDescriptor(name, term.raw, role, source)

    # ------------------------------------------------------------------
    # predictors
    # ------------------------------------------------------------------

    def _fit_term(self, term: Term, name: str, data: pd.DataFrame) -> Descriptor:
        scale = self.config.scale
        role = term.role.value
        values = data[term.variable] if term.variable is not None else None
        var_class = classify_term(term, values)

        if var_class is VariableClass.GROUPING_FACTOR:
            levels = sort_levels(observed_levels(values))
            if len(levels) < 2:
                raise DegenerateFactorError(
                    f"Grouping factor '{term.variable}' needs at least two groups, got {levels}"
                )
            descriptor = GroupingFactorDescriptor(name, term.raw, role, term.variable, tuple(levels))

        elif var_class is VariableClass.GROUPED_CONTINUOUS:
            params = compute_grouped_params(
                values, data[term.grouping], term.variable, term.grouping
            )
            descriptor = GroupedContinuousDescriptor(
                name, term.raw, role, term_source(term), params, target=scale
            )

        elif var_class is VariableClass.UNORDERED_FACTOR:
            levels = observed_levels(values)
            if len(levels) < 2:
                raise DegenerateFactorError(
                    f"Factor '{term.variable}' needs at least two levels, got {levels}"
                )
            descriptor = UnorderedFactorDescriptor(
                name, term.raw, role, term.variable, build_sum_contrast(levels, scale)
            )

        elif var_class is VariableClass.ORDERED_FACTOR:
            levels = ordered_levels(values)
            if len(levels) < 2:
                raise DegenerateFactorError(
                    f"Ordered factor '{term.variable}' needs at least two levels, got {levels}"
                )
            descriptor = OrderedFactorDescriptor(
                name, term.raw, role, term.variable, build_poly_contrast(levels, scale)
            )

        elif var_class is VariableClass.POLYNOMIAL:
            basis = fit_poly_basis(values, term.degree, term.variable)
            columns = evaluate_poly_basis(require_numeric(values, term.variable), basis)
            column_scales = pd.DataFrame(columns).std(ddof=1).to_numpy()
            if not np.all(np.isfinite(column_scales)) or np.any(column_scales <= 0):
                raise ZeroVarianceError(f"'{term.raw}' has a zero-variance polynomial column")
            descriptor = PolynomialDescriptor(
                name, term.raw, role, term.variable, basis,
                tuple(float(s) for s in column_scales), target=scale
            )

        else:
            source = term_source(term)
            source_values = require_numeric(source.values(data), source.label)
            params = compute_scaling_params(source_values, source.label)
            descriptor = ContinuousDescriptor(name, term.raw, role, source, params, target=scale)

        logger.debug(
            f"  {term.raw} -> {', '.join(output_columns(descriptor))} [{var_class.value}]"
        )
        return descriptor

    # ------------------------------------------------------------------
    # orchestration
    # ------------------------------------------------------------------

    def _resolve_offset(self, parsed: ParsedFormula, offset: Optional[str]) -> Tuple[Optional[Term], bool]:
        """Offset term from the formula or the ``offset`` argument; flag says it must be appended."""
        if offset is None:
            return parsed.offset, False
        if not isinstance(offset, str):
            raise ValueError(f"offset must be the name of a column, got {type(offset)}")
        if parsed.offset is not None:
            raise FormulaError(
                f"Both an offset() term and offset='{offset}' were given; use only one"
            )
        node = Call('offset', (Variable(offset),))
        return Term(deparse(node), Role.OFFSET, Wrapper.NONE, offset, node), True

    def fit(self, formula: str, data: pd.DataFrame, offset: Optional[str] = None) -> StandardizedModel:
        """
        Standardize ``data`` for ``formula``.

        Args:
            formula: Regression formula
            data: Training table
            offset: Optional name of an offset column (alternative to an
                ``offset()`` term)

        Returns:
            StandardizedModel

        Raises:
            FormulaError: On malformed or unsupported formula syntax
            MissingVariableError: If the formula names columns not in ``data``
            DegenerateFactorError: For factors with fewer than two levels
            ZeroVarianceError: For constant continuous variables or groups
            NonNumericError: For numeric transforms of non-numeric data
        """
        if not isinstance(data, pd.DataFrame):
            raise ValueError(f"data must be a DataFrame, got {type(data)}")

        parsed = parse_formula(formula)
        offset_term, append_offset = self._resolve_offset(parsed, offset)
        predictors = [t for t in parsed.terms if t.role is not Role.OFFSET]

        needed = list(parsed.variables) + (list(offset_term.variables) if offset_term else [])
        missing = [v for v in dict.fromkeys(needed) if v not in data.columns]
        if missing:
            raise MissingVariableError(missing)

        logger.info("=" * 60)
        logger.info("STANDARDIZING MODEL DATA")
        logger.info("=" * 60)
        logger.info(
            f"Formula '{formula}' on {len(data):,} rows, {len(parsed.variables)} variables, "
            f"family={self.config.family}, "
            f"scale={self.config.scale}"
        )

        sanitizer = NameSanitizer()
        response_name = sanitizer.assign(parsed.response.raw)
        names = {
            t.raw: sanitizer.assign(t.raw, t.degree if t.wrapper is Wrapper.POLYNOMIAL else 1)
            for t in predictors
        }
        offset_name = sanitizer.assign(offset_term.raw) if offset_term else None

        response = self._fit_response(parsed.response, response_name, data)
        fitted = map_ordered(
            lambda t: self._fit_term(t, names[t.raw], data), predictors, self.config.n_jobs
        )
        descriptors: List[Descriptor] = [response] + fitted
        if offset_term is not None:
            descriptors.append(self._fit_offset(offset_term, offset_name, response))

        frames = map_ordered(lambda d: replay(d, data), descriptors, self.config.n_jobs)
        std_data = pd.concat(frames, axis=1)

        replacements = {parsed.response.raw: response_name}
        for t in predictors:
            if t.wrapper is Wrapper.POLYNOMIAL:
                replacements[t.raw] = f"({' + '.join(expanded_names(names[t.raw], t.degree))})"
            else:
                replacements[t.raw] = names[t.raw]
        if offset_term is not None and not append_offset:
            replacements[offset_term.raw] = f"offset({offset_name})"
        new_formula = rewrite_formula(parsed.tree, replacements)
        if append_offset:
            new_formula = f"{new_formula} + offset({offset_name})"

        call: Dict[str, Any] = {
            'formula': formula,
            'family': self.config.family,
            'scale': self.config.scale,
            'offset': offset,
            'n_jobs': self.config.n_jobs,
        }
        model = StandardizedModel.build(
            call=call,
            scale=self.config.scale,
            formula=new_formula,
            family=self.config.family,
            data=std_data,
            descriptors={d.name: d for d in descriptors}
        )

        counts = model.summary()['class_counts']
        logger.info(f"Standardized formula: {new_formula}")
        for kind, count in counts.items():
            logger.info(f"  {kind}: {count}")
        return model


def standardize(
    formula: str,
    data: pd.DataFrame,
    family: Optional[str] = None,
    scale: Optional[float] = None,
    offset: Optional[str] = None,
    config: Optional[StandardizeConfig] = None,
    n_jobs: Optional[int] = None
) -> StandardizedModel:
    """
    Standardize a regression model's data.

    Args:
        formula: Formula such as ``"y ~ x + f + (1 | g)"``
        data: Training table
        family: Regression family (default from ``config``, else 'gaussian')
        scale: Target scale for predictors and contrasts (default 1)
        offset: Optional name of an offset column
        config: Explicit settings; keyword arguments override its values
        n_jobs: Threads used to transform independent variables

    Returns:
        StandardizedModel whose ``formula`` and ``data`` go to the fitting routine
    """
    base = config or StandardizeConfig()
    settings = StandardizeConfig(
        scale=base.scale if scale is None else scale,
        family=base.family if family is None else family,
        n_jobs=base.n_jobs if n_jobs is None else n_jobs
    )
    return TransformEngine(settings).fit(formula, data, offset=offset)
