"""
Custom exceptions for fincast.

Purpose
-------
Provides a unified exception hierarchy for consistent error handling
across all fincast modules. All exceptions inherit from FincastError,
enabling catch-all handling when needed.

Exception Hierarchy
-------------------
FincastError (base)
├── ConfigurationError - Invalid configuration or parameters
├── ValidationError - Malformed records or scenario descriptors
│   └── DataIngestionError - Transaction input unusable (fatal)
├── InsufficientDataError - Too little history for an analysis
├── CollaboratorError - Insight generator failed or misbehaved
│   └── CollaboratorTimeoutError - Insight generator did not answer in time
├── ComputationError - Numerical guard tripped
└── ForecastCancelledError - Caller cancelled a running forecast

Propagation policy
------------------
Only DataIngestionError (and an empty normalized history) halts a pipeline
run. Every other error is recorded in ``ForecastResult.errors`` and the
pipeline continues with degraded output.

Usage
-----
>>> from fincast.exceptions import InsufficientDataError
>>>
>>> try:
...     engine.project(data, patterns)
... except InsufficientDataError as e:
...     print(f"Cannot project: {e}")
"""


class FincastError(Exception):
    """
    Base exception for all fincast errors.

    Examples
    --------
    >>> try:
    ...     pipeline.run(transactions)
    ... except FincastError as e:
    ...     logger.error(f"Forecast failed: {e}")
    """
    pass


class ConfigurationError(FincastError):
    """
    Invalid configuration or parameters.

    Raised when a configuration file cannot be read or a component is
    constructed with incompatible parameters, such as:
    - Empty horizon list
    - Unknown insight generator mode
    - Critical-value lookup requested for an unsupported confidence level
    """
    pass


class ValidationError(FincastError):
    """
    Malformed transaction or scenario data.

    Individual bad transaction records are dropped and counted rather than
    raised; this exception surfaces for scenario descriptors and other
    structured inputs that cannot be used at all.

    Examples
    --------
    >>> raise ValidationError(
    ...     "Scenario 'salary_change' requires a numeric 'percentage' "
    ...     "parameter, got 'ten'."
    ... )
    """
    pass


class DataIngestionError(ValidationError):
    """
    Transaction input cannot be used at all.

    This is the single fatal condition of the pipeline: the raw input is not
    a list of records, or no record survives normalization.
    """
    pass


class InsufficientDataError(FincastError):
    """
    Too few records for a given analysis.

    Raised when seasonality, trend estimation, projection or back-testing
    lacks the history it needs. The affected analysis is skipped with a note;
    the pipeline continues.

    Examples
    --------
    >>> raise InsufficientDataError(
    ...     "Trend estimation needs at least 2 months of history, got 1."
    ... )
    """
    pass


class CollaboratorError(FincastError):
    """
    The external insight generator failed or returned an unusable response.

    The pipeline degrades to empty insight lists when this is raised.
    """
    pass


class CollaboratorTimeoutError(CollaboratorError):
    """
    The external insight generator did not respond within its timeout.

    Examples
    --------
    >>> raise CollaboratorTimeoutError(
    ...     "Insight generator did not respond within 30.0s."
    ... )
    """
    pass


class ComputationError(FincastError):
    """
    A numerical guard was tripped.

    Raised for conditions such as a ratio over a zero average. Callers fall
    back to a neutral multiplier of 1.0 instead of propagating.
    """
    pass


class ForecastCancelledError(FincastError):
    """
    The caller cancelled a running forecast.

    All partially computed stage outputs are discarded; no result is
    returned for a cancelled run.
    """
    pass
