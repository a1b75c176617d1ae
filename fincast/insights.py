"""
Qualitative insight generation for fincast.

Purpose
-------
The pattern analyzer may ask an external collaborator for strategic
commentary on a structured financial summary. This module defines the
narrow interface of that collaborator and the guarded call the pipeline
makes through it.

Key components
--------------
- InsightBundle:
    Immutable container of strategic insights, financial risks,
    opportunities and recommendations. Built leniently from whatever the
    collaborator returned; malformed parts become empty tuples.

- InsightGenerator (protocol):
    ``generate_insights(context) -> InsightBundle | Mapping``.
    Implementations: OpenAIInsightGenerator (chat completion API) and
    HeuristicInsightGenerator (local rules, no network).

- request_insights:
    Runs a generator in a worker thread under an explicit timeout and an
    optional cancellation event. Timeouts raise CollaboratorTimeoutError,
    failures and malformed responses raise CollaboratorError; the caller
    degrades to ``InsightBundle.empty()``.

Example
-------
>>> generator = HeuristicInsightGenerator()
>>> bundle = request_insights(generator, context, timeout=5.0)
>>> bundle.total_count
4
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Protocol, Tuple, Union

from openai import APIError, APITimeoutError, OpenAI

from .config import AppSettings
from .constants import DEFAULT_INSIGHT_TIMEOUT, DEFAULT_OPENAI_MODEL
from .exceptions import (
    CollaboratorError,
    CollaboratorTimeoutError,
    ConfigurationError,
    ForecastCancelledError,
)
from .types import InsightsDict

__all__ = [
    "InsightBundle",
    "InsightGenerator",
    "HeuristicInsightGenerator",
    "OpenAIInsightGenerator",
    "parse_insight_text",
    "request_insights",
]

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

# Accepted spellings of each bundle field in collaborator payloads
_FIELD_ALIASES = {
    "strategic_insights": ("strategic_insights", "strategicInsights", "insights"),
    "financial_risks": ("financial_risks", "financialRisks", "risks"),
    "opportunities": ("opportunities",),
    "recommendations": ("recommendations",),
}


# ---------------------------------------------------------------------------
# Insight bundle
# ---------------------------------------------------------------------------

def _string_items(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    items = []
    for item in value:
        if isinstance(item, str) and item.strip():
            items.append(item.strip())
        elif isinstance(item, Mapping):
            # {"title": ..., "description": ...} style entries
            text = item.get("description") or item.get("text") or item.get("title")
            if isinstance(text, str) and text.strip():
                items.append(text.strip())
    return tuple(items)


@dataclass(frozen=True)
class InsightBundle:
    """Qualitative commentary returned by an insight generator."""
    strategic_insights: Tuple[str, ...] = ()
    financial_risks: Tuple[str, ...] = ()
    opportunities: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    source: str = "none"

    @classmethod
    def empty(cls, source: str = "none") -> "InsightBundle":
        return cls(source=source)

    @classmethod
    def from_payload(cls, payload: Union["InsightBundle", Mapping[str, Any]], source: str = "unknown") -> "InsightBundle":
        """
        Build a bundle from a collaborator payload.

        Fields that are missing or not lists of strings become empty. A
        payload that is not a mapping at all is malformed.

        Raises
        ------
        CollaboratorError
            If *payload* is neither an InsightBundle nor a mapping.
        """
        if isinstance(payload, InsightBundle):
            return payload
        if not isinstance(payload, Mapping):
            raise CollaboratorError(
                f"Insight generator returned {type(payload).__name__}, expected a mapping."
            )
        values = {}
        for name, aliases in _FIELD_ALIASES.items():
            raw = next((payload[key] for key in aliases if key in payload), None)
            values[name] = _string_items(raw)
        return cls(source=source, **values)

    @property
    def total_count(self) -> int:
        return (
            len(self.strategic_insights)
            + len(self.financial_risks)
            + len(self.opportunities)
            + len(self.recommendations)
        )

    def to_dict(self) -> InsightsDict:
        return {
            "strategic_insights": list(self.strategic_insights),
            "financial_risks": list(self.financial_risks),
            "opportunities": list(self.opportunities),
            "recommendations": list(self.recommendations),
            "source": self.source,
        }


class InsightGenerator(Protocol):
    """Anything that turns a financial summary into qualitative insights."""

    name: str

    def generate_insights(self, context: Mapping[str, Any]) -> Union[InsightBundle, Mapping[str, Any]]:
        ...


# ---------------------------------------------------------------------------
# Guarded call
# ---------------------------------------------------------------------------

def request_insights(
    generator: InsightGenerator,
    context: Mapping[str, Any],
    timeout: float = DEFAULT_INSIGHT_TIMEOUT,
    cancel_event: Optional[threading.Event] = None,
) -> InsightBundle:
    """
    Call *generator* in a worker thread, bounded by *timeout* seconds.

    Parameters
    ----------
    generator : InsightGenerator
        Collaborator to call.
    context : Mapping
        Structured financial summary handed to the generator.
    timeout : float
        Seconds to wait before giving up.
    cancel_event : threading.Event, optional
        When set while waiting, the call is abandoned.

    Returns
    -------
    InsightBundle

    Raises
    ------
    CollaboratorTimeoutError
        The generator did not answer within *timeout*.
    CollaboratorError
        The generator raised or returned a malformed payload.
    ForecastCancelledError
        *cancel_event* was set while waiting.
    """
    if timeout <= 0:
        raise ConfigurationError(f"timeout must be positive, got {timeout}.")
    if cancel_event is not None and cancel_event.is_set():
        raise ForecastCancelledError("Forecast cancelled before insight generation.")

    name = getattr(generator, "name", type(generator).__name__)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fincast-insights")
    try:
        future = executor.submit(generator.generate_insights, dict(context))
        deadline = time.monotonic() + timeout
        while not future.done():
            if cancel_event is not None and cancel_event.is_set():
                future.cancel()
                raise ForecastCancelledError("Forecast cancelled during insight generation.")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise CollaboratorTimeoutError(
                    f"Insight generator '{name}' did not respond within {timeout:.1f}s."
                )
            wait([future], timeout=min(remaining, _POLL_INTERVAL))

        try:
            payload = future.result()
        except CollaboratorError:
            raise
        except Exception as exc:
            raise CollaboratorError(f"Insight generator '{name}' failed: {exc}") from exc
    finally:
        # Never block the pipeline on a stuck collaborator thread
        executor.shutdown(wait=False, cancel_futures=True)

    bundle = InsightBundle.from_payload(payload, source=name)
    logger.info("Insight generator '%s' returned %d items", name, bundle.total_count)
    return bundle


# ---------------------------------------------------------------------------
# OpenAI generator
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are a personal finance analyst. You receive a structured summary of "
    "an account's transaction history and its detected patterns. Respond with "
    "a single JSON object only."
)

USER_PROMPT_TEMPLATE = """Review this financial summary and its detected patterns.

SUMMARY:
{summary}

PATTERNS:
{patterns}

RECENT TRANSACTIONS:
{recent}

Respond with JSON using exactly these keys, each a list of short sentences:
{{
  "strategicInsights": [],
  "financialRisks": [],
  "opportunities": [],
  "recommendations": []
}}"""


def parse_insight_text(text: str) -> Mapping[str, Any]:
    """
    Extract the first JSON object from free text.

    Raises
    ------
    CollaboratorError
        If no JSON object can be decoded.
    """
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        raise CollaboratorError("Insight response contained no JSON object.")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise CollaboratorError(f"Insight response was not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise CollaboratorError("Insight response JSON was not an object.")
    return payload


class OpenAIInsightGenerator:
    """
    Insight generator backed by the OpenAI chat completions API.

    Parameters
    ----------
    api_key : str, optional
        API key; required unless *client* is given.
    model : str
        Chat model name.
    base_url : str, optional
        Alternative OpenAI-compatible endpoint.
    timeout : float
        Client-side request timeout in seconds.
    max_tokens : int
        Completion token budget.
    client : openai.OpenAI, optional
        Pre-built client (used by tests).
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_OPENAI_MODEL,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_INSIGHT_TIMEOUT,
        max_tokens: int = 1500,
        client: Optional[OpenAI] = None,
    ):
        if client is None:
            if not api_key:
                raise ConfigurationError(
                    "Missing OpenAI API key. Set FINCAST_OPENAI_API_KEY or pass api_key."
                )
            client_kwargs: dict[str, Any] = {"api_key": api_key, "timeout": timeout, "max_retries": 1}
            if base_url:
                client_kwargs["base_url"] = base_url
            client = OpenAI(**client_kwargs)
        self._client = client
        self.model = model
        self.max_tokens = int(max_tokens)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "OpenAIInsightGenerator":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.insight_timeout,
            max_tokens=settings.insight_max_tokens,
        )

    def build_messages(self, context: Mapping[str, Any]) -> list[dict[str, str]]:
        prompt = USER_PROMPT_TEMPLATE.format(
            summary=json.dumps(context.get("summary", {}), indent=2, default=str),
            patterns=json.dumps(
                {k: context.get(k) for k in ("seasonality", "recurring", "trend")},
                indent=2,
                default=str,
            ),
            recent="\n".join(
                f"{t.get('date')}: {t.get('description')} {t.get('amount'):.2f} ({t.get('category')})"
                for t in context.get("recent_transactions", [])
            ),
        )
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def generate_insights(self, context: Mapping[str, Any]) -> Mapping[str, Any]:
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(context),
                max_tokens=self.max_tokens,
                temperature=0.3,
                response_format={"type": "json_object"},
            )
        except APITimeoutError as exc:
            raise CollaboratorTimeoutError(f"OpenAI request timed out: {exc}") from exc
        except APIError as exc:
            raise CollaboratorError(f"OpenAI request failed: {exc}") from exc

        if not completion.choices:
            raise CollaboratorError("OpenAI returned no choices.")
        return parse_insight_text(completion.choices[0].message.content or "")


# ---------------------------------------------------------------------------
# Heuristic generator
# ---------------------------------------------------------------------------

def _fmt(amount: float) -> str:
    return f"${amount:,.2f}"


class HeuristicInsightGenerator:
    """Rule-based insights derived from the context alone; no network."""

    name = "heuristic"

    def generate_insights(self, context: Mapping[str, Any]) -> InsightBundle:
        summary = context.get("summary", {}) or {}
        trend = context.get("trend") or {}
        seasonality = context.get("seasonality") or {}
        recurring: Iterable[Mapping[str, Any]] = context.get("recurring") or []

        insights, risks, opportunities, recommendations = [], [], [], []

        income = float(summary.get("total_income", 0.0) or 0.0)
        expenses = float(summary.get("total_expenses", 0.0) or 0.0)
        net = float(summary.get("net_income", 0.0) or 0.0)
        months = int(summary.get("months_of_history", 0) or 0)

        if net >= 0:
            insights.append(f"You have positive cash flow of {_fmt(net)} over the history.")
        else:
            risks.append(f"Cash flow is negative by {_fmt(abs(net))} over the history.")
            recommendations.append("Reduce discretionary spending until monthly net flow is positive.")

        if income > 0:
            savings_rate = net / income
            insights.append(f"Your savings rate is {savings_rate:.0%} of income.")
            if 0 <= savings_rate < 0.1:
                recommendations.append("Aim to save at least 10% of income each month.")
            elif savings_rate >= 0.2:
                opportunities.append("A savings rate above 20% leaves room to invest surplus cash.")

        expense_patterns = [p for p in recurring if float(p.get("average_amount", 0.0)) < 0]
        if expense_patterns:
            fixed = sum(abs(float(p.get("monthly_amount", 0.0))) for p in expense_patterns)
            insights.append(
                f"{len(expense_patterns)} recurring expenses cost about {_fmt(fixed)} per month."
            )
            if income > 0 and months > 0 and fixed > 0.5 * income / months:
                risks.append("Recurring commitments exceed half of average monthly income.")
                opportunities.append("Review recurring subscriptions and contracts for savings.")

        if seasonality.get("detected"):
            peaks = seasonality.get("peak_expense_months") or []
            if peaks:
                insights.append(f"Spending peaks in months {', '.join(str(m + 1) for m in peaks)}.")
                recommendations.append("Set aside cash ahead of seasonal spending peaks.")

        direction = trend.get("direction")
        if direction == "decreasing":
            risks.append("Monthly net flow is trending downward.")
        elif direction == "increasing" and float(trend.get("strength", 0.0)) > 2:
            opportunities.append("Net flow is rising steadily; consider automating savings.")

        if expenses == 0 and income == 0:
            recommendations.append("Import more transaction history for meaningful insights.")

        return InsightBundle(
            strategic_insights=tuple(insights),
            financial_risks=tuple(risks),
            opportunities=tuple(opportunities),
            recommendations=tuple(recommendations),
            source=self.name,
        )
