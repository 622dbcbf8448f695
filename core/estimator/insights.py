"""
Insight Augmenter

Optional, best-effort narrative for an estimate via an external
text-generation API. Runs only after the numeric estimate is final and
only for tenants with the feature enabled and a credential configured.

Every failure (bad credential, timeout, HTTP error, malformed response)
is absorbed here: the narrative is omitted and the estimate is returned
unchanged.
"""

import json
import logging
import re
from concurrent.futures import Executor, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional, Protocol, Sequence

import requests

from utils.formatting import format_currency, format_percent, format_price

from .errors import AugmentationError
from .models import (
    AdjustedComparable,
    EstimateResult,
    InsightPayload,
    TransactionDirection,
    UnitSpec,
)
from .settings import TenantSettings

logger = logging.getLogger(__name__)


ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TIMEOUT_SECONDS = 8.0
MAX_COMPARABLES_IN_PROMPT = 5
MAX_TOKENS = 800

# Shared pool for bounded-time generation calls
_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="insights")


class TextGenerationClient(Protocol):
    """External text-generation capability."""

    def generate(self, prompt: str, api_key: str, timeout: float) -> str:
        ...


class AnthropicTextClient:
    """Messages API client. Raises AugmentationError on any failure."""

    def __init__(
        self,
        api_url: str = ANTHROPIC_API_URL,
        model: str = DEFAULT_MODEL,
        max_tokens: int = MAX_TOKENS,
        session: Optional[requests.Session] = None,
    ):
        self._api_url = api_url
        self._model = model
        self._max_tokens = max_tokens
        self._session = session or requests.Session()
        self._session.headers.update({
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        })

    def generate(self, prompt: str, api_key: str, timeout: float) -> str:
        body = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            response = self._session.post(
                self._api_url,
                json=body,
                headers={"x-api-key": api_key},
                timeout=timeout,
            )
        except requests.Timeout as exc:
            raise AugmentationError(f"Text generation timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            raise AugmentationError(f"Text generation request failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AugmentationError("Text generation credential rejected")
        if not response.ok:
            raise AugmentationError(f"Text generation API error: {response.status_code}")

        try:
            data = response.json()
            return data["content"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AugmentationError("Malformed text generation response") from exc


def build_prompt(
    spec: UnitSpec,
    estimate: EstimateResult,
    comparables: Sequence[AdjustedComparable],
) -> str:
    """Assemble the subject, estimate and up to five comparable summaries."""
    lease = spec.direction is TransactionDirection.LEASE
    kind = "rental" if lease else "sale"

    lines = [
        f"Analyze this {spec.category.value} {kind} price estimate.",
        "",
        f"Unit: {spec.bedrooms if spec.bedrooms is not None else '?'} bed, "
        f"{spec.bathrooms if spec.bathrooms is not None else '?'} bath, {spec.area_label}",
        f"Parking: {spec.parking}, Locker: {'Yes' if spec.has_locker else 'No'}",
        f"Estimated price: {format_price(estimate.estimated_price, lease)} "
        f"(range {format_currency(estimate.price_range.low)} - {format_currency(estimate.price_range.high)}, "
        f"{estimate.confidence.value} confidence, {estimate.sample_count} comparables at "
        f"{estimate.tier.value} level)",
        "",
        "Recent comparables:",
    ]
    for comp in list(comparables)[:MAX_COMPARABLES_IN_PROMPT]:
        txn = comp.transaction
        area = txn.area_range.label if txn.area_range else (f"{txn.exact_sqft}" if txn.exact_sqft else "?")
        change = ""
        if txn.list_price:
            change = f", {format_percent((txn.close_price - txn.list_price) / txn.list_price, signed=True)} vs list"
        dom = f", {txn.days_on_market} days" if txn.days_on_market is not None else ""
        lines.append(
            f"- {txn.bedrooms}bed {area}sqft closed {txn.close_date.isoformat()} for "
            f"{format_price(txn.close_price, lease)} (adjusted {format_currency(comp.adjusted_price)}{dom}{change})"
        )
    lines += [
        "",
        "Respond with JSON only:",
        '{"summary": "2-3 sentence overview", "keyFactors": ["factor1", "factor2", "factor3"], '
        '"marketTrend": "1 sentence trend analysis"}',
    ]
    return "\n".join(lines)


def parse_insight(text: str) -> InsightPayload:
    """
    Parse the model's JSON reply.

    Raises:
        AugmentationError: not JSON, or no summary
    """
    cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise AugmentationError("Narrative was not valid JSON") from exc
    if not isinstance(data, dict) or not isinstance(data.get("summary"), str) or not data["summary"].strip():
        raise AugmentationError("Narrative is missing a summary")

    factors = data.get("keyFactors", data.get("key_factors", []))
    if not isinstance(factors, list):
        factors = []
    return InsightPayload(
        summary=data["summary"].strip(),
        key_factors=[str(f) for f in factors if f],
        market_trend=str(data.get("marketTrend", data.get("market_trend", "")) or ""),
    )


class InsightAugmenter:
    """
    Bounded-time narrative generation attached after the numeric estimate.

    The call runs on a worker thread; its outcome is merged only when it
    completes successfully within the timeout.
    """

    def __init__(
        self,
        client: TextGenerationClient,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        executor: Optional[Executor] = None,
    ):
        self._client = client
        self._timeout = timeout
        self._executor = executor or _EXECUTOR

    @staticmethod
    def should_run(
        estimate: EstimateResult,
        settings: TenantSettings,
        include_narrative: bool,
    ) -> bool:
        """Requested, enabled for the tenant, credentialed, and priced."""
        return include_narrative and settings.insights_available and estimate.show_price

    def augment(
        self,
        spec: UnitSpec,
        estimate: EstimateResult,
        comparables: Sequence[AdjustedComparable],
        settings: TenantSettings,
    ) -> Optional[InsightPayload]:
        """
        Generate a narrative, or None on any failure.

        Never raises.
        """
        if not settings.insights_available:
            return None

        try:
            prompt = build_prompt(spec, estimate, comparables)
            future = self._executor.submit(self._generate, prompt, settings.insights_api_key)
            return future.result(timeout=self._timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "Insight generation for tenant %s exceeded %.1fs; omitting narrative",
                settings.tenant_id, self._timeout,
            )
        except AugmentationError as exc:
            logger.warning("Insight generation for tenant %s failed: %s", settings.tenant_id, exc)
        except Exception:
            logger.warning(
                "Unexpected insight failure for tenant %s", settings.tenant_id, exc_info=True,
            )
        return None

    def _generate(self, prompt: str, api_key: str) -> InsightPayload:
        text = self._client.generate(prompt, api_key, self._timeout)
        return parse_insight(text)
