"""Free-text project description -> weighted material categories.

One outbound chat-completion call per query, never retried. Every outcome is
returned as an :class:`InferenceResult`; a failed call or an unusable reply
yields a failure of a specific :class:`InferenceErrorKind` and no categories.
No fallback category set is ever substituted.
"""

from __future__ import annotations

import json
import logging
import math
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from upcycle_search.config import settings
from upcycle_search.errors import InvalidSearchParameter
from upcycle_search.models import CategoryWeight
from upcycle_search.tools.categories import Category, normalize_category
from upcycle_search.tools.http import OutboundDomainError, safe_post_json

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("OPENROUTER_API_KEY", "GEMINI_API_KEY")
MIN_CATEGORIES = 2
MAX_CATEGORIES = 6


class InferenceErrorKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    NETWORK = "network"
    TIMEOUT = "timeout"
    AUTHENTICATION = "authentication"
    MODEL_NOT_FOUND = "model_not_found"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "upstream_error"
    INVALID_RESPONSE = "invalid_response"
    MALFORMED_JSON = "malformed_json"
    INVALID_SCHEMA = "invalid_schema"
    ZERO_WEIGHTS = "zero_weights"


CLIENT_MESSAGES: Dict[InferenceErrorKind, str] = {
    InferenceErrorKind.NOT_CONFIGURED: (
        "AI search is not configured. Please check OPENROUTER_API_KEY and "
        "INFERENCE_API_URL in environment variables."
    ),
    InferenceErrorKind.NETWORK: "Network error connecting to AI service",
    InferenceErrorKind.TIMEOUT: "AI service did not respond in time. Please try again.",
    InferenceErrorKind.AUTHENTICATION: (
        "AI service authentication failed. Please check API key configuration."
    ),
    InferenceErrorKind.MODEL_NOT_FOUND: (
        "AI model not found. Please check model configuration."
    ),
    InferenceErrorKind.RATE_LIMITED: (
        "AI service rate limit exceeded. Please try again later."
    ),
}
DEFAULT_CLIENT_MESSAGE = "AI inference failed"

_STATUS_KINDS: Dict[int, InferenceErrorKind] = {
    401: InferenceErrorKind.AUTHENTICATION,
    403: InferenceErrorKind.AUTHENTICATION,
    404: InferenceErrorKind.MODEL_NOT_FOUND,
    429: InferenceErrorKind.RATE_LIMITED,
}


@dataclass(frozen=True)
class InferenceFailure:
    kind: InferenceErrorKind
    detail: str
    status_code: Optional[int] = None

    @property
    def message(self) -> str:
        return CLIENT_MESSAGES.get(self.kind, DEFAULT_CLIENT_MESSAGE)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "message": self.message,
            "error": self.detail,
            "kind": self.kind.value,
        }
        if self.status_code is not None:
            payload["statusCode"] = self.status_code
        return payload


@dataclass(frozen=True)
class InferenceResult:
    categories: Tuple[CategoryWeight, ...] = ()
    raw: Optional[Dict[str, Any]] = None
    failure: Optional[InferenceFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def weights(self) -> Dict[Category, float]:
        return {c.name: c.weight for c in self.categories}


class InferenceFailedError(RuntimeError):
    """Raised by callers that cannot continue without categories; maps to HTTP 502."""

    def __init__(self, failure: InferenceFailure):
        super().__init__(f"{failure.kind.value}: {failure.detail}")
        self.failure = failure


def _fail(
    kind: InferenceErrorKind, detail: str, status_code: Optional[int] = None
) -> InferenceResult:
    logger.error("Category inference failed (%s): %s", kind.value, detail)
    return InferenceResult(failure=InferenceFailure(kind, detail, status_code))


SYSTEM_PROMPT = """You are an expert sustainability engineer and material science advisor.

Your task is to analyze a project or use case described by a user and infer
what reusable material categories would be required to build it.

You must reason step-by-step internally using:
1. Functional decomposition (what the system must do)
2. Component inference (what physical parts are needed)
3. Material abstraction (what material types those components map to)

Then produce a structured output.

IMPORTANT RULES:
- Do NOT rely on keyword matching.
- Do NOT assume predefined project types.
- Generalize from first principles.
- Consider real-world engineering constraints.
- Prefer reusable and commonly discarded materials.

CRITICAL: You MUST use ONLY these exact category names (case-sensitive):
- "Chemicals"
- "Glassware" (NOT "Glass")
- "Electronics"
- "Metals" (NOT "Metal")
- "Plastics" (NOT "Plastic")
- "Bio Materials" (exact spelling with space)
- "Other"

OUTPUT FORMAT (STRICT):
Return ONLY valid JSON.
No explanations.
No markdown.
No comments.

JSON SCHEMA:
{
  "categories": [
    {
      "name": "<Material Category - MUST be one of the valid categories above>",
      "weight": <number between 0 and 1>,
      "reason": "<1-line justification>"
    }
  ]
}

RULES FOR WEIGHTS:
- Weights must sum to 1.0
- Higher weight = more critical to the project
- Use at least 2 categories
- Maximum 6 categories
- Category names MUST match exactly one of the valid categories listed above"""


def build_messages(query: str) -> List[Dict[str, str]]:
    user = f'Given the use case: "{query}"\n\nReturn the JSON response now:'
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


def resolve_api_key() -> Optional[str]:
    for name in API_KEY_ENV_VARS:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def _request_headers(api_key: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": settings.app_url,
        "X-Title": settings.app_title,
    }


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "").strip() or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return f"HTTP {resp.status_code}"


def _extract_content(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content.strip():
        return None
    return content


_JSON_FENCE_PATTERN = re.compile(r"```(?:json)?(.*?)```", re.DOTALL | re.IGNORECASE)
_JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def _strip_code_fence(text: str) -> str:
    match = _JSON_FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _json_text(text: str) -> str:
    candidate = _strip_code_fence(text)
    match = _JSON_OBJECT_PATTERN.search(candidate)
    return match.group(0) if match else candidate


def _valid_weight(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and 0 <= value <= 1


def _validate_entries(payload: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    entries = payload.get("categories")
    if not isinstance(entries, list):
        return [], "AI response missing categories array"
    if not entries:
        return [], "AI returned no categories"
    for entry in entries:
        if not isinstance(entry, dict):
            return [], "Invalid category structure: entry is not an object"
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            return [], "Invalid category structure: missing or invalid name"
        if not _valid_weight(entry.get("weight")):
            return [], "Invalid category structure: weight must be between 0 and 1"
        reason = entry.get("reason")
        if not isinstance(reason, str) or not reason.strip():
            return [], "Invalid category structure: missing or invalid reason"
    return entries, None


def collapse_categories(entries: List[Dict[str, Any]]) -> Tuple[CategoryWeight, ...]:
    """Map names onto the taxonomy, sum colliding weights, renormalise to 1.

    ``entries`` must already be validated and have a non-zero weight total.
    """
    merged: Dict[Category, List[Any]] = {}
    for entry in entries:
        raw_name = entry["name"]
        category = normalize_category(raw_name)
        if category.value != raw_name:
            logger.info("Mapped model category %r -> %r", raw_name, category.value)
        slot = merged.setdefault(category, [0.0, []])
        slot[0] += float(entry["weight"])
        reason = entry["reason"].strip()
        if reason not in slot[1]:
            slot[1].append(reason)

    total = sum(weight for weight, _ in merged.values())
    return tuple(
        CategoryWeight(
            name=category,
            weight=min(1.0, weight / total),
            reason="; ".join(reasons),
        )
        for category, (weight, reasons) in merged.items()
    )


def parse_reply(content: str) -> InferenceResult:
    """Turn the model's text reply into normalised category weights."""
    try:
        payload = json.loads(_json_text(content))
    except json.JSONDecodeError as exc:
        logger.debug("Raw model reply: %s", content[:200])
        return _fail(
            InferenceErrorKind.MALFORMED_JSON, f"AI returned invalid JSON format ({exc.msg})"
        )
    if not isinstance(payload, dict):
        return _fail(InferenceErrorKind.MALFORMED_JSON, "AI response is not a JSON object")

    entries, problem = _validate_entries(payload)
    if problem:
        return _fail(InferenceErrorKind.INVALID_SCHEMA, problem)

    if not MIN_CATEGORIES <= len(entries) <= MAX_CATEGORIES:
        logger.warning(
            "Model returned %d categories (expected %d-%d); accepting",
            len(entries),
            MIN_CATEGORIES,
            MAX_CATEGORIES,
        )

    if sum(float(e["weight"]) for e in entries) == 0:
        return _fail(InferenceErrorKind.ZERO_WEIGHTS, "All category weights are zero")

    categories = collapse_categories(entries)
    logger.info(
        "Inferred categories: %s",
        {c.name.value: round(c.weight, 4) for c in categories},
    )
    return InferenceResult(categories=categories, raw=payload)


Poster = Callable[..., requests.Response]


def infer_categories(query: str, *, post: Poster = safe_post_json) -> InferenceResult:
    """Infer weighted categories for ``query``.

    Raises :class:`InvalidSearchParameter` for blank input before any network
    work; every other outcome comes back as an :class:`InferenceResult`.
    """
    if not isinstance(query, str) or not query.strip():
        raise InvalidSearchParameter("query", "Search query is required")

    api_key = resolve_api_key()
    if not api_key:
        return _fail(
            InferenceErrorKind.NOT_CONFIGURED,
            f"None of {', '.join(API_KEY_ENV_VARS)} is set",
        )

    body = {
        "model": settings.inference_model,
        "messages": build_messages(query.strip()),
        "temperature": settings.inference_temperature,
        "max_tokens": settings.inference_max_tokens,
    }
    logger.info("Calling inference model %s", settings.inference_model)
    try:
        resp = post(
            settings.inference_api_url,
            body,
            headers=_request_headers(api_key),
            timeout=settings.inference_timeout_seconds,
        )
    except requests.Timeout as exc:
        return _fail(InferenceErrorKind.TIMEOUT, f"AI service timed out: {exc}")
    except OutboundDomainError as exc:
        return _fail(InferenceErrorKind.NETWORK, str(exc))
    except requests.RequestException as exc:
        return _fail(
            InferenceErrorKind.NETWORK,
            f"Failed to connect to AI service: {exc.__class__.__name__}",
        )
    except ValueError as exc:
        # unusable INFERENCE_API_URL, rejected before any request is sent
        return _fail(InferenceErrorKind.NOT_CONFIGURED, f"Invalid inference URL: {exc}")

    logger.info("Inference response status %s", resp.status_code)
    if not 200 <= resp.status_code < 300:
        kind = _STATUS_KINDS.get(resp.status_code, InferenceErrorKind.UPSTREAM_ERROR)
        return _fail(kind, _error_detail(resp), resp.status_code)

    try:
        data = resp.json()
    except ValueError:
        return _fail(
            InferenceErrorKind.INVALID_RESPONSE, "AI service returned a non-JSON body"
        )
    content = _extract_content(data)
    if content is None:
        return _fail(
            InferenceErrorKind.INVALID_RESPONSE,
            "Invalid response structure from AI service",
        )
    return parse_reply(content)


__all__ = [
    "CLIENT_MESSAGES",
    "InferenceErrorKind",
    "InferenceFailedError",
    "InferenceFailure",
    "InferenceResult",
    "SYSTEM_PROMPT",
    "build_messages",
    "collapse_categories",
    "infer_categories",
    "parse_reply",
    "resolve_api_key",
]
