"""Message classification: remote classifier plus the fallback ladder.

The ladder, applied until one rung yields a category:

1. the remote classifier's answer, mapped to a :class:`Category` by
   exact token match (an answer with no known label maps to the
   configured ``unmapped_category``);
2. if the remote call fails, keyword rules against the subject;
3. the configured static ``fallback_category`` (which may be ``None``).
"""

from __future__ import annotations

import asyncio
import re

import httpx
import structlog
from pydantic import SecretStr

from .config import ClassifierConfig
from .errors import ClassificationUnavailable
from .interfaces import Classifier
from .models import Category, ClassificationResult, ClassificationSource, NormalizedMessage

logger = structlog.get_logger()

REMOTE_CONFIDENCE = 1.0
KEYWORD_CONFIDENCE = 0.6
UNMAPPED_CONFIDENCE = 0.0

_SEP = r"[\s_-]+"
_LABEL_PATTERN = re.compile(
    r"(?<![A-Z0-9_])("
    + "|".join(
        [
            f"NOT{_SEP}INTERESTED",
            f"MEETING{_SEP}BOOKED",
            f"OUT{_SEP}OF{_SEP}OFFICE",
            "INTERESTED",
            "SPAM",
        ]
    )
    + r")(?![A-Z0-9_])"
)

# Ordered: first match wins.
KEYWORD_RULES: tuple[tuple[str, Category], ...] = (
    ("out of office", Category.OUT_OF_OFFICE),
    ("automatic reply", Category.OUT_OF_OFFICE),
    ("meeting confirmed", Category.MEETING_BOOKED),
    ("meeting booked", Category.MEETING_BOOKED),
    ("make money fast", Category.SPAM),
)

PROMPT_TEMPLATE = """Analyze this email and classify it into one of these categories:
- INTERESTED: Shows genuine interest in product/service
- MEETING_BOOKED: Confirms a meeting or appointment
- NOT_INTERESTED: Clearly expresses lack of interest
- SPAM: Unsolicited or spam content
- OUT_OF_OFFICE: Auto-reply or out of office message

Email Content:
{content}

Return only one of these exact category labels: INTERESTED, MEETING_BOOKED, NOT_INTERESTED, SPAM, OUT_OF_OFFICE"""


def map_label(text: str) -> Category | None:
    """Map free classifier output to a category, or ``None`` if no label occurs.

    Labels must appear as whole tokens, so ``INTERESTED`` never matches
    inside ``NOT_INTERESTED``.  When several labels occur, the first wins.
    """
    match = _LABEL_PATTERN.search(text.upper())
    if match is None:
        return None
    return Category(re.sub(_SEP, "_", match.group(1)))


def keyword_category(subject: str) -> Category | None:
    """Deterministic subject rules used when the remote classifier is down."""
    lowered = subject.lower()
    for phrase, category in KEYWORD_RULES:
        if phrase in lowered:
            return category
    return None


def build_excerpt(message: NormalizedMessage, max_body_chars: int) -> str:
    return (
        f"Subject: {message.subject}\n"
        f"From: {message.sender}\n"
        f"Body: {message.body_text[:max_body_chars]}"
    )


class GeminiClassifier(Classifier):
    """Classifier backed by the Gemini ``generateContent`` REST endpoint."""

    def __init__(self, config: ClassifierConfig) -> None:
        if config.api_key is None:
            raise ValueError("GeminiClassifier requires an api_key")
        self._config = config
        self._api_key: SecretStr = config.api_key
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
            headers={"x-goog-api-key": self._api_key.get_secret_value()},
        )
        logger.info("classifier_started", model=self._config.model)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("classifier_stopped")

    async def classify(self, text: str) -> str:
        if self._client is None:
            raise ClassificationUnavailable("classifier not started")

        payload = {"contents": [{"parts": [{"text": PROMPT_TEMPLATE.format(content=text)}]}]}
        try:
            response = await self._client.post(
                f"/models/{self._config.model}:generateContent",
                json=payload,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ClassificationUnavailable(f"{type(exc).__name__}: {exc}") from exc

        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts).strip()
        except (KeyError, IndexError, TypeError) as exc:
            raise ClassificationUnavailable(f"unexpected response shape: {exc!r}") from exc


class Categorizer:
    """Applies the fallback ladder. :meth:`categorize` never raises."""

    def __init__(self, config: ClassifierConfig, classifier: Classifier | None = None) -> None:
        self._config = config
        self._classifier = classifier

    async def categorize(self, message: NormalizedMessage) -> ClassificationResult:
        if self._classifier is not None:
            excerpt = build_excerpt(message, self._config.excerpt_chars)
            try:
                async with asyncio.timeout(self._config.timeout_seconds):
                    raw = await self._classifier.classify(excerpt)
            except (ClassificationUnavailable, TimeoutError) as exc:
                logger.warning(
                    "classification_unavailable",
                    account=message.account_name,
                    uid=message.remote_id,
                    error=str(exc) or type(exc).__name__,
                )
            except Exception:
                logger.exception(
                    "classification_failed",
                    account=message.account_name,
                    uid=message.remote_id,
                )
            else:
                return self._from_remote(message, raw)

        return self._fallback(message)

    def _from_remote(self, message: NormalizedMessage, raw: str) -> ClassificationResult:
        category = map_label(raw)
        if category is not None:
            return ClassificationResult(
                category=category,
                confidence=REMOTE_CONFIDENCE,
                raw_output=raw,
                source=ClassificationSource.REMOTE,
            )
        logger.warning(
            "classifier_output_unmapped",
            uid=message.remote_id,
            output=raw[:200],
            default=self._config.unmapped_category.value,
        )
        return ClassificationResult(
            category=self._config.unmapped_category,
            confidence=UNMAPPED_CONFIDENCE,
            raw_output=raw,
            source=ClassificationSource.UNMAPPED,
        )

    def _fallback(self, message: NormalizedMessage) -> ClassificationResult:
        category = keyword_category(message.subject)
        if category is not None:
            return ClassificationResult(
                category=category,
                confidence=KEYWORD_CONFIDENCE,
                source=ClassificationSource.KEYWORD_RULE,
            )
        default = self._config.fallback_category
        return ClassificationResult(
            category=default,
            confidence=UNMAPPED_CONFIDENCE if default is not None else None,
            source=ClassificationSource.DEFAULT,
        )
