"""
Optional model based category signal.

`SentimentAdapter` wraps a pluggable async text classification backend. With no
backend, or one that failed to initialise, it contributes nothing. Backend
failures during a call are logged and swallowed so categorization never sees
them.
"""

from openai import AsyncOpenAI
from typing import List, Optional, Sequence, Tuple
from app.core.config import settings
from app.core.exceptions import ClassificationError
from app.services.classifiers import CATEGORY_KEYWORDS, CategorySignal
import logging
import json

logger = logging.getLogger(__name__)


class ClassifierBackend:
    """Contract for model backends: pick one label for a text and score it."""

    name = "backend"

    async def initialize(self) -> None:
        pass

    async def classify(
        self, text: str, labels: Sequence[str]
    ) -> Optional[Tuple[str, float]]:
        raise NotImplementedError


class OpenAIZeroShotBackend(ClassifierBackend):
    """Zero-shot label selection through the OpenAI chat completions API."""

    name = "openai-zero-shot"

    SYSTEM_PROMPT = """You label short social media posts. Pick the single best matching label from the list you are given.

Rules:
1. Answer with one label copied exactly from the list
2. confidence is how sure you are, from 0.0 to 1.0
3. Use the post's meaning, not its language

JSON format:
{
    "label": "one of the labels",
    "confidence": 0.0-1.0
}"""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key or settings.OPENAI_API_KEY
        if not api_key:
            raise ClassificationError(self.name, "OPENAI_API_KEY is not configured")
        self.model = model or settings.LLM_MODEL
        self.client = AsyncOpenAI(api_key=api_key)

    async def classify(
        self, text: str, labels: Sequence[str]
    ) -> Optional[Tuple[str, float]]:
        label_list = "\n".join(f'  - "{label}"' for label in labels)
        user_prompt = f"""Post:
{text}

Labels:
{label_list}"""

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
        )
        result = json.loads(response.choices[0].message.content)
        logger.debug(f"Zero-shot result: {result}")

        label = result.get("label")
        if label not in labels:
            return None
        return label, float(result.get("confidence", 0.0))


class SentimentAdapter:
    """Turns a backend's single label into a ranked signal tagged method="ai"."""

    method = "ai"

    def __init__(
        self,
        backend: Optional[ClassifierBackend] = None,
        labels: Optional[Sequence[str]] = None,
    ):
        self.backend = backend
        self.labels = list(labels) if labels is not None else list(CATEGORY_KEYWORDS)
        self.initialized = False

    @property
    def available(self) -> bool:
        return self.backend is not None and self.initialized

    async def initialize(self) -> bool:
        """Prepare the backend; on failure the adapter stays a no-op."""
        if self.backend is None:
            logger.info("AI categorization disabled, using rule based signals only")
            return False
        try:
            await self.backend.initialize()
            self.initialized = True
            logger.info(f"AI categorization backend '{self.backend.name}' ready")
        except Exception as e:
            logger.warning(
                f"Error initializing AI backend '{self.backend.name}', "
                f"falling back to rule based signals: {e}"
            )
            self.initialized = False
        return self.initialized

    async def classify(self, text: str) -> List[CategorySignal]:
        if not self.available or not text or not isinstance(text, str):
            return []
        try:
            result = await self.backend.classify(text, self.labels)
        except Exception as e:
            logger.warning(f"AI backend '{self.backend.name}' failed: {e}")
            return []
        if not result:
            return []

        label, confidence = result
        return [
            CategorySignal(
                category=label,
                confidence=min(max(confidence, 0.0), 1.0),
                method=self.method,
                details={"model": self.backend.name},
            )
        ]


def build_sentiment_adapter() -> SentimentAdapter:
    """Adapter configured from settings; a misconfigured backend degrades to no-op."""
    if not settings.ENABLE_AI_CATEGORIZATION:
        return SentimentAdapter()
    try:
        return SentimentAdapter(OpenAIZeroShotBackend())
    except ClassificationError as e:
        logger.warning(f"{e.message}; AI categorization disabled")
        return SentimentAdapter()
