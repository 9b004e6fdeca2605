"""Language-model transaction classifier using a local Ollama server.

The model knows which merchants belong to which spending categories,
which makes it a good last resort for transactions that no rule, bank
category or statistical neighbour could place. It is also the slowest
and most expensive stage, so the pipeline only calls it for leftovers.

A missing or unreachable server is "no signal", never an error.
"""

import json
import re

import httpx
import structlog

from finmatch.config import settings
from finmatch.schemas.category import Category
from finmatch.schemas.classification import Prediction, UserContext
from finmatch.schemas.transaction import Transaction

logger = structlog.get_logger()

_JSON_OBJECT = re.compile(r"\{[^{}]+\}")

_PROMPT = """You classify personal bank transactions into the user's categories.

Categories (id: name):
{categories}

Transaction:
{transaction}

Reply with a single JSON object and nothing else:
{{"category_id": <id>, "category_name": "<name>", "confidence": "<high|medium|low>", "explanation": "<one sentence>"}}

- pick exactly one id from the list
- confidence is "high" when certain, "medium" when likely, "low" when guessing
- when no category fits, reply {{"category_id": null, "category_name": null, "confidence": "low", "explanation": "cannot determine"}}"""


def extract_json_object(text: str) -> dict | None:
    """First JSON object in ``text``: the whole reply, or one embedded in prose."""
    text = text.strip()
    for chunk in [text, *_JSON_OBJECT.findall(text)]:
        try:
            value = json.loads(chunk)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None


class OllamaTransactionClassifier:
    """One ``/api/generate`` call per transaction."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout
        self._transport = transport
        self._levels = {
            "high": settings.llm_confidence_high,
            "medium": settings.llm_confidence_medium,
            "low": settings.llm_confidence_low,
        }

    async def is_available(self) -> bool:
        """True when the server answers and serves the configured model (any tag)."""
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
                resp.raise_for_status()
                installed = {m.get("name", "") for m in resp.json().get("models", [])}
        except httpx.HTTPError:
            return False
        return any(name.split(":", 1)[0] == self.model or name == self.model for name in installed)

    async def classify(self, transaction: Transaction, context: UserContext) -> Prediction | None:
        if not context.categories:
            logger.debug("llm_no_categories", user_id=context.user_id)
            return None

        reply = await self._generate(self._build_prompt(transaction, context.categories))
        if not reply:
            return None

        payload = extract_json_object(reply)
        if payload is None:
            logger.warning("llm_reply_unparseable", transaction_id=transaction.id, reply=reply[:200])
            return None
        return self._to_prediction(payload, context.categories)

    def _build_prompt(self, transaction: Transaction, categories: list[Category]) -> str:
        category_lines = "\n".join(self._describe_category(c) for c in categories)

        amount = f"+{transaction.amount}" if transaction.amount >= 0 else str(transaction.amount)
        lines = [f'  Description: "{transaction.description}"']
        if transaction.user_description:
            lines.append(f'  User note: "{transaction.user_description}"')
        lines += [f"  Amount: {amount}", f"  Date: {transaction.posted_date.isoformat()}"]
        if transaction.account_type:
            lines.append(f"  Account type: {transaction.account_type}")

        return _PROMPT.format(categories=category_lines, transaction="\n".join(lines))

    @staticmethod
    def _describe_category(category: Category) -> str:
        name = f"{category.parent_name} > {category.name}" if category.parent_name else category.name
        hint = f" ({category.description})" if category.description else ""
        return f"  {category.id}: {name}{hint}"

    async def _generate(self, prompt: str) -> str | None:
        timeout = httpx.Timeout(self.timeout, connect=5.0)
        body = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.1, "num_predict": 200},
        }
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/api/generate", json=body)
                resp.raise_for_status()
                return resp.json().get("response") or None
        except httpx.TimeoutException:
            logger.warning("llm_request_timeout", model=self.model, timeout=self.timeout)
        except httpx.HTTPStatusError as e:
            logger.warning("llm_request_rejected", status=e.response.status_code, body=e.response.text[:200])
        except httpx.HTTPError as e:
            logger.warning("llm_server_unreachable", url=self.base_url, error=str(e))
        return None

    def _to_prediction(self, payload: dict, categories: list[Category]) -> Prediction | None:
        category = self._resolve_category(payload, categories)
        if category is None:
            return None

        level = payload.get("confidence")
        if not isinstance(level, str):
            level = "medium"
        return Prediction(
            category_id=category.id,
            confidence=self._levels.get(level.lower(), self._levels["medium"]),
            explanation=payload.get("explanation") or "",
        )

    @staticmethod
    def _resolve_category(payload: dict, categories: list[Category]) -> Category | None:
        """By id; models sometimes get the id wrong but the name right."""
        by_id = {c.id: c for c in categories}
        category_id = payload.get("category_id")
        if isinstance(category_id, int) and category_id in by_id:
            return by_id[category_id]

        name = str(payload.get("category_name") or "").strip().casefold()
        for category in categories:
            if name and category.name.casefold() == name:
                return category

        if category_id is not None:
            logger.warning("llm_unknown_category", category_id=category_id, known=sorted(by_id))
        return None


class DisabledLanguageModel:
    """Stand-in when no language model is configured."""

    async def is_available(self) -> bool:
        return False

    async def classify(self, transaction: Transaction, context: UserContext) -> Prediction | None:
        return None


def get_language_model_classifier() -> OllamaTransactionClassifier | DisabledLanguageModel:
    if settings.llm_enabled:
        return OllamaTransactionClassifier()
    return DisabledLanguageModel()
