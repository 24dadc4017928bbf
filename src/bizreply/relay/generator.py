"""Reply generation: prompt construction around a chat completion provider.

``ReplyGenerator.generate`` never raises. Any provider failure, an empty
completion or a reply containing a forbidden phrase degrades to the configured
fallback text, and the result is flagged so callers can tell the two apart.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from openai import AsyncOpenAI
from prometheus_client import Counter

from bizreply.catalog.search import ProductMatch
from bizreply.core.config import OpenAISettings
from bizreply.core.db.models import Business, MessageLog
from bizreply.core.domain import MessageDirection
from bizreply.core.errors import ReplyGenerationFailed
from bizreply.core.logging import get_logger

from .rules import describe_store_hours, store_status

logger = get_logger(__name__)

REPLY_GENERATIONS = Counter(
    "bizreply_reply_generations_total",
    "Reply generation attempts by result.",
    ["result"],
)

DEFAULT_TONE = "professional and friendly"

# USD per one million tokens: (input, output).
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4": (30.0, 60.0),
    "gpt-4-turbo": (10.0, 30.0),
    "gpt-4o": (2.5, 10.0),
    "gpt-4o-mini": (0.15, 0.6),
    "gpt-3.5-turbo": (0.5, 1.5),
    "text-embedding-ada-002": (0.1, 0.1),
    "text-embedding-3-small": (0.02, 0.02),
}


def _pricing_for(model: str) -> tuple[float, float]:
    if model in MODEL_PRICING:
        return MODEL_PRICING[model]
    # Dated snapshots such as gpt-4o-mini-2024-07-18 share their family price.
    prefixes = [name for name in MODEL_PRICING if model.startswith(f"{name}-")]
    if prefixes:
        return MODEL_PRICING[max(prefixes, key=len)]
    return MODEL_PRICING["gpt-3.5-turbo"]


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> tuple[float, float]:
    """Return (input cost, output cost) in USD; unknown models use gpt-3.5 pricing."""

    input_rate, output_rate = _pricing_for(model)
    return (
        round(prompt_tokens / 1_000_000 * input_rate, 8),
        round(completion_tokens / 1_000_000 * output_rate, 8),
    )


@dataclass(slots=True, frozen=True)
class Completion:
    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


class CompletionProvider(Protocol):
    async def complete(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        ...


class OpenAICompletionProvider:
    """Chat completions through the official ``openai`` async client."""

    def __init__(self, settings: OpenAISettings, *, client: Any | None = None) -> None:
        if client is None:
            client = AsyncOpenAI(api_key=settings.api_key, timeout=settings.timeout_seconds)
        self._client = client

    async def complete(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        response = await self._client.chat.completions.create(
            model=model,
            messages=[dict(message) for message in messages],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        choice = response.choices[0] if response.choices else None
        text = (choice.message.content or "") if choice is not None else ""
        usage = response.usage
        return Completion(
            text=text,
            model=getattr(response, "model", None) or model,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )

    async def close(self) -> None:
        await self._client.close()


@dataclass(slots=True)
class ReplyRequest:
    business: Business
    message: str
    history: Sequence[MessageLog] = ()
    products: Sequence[ProductMatch] = ()
    is_new_conversation: bool = False
    customer_name: str | None = None
    now: datetime | None = None


@dataclass(slots=True)
class GeneratedReply:
    text: str
    fallback: bool = False
    model: str | None = None
    products_referenced: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost_input: float = 0.0
    cost_output: float = 0.0
    error: str | None = None
    referenced_product_ids: list[str] = field(default_factory=list)

    @property
    def usage_metadata(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "products_referenced": self.products_referenced,
            "fallback": self.fallback,
        }


def _format_price(value: float | None) -> str | None:
    return f"${value:,.2f}" if value is not None else None


def build_system_prompt(
    business: Business,
    products: Sequence[ProductMatch] = (),
    *,
    now: datetime | None = None,
    greeting: str | None = None,
) -> str:
    sections = [f"You are an AI assistant for {business.business_name}."]

    if business.description:
        sections.append(f"Business Description: {business.description}")
    if business.location:
        sections.append(f"Location: {business.location}")
    sections.append(f"Your tone should be: {business.ai_tone or DEFAULT_TONE}")
    if business.ai_language and business.ai_language != "en":
        sections.append(f"Always reply in this language: {business.ai_language}")
    if business.ai_instructions:
        sections.append(f"Instructions:\n{business.ai_instructions}")
    if business.custom_rules:
        rules = "\n".join(f"{i}. {rule}" for i, rule in enumerate(business.custom_rules, 1))
        sections.append(f"Rules to follow:\n{rules}")
    if business.ai_faqs:
        sections.append(f"Frequently Asked Questions:\n{business.ai_faqs}")
    if business.ai_special_offers:
        sections.append(f"Current Special Offers:\n{business.ai_special_offers}")
    if business.ai_do_not_mention:
        sections.append(f"Do NOT mention or discuss:\n{business.ai_do_not_mention}")
    if business.forbidden_responses:
        phrases = "\n".join(f"- {phrase}" for phrase in business.forbidden_responses)
        sections.append(f"Never say any of the following:\n{phrases}")

    policies = [
        ("Return policy", business.return_policy),
        ("Refund policy", business.refund_policy),
        ("Shipping policy", business.shipping_policy),
        ("Privacy policy", business.privacy_policy),
        ("Terms of service", business.terms_of_service),
    ]
    policy_lines = [f"{label}: {text}" for label, text in policies if text]
    if policy_lines:
        sections.append("Store policies:\n" + "\n".join(policy_lines))

    hours = describe_store_hours(business.store_hours)
    if hours:
        status = store_status(business.store_hours, now)
        block = "Store hours:\n" + "\n".join(hours)
        if status is not None:
            block += f"\nCurrent status: {status.summary}"
        sections.append(block)

    if products:
        lines = ["=== AVAILABLE PRODUCTS ===", "Relevant products you can recommend:"]
        for index, product in enumerate(products, 1):
            lines.append(f"{index}. {product.name}")
            price = _format_price(product.price)
            if product.sale_price is not None and product.sale_price != product.price:
                lines.append(f"   Price: {_format_price(product.sale_price)} (regular {price})")
            elif price:
                lines.append(f"   Price: {price}")
            if product.category:
                lines.append(f"   Category: {product.category}")
            if product.description:
                lines.append(f"   Description: {product.description}")
        lines.append(
            "When recommending products, mention the name, price, and key benefits."
        )
        sections.append("\n".join(lines))

    if greeting:
        sections.append(f"This is the customer's first message. Open your reply with: {greeting}")

    sections.append(
        "=== GENERAL GUIDELINES ===\n"
        "- Keep responses concise (2-3 sentences unless more detail is needed)\n"
        f"- Never exceed {business.ai_max_response_length} characters\n"
        "- If you don't know something, admit it and offer to connect the customer with the team\n"
        "- Use emojis sparingly"
    )
    return "\n\n".join(sections)


def build_messages(request: ReplyRequest) -> list[dict[str, str]]:
    greeting = request.business.ai_greeting_message if request.is_new_conversation else None
    messages = [
        {
            "role": "system",
            "content": build_system_prompt(
                request.business, request.products, now=request.now, greeting=greeting
            ),
        }
    ]
    for item in request.history:
        role = "user" if item.direction == MessageDirection.INCOMING else "assistant"
        messages.append({"role": role, "content": item.content})
    messages.append({"role": "user", "content": request.message})
    return messages


def truncate_reply(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters on a word boundary."""

    text = text.strip()
    if max_length <= 0 or len(text) <= max_length:
        return text
    cut = text[: max_length - 1]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" ,;:-") + "…"


def referenced_products(text: str, products: Sequence[ProductMatch]) -> list[ProductMatch]:
    lowered = text.lower()
    return [product for product in products if product.name and product.name.lower() in lowered]


class ReplyGenerator:
    """Builds the prompt for a business and asks the provider for a reply."""

    def __init__(
        self,
        provider: CompletionProvider | None,
        settings: OpenAISettings,
        *,
        fallback_message: str,
    ) -> None:
        self._provider = provider
        self._settings = settings
        self._fallback_message = fallback_message

    @property
    def fallback_message(self) -> str:
        return self._fallback_message

    async def generate(self, request: ReplyRequest) -> GeneratedReply:
        try:
            reply = await self._generate(request)
        except ReplyGenerationFailed as exc:
            REPLY_GENERATIONS.labels("fallback").inc()
            logger.warning(
                "reply.generation.failed",
                business_id=str(request.business.id),
                error=exc.message,
                details=dict(exc.details),
            )
            return GeneratedReply(text=self._fallback_message, fallback=True, error=exc.message)

        REPLY_GENERATIONS.labels("generated").inc()
        logger.info(
            "reply.generation.succeeded",
            business_id=str(request.business.id),
            model=reply.model,
            prompt_tokens=reply.prompt_tokens,
            completion_tokens=reply.completion_tokens,
            products_referenced=reply.products_referenced,
        )
        return reply

    async def _generate(self, request: ReplyRequest) -> GeneratedReply:
        if self._provider is None:
            raise ReplyGenerationFailed("no completion provider configured")

        messages = build_messages(request)
        try:
            completion = await self._provider.complete(
                messages,
                model=self._settings.model,
                temperature=self._settings.temperature,
                max_tokens=self._settings.max_tokens,
            )
        except ReplyGenerationFailed:
            raise
        except Exception as exc:
            raise ReplyGenerationFailed(
                "completion provider error",
                details={"error": str(exc) or exc.__class__.__name__},
            ) from exc

        business = request.business
        text = truncate_reply(completion.text or "", business.ai_max_response_length)
        if not text:
            raise ReplyGenerationFailed("completion provider returned an empty reply")

        lowered = text.lower()
        for phrase in business.forbidden_responses or []:
            if phrase and phrase.lower() in lowered:
                raise ReplyGenerationFailed(
                    "reply contained a forbidden phrase", details={"phrase": phrase}
                )

        mentioned = referenced_products(text, request.products)
        cost_input, cost_output = estimate_cost(
            completion.model, completion.prompt_tokens, completion.completion_tokens
        )
        return GeneratedReply(
            text=text,
            model=completion.model,
            products_referenced=len(mentioned),
            referenced_product_ids=[str(product.product_id) for product in mentioned],
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            cost_input=cost_input,
            cost_output=cost_output,
        )
