"""Assistant chat: quota, topic gating, and canned fallback replies.

Text generation is delegated to a ResponseGenerator. The market context is
passed explicitly with every question rather than held in module state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from tsla_tracker.config import ChatConfig, Signal, Tier

logger = logging.getLogger(__name__)

DISCLAIMER = (
    "This is not financial advice. Always do your own research and invest "
    "based on your personal situation."
)

# Free users may not ask how the valuation model works.
RESTRICTED_KEYWORDS: tuple[str, ...] = (
    "formula", "calculate", "calculation", "methodology", "method",
    "multiplier", "multiple", "ratio", "p/s", "ps ratio", "price to sales",
    "revenue multiple", "how do you", "how does it work", "algorithm",
    "metric", "criteria", "threshold", "range", "what is the formula",
    "ttm", "trailing", "12 month", "twelve month",
)

_SIGNAL_REPLIES: dict[Signal, str] = {
    Signal.STRONG_BUY: (
        "The model is flashing a strong signal. Tesla looks deeply "
        "undervalued, which has historically been a good entry for "
        "long-term holders. Don't try to catch the exact bottom."
    ),
    Signal.BUY: (
        "Tesla looks undervalued here. Consider building a position "
        "gradually and leave room to add if it drops further."
    ),
    Signal.HOLD: (
        "Tesla is trading close to where the model says it should. "
        "You're not overpaying, but you're not getting a steal either. "
        "Dollar-cost averaging works well at these levels."
    ),
    Signal.WAIT: (
        "You're paying a premium for future potential at this valuation. "
        "Waiting for a pullback is usually the better entry."
    ),
    Signal.SELL: (
        "The stock is priced well above fundamentals. If you hold, this "
        "is a reasonable zone to consider taking some profits."
    ),
}


class QuestionLimitError(Exception):
    """Raised when the daily question quota is exhausted."""


class ResponseGenerator(Protocol):
    """Interface for the language-model backend."""

    def generate(self, prompt: str) -> str:
        """Return the assistant's reply to a fully-built prompt."""
        ...


@dataclass(frozen=True)
class ChatContext:
    """Market state attached to a single question.

    Attributes:
        price: Current share price, None while loading.
        tier: Current valuation tier, None when unknown.
        multiple: Current multiple, None when unknown.
        is_pro: Whether the user has the paid tier.
    """

    price: float | None
    tier: Tier | None
    multiple: float | None
    is_pro: bool


def market_status(now: datetime | None = None) -> str:
    """Describe US market hours for *now*.

    Regular session is 14:30-21:00 UTC on weekdays. Aware datetimes are
    converted to UTC; naive ones are taken to be UTC already.
    """
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    else:
        now = now.astimezone(UTC)
    if now.weekday() >= 5:
        return "Weekend - markets closed"

    hours = now.hour + now.minute / 60
    if 14.5 <= hours < 21:
        return "Market is open"
    if 9 <= hours < 14.5:
        return "Pre-market trading"
    if hours >= 21:
        return "After-hours trading"
    return "Markets closed"


def contains_restricted_topic(message: str) -> bool:
    lower = message.lower()
    return any(keyword in lower for keyword in RESTRICTED_KEYWORDS)


def build_prompt(message: str, context: ChatContext, now: datetime | None = None) -> str:
    """Prefix the user's question with the current market context.

    The valuation tier is only included for pro users.
    """
    lines = ["[Live TSLA data]"]
    lines.append(
        f"Price: ${context.price:.2f}" if context.price is not None else "Price: loading"
    )
    if context.is_pro:
        if context.tier is not None:
            lines.append(f"Valuation tier: {context.tier.label}")
            lines.append(f"Signal: {context.tier.signal.value}")
        if context.multiple is not None:
            lines.append(f"Revenue multiple: {context.multiple:.1f}x")
    lines.append(f"Market status: {market_status(now)}")
    lines.append("")
    lines.append(f"User question: {message}")
    return "\n".join(lines)


def fallback_reply(context: ChatContext) -> str:
    """Canned reply used when no generator is configured or it fails."""
    price = f"${context.price:.2f}" if context.price is not None else "---"
    if not context.is_pro or context.tier is None:
        body = (
            f"TSLA is at {price}. Upgrade to Pro for real-time valuation "
            "ratings and buy/sell guidance."
        )
    else:
        body = (
            f"TSLA at {price} - {context.tier.label}.\n\n"
            f"{_SIGNAL_REPLIES[context.tier.signal]}"
        )
    return f"{body}\n\n{DISCLAIMER}"


class ChatSession:
    """One user's daily conversation.

    Args:
        is_pro: Whether the user has the paid tier.
        generator: Language-model backend. Canned replies if None.
        config: Quota settings.
    """

    def __init__(
        self,
        is_pro: bool,
        generator: ResponseGenerator | None = None,
        config: ChatConfig | None = None,
    ) -> None:
        if config is None:
            config = ChatConfig()
        self._generator = generator
        self._limit = (
            config.pro_daily_questions if is_pro else config.free_daily_questions
        )
        self._asked = 0

    @property
    def remaining(self) -> int:
        return self._limit - self._asked

    def ask(self, message: str, context: ChatContext) -> str:
        """Answer one question against an explicit market context.

        Args:
            message: User question.
            context: Market state at the time of asking.

        Returns:
            Assistant reply.

        Raises:
            ValueError: If the message is blank.
            QuestionLimitError: If the daily quota is used up.
        """
        if not message.strip():
            raise ValueError("Message is empty")
        if self._asked >= self._limit:
            raise QuestionLimitError(
                f"Daily limit of {self._limit} questions reached"
            )

        self._asked += 1

        if not context.is_pro and contains_restricted_topic(message):
            logger.info("Blocked methodology question from free user")
            return (
                "How the valuation model works is available to Pro members "
                f"only.\n\n{DISCLAIMER}"
            )

        if self._generator is None:
            return fallback_reply(context)

        try:
            return self._generator.generate(build_prompt(message, context))
        except Exception:
            logger.exception("Response generation failed, using fallback reply")
            return fallback_reply(context)
