"""
One-line "community pulse" summaries of nearby open posts.

`FrequencySummarizer` is the default and works offline. `OpenAISummarizer`
phrases the same numbers with a chat model and falls back to the frequency
wording whenever the API call fails.
"""
from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger
from openai import OpenAI, OpenAIError
from pydantic import BaseModel, Field

from config import Settings

NO_ACTIVITY = "No recent activity in your area. Be the first to post!"


class TypeTrend(BaseModel):
    count: int = 0
    top_category: Optional[str] = None
    top_category_count: int = 0


class TrendStats(BaseModel):
    radius_km: float
    requests: TypeTrend = Field(default_factory=TypeTrend)
    offers: TypeTrend = Field(default_factory=TypeTrend)

    @property
    def total(self) -> int:
        return self.requests.count + self.offers.count


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


class Summarizer(ABC):
    @abstractmethod
    def summarize(self, stats: TrendStats) -> str:
        pass


class FrequencySummarizer(Summarizer):
    def summarize(self, stats: TrendStats) -> str:
        if stats.total == 0:
            return NO_ACTIVITY
        req, off = stats.requests, stats.offers
        text = f"{_plural(req.count, 'open request')} nearby"
        if req.top_category:
            text += f" (mostly {req.top_category})"
        text += f" and {_plural(off.count, 'offer')}"
        if off.top_category:
            text += f" (mostly {off.top_category})"
        if req.count > off.count:
            verdict = "Neighbors need more help than is being offered."
        elif off.count > req.count:
            verdict = "More help is on offer than requested, a good time to ask!"
        else:
            verdict = "Requests and offers are evenly matched."
        return f"{text}. {verdict}"


class OpenAISummarizer(Summarizer):
    def __init__(self, api_key: str, model: str = "gpt-4o-mini", fallback: Optional[Summarizer] = None, client=None):
        self.client = client or OpenAI(api_key=api_key)
        self.model = model
        self.fallback = fallback or FrequencySummarizer()

    def _prompt(self, stats: TrendStats) -> str:
        return (
            f"Within {stats.radius_km:g} km there are {stats.requests.count} open help requests "
            f"(top category: {stats.requests.top_category or 'none'}) and {stats.offers.count} offers "
            f"(top category: {stats.offers.top_category or 'none'}). "
            "Write one short, friendly sentence summarizing the neighborhood's needs."
        )

    def summarize(self, stats: TrendStats) -> str:
        if stats.total == 0:
            return NO_ACTIVITY
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You summarize local community help activity in one sentence."},
                    {"role": "user", "content": self._prompt(stats)},
                ],
                max_tokens=80,
            )
            text = (response.choices[0].message.content or "").strip()
        except OpenAIError:
            logger.exception("Trend summarization call failed, using frequency summary")
            return self.fallback.summarize(stats)
        return text or self.fallback.summarize(stats)


def build_summarizer(settings: Settings) -> Summarizer:
    if settings.openai_api_key:
        logger.info("Trend summaries via OpenAI ({})", settings.openai_model)
        return OpenAISummarizer(settings.openai_api_key, settings.openai_model)
    return FrequencySummarizer()
