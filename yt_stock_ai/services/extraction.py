"""
Recommendation extraction with OpenAI.

Asks a chat model for the stocks a speaker recommends and validates the
JSON it returns before anything downstream sees it.
"""

import logging
from typing import List, Optional

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from yt_stock_ai.core.errors import ExtractionFailed
from yt_stock_ai.storage.models import RecommendationEntry

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a financial analysis assistant. You will be given a transcript of a \
YouTube video in which a financial YouTuber discusses various stocks. Not all \
stocks mentioned are recommendations; some may be examples of poor performance.

Identify only the stocks explicitly recommended by the speaker. For each one provide:
company_name: the correct, full company name, even if the transcript misspells it.
ticker: the stock ticker with its exchange in the form EXCHANGE:TICKER, such as NASDAQ:AAPL or NYSE:DIS.
timestamp: the time in seconds when the company is first mentioned.
reason: a brief explanation of the speaker's justification for recommending the stock.

Return a JSON object of the form:
{"recommendations": [{"company_name": "...", "ticker": "...", "timestamp": 0, "reason": "..."}]}
If nothing is recommended, return {"recommendations": []}.
"""


class _ExtractedEntry(BaseModel):
    company_name: str
    ticker: str
    timestamp: float = Field(ge=0)
    reason: str


class _ExtractionReply(BaseModel):
    recommendations: List[_ExtractedEntry] = Field(default_factory=list)


def parse_recommendations(content: Optional[str]) -> List[RecommendationEntry]:
    """Validate a model reply and convert it to recommendation entries.

    Args:
        content: Raw message content returned by the model

    Returns:
        Entries in the order the model listed them (possibly empty)

    Raises:
        ExtractionFailed: If the content is not a JSON object of the expected shape
    """
    if not content:
        raise ExtractionFailed("Failed to process recommendations: empty response")
    try:
        reply = _ExtractionReply.model_validate_json(content)
    except ValidationError as e:
        logger.warning("Malformed extraction reply: %s", e.errors(include_url=False))
        raise ExtractionFailed("Failed to process recommendations") from e
    return [
        RecommendationEntry(
            company_name=entry.company_name,
            ticker=entry.ticker,
            timestamp=entry.timestamp,
            reason=entry.reason,
        )
        for entry in reply.recommendations
    ]


class OpenAIRecommendationExtractor:
    """Recommendation extractor backed by OpenAI chat completions."""

    def __init__(self, model: str, temperature: Optional[float] = None, client: Optional[OpenAI] = None):
        """Initialize the extractor.

        Args:
            model: OpenAI model name (required)
            temperature: Sampling temperature (optional)
            client: Preconfigured OpenAI client; one is created from the
                environment (OPENAI_API_KEY) when omitted

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.temperature = temperature
        self.client = client or OpenAI()

    def extract_recommendations(self, transcript: str) -> List[RecommendationEntry]:
        """Extract recommended stocks from a time-coded transcript.

        Args:
            transcript: Text with ``[<seconds>s]`` markers

        Returns:
            Recommendation entries, possibly empty

        Raises:
            ValueError: If transcript is empty
            ExtractionFailed: On API errors or a malformed reply
        """
        if not transcript or not transcript.strip():
            raise ValueError("transcript is required and cannot be empty")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    "Analyze the transcript below, with timestamps in seconds, "
                    f"and return recommendations.\n\n{transcript}"
                ),
            },
        ]
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.warning("OpenAI request failed: %s", e)
            raise ExtractionFailed("Failed to process recommendations") from e

        if not response.choices:
            raise ExtractionFailed("Failed to process recommendations: no choices returned")
        return parse_recommendations(response.choices[0].message.content)
