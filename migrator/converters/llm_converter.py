"""
LLM-backed converter.

Implements the ConversionPort used by the worker pool: one chat
completion per file, with the profile's system prompt.
"""

from typing import Optional, TYPE_CHECKING
import re

from config.logging_config import get_logger
from ai_providers import AIMessage, BaseAIProvider

from migrator.batch.errors import ConversionError

if TYPE_CHECKING:
    from migrator.profiles import ConversionProfile

logger = get_logger(__name__)


_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?|\n?```[ \t]*$", re.MULTILINE)
_PREAMBLE = re.compile(
    r"^(?:here is|here's|below is|the converted|converted to)[^\n]*:[ \t]*\n",
    re.IGNORECASE,
)
_BLANK_RUNS = re.compile(r"\n\s*\n\s*\n")


def clean_response(text: str) -> str:
    """
    Strip markdown fences and a leading "Here is the converted code:" line.

    Content inside the fences is kept as-is.
    """
    cleaned = _FENCE.sub("", text)
    cleaned = _PREAMBLE.sub("", cleaned.lstrip(), count=1)
    cleaned = _BLANK_RUNS.sub("\n\n", cleaned)
    return cleaned.strip()


class LLMConverter:
    """
    Converts one file per call through an AI provider.

    Usage:
        converter = LLMConverter(create_provider(settings), get_profile("oracle-to-snowflake"))
        source_type = converter.classify(sql)
        snowflake = await converter.convert(sql, "orders.sql", source_type)
    """

    def __init__(self, provider: BaseAIProvider, profile: "ConversionProfile"):
        self.provider = provider
        self.profile = profile

    def classify(self, content: str) -> str:
        return self.profile.classify(content)

    def build_user_prompt(self, content: str, name: str, source_type: Optional[str]) -> str:
        return (
            f"Convert the following file.\n\n"
            f"File Name: {name}\n"
            f"File Type: {source_type or 'unknown'}\n\n"
            f"Content:\n{content}"
        )

    async def convert(self, content: str, name: str, source_type: Optional[str] = None) -> str:
        """
        Convert one file.

        Raises:
            ConversionError: Provider call failed or returned nothing usable
        """
        messages = [AIMessage(role="user", content=self.build_user_prompt(content, name, source_type))]

        try:
            response = await self.provider.complete(messages, system_prompt=self.profile.prompt)
        except Exception as e:
            raise ConversionError(f"{self.provider.provider_type.value} request failed: {e}") from e

        converted = clean_response(response.content or "")
        if not converted:
            raise ConversionError(f"Empty response for {name}")

        if response.finish_reason == "length":
            logger.warning(f"Output for {name} was truncated at the token limit")

        logger.debug(f"Converted {name} ({source_type}): {len(content)} -> {len(converted)} chars")
        return converted
