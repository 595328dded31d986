"""Parse chat messages to extract boss death reports."""
import re
from dataclasses import dataclass
from typing import Optional

from .logger import get_logger

logger = get_logger(__name__)


@dataclass
class DeathReport:
    """Structured data from a parsed death report."""
    death_time: str
    boss_name: str
    duration_text: str


class MessageParser:
    """Parse death reports posted in the tracking channel."""

    # Pattern: HH:MM - Boss Name - N hrs
    PATTERN = re.compile(
        r"^(\d{1,2}:\d{2})\s*-\s*(\S.*?)\s*-\s*(\d+\s*(?:hrs?|hours?))\s*$",
        re.IGNORECASE
    )

    @classmethod
    def parse(cls, text: str) -> Optional[DeathReport]:
        """
        Parse a chat message into a death report.

        Args:
            text: Raw message content, e.g. "14:30 - Dragon King - 24 hrs"

        Returns:
            DeathReport if the message matches the pattern, None otherwise.
            Hour/minute ranges are not checked here.
        """
        if not text:
            return None

        match = cls.PATTERN.match(text.strip())
        if not match:
            # Log near-misses that mention a duration (for debugging)
            if re.search(r"\d+\s*(?:hrs?|hours?)", text, re.IGNORECASE):
                logger.debug(f"Message mentions a duration but didn't match pattern: {text[:100]}")
            return None

        death_time, boss_name, duration_text = match.groups()

        result = DeathReport(
            death_time=death_time.strip(),
            boss_name=boss_name.strip(),
            duration_text=duration_text.strip()
        )

        logger.debug(f"Parsed death report: {result.boss_name} at {result.death_time} ({result.duration_text})")
        return result
