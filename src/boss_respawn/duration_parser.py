"""Parse respawn durations such as "24 hrs" or "1 hour"."""
import re
from typing import Optional

# Whole hours only: "1.5 hrs" and "1 day 2 hrs" are not accepted
DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*(?:hrs?|hours?)\s*$", re.IGNORECASE)


class DurationParser:
    """Turn respawn duration text into minutes."""

    @staticmethod
    def parse(text: str) -> Optional[int]:
        """
        Args:
            text: Duration text of the form "<N> hr|hrs|hour|hours"

        Returns:
            Total minutes, or None for negative, fractional, non-numeric or unmatched input
        """
        if not text:
            return None
        match = DURATION_PATTERN.match(text)
        if not match:
            return None
        return int(match.group(1)) * 60
