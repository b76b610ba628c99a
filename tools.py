import math
import random
import datetime
import colorsys


class GroupCode:
    """Generates and normalises group join codes."""

    ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    LENGTH: int = 6
    MIN_LENGTH: int = 4

    @classmethod
    def make(cls, length: int | None = None, rng: random.Random | None = None) -> str:
        """Return a random code without ambiguous characters (0/O, 1/I)."""
        size = length or cls.LENGTH
        if size < cls.MIN_LENGTH:
            raise ValueError("code length must be at least 4")
        chooser = rng or random.SystemRandom()
        return "".join(chooser.choice(cls.ALPHABET) for _ in range(size))

    @staticmethod
    def normalize(code: str) -> str:
        return "".join((code or "").strip().upper().split())


class DisplayTools:
    """Helpers for presenting members in tables and charts."""

    PLACEHOLDER = "—"

    @staticmethod
    def safe_name(name: str | None) -> str:
        text = (name or "").strip()
        return text if text else DisplayTools.PLACEHOLDER

    @staticmethod
    def initials(name: str | None) -> str:
        """Return up to two upper-case initials for ``name``."""
        parts = [p for p in (name or "").strip().split() if p]
        if not parts:
            return "?"
        if len(parts) == 1:
            return parts[0][:2].upper()
        return (parts[0][0] + parts[-1][0]).upper()

    @staticmethod
    def hue_for_index(index: int) -> int:
        return (index * 57) % 360

    @classmethod
    def color_for_index(cls, index: int) -> str:
        """CSS colour string for the member at ``index``."""
        return f"hsl({cls.hue_for_index(index)}, 85%, 62%)"

    @classmethod
    def rgb_for_index(cls, index: int) -> tuple[int, int, int]:
        # colorsys uses HLS ordering
        r, g, b = colorsys.hls_to_rgb(cls.hue_for_index(index) / 360.0, 0.62, 0.85)
        return int(round(r * 255)), int(round(g * 255)), int(round(b * 255))

    @staticmethod
    def fmt_date_de(day: str | datetime.date | None) -> str:
        """Format an ISO date as ``DD.MM.YYYY``."""
        if not day:
            return DisplayTools.PLACEHOLDER
        if isinstance(day, str):
            day = datetime.date.fromisoformat(day[:10])
        return day.strftime("%d.%m.%Y")

    @staticmethod
    def fmt_signed(value: float | None, unit: str = "kg") -> str:
        if value is None:
            return DisplayTools.PLACEHOLDER
        return f"{value:+.1f} {unit}"


class NumberTools:
    """Parsing helpers for user entered numbers."""

    @staticmethod
    def parse_number_or_none(text) -> float | None:
        """Parse ``text`` accepting a comma as decimal separator.

        Empty input yields ``None``; anything else that is not a finite
        number raises ``ValueError``.
        """
        if text is None:
            return None
        if isinstance(text, (int, float)):
            value = float(text)
        else:
            raw = str(text).strip().replace(",", ".")
            if raw == "":
                return None
            try:
                value = float(raw)
            except ValueError:
                raise ValueError("not a number")
        if not math.isfinite(value):
            raise ValueError("number must be finite")
        return value

    @staticmethod
    def require_finite(value, name: str = "value") -> float:
        try:
            number = NumberTools.parse_number_or_none(value)
        except ValueError:
            raise ValueError(f"{name} must be a finite number")
        if number is None:
            raise ValueError(f"{name} must be a finite number")
        return number

    @staticmethod
    def int_or_none(text) -> int | None:
        """Truncate ``text`` to an int; ``None`` for empty or invalid input."""
        if text is None:
            return None
        raw = str(text).strip()
        if not raw:
            return None
        try:
            value = float(raw)
        except ValueError:
            return None
        if not math.isfinite(value):
            return None
        return math.trunc(value)
