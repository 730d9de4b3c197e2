# -*- coding: utf-8 -*-
"""
Разбор и форматирование длительностей: "7d", "12h", "30m", "1d12h", "نهائي"
"""

import re

PERMANENT_WORDS = {"", "permanent", "perm", "навсегда", "نهائي", "دائم", "0"}

_UNIT_MS = {
    "ms": 1,
    "s": 1000, "sec": 1000, "secs": 1000, "second": 1000, "seconds": 1000,
    "m": 60_000, "min": 60_000, "mins": 60_000, "minute": 60_000, "minutes": 60_000,
    "h": 3_600_000, "hr": 3_600_000, "hrs": 3_600_000, "hour": 3_600_000, "hours": 3_600_000,
    "d": 86_400_000, "day": 86_400_000, "days": 86_400_000,
    "w": 604_800_000, "week": 604_800_000, "weeks": 604_800_000,
    "y": 31_557_600_000, "yr": 31_557_600_000, "yrs": 31_557_600_000,
    "year": 31_557_600_000, "years": 31_557_600_000,
}

_TOKEN_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]*)")


def is_permanent(duration) -> bool:
    """True для None и слов, означающих бессрочную выдачу"""
    if duration is None:
        return True
    return str(duration).strip().lower() in PERMANENT_WORDS


def parse_duration(text: str) -> int:
    """Перевести строку длительности в миллисекунды.

    Число без единицы считается миллисекундами. Допускаются составные
    значения вроде "1d12h". При ошибке бросает ValueError.
    """
    if text is None:
        raise ValueError("Длительность не указана")
    value = str(text).strip().lower().replace(" ", "")
    if not value:
        raise ValueError("Длительность не указана")

    total = 0.0
    pos = 0
    for match in _TOKEN_RE.finditer(value):
        if match.start() != pos:
            raise ValueError(f"Неверный формат длительности: {text}")
        number, unit = match.group(1), match.group(2) or "ms"
        if unit not in _UNIT_MS:
            raise ValueError(f"Неизвестная единица времени: {unit}")
        total += float(number) * _UNIT_MS[unit]
        pos = match.end()

    if pos != len(value):
        raise ValueError(f"Неверный формат длительности: {text}")
    if total <= 0:
        raise ValueError("Длительность должна быть больше нуля")
    return int(total)


def duration_to_ms(duration):
    """None для бессрочной длительности, иначе миллисекунды"""
    if is_permanent(duration):
        return None
    return parse_duration(duration)


def format_duration_ms(ms) -> str:
    """Короткий формат: "2d 3h 5m" """
    if not ms or ms <= 0:
        return "0m"
    total_minutes = int(ms // 60_000)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    return " ".join(parts) if parts else "0m"
