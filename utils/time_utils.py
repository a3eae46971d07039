"""
Утилиты для работы со временем
"""
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

# Значения больше этого порога считаются миллисекундами
_EPOCH_MS_THRESHOLD = 10 ** 11


def parse_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """
    Разбор сохранённой даты в локальное время без tzinfo

    Поддерживает ISO-8601 (в том числе с 'Z' и смещением), формат sqlite
    'YYYY-MM-DD HH:MM:SS', unix-время в секундах или миллисекундах.
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MS_THRESHOLD else value
        return datetime.fromtimestamp(seconds)
    else:
        text = str(value).strip()
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            # Числовая строка (unix-время)
            return parse_timestamp(float(text))

    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def elapsed_minutes(start: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Полные минуты с начала сессии, не меньше нуля"""
    if start is None:
        return 0
    now = now or datetime.now()
    seconds = (now - start).total_seconds()
    return max(0, int(seconds // 60))


def day_bounds(date: datetime) -> Tuple[datetime, datetime]:
    """Начало и конец суток для даты"""
    day_start = date.replace(hour=0, minute=0, second=0, microsecond=0)
    return day_start, day_start + timedelta(days=1)


PERIODS = ('today', 'week', 'month', 'year')


def period_bounds(period: str, date: datetime) -> Tuple[datetime, datetime]:
    """
    Границы отчётного периода [начало, конец), содержащего date

    week начинается с понедельника, month и year с первого числа.
    """
    day_start, day_end = day_bounds(date)
    if period == 'today':
        return day_start, day_end
    if period == 'week':
        start = day_start - timedelta(days=day_start.weekday())
        return start, start + timedelta(days=7)
    if period == 'month':
        start = day_start.replace(day=1)
        if start.month == 12:
            return start, start.replace(year=start.year + 1, month=1)
        return start, start.replace(month=start.month + 1)
    if period == 'year':
        start = day_start.replace(month=1, day=1)
        return start, start.replace(year=start.year + 1)
    raise ValueError(f"Неизвестный период: {period}")


def format_duration(minutes: int) -> str:
    """Длительность в виде '1ч 05м'"""
    minutes = max(0, int(minutes))
    hours, mins = divmod(minutes, 60)
    return f"{hours}ч {mins:02d}м"


def format_datetime(dt: datetime) -> str:
    """Форматирование datetime для отображения"""
    return dt.strftime("%d.%m.%Y %H:%M")


def format_time(dt: datetime) -> str:
    """Форматирование времени"""
    return dt.strftime("%H:%M")
