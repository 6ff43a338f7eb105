import calendar
from datetime import date, datetime, timedelta
from typing import Optional, Tuple


def parse_date(s) -> Optional[date]:
    """Дата из строки: ISO (в т.ч. с временем) или пара привычных форматов."""
    if s is None:
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    s = str(s).strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in ("%Y/%m/%d", "%d.%m.%Y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            pass
    return None


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def default_month(today: Optional[date] = None) -> Tuple[date, date]:
    """Первый и последний день текущего месяца."""
    today = today or date.today()
    return month_bounds(today.year, today.month)


def shift_month(d: date, months_back: int) -> Tuple[int, int]:
    """(год, месяц) на months_back месяцев раньше d."""
    idx = d.year * 12 + (d.month - 1) - months_back
    return idx // 12, idx % 12 + 1


def month_key(d: date) -> str:
    return f"{d.year}-{d.month:02d}"


def days_ago(days: int) -> datetime:
    return datetime.utcnow() - timedelta(days=days)
