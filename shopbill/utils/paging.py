def clamp_limit(limit, default: int, maximum: int) -> int:
    """limit из query: пусто/0/мусор -> default, не больше maximum."""
    try:
        value = int(limit)
    except (TypeError, ValueError):
        value = 0
    if value <= 0:
        value = default
    return min(value, maximum)


def clamp_offset(offset) -> int:
    try:
        return max(0, int(offset))
    except (TypeError, ValueError):
        return 0


def page(rows, total: int, serialize) -> dict:
    return {"data": [serialize(r) for r in rows], "total": total}
