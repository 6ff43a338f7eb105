# shopbill/services/auth_provider.py
import logging
import time
from typing import Optional

import requests

from shopbill import config

logger = logging.getLogger(__name__)


class AuthProviderError(Exception):
    """Провайдер авторизации недоступен (после всех повторов)."""


def fetch_user(token: str) -> Optional[dict]:
    """
    Спрашивает у Supabase, чей это токен: GET {SUPABASE_URL}/auth/v1/user.
    Возвращает dict пользователя (id, email, ...) или None, если токен не принят.
    Сетевые ошибки и таймауты повторяются AUTH_RETRIES раз с паузой AUTH_RETRY_DELAY.
    """
    if not config.SUPABASE_URL:
        logger.warning("SUPABASE_URL не задан, проверка токена у провайдера невозможна")
        return None

    url = f"{config.SUPABASE_URL.rstrip('/')}/auth/v1/user"
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": config.SUPABASE_SERVICE_ROLE_KEY,
    }

    attempt = 0
    while True:
        try:
            resp = requests.get(url, headers=headers, timeout=config.AUTH_TIMEOUT)
            break
        except (requests.ConnectionError, requests.Timeout) as e:
            if attempt >= config.AUTH_RETRIES:
                logger.error("Провайдер авторизации недоступен: %s", e)
                raise AuthProviderError(str(e)) from e
            attempt += 1
            logger.warning("Повтор запроса к провайдеру (%s/%s): %s", attempt, config.AUTH_RETRIES, e)
            time.sleep(config.AUTH_RETRY_DELAY)

    if resp.status_code != 200:
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    if not isinstance(data, dict) or not data.get("id"):
        return None
    return data
