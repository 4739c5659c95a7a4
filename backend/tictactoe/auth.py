"""
Идентификация игрока по первому сообщению auth.
Telegram Web App initData (проверка подписи), гости и debug-вход.
https://core.telegram.org/bots/webapps#validating-data-received-via-the-mini-app

Гость получает в auth_ok подписанный guest_token и при переподключении
присылает его обратно — так он остаётся тем же игроком и может вернуться в партию.
"""
import hashlib
import hmac
import json
import secrets
import uuid
from dataclasses import dataclass
from urllib.parse import parse_qsl


@dataclass(frozen=True)
class Identity:
    player_id: str
    display_name: str
    is_guest: bool


class IdentityProvider:
    def __init__(self, bot_token: str = "", debug: bool = False, guest_secret: str = ""):
        self.bot_token = bot_token
        self.debug = debug
        # Без заданного секрета токены гостей живут до перезапуска процесса, как и партии
        self.guest_secret = (guest_secret or secrets.token_hex(32)).encode()

    def resolve(self, data: dict) -> Identity | None:
        """Сообщение auth -> Identity или None, если войти нельзя."""
        display_name = str(data.get("display_name") or "").strip()[:32]
        if data.get("guest"):
            guest_id = self.guest_id_from_token(data.get("guest_token"))
            if guest_id is None:
                guest_id = f"guest_{uuid.uuid4().hex[:12]}"
            return Identity(guest_id, display_name or f"Guest {guest_id[-4:]}", True)
        init_data = data.get("init_data", "")
        if self.debug and not init_data and data.get("debug_uid") is not None:
            uid = str(data["debug_uid"])
            return Identity(f"dev{uid}", display_name or f"dev{uid}", False)
        user = self.validate_init_data(init_data)
        if not user or user.get("id") is None:
            return None
        name = user.get("username") or user.get("first_name") or ""
        return Identity(str(user["id"]), display_name or name or f"user_{user['id']}", False)

    def _sign(self, guest_id: str) -> str:
        return hmac.new(self.guest_secret, guest_id.encode(), hashlib.sha256).hexdigest()

    def guest_token(self, guest_id: str) -> str:
        return f"{guest_id}.{self._sign(guest_id)}"

    def guest_id_from_token(self, token) -> str | None:
        """guest_id из токена или None, если токена нет или подпись не сходится."""
        if not isinstance(token, str) or "." not in token:
            return None
        guest_id, _, signature = token.rpartition(".")
        if not guest_id.startswith("guest_"):
            return None
        if not hmac.compare_digest(self._sign(guest_id), signature):
            return None
        return guest_id

    def validate_init_data(self, init_data: str) -> dict | None:
        """
        Проверяет подпись initData и возвращает данные пользователя или None.
        init_data — строка в формате query string из Telegram.WebApp.initData.
        """
        if not init_data:
            return None
        if not self.bot_token:
            if self.debug:
                # В режиме отладки без токена принимаем тестовые данные
                return _parse_user(dict(parse_qsl(init_data)))
            return None

        parsed = dict(parse_qsl(init_data))
        hash_from_tg = parsed.pop("hash", None)
        if not hash_from_tg:
            return None

        data_check_string = "\n".join(f"{k}={v}" for k, v in sorted(parsed.items()))
        secret_key = hmac.new(b"WebAppData", self.bot_token.encode(), hashlib.sha256).digest()
        calculated = hmac.new(secret_key, data_check_string.encode(), hashlib.sha256).hexdigest()
        if not hmac.compare_digest(calculated, hash_from_tg):
            return None
        return _parse_user(parsed)


def _parse_user(parsed: dict) -> dict | None:
    """Извлекает user из parsed (user — JSON строка)."""
    user_str = parsed.get("user")
    if not user_str:
        return None
    try:
        user = json.loads(user_str)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(user, dict):
        return None
    return {
        "id": user.get("id"),
        "first_name": user.get("first_name", ""),
        "last_name": user.get("last_name", ""),
        "username": user.get("username", ""),
    }
