"""Watchlist of trading pairs Binance has announced it will delist.

The list is compiled by the Groq model in JSON mode.  Like the news feed it
is a supplement: a missing API key, a transport or HTTP failure, or a reply
that is not JSON all yield an empty list.  Individual entries missing a
valid pair, an ISO ``YYYY-MM-DD`` date or a reason are dropped.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

import config
from groq_http import describe_error, http_chat_completion
from json_utils import parse_json_object
from log_utils import setup_logger
from symbol_utils import is_valid_pair, normalize_pair

logger = setup_logger(__name__)

_TEMPERATURE = 0.1
_MAX_TOKENS = 1024

_PROMPTS: Dict[str, str] = {
    "en": (
        "List the cryptocurrencies and trading pairs that Binance has recently announced "
        "it will delist (within the next 1-2 months). For each entry give 'coinPair' "
        "(e.g. 'OMG/USDT'), 'delistingDate' as 'YYYY-MM-DD' and 'reason', a very short "
        "summary of the reason or a quote from the official notice. Only include upcoming "
        "or very recent delistings, not coins removed months ago. All text must be in English."
    ),
    "vi": (
        "Liệt kê các loại tiền điện tử và cặp giao dịch mà sàn Binance đã thông báo sẽ hủy "
        "niêm yết gần đây (trong vòng 1-2 tháng tới). Với mỗi mục, cung cấp 'coinPair' "
        "(ví dụ: 'OMG/USDT'), 'delistingDate' theo định dạng 'YYYY-MM-DD' và 'reason', tóm "
        "tắt rất ngắn gọn lý do hoặc trích dẫn từ thông báo chính thức. Chỉ bao gồm các "
        "thông báo sắp diễn ra hoặc vừa diễn ra rất gần đây. Toàn bộ nội dung văn bản PHẢI "
        "được viết bằng tiếng Việt."
    ),
}

_FORMAT_RULE = (
    'Respond with a single JSON object of the form {"delistings": [{"coinPair": str, '
    '"delistingDate": str, "reason": str}]}. Use an empty array when there are no '
    "recent announcements."
)


@dataclass(frozen=True)
class DelistingNotice:
    coin_pair: str
    delisting_date: date
    reason: str

    def to_payload(self) -> Dict[str, str]:
        return {
            "coinPair": self.coin_pair,
            "delistingDate": self.delisting_date.isoformat(),
            "reason": self.reason,
        }


def build_delisting_messages(locale: str) -> List[Dict[str, str]]:
    prompt = _PROMPTS.get(locale) or _PROMPTS["en"]
    return [
        {
            "role": "system",
            "content": "You are a cryptocurrency market assistant who reports exchange "
            "announcements accurately and concisely. " + _FORMAT_RULE,
        },
        {"role": "user", "content": prompt},
    ]


def _parse_notice(item: Mapping[str, Any]) -> Optional[DelistingNotice]:
    pair = normalize_pair(str(item.get("coinPair") or ""))
    reason = str(item.get("reason") or "").strip()
    if not is_valid_pair(pair) or not reason:
        return None
    try:
        when = date.fromisoformat(str(item.get("delistingDate") or "").strip())
    except ValueError:
        return None
    return DelistingNotice(coin_pair=pair, delisting_date=when, reason=reason)


def parse_delistings(data: Mapping[str, Any]) -> List[DelistingNotice]:
    """Validate the ``delistings`` array, keeping the first entry per pair, by date."""

    items = data.get("delistings")
    if not isinstance(items, list):
        return []
    notices: Dict[str, DelistingNotice] = {}
    for item in items:
        if not isinstance(item, Mapping):
            continue
        notice = _parse_notice(item)
        if notice is None:
            logger.debug("Dropping malformed delisting entry: %r", item)
            continue
        notices.setdefault(notice.coin_pair, notice)
    return sorted(notices.values(), key=lambda n: (n.delisting_date, n.coin_pair))


class DelistingFeed:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        locale: Optional[str] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._api_url = api_url
        self._timeout = timeout
        self._locale = locale

    @property
    def locale(self) -> str:
        return self._locale or config.get_locale()

    async def fetch(self) -> List[DelistingNotice]:
        """Return the current delisting watchlist (may be empty)."""

        api_key = self._api_key or config.get_groq_api_key()
        if not api_key:
            logger.warning("Delisting watchlist disabled: no GROQ_API_KEY in environment")
            return []

        model = self._model or config.get_delisting_model()
        content, status_code, payload = await asyncio.to_thread(
            http_chat_completion,
            model=model,
            messages=build_delisting_messages(self.locale),
            temperature=_TEMPERATURE,
            max_tokens=_MAX_TOKENS,
            api_key=api_key,
            api_url=self._api_url,
            timeout=self._timeout if self._timeout is not None else config.get_analysis_timeout(),
            json_mode=True,
        )
        if content is None:
            logger.warning(
                "Delisting watchlist request failed (status=%s): %s",
                status_code,
                describe_error(payload) or payload,
            )
            return []

        data = parse_json_object(content, logger=logger)
        if data is None:
            logger.warning("Delisting watchlist response is not a JSON object: %.200s", content)
            return []

        notices = parse_delistings(data)
        logger.info("Fetched %d delisting notices (model=%s)", len(notices), model)
        return notices


__all__ = ["DelistingFeed", "DelistingNotice", "build_delisting_messages", "parse_delistings"]
