"""User-facing error messages in the supported locales.

Only the strings surfaced through the orchestrator's ``error`` field live
here; log messages stay in English.
"""

from __future__ import annotations

from typing import Any, Dict

import config

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "invalid_pair": "Invalid pair format. Please use 'COIN/QUOTE', e.g. BTC/USDT.",
        "pair_not_found": "The pair {symbol} is invalid or was not found on Binance.",
        "rate_limited": "Binance is rate limiting requests for {symbol}. Please wait a moment and try again.",
        "history_network": "Could not fetch data from Binance. Please check your network connection and try again.",
        "history_malformed": "Not enough historical data for {symbol} to analyze.",
        "missing_api_key": "The analysis API key is missing. Please configure the GROQ_API_KEY environment variable.",
        "invalid_api_key": "The analysis provider rejected the configured API key.",
        "analysis_not_json": "The AI analysis response is not valid JSON.",
        "analysis_invalid_structure": "Invalid analysis data structure received from the server (missing: {fields}).",
        "analysis_upstream": "Error communicating with the analysis server: {detail}",
        "analysis_network": "Could not reach the analysis server: {detail}",
        "unknown_error": "An unknown error occurred.",
    },
    "vi": {
        "invalid_pair": "Định dạng cặp coin không hợp lệ. Vui lòng sử dụng 'COIN/QUOTE', ví dụ: BTC/USDT.",
        "pair_not_found": "Cặp {symbol} không hợp lệ hoặc không được tìm thấy trên Binance.",
        "rate_limited": "Binance đang giới hạn yêu cầu cho {symbol}. Vui lòng đợi một lát rồi thử lại.",
        "history_network": "Không thể lấy dữ liệu từ Binance. Vui lòng kiểm tra kết nối mạng và thử lại.",
        "history_malformed": "Không có đủ dữ liệu lịch sử cho cặp {symbol} để phân tích.",
        "missing_api_key": "Thiếu API Key phía máy chủ. Vui lòng cấu hình biến môi trường GROQ_API_KEY.",
        "invalid_api_key": "Nhà cung cấp phân tích đã từ chối API Key được cấu hình.",
        "analysis_not_json": "Phản hồi phân tích từ AI không phải là JSON hợp lệ.",
        "analysis_invalid_structure": "Cấu trúc dữ liệu phân tích không hợp lệ nhận được từ máy chủ (thiếu: {fields}).",
        "analysis_upstream": "Lỗi giao tiếp với máy chủ phân tích: {detail}",
        "analysis_network": "Không thể kết nối tới máy chủ phân tích: {detail}",
        "unknown_error": "Đã xảy ra lỗi không xác định.",
    },
}


def get_message(key: str, locale: str | None = None, **params: Any) -> str:
    """Return the message ``key`` for ``locale`` formatted with ``params``.

    Unknown locales fall back to English; unknown keys return the key itself.
    """

    table = MESSAGES.get(locale or config.get_locale()) or MESSAGES["en"]
    template = table.get(key) or MESSAGES["en"].get(key)
    if template is None:
        return key
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template


__all__ = ["MESSAGES", "get_message"]
