from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence

import config
from analysis_orchestrator import AnalysisState, AppStatus, build_default_orchestrator
from delisting_feed import DelistingFeed, DelistingNotice
from history_fetcher import Timeframe


def _state_payload(state: AnalysisState) -> Dict[str, Any]:
    displayed = state.displayed_series
    return {
        "symbol": state.symbol,
        "status": state.status.value,
        "timeframe": state.active_timeframe.value,
        "latest_price": displayed.latest_price if displayed is not None else None,
        "analysis": state.analysis.to_payload() if state.analysis is not None else None,
        "from_cache": state.analysis_from_cache,
        "error": state.error,
        "error_kind": state.error_kind.value if state.error_kind is not None else None,
        "error_reason": state.error_reason,
        "news": [
            {"title": article.title, "source": article.source, "url": article.url}
            for article in state.news
        ],
    }


def _print_delistings(notices: List[DelistingNotice]) -> None:
    if not notices:
        print("No upcoming Binance delistings reported.")
        return
    print("Delisting watchlist:")
    for notice in notices:
        print(f"  {notice.delisting_date.isoformat()} {notice.coin_pair}: {notice.reason}")


def _print_summary(state: AnalysisState) -> None:
    if state.status is not AppStatus.SUCCESS or state.analysis is None:
        kind = state.error_kind.value if state.error_kind is not None else "Error"
        print(f"Analysis failed [{kind}]: {state.error}")
        return

    result = state.analysis
    displayed = state.displayed_series
    print(f"Analysis for {state.symbol}{' (cached)' if state.analysis_from_cache else ''}:")
    if displayed is not None:
        print(f"  {state.active_timeframe.value} candles: {len(displayed)}, last close {displayed.latest_price}")
    print(f"  signal: {result.recommendation.signal} ({result.recommendation.reason})")
    print(f"  confidence: {result.confidence_score:g} - {result.confidence_reason}")
    print(f"  sentiment: {result.market_sentiment}")
    print(f"  buy zone: {result.buy_zone.lower:g} - {result.buy_zone.upper:g}")
    print(f"  take profit: {', '.join(f'{level:g}' for level in result.take_profit_levels)}")
    print(f"  stop loss: {result.stop_loss:g}")
    print(f"  support: {', '.join(f'{level:g}' for level in result.support_levels)}")
    print(f"  resistance: {', '.join(f'{level:g}' for level in result.resistance_levels)}")
    for label, info in (
        ("short", result.trend_analysis.short_term),
        ("medium", result.trend_analysis.medium_term),
        ("long", result.trend_analysis.long_term),
    ):
        print(f"  {label}-term trend: {info.trend} - {info.reason}")
    print(f"  summary: {result.summary}")
    for takeaway in result.key_takeaways:
        print(f"  * {takeaway}")
    if state.news:
        print("  news:")
        for article in state.news[:5]:
            print(f"    - {article.title} ({article.source})")


async def _run(args: argparse.Namespace) -> int:
    orchestrator = build_default_orchestrator(
        locale=args.locale,
        news=False if args.no_news else None,
    )
    try:
        orchestrator.set_active_timeframe(args.timeframe)
        state = await orchestrator.analyze(args.pair, force=args.force)
        notices = await DelistingFeed(locale=args.locale).fetch() if args.delistings else None
        if args.json:
            payload = _state_payload(state)
            if notices is not None:
                payload["delistings"] = [notice.to_payload() for notice in notices]
            print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
        else:
            _print_summary(state)
            if notices is not None:
                _print_delistings(notices)

        if args.watch > 0 and state.symbol is not None:
            last_quote = None

            def _print_quote(snapshot: AnalysisState) -> None:
                nonlocal last_quote
                quote = snapshot.live_quote
                if quote is None or quote is last_quote:
                    return
                last_quote = quote
                text = quote.formatted()
                print(f"{snapshot.symbol} {text['price']} {text['change']} ({text['change_percent']})")

            unsubscribe = orchestrator.subscribe(_print_quote)
            _print_quote(orchestrator.state)
            try:
                await asyncio.sleep(args.watch)
            finally:
                unsubscribe()
    finally:
        await orchestrator.aclose()

    return 0 if state.status is AppStatus.SUCCESS else 1


def main(cli_args: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run an AI market analysis for a trading pair.")
    parser.add_argument("pair", help="Trading pair in COIN/QUOTE form, e.g. BTC/USDT")
    parser.add_argument(
        "--timeframe",
        choices=[tf.value for tf in Timeframe],
        default=Timeframe.THREE_MONTHS.value,
        help="Series to summarise (default 3M)",
    )
    parser.add_argument(
        "--watch",
        type=float,
        default=0.0,
        help="Print live quotes for this many seconds after the analysis",
    )
    parser.add_argument("--locale", choices=list(config.SUPPORTED_LOCALES), default=None)
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--no-news", action="store_true", help="Skip the news supplement")
    parser.add_argument("--force", action="store_true", help="Ignore any cached analysis")
    parser.add_argument(
        "--delistings",
        action="store_true",
        help="Also list pairs Binance has announced it will delist",
    )

    args = parser.parse_args(cli_args)
    if args.watch < 0:
        parser.error("--watch must be zero or positive")

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:  # pragma: no cover
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
