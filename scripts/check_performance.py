#!/usr/bin/env python3
"""
Print dashboard stats for a date range, straight from the Graph API.

Uses META_AD_ACCOUNT_ID / META_ACCESS_TOKEN from the environment (or .env).

Usage:
    python scripts/check_performance.py 2024-03-01 2024-03-31
    python scripts/check_performance.py 2024-03-01 2024-03-31 --daily --json
    python scripts/check_performance.py 2024-03-01 2024-03-31 --campaign 120200000000001 --granularity week
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from adsperf.config import validate_config, ConfigurationError
from adsperf.exceptions import MetaAdsError, ValidationError
from adsperf.observability import setup_logging
from adsperf.performance import PerformanceService


def print_stats(stats, show_daily: bool) -> None:
    current = stats.current
    previous = stats.previous
    comparison = stats.comparison

    print(f"\nPeriod:   {stats.current_range}  (requested {stats.requested_range})")
    print(f"Previous: {stats.previous_range}")
    if stats.has_simulated_data:
        print("WARNING: contains simulated data")

    print(f"\n{'Metric':<14}{'Current':>14}{'Previous':>14}{'Change %':>10}")
    print("-" * 52)
    rows = [
        ("impressions", current.impressions, previous.impressions),
        ("clicks", current.clicks, previous.clicks),
        ("spend", current.spend, previous.spend),
        ("conversions", current.conversions, previous.conversions),
        ("purchases", current.purchases, previous.purchases),
        ("revenue", current.revenue, previous.revenue),
        ("ctr", current.ctr, previous.ctr),
        ("roas", current.roas, previous.roas),
    ]
    for name, cur, prev in rows:
        print(f"{name:<14}{cur:>14,.2f}{prev:>14,.2f}{comparison.change(name):>10.1f}")

    if show_daily:
        print(f"\n{'Date':<12}{'Impr':>8}{'Clicks':>8}{'Spend':>10}{'Purch':>7}{'Revenue':>10}")
        for record in stats.daily:
            flag = " *" if record.is_simulated else ""
            print(
                f"{record.date:<12}{record.impressions:>8}{record.clicks:>8}"
                f"{record.spend:>10.2f}{record.purchases:>7}{record.revenue:>10.2f}{flag}"
            )


def print_campaign(result) -> None:
    name = result.campaign_name or result.campaign_id
    print(f"\nCampaign: {name}  {result.time_range}")
    print(f"Consistency: {result.consistency.message}")
    for record in result.records:
        print(
            f"{record.date_start}..{record.date_stop}  impr={record.impressions} "
            f"clicks={record.clicks} spend={record.spend:.2f} purchases={record.purchases}"
        )


async def main() -> int:
    parser = argparse.ArgumentParser(description="Meta Ads dashboard stats")
    parser.add_argument("start_date", help="Start date (YYYY-MM-DD)")
    parser.add_argument("end_date", help="End date (YYYY-MM-DD)")
    parser.add_argument("--account", help="Ad account ID (defaults to META_AD_ACCOUNT_ID)")
    parser.add_argument("--campaign", help="Show a campaign series instead of dashboard stats")
    parser.add_argument("--granularity", default="day", choices=["day", "week", "month"])
    parser.add_argument("--simulate", action="store_true", help="Allow simulated data")
    parser.add_argument("--daily", action="store_true", help="Print the daily series")
    parser.add_argument("--json", action="store_true", help="Print the API response JSON")
    parser.add_argument("--debug", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.debug else "WARNING")

    try:
        validate_config(require_credentials=not args.account)
    except ConfigurationError as e:
        print(e)
        return 2

    service = PerformanceService()
    try:
        if args.campaign:
            result = await service.get_campaign_performance(
                args.campaign, args.start_date, args.end_date,
                granularity=args.granularity, account_id=args.account,
            )
            if args.json:
                print(json.dumps(result.to_response().model_dump(), indent=2))
            else:
                print_campaign(result)
            return 0

        stats = await service.get_dashboard_stats(
            args.start_date, args.end_date,
            account_id=args.account,
            allow_simulated_data=args.simulate,
        )
    except ValidationError as e:
        print(f"Invalid input: {e}")
        return 2
    except MetaAdsError as e:
        print(f"Error: {e}")
        return 1

    if args.json:
        print(json.dumps(stats.to_response().model_dump(), indent=2))
    else:
        print_stats(stats, args.daily)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
