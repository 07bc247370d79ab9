#!/usr/bin/env python
"""
Scheduler entry point: asks the API to bill every sent contract whose
billing moment has arrived.

Run daily from cron for today's date, or with --start-date/--end-date to
catch up on a range of days.
"""

import os
import asyncio
import httpx
from datetime import date, timedelta
import logging
import argparse
from typing import Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Base URL for API calls
BASE_URL = os.environ.get("API_URL", "http://localhost:3001/api")


def generate_dates(start_date: date, end_date: date):
    """Every date from start_date to end_date (exclusive)."""
    dates = []
    current = start_date
    while current < end_date:
        dates.append(current)
        current += timedelta(days=1)
    return dates


def format_result_output(result, context=""):
    """Format a processing result in a readable way."""
    if not result:
        return "No result returned"

    output_lines = []
    if context:
        output_lines.append(f"Context: {context}")
    output_lines.append("=" * 60)

    for key, label in [
        ("total_processed", "Total Contracts Processed"),
        ("successful", "Successful"),
        ("failed", "Failed"),
        ("skipped", "Skipped"),
    ]:
        if key in result:
            output_lines.append(f"{label}: {result[key]}")

    failed = [item for item in result.get("results", []) if item.get("status") == "FAILED"]
    if failed:
        output_lines.append("")
        output_lines.append(f"Failures ({len(failed)} contracts):")
        for i, item in enumerate(failed[:5], 1):
            message = item.get("message") or "No message"
            if len(message) > 80:
                message = message[:77] + "..."
            output_lines.append(f"   {i}. Contract {item.get('contract_id')}: {message}")
        if len(failed) > 5:
            output_lines.append(f"   ... and {len(failed) - 5} more failures")

    output_lines.append("=" * 60)
    return "\n".join(output_lines)


async def process_due_contracts(client, target_date: Optional[date] = None):
    """Process contracts for one business date; the server's today when None"""
    label = target_date.isoformat() if target_date else "today"
    logger.info(f"Processing due contracts for {label}")
    try:
        response = await client.post(
            f"{BASE_URL}/billing/process-contracts",
            json={"today": label} if target_date else {}
        )
        response.raise_for_status()
        result = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error occurred while processing {label}: {e}")
        logger.error(f"Response content: {e.response.text}")
        return None
    except httpx.HTTPError as e:
        logger.error(f"Request failed while processing {label}: {e}")
        return None

    logger.info(
        f"Processing for {label} completed:\n"
        f"{format_result_output(result, f'Date: {label}')}")
    return result


async def main(start_date: str = None, end_date: str = None):
    """Process today, or every date of the given range."""
    if start_date and end_date:
        dates = generate_dates(date.fromisoformat(start_date), date.fromisoformat(end_date))
    else:
        dates = [None]

    totals = {"total_processed": 0, "successful": 0, "failed": 0, "skipped": 0}
    errors = 0
    async with httpx.AsyncClient(timeout=600.0) as client:
        for target_date in dates:
            result = await process_due_contracts(client, target_date)
            if result is None:
                errors += 1
                continue
            for key in totals:
                totals[key] += result.get(key, 0)

    logger.info(f"Summary:\n{format_result_output(totals, f'{len(dates)} dates, {errors} request errors')}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Bill contracts whose billing moment has arrived.")
    parser.add_argument(
        "--start-date",
        type=str,
        help="First date to process in YYYY-MM-DD format. Defaults to today."
    )
    parser.add_argument(
        "--end-date",
        type=str,
        help="End date (exclusive) in YYYY-MM-DD format. Required with --start-date."
    )
    args = parser.parse_args()
    if bool(args.start_date) != bool(args.end_date):
        parser.error("--start-date and --end-date must be given together")
    asyncio.run(main(start_date=args.start_date, end_date=args.end_date))
