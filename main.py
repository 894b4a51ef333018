"""
Google Maps Scraper Main Interface
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from gmaps_scraper.config import MAX_RESULTS_LIMIT, load_config
from gmaps_scraper.data_models.models import ExtractionResult
from gmaps_scraper.errors import GMapsScraperError, RequestValidationError
from gmaps_scraper.orchestrator import scrape_gmaps_businesses
from gmaps_scraper.storage.export import default_filename, export_result
from gmaps_scraper.utils.logging_config import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Google Maps Business Scraper - Extract business listings for a search query",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --query "restaurants in Miami" --max-results 20
  python main.py --query "dentists near Austin TX" --max-results 50 --mode parallel --concurrency 3
  python main.py --query "coffee shops in Seattle" --max-results 10 --format csv --output coffee.csv
  python main.py --query "plumbers in Denver" --max-results 5 --show-browser --verbose
        """
    )

    parser.add_argument('--query', '-q', required=True, help='Google Maps search query')
    parser.add_argument('--max-results', '-n', type=int, required=True,
                        help=f'Number of businesses to extract (1-{MAX_RESULTS_LIMIT})')
    parser.add_argument('--mode', choices=['sequential', 'parallel'], default='sequential',
                        help='Processing mode (default: sequential)')
    parser.add_argument('--concurrency', type=int, default=None,
                        help='Worker pages per batch in parallel mode (1-10)')
    parser.add_argument('--output', '-o', default=None,
                        help='Output file name (default: derived from the query)')
    parser.add_argument('--format', choices=['json', 'csv'], default='json', dest='export_format',
                        help='Output format (default: json)')
    parser.add_argument('--show-browser', action='store_true',
                        help='Show browser window (opposite of headless)')
    parser.add_argument('--timeout', type=float, default=None,
                        help='Abort the whole run after this many seconds')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log every scroll cycle and item')
    parser.add_argument('--log-file', default=None, help='Also write logs to this file')
    return parser


def print_summary(result: ExtractionResult, output_file: str) -> None:
    stats = result.stats
    print("\n" + "=" * 60)
    print(f"📊 Results for \"{result.query}\"")
    print("=" * 60)
    print(f"  Mode:          {stats.mode.value}" + (" (fallback)" if stats.fallback_reason else ""))
    print(f"  Requested:     {stats.requested}")
    print(f"  Discovered:    {stats.discovered}")
    print(f"  Successful:    {stats.successful}")
    print(f"  Failed:        {stats.failed}")
    print(f"  Scroll rounds: {stats.scroll_attempts}")
    print(f"  Time:          {(stats.processing_time_ms or 0) / 1000:.1f}s")
    for error_type, count in stats.failures_by_type.items():
        print(f"    - {error_type}: {count}")
    print(f"💾 Saved to: {output_file}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main function with argument parsing"""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose, log_file=args.log_file)
    config = load_config(headless=False if args.show_browser else None)

    async def run_scraper() -> ExtractionResult:
        return await scrape_gmaps_businesses(
            args.query,
            args.max_results,
            mode=args.mode,
            concurrency=args.concurrency,
            config=config,
            timeout_seconds=args.timeout,
        )

    try:
        result = asyncio.run(run_scraper())
    except KeyboardInterrupt:
        print("\n👋 Scraping interrupted by user")
        return 1
    except RequestValidationError as e:
        print(f"❌ Invalid request: {e.message}")
        return 2
    except GMapsScraperError as e:
        print(f"❌ Scraping failed ({e.error_type.value}): {e.message}")
        return 1

    output_file = args.output or default_filename(result.query, args.export_format)
    output_file = export_result(result, output_file, args.export_format)
    print_summary(result, output_file)
    return 0 if result.records else 1


if __name__ == "__main__":
    sys.exit(main())
