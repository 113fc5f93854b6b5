"""Command-line interface for Threader."""

import argparse
import logging
import sys

from .core.config import Settings
from .core.constants import FileConstants
from .core.errors import ThreaderError
from .services.pipeline import AnalysisPipeline
from .utils.data_prep import export_to_json, report_to_dict

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=FileConstants.LOG_FORMAT
    )


def build_settings(args) -> Settings:
    """Settings from the environment, with command-line overrides."""
    overrides = {}
    if getattr(args, "offline", False):
        overrides["use_llm_discovery"] = False
        overrides["use_llm_classifier"] = False
    if getattr(args, "window_hours", None):
        overrides["time_window_hours"] = args.window_hours
    if getattr(args, "max_items", None):
        overrides["max_items_per_source"] = args.max_items
    if getattr(args, "comments", False):
        overrides["include_comments"] = True
    return Settings(**overrides)


def cmd_discover(args, settings: Settings):
    """Discover command."""
    pipeline = AnalysisPipeline(settings)
    result = pipeline.discover(args.company, args.context)

    print(f"Communities for '{args.company}' ({result.strategy}):")
    for source in result.sources:
        print(f"  r/{source.name:<24} {source.relevance.value}")
    print(f"Search terms: {', '.join(result.search_terms)}")


def cmd_scrape(args, settings: Settings):
    """Scrape command."""
    pipeline = AnalysisPipeline(settings)
    scraped = pipeline.scrape(args.company, args.context)

    for name, result in scraped.source_results.items():
        status = f"error: {result.error}" if result.failed else f"{result.relevant}/{result.total} relevant"
        print(f"  r/{name:<24} {status}")
    print(f"Scraped {len(scraped.records)} posts for '{args.company}'")

    if scraped.records:
        print("\nSample post:")
        sample = scraped.records[0]
        print(f"Author: {sample.author}")
        print(f"Text: {sample.text[:100]}...")
        print(f"Source: {sample.source_url}")

    if args.output:
        export_to_json({"posts": [r.to_dict() for r in scraped.records], "metadata": {}}, args.output)
        print(f"Exported to {args.output}")


def cmd_analyze(args, settings: Settings):
    """Analyze command."""
    pipeline = AnalysisPipeline(settings)
    print(f"Analyzing '{args.company}' over the last {settings.time_window_hours:g}h...")
    result = pipeline.run(args.company, args.context, is_public=args.public)
    report = result.report

    print(f"\nReport {result.report_id}")
    print(report.summaries.tldr)
    print(f"\nMood: {report.sentiment.mood} "
          f"({report.sentiment.positive}% positive / {report.sentiment.neutral}% neutral / "
          f"{report.sentiment.negative}% negative)")

    print("\nTop focus areas:")
    for i, fa in enumerate(report.focus_areas[:5], 1):
        print(f"{i}. [{fa.severity_label}] {fa.title} "
              f"({fa.category.value}, impact {fa.impact_score:.1f}, {fa.frequency} mentions)")
        print(f"   \"{fa.top_quote[:100]}\"")

    if report.comparison:
        print(f"\n{report.comparison.summary}")

    if args.output:
        export_to_json(report_to_dict(report, result.report_id), args.output)
        print(f"Exported to {args.output}")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Threader - Reddit product feedback analysis")
    parser.add_argument("--offline", action="store_true",
                        help="Skip the LLM: heuristic discovery and keyword classification")
    parser.add_argument("--window-hours", type=float, help="Trailing time window to collect")
    parser.add_argument("--max-items", type=int, help="Posts collected per community")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    discover_parser = subparsers.add_parser("discover", help="List communities to search")
    discover_parser.add_argument("company", help="Company or product name")
    discover_parser.add_argument("--context", default="", help="What the company does")

    scrape_parser = subparsers.add_parser("scrape", help="Collect recent posts")
    scrape_parser.add_argument("company", help="Company or product name")
    scrape_parser.add_argument("--context", default="", help="What the company does")
    scrape_parser.add_argument("--comments", action="store_true", help="Fetch top comments")
    scrape_parser.add_argument("--output", "-o", help="Output JSON file")

    analyze_parser = subparsers.add_parser("analyze", help="Run the full analysis")
    analyze_parser.add_argument("company", help="Company or product name")
    analyze_parser.add_argument("--context", default="", help="What the company does")
    analyze_parser.add_argument("--comments", action="store_true", help="Fetch top comments")
    analyze_parser.add_argument("--public", action="store_true", help="Store the report as public")
    analyze_parser.add_argument("--output", "-o", help="Output JSON file")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    settings = build_settings(args)
    setup_logging(settings)

    commands = {"discover": cmd_discover, "scrape": cmd_scrape, "analyze": cmd_analyze}
    try:
        commands[args.command](args, settings)
    except ThreaderError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
