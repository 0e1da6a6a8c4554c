"""
feedprefs - Content Preference Engine

CLI entry point for managing topic preferences and personalizing a feed.
"""

import argparse
import json
import logging
import sys

from feedprefs.errors import PreferenceEngineError
from feedprefs.filtering.pipeline import FeedPersonalizer
from feedprefs.filtering.report import write_report
from feedprefs.models.content import ContentItem
from feedprefs.registry.preference_registry import PreferenceRegistry
from feedprefs.taxonomy.catalog import categories, suggested_blocks
from feedprefs.utils.storage import PreferenceStore
import config.settings as settings

logger = logging.getLogger(__name__)

MUTATIONS = {
    "prefer": PreferenceRegistry.add_preferred,
    "unprefer": PreferenceRegistry.remove_preferred,
    "block": PreferenceRegistry.add_blocked,
    "unblock": PreferenceRegistry.remove_blocked,
}


def setup_logging(log_level: str = "INFO"):
    """Configure logging for the entire application."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=settings.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(settings.LOG_FILE)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="feedprefs - topic preferences and feed personalization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Browse the topic catalog
  python main.py categories

  # Follow a topic and block a keyword
  python main.py prefer "retro gaming"
  python main.py block asmr

  # Personalize a feed and write a decision report
  python main.py filter feed.json --report-dir output
        """
    )

    parser.add_argument(
        "--profile",
        default=settings.DEFAULT_PROFILE,
        help=f"Viewer profile (default: {settings.DEFAULT_PROFILE})"
    )
    parser.add_argument(
        "--data-root",
        default=str(settings.PREFERENCES_DIR),
        help=f"Preference directory (default: {settings.PREFERENCES_DIR})"
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {settings.LOG_LEVEL})"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("categories", help="List topic categories")
    commands.add_parser("show", help="Show preferred and blocked topics")
    commands.add_parser("suggest", help="Show quick-add block suggestions")

    for name in MUTATIONS:
        sub = commands.add_parser(name, help=f"{name.capitalize()} a topic")
        sub.add_argument("topic", help="Topic label")

    filter_cmd = commands.add_parser("filter", help="Personalize a feed JSON file")
    filter_cmd.add_argument("feed", help="JSON file holding a list of items")
    filter_cmd.add_argument("--report-dir", help="Write a CSV decision report here")
    filter_cmd.add_argument(
        "--match-mode",
        default=settings.MATCH_MODE,
        choices=["word", "substring"],
        help=f"Keyword matching rule (default: {settings.MATCH_MODE})"
    )

    return parser


def load_feed(path: str) -> list:
    """Read feed items from a JSON list (or {"items": [...]})."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("items", [])
    return [ContentItem.from_dict(entry) for entry in data]


def print_preferences(prefs) -> None:
    print(f"Preferred ({len(prefs.preferred)}): " + ", ".join(sorted(t.label for t in prefs.preferred)))
    print(f"Blocked ({len(prefs.blocked)}): " + ", ".join(sorted(t.label for t in prefs.blocked)))


def run(args: argparse.Namespace) -> int:
    """Execute one CLI command. Returns the process exit code."""
    if args.command == "categories":
        for category in categories():
            print(f"{category.icon} {category.name}: " + ", ".join(t.label for t in category.topics))
        return 0

    store = PreferenceStore(args.data_root)
    warnings = []

    with PreferenceRegistry(store, on_store_error=lambda _, e: warnings.append(e)) as registry:
        if args.command == "show":
            print_preferences(registry.snapshot(args.profile))

        elif args.command == "suggest":
            suggestions = suggested_blocks(registry.current_blocked(args.profile))
            print("Suggested blocks: " + ", ".join(t.label for t in suggestions))

        elif args.command in MUTATIONS:
            prefs = MUTATIONS[args.command](registry, args.profile, args.topic)
            registry.flush()
            print_preferences(prefs)

        elif args.command == "filter":
            prefs = registry.snapshot(args.profile)
            personalizer = FeedPersonalizer(match_mode=args.match_mode)
            decisions = personalizer.decide(load_feed(args.feed), prefs)

            for decision in personalizer.rank(decisions):
                boost = f"+{decision.relevance_delta:g}" if decision.relevance_delta else " 0"
                print(f"[{boost:>4}] {decision.item.item_id}  {decision.item.title}")

            hidden = [d for d in decisions if not d.visible]
            print(f"\n{len(decisions) - len(hidden)} shown, {len(hidden)} hidden")

            if args.report_dir:
                report_path = write_report(decisions, args.report_dir, name=f"feed_{args.profile}")
                print(f"Report: {report_path}")

    for warning in warnings:
        print(f"⚠️  {warning}")
    return 0


def main():
    """Main CLI entry point."""
    args = build_parser().parse_args()
    setup_logging(args.log_level)

    try:
        sys.exit(run(args))

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        print("\n⚠️  Interrupted")
        sys.exit(1)

    except (PreferenceEngineError, ValueError, OSError) as e:
        logger.error(f"Command failed: {e}")
        print(f"\n❌ {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
