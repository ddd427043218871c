#!/usr/bin/env python3
"""
Newsletter Cohort Engine

Audience segmentation and content personalization for financial newsletters:
- Subscriber profiling and churn prediction
- Cohort generation and personalization rules
- Voice-preserving cohort sharpening
- Individual personalization

Usage:
    python main.py                          # Interactive mode
    python main.py --demo                   # Load demo data and start
    python main.py cohorts                  # Single command mode
"""
import sys
import asyncio
import logging
import argparse
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config import get_config, update_config
from exceptions import EngineError
from audience.storage import SubscriberStore
from audience.ingestion import DataIngestion
from audience.performance import churn_risk_summary
from agents.orchestrator import PersonalizationOrchestrator
from agents.providers import StaticMarketContextProvider

logger = logging.getLogger(__name__)


DEMO_SUBJECT = "Tech Sector Update"
DEMO_CONTENT = """Here's the thing: tech earnings surprised to the upside this quarter, with
cloud revenue up 18% year over year. However, valuations remain stretched and volatility
is creeping back into the semiconductor names.

Bottom line: we're staying selective and watching the yield curve closely."""


class NewsletterEngine:
    """
    Main application class that wires storage, ingestion and the orchestrator
    for a single tenant.
    """

    def __init__(self, db_path: str, tenant_id: str, use_ai: bool = True):
        logger.info(f"Initializing engine for tenant {tenant_id}")

        self.tenant_id = tenant_id
        self.store = SubscriberStore(db_path)
        self.ingestion = DataIngestion(self.store, tenant_id)
        self.orchestrator = PersonalizationOrchestrator(
            self.store,
            market_provider=StaticMarketContextProvider(),
            use_ai=use_ai,
        )

    def load_demo_data(self, num_subscribers: int = 100):
        """Load demo subscribers and build cohorts"""
        print(f"Generating {num_subscribers} sample subscribers...")
        stats = self.ingestion.generate_sample_data(num_subscribers)
        print(f"Created {stats['subscribers_imported']} subscribers")
        if stats["errors"]:
            print(f"Errors: {len(stats['errors'])}")

        cohorts = self.orchestrator.refresh_cohorts(self.tenant_id)
        print(f"Built {len(cohorts)} cohorts\n")

        print(self.show_cohorts())
        if cohorts:
            print()
            print(self.show_rules(cohorts[0].id))
        print()
        print(self.show_churn())
        print()

    def show_cohorts(self) -> str:
        cohorts = self.store.get_all_cohorts(self.tenant_id)
        if not cohorts:
            return "No cohorts yet. Run 'refresh' after loading subscribers."

        lines = ["Cohorts:", "────────"]
        for cohort in cohorts:
            metrics = cohort.engagement_metrics
            lines.append(
                f"  {cohort.id:<28} {cohort.size:>5} subscribers  "
                f"engagement {metrics.average_engagement:5.1f}  churn {metrics.churn_rate:.0%}"
            )
        return "\n".join(lines)

    def show_rules(self, cohort_id: str) -> str:
        rules = self.orchestrator.rule_engine.rules_for_cohort(self.store, self.tenant_id, cohort_id)
        lines = [f"Rules for {cohort_id}:"]
        for rule in rules:
            lines.append(f"  [{rule.priority}] {rule.rule_type.value:<13} {rule.condition} -> {rule.action}")
        return "\n".join(lines)

    def show_churn(self) -> str:
        summary = churn_risk_summary(self.orchestrator.load_profiles(self.tenant_id))
        return (
            f"Churn risk across {summary.total} subscribers:\n"
            f"  high:   {summary.high}\n"
            f"  medium: {summary.medium}\n"
            f"  low:    {summary.low}\n"
            f"  average risk: {summary.average_churn_risk:.2f}"
        )

    def sharpen(self, subject: str, content: str) -> str:
        cohorts = self.store.get_all_cohorts(self.tenant_id)
        if not cohorts:
            return "No cohorts to sharpen for."

        batch = asyncio.run(self.orchestrator.sharpen_cohorts(subject, content, cohorts))

        lines = [f"Sharpened '{subject}' for {len(batch.successes)} cohorts:"]
        for result in batch.successes:
            email = result.sharpened_email
            marker = " (fallback)" if result.fallback_used else ""
            lines.append(f"\n  {result.cohort_name} [{result.subscriber_count}]{marker}")
            lines.append(f"    Subject: {email.subject}")
            lines.append(f"    CTA:     {email.cta}")
            lines.append(
                f"    Predicted open {email.predicted_open_rate:.0%}, click {email.predicted_click_rate:.0%}, "
                f"send {email.optimal_send_time}, voice {email.voice_consistency_score:.2f}"
            )
        for error in batch.errors:
            lines.append(f"\n  {error.item_id}: {error.kind} {error.message}")
        return "\n".join(lines)

    def process(self, command: str, subject: str = DEMO_SUBJECT, content: str = DEMO_CONTENT) -> str:
        """Run one CLI command"""
        parts = command.split()
        name, args = parts[0].lower(), parts[1:]

        if name == "cohorts":
            return self.show_cohorts()
        if name == "rules":
            if not args:
                return "Usage: rules <cohort_id>"
            return self.show_rules(args[0])
        if name == "churn":
            return self.show_churn()
        if name == "refresh":
            cohorts = self.orchestrator.refresh_cohorts(self.tenant_id)
            return f"Rebuilt {len(cohorts)} cohorts"
        if name == "sharpen":
            return self.sharpen(subject, content)
        if name == "stats":
            stats = self.store.get_stats(self.tenant_id)
            return "\n".join(f"  {key}: {value}" for key, value in stats.items())
        if name == "help":
            return QUICK_START
        return f"Unknown command '{name}'. Type 'help' for commands."


QUICK_START = """
Commands:
─────────
  cohorts                       List cohorts
  rules <cohort_id>             Show personalization rules for a cohort
  churn                         Churn risk summary
  refresh                       Rebuild cohorts from stored subscribers
  sharpen                       Sharpen the newsletter for every cohort
  stats                         Tenant statistics

Type 'exit' or 'quit' to exit.
"""


def print_banner():
    """Print welcome banner"""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                                                               ║
║     NEWSLETTER COHORT ENGINE                                  ║
║                                                               ║
║     Audience segmentation for financial newsletters           ║
║                                                               ║
╚═══════════════════════════════════════════════════════════════╝
"""
    print(banner)


def interactive_mode(engine: NewsletterEngine, subject: str, content: str):
    """Run interactive CLI mode"""
    print_banner()
    print(QUICK_START)

    stats = engine.store.get_stats(engine.tenant_id)
    print(f"Current data: {stats['total_subscribers']} subscribers, "
          f"{stats['total_cohorts']} cohorts\n")

    while True:
        try:
            user_input = input("\n> ").strip()

            if user_input.lower() in ["exit", "quit", "q"]:
                print("\nGoodbye!")
                break

            if not user_input:
                continue

            print(f"\n{engine.process(user_input, subject, content)}")

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except EngineError as e:
            print(f"\nError: {e.message}")


def main():
    parser = argparse.ArgumentParser(
        description="Newsletter Cohort Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                              # Interactive mode
  python main.py --demo                       # Load demo data and start
  python main.py --demo -n 500 sharpen        # 500 demo subscribers, then sharpen
  python main.py sharpen --subject "Weekly Wrap" --content-file wrap.txt
        """
    )

    parser.add_argument(
        "command",
        nargs="*",
        help="Single command to execute (optional)"
    )

    parser.add_argument(
        "--demo",
        action="store_true",
        help="Load demo/sample data on startup"
    )

    parser.add_argument(
        "-n", "--num-subscribers",
        type=int,
        default=100,
        help="Number of demo subscribers to generate (default: 100)"
    )

    parser.add_argument(
        "--db",
        type=str,
        default=get_config().database.db_path,
        help="Database path (default: %(default)s)"
    )

    parser.add_argument(
        "--tenant",
        type=str,
        default="demo",
        help="Tenant id (default: demo)"
    )

    parser.add_argument(
        "--subject",
        type=str,
        default=DEMO_SUBJECT,
        help="Base subject line for sharpening"
    )

    parser.add_argument(
        "--content-file",
        type=str,
        help="File with the base newsletter body for sharpening"
    )

    parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Skip the AI provider and use rule-based fallbacks"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.verbose:
        update_config(debug=True)

    content = DEMO_CONTENT
    if args.content_file:
        content = Path(args.content_file).read_text(encoding="utf-8")

    engine = NewsletterEngine(db_path=args.db, tenant_id=args.tenant, use_ai=not args.no_ai)

    if args.demo:
        engine.load_demo_data(args.num_subscribers)

    if args.command:
        try:
            print(engine.process(" ".join(args.command), args.subject, content))
        except EngineError as e:
            print(f"Error: {e.message}")
            sys.exit(1)
    else:
        interactive_mode(engine, args.subject, content)


if __name__ == "__main__":
    main()
