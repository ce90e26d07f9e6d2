import argparse
import asyncio
import json
import sys
import threading
import time

from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from config.config import Config
from models.search import (
    AggregatedResult,
    FilterSet,
    Query,
    QueryValidationError,
    SourceId,
)
from orchestrator.core import LegalSearchOrchestrator


def show_loading_animation(stop_event: threading.Event) -> None:
    """
    Show a loading animation on stderr.

    Args:
        stop_event: A threading.Event that will be set to stop the animation
    """
    while not stop_event.is_set():
        for char in '|/-\\':
            if stop_event.is_set():
                break
            sys.stderr.write(f'\r\033[93mSearching {char}\033[0m')
            sys.stderr.flush()
            time.sleep(0.1)

    # Clear the loading line
    sys.stderr.write('\r' + ' ' * 20 + '\r')
    sys.stderr.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="korlaw",
        description="Search Korean statutes, ordinances, precedents, administrative rules and interpretations",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Search one or more sources in parallel")
    search.add_argument("query", help="Search text")
    search.add_argument("--sources", default="all", help="Comma separated sources, e.g. statute,prec (default: all)")
    search.add_argument("--page", type=int, default=1)
    search.add_argument("--size", type=int, default=20, help="Results per source page")
    search.add_argument("--no-cache", action="store_true", help="Skip the response cache")
    search.add_argument("--law-type", action="append", default=[], help="Law type (repeatable)")
    search.add_argument("--department", action="append", default=[], help="Department (repeatable)")
    search.add_argument("--status", action="append", default=[], help="Status (repeatable)")
    search.add_argument("--from", dest="date_from", help="Effective date from, YYYYMMDD")
    search.add_argument("--to", dest="date_to", help="Effective date to, YYYYMMDD")
    search.add_argument("--min-score", type=float)
    search.add_argument("--regex", action="store_true", help="Treat the query as a regular expression over titles")
    search.add_argument("--title-only", action="store_true", help="Keep only results whose title contains the query")
    search.add_argument("--region", help="Local government (ordinances)")
    search.add_argument("--court", help="Court name (precedents)")
    search.add_argument("--case-type", help="Case type (precedents)")
    search.add_argument("--json", action="store_true", help="Print the aggregated result as JSON")
    search.add_argument("--stats", action="store_true", help="Print performance statistics")

    detail = sub.add_parser("detail", help="Fetch full documents by id")
    detail.add_argument("source", help="Source name, e.g. statute or prec")
    detail.add_argument("ids", nargs="+", help="Document ids from search results")
    detail.add_argument("--stats", action="store_true", help="Print performance statistics")
    return parser


def build_query(args: argparse.Namespace) -> Query:
    filters = FilterSet.from_dict(
        {
            "law_types": args.law_type,
            "departments": args.department,
            "statuses": args.status,
            "date_from": args.date_from,
            "date_to": args.date_to,
            "min_score": args.min_score,
            "regex": args.regex,
            "title_only": args.title_only,
            "region": args.region,
            "court": args.court,
            "case_type": args.case_type,
        }
    )
    return Query(
        text=args.query,
        page=args.page,
        page_size=args.size,
        filters=filters,
        sources=SourceId.parse_many(args.sources),
        bypass_cache=args.no_cache,
    )


def print_result(result: AggregatedResult, names: dict[SourceId, str] | None = None) -> None:
    names = names or {}
    total = len(result.per_source_outcome)
    print(f"\n{result.success_count} of {total} sources succeeded")
    for source, failure in sorted(result.failures().items(), key=lambda item: item[0].value):
        label = f"{names[source]} ({source.value})" if source in names else source.value
        print(f"  - {label}: {failure.kind.value} ({failure.message})")

    if result.all_failed:
        print("\nNo source could be searched.")
        return

    print(f"\n{result.total_returned} results (upstream total {result.total_requested})\n")
    for i, record in enumerate(result.records, 1):
        date = record.effective_date.isoformat() if record.effective_date else "-"
        label = names.get(record.source_type, record.source_type.value)
        print(f"{i:>3}. [{label}] {record.title}")
        print(f"     id={record.id} date={date} score={record.relevance_score:.2f} {record.department}")
        if record.detail_url:
            print(f"     {record.detail_url}")


async def run_search(orchestrator: LegalSearchOrchestrator, query: Query) -> AggregatedResult:
    try:
        return await orchestrator.search(query)
    finally:
        await orchestrator.dispatcher.aclose()


async def run_detail(orchestrator: LegalSearchOrchestrator, source: SourceId, ids: list[str]):
    try:
        return await orchestrator.get_details(source, ids)
    finally:
        await orchestrator.dispatcher.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = Config()
        config.validate()
        orchestrator = LegalSearchOrchestrator.from_config(config)
    except ValueError as e:
        print(f"Error initializing: {str(e)}")
        return 2

    stop_animation = threading.Event()
    loading_thread = threading.Thread(target=show_loading_animation, args=(stop_animation,))
    loading_thread.daemon = True

    try:
        if args.command == "search":
            query = build_query(args)
            loading_thread.start()
            try:
                result = asyncio.run(run_search(orchestrator, query))
            finally:
                stop_animation.set()
                loading_thread.join()

            if args.json:
                print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
            else:
                print_result(result, orchestrator.display_names())
            exit_code = 1 if result.all_failed else 0

        else:
            sources = SourceId.parse(args.source)
            if len(sources) != 1:
                raise QueryValidationError("detail needs exactly one source")
            (source,) = sources
            details = asyncio.run(run_detail(orchestrator, source, args.ids))
            name = orchestrator.display_names()[source]
            exit_code = 0
            for record_id, outcome in details.items():
                print(f"\n=== {name} {record_id} ===")
                if outcome.is_success:
                    print(outcome.title)
                    print(outcome.content or "(no content)")
                else:
                    print(f"Failed: {outcome.kind.value} ({outcome.message})")
                    exit_code = 1

        if args.stats:
            print("\n=== Performance ===")
            print(orchestrator.metrics.format_summary())
        return exit_code

    except QueryValidationError as e:
        print(f"Invalid query: {str(e)}")
        return 2
    except KeyboardInterrupt:
        print("\nSearch cancelled")
        return 130
    finally:
        orchestrator.close()


if __name__ == "__main__":
    sys.exit(main())
