import argparse
import atexit
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from .catalog import CatalogError, find_item, load_catalog
from .config import (
    DEFAULT_CATALOG_PATH,
    DEFAULT_DIVERSITY_FACTOR,
    DEFAULT_GENRE_COUNT,
    DEFAULT_RECOMMENDATION_COUNT,
    DEFAULT_SIMILAR_COUNT,
    DEFAULT_TRENDING_COUNT,
    DEFAULT_TRENDING_WINDOW_DAYS,
)
from .database import close_db
from .diversity import diversity_report
from .engine import RecommendationEngine
from .scoring import ScoredCandidate

logger = logging.getLogger(__name__)

# Register cleanup on exit
atexit.register(close_db)


def _get_engine() -> RecommendationEngine:
    return RecommendationEngine()


def _load_catalog_or_exit(args: argparse.Namespace) -> list[dict]:
    try:
        return load_catalog(args.catalog)
    except CatalogError as e:
        logger.error(str(e))
        sys.exit(1)


def _resolve_item_id(engine: RecommendationEngine, raw_id: str):
    """Map a CLI id string back to the typed id stored in history (e.g. int ids)."""
    for item_id in engine.watched:
        if str(item_id) == raw_id:
            return item_id
    return raw_id


def _format_breakdown(breakdown: dict) -> str:
    parts = []
    for key, value in breakdown.items():
        if isinstance(value, float):
            parts.append(f"{key}={value:.2f}")
        else:
            parts.append(f"{key}={value}")
    return ", ".join(parts)


def _output_recommendations(
    recs: list[ScoredCandidate],
    args: argparse.Namespace,
    heading: str,
) -> None:
    """Format and log recommendations in the requested format."""
    recs = recs or []
    output_format = getattr(args, 'format', 'text')
    show_diversity = getattr(args, 'diversity_report', False)

    if output_format == 'json':
        output = [
            {
                "id": r.item_id,
                "title": r.item.get('title'),
                "year": r.item.get('year'),
                "score": round(r.score, 4),
                "genres": r.item.get('genres') or ([r.item['genre']] if r.item.get('genre') else []),
                "source": r.item.get('source'),
                "breakdown": r.breakdown,
            }
            for r in recs
        ]
        if show_diversity:
            logger.info(json.dumps({"recommendations": output, "diversity": diversity_report(recs)}, indent=2))
        else:
            logger.info(json.dumps(output, indent=2))
        return

    logger.info(f"\n{heading} ({len(recs)}):")
    for i, r in enumerate(recs, 1):
        year = f" ({r.item['year']})" if r.item.get('year') else ""
        logger.info(f"{i}. {r.title}{year} - Score: {r.score:.3f}")
        if r.breakdown:
            logger.info(f"   {_format_breakdown(r.breakdown)}")

    if show_diversity:
        metrics = diversity_report(recs)
        logger.info(f"\n{'=' * 50}")
        logger.info("Diversity Report:")
        logger.info(f"  Overall diversity: {metrics['diversity_score']:.0%}")
        if recs:
            logger.info(f"  Genres: {metrics['unique_genres']} unique ({metrics['genre_diversity']:.0%} entropy)")
            logger.info(f"  Sources: {metrics['unique_sources']} unique ({metrics['source_diversity']:.0%} entropy)")
            if metrics['decade_range']:
                low, high = metrics['decade_range']
                logger.info(f"  Decades: {low}s to {high}s ({metrics['decade_diversity']:.0%} entropy)")


def cmd_view(args: argparse.Namespace) -> None:
    """Record a view of a catalog item."""
    catalog = _load_catalog_or_exit(args)
    item = find_item(catalog, args.item_id)
    if item is None:
        logger.error(f"Item '{args.item_id}' not found in catalog {args.catalog}")
        sys.exit(1)

    engine = _get_engine()
    engine.record_view(item, watch_duration=args.duration, completed=args.completed)


def cmd_rate(args: argparse.Namespace) -> None:
    """Record a 1-10 rating."""
    engine = _get_engine()
    engine.rate_movie(_resolve_item_id(engine, args.item_id), args.rating)


def cmd_ingest(args: argparse.Namespace) -> None:
    """Replay a JSON list of view events against the catalog."""
    catalog = _load_catalog_or_exit(args)
    try:
        events = json.loads(Path(args.file).read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read view log {args.file}: {e}")
        sys.exit(1)

    if not isinstance(events, list):
        logger.error(f"View log {args.file} must contain a JSON list")
        sys.exit(1)

    engine = _get_engine()
    recorded = 0
    missing = []
    for event in tqdm(events, desc="Recording views", unit="view"):
        if not isinstance(event, dict):
            continue
        item = find_item(catalog, event.get('id'))
        if item is None:
            missing.append(event.get('id'))
            continue
        engine.record_view(
            item,
            watch_duration=event.get('duration'),
            completed=bool(event.get('completed', False)),
        )
        recorded += 1

    if missing:
        logger.warning(f"Skipped {len(missing)} events for unknown items: {missing[:5]}")
    logger.info(f"Recorded {recorded} views from {args.file}")


def cmd_recommend(args: argparse.Namespace) -> None:
    """Generate personalized recommendations."""
    catalog = _load_catalog_or_exit(args)
    engine = _get_engine()
    recs = engine.get_recommendations(
        catalog,
        count=args.limit,
        exclude_watched=not args.include_watched,
        min_rating=args.min_rating,
        diversity_factor=args.diversity,
    )
    _output_recommendations(recs, args, "Recommended for you")


def cmd_similar(args: argparse.Namespace) -> None:
    """Find items similar to a catalog item."""
    catalog = _load_catalog_or_exit(args)
    item = find_item(catalog, args.item_id)
    if item is None:
        logger.error(f"Item '{args.item_id}' not found in catalog {args.catalog}")
        sys.exit(1)

    engine = _get_engine()
    recs = engine.get_more_like_this(item, catalog, count=args.limit)
    _output_recommendations(recs, args, f"More like {item.get('title') or item['id']}")


def cmd_trending(args: argparse.Namespace) -> None:
    """Recommendations driven by recently watched genres."""
    catalog = _load_catalog_or_exit(args)
    engine = _get_engine()
    recs = engine.get_trending_recommendations(catalog, count=args.limit, time_window_days=args.days)
    _output_recommendations(recs, args, f"Trending for you (last {args.days:g} days)")


def cmd_genre(args: argparse.Namespace) -> None:
    """Recommendations within one genre."""
    catalog = _load_catalog_or_exit(args)
    engine = _get_engine()
    recs = engine.get_genre_recommendations(args.genre, catalog, count=args.limit)
    _output_recommendations(recs, args, f"Top {args.genre} picks")


def cmd_stats(args: argparse.Namespace) -> None:
    """Show viewing statistics."""
    stats = _get_engine().get_statistics()

    logger.info("\nViewing Statistics:")
    logger.info(f"  Total views: {stats['total_views']}")
    logger.info(f"  Unique titles: {stats['unique_movies']}")
    logger.info(f"  Ratings: {stats['total_ratings']} (average {stats['average_rating']})")
    logger.info(f"  Viewing streak: {stats['viewing_streak']}")

    last = stats['last_viewed']
    if last:
        logger.info(f"  Last viewed: {last.get('title') or last.get('id')}")

    for label, key in (("genres", "top_genres"), ("actors", "top_actors"), ("directors", "top_directors")):
        if stats[key]:
            logger.info(f"\nTop {label}:")
            for entry in stats[key]:
                logger.info(f"  {entry['name']}: {entry['weight']:.2f}")


def cmd_profile(args: argparse.Namespace) -> None:
    """Show accumulated preference weights for one category."""
    top = _get_engine().get_top_preferences(args.category, args.limit)
    if not top:
        logger.info(f"No {args.category} preferences recorded yet")
        return

    logger.info(f"\nTop {args.category}:")
    for entry in top:
        logger.info(f"  {entry['name']}: {entry['weight']:.2f}")


def cmd_export(args: argparse.Namespace) -> None:
    """Export engine state and statistics to JSON."""
    data = _get_engine().export_data()
    Path(args.file).write_text(json.dumps(data, indent=2, default=str))
    logger.info(f"Exported {len(data['viewing_history'])} views to {args.file}")


def cmd_import(args: argparse.Namespace) -> None:
    """Replace engine state from an exported JSON file."""
    try:
        data = json.loads(Path(args.file).read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read {args.file}: {e}")
        sys.exit(1)

    if not _get_engine().import_data(data):
        sys.exit(1)
    logger.info(f"Import completed from {args.file}")


def cmd_reset(args: argparse.Namespace) -> None:
    """Clear all history, ratings and preferences."""
    _get_engine().reset()


def main():
    parser = argparse.ArgumentParser(description="StreamVault personal recommendation engine")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_catalog_arg(sub):
        sub.add_argument("--catalog", default=DEFAULT_CATALOG_PATH,
                         help="Catalog JSON file or http(s) URL")

    def add_output_args(sub):
        sub.add_argument("--format", choices=['text', 'json'], default='text', help="Output format")
        sub.add_argument("--diversity-report", action="store_true",
                         help="Append genre/source/decade diversity metrics")

    # View command
    view_parser = subparsers.add_parser("view", help="Record a view")
    view_parser.add_argument("item_id", help="Catalog item id")
    view_parser.add_argument("--completed", action="store_true", help="Item was watched to the end")
    view_parser.add_argument("--duration", type=float, help="Watch duration in seconds")
    add_catalog_arg(view_parser)
    view_parser.set_defaults(func=cmd_view)

    # Rate command
    rate_parser = subparsers.add_parser("rate", help="Rate an item (1-10)")
    rate_parser.add_argument("item_id", help="Item id")
    rate_parser.add_argument("rating", type=float, help="Rating from 1 to 10")
    rate_parser.set_defaults(func=cmd_rate)

    # Ingest command
    ingest_parser = subparsers.add_parser("ingest", help="Record views from a JSON view log")
    ingest_parser.add_argument("file", help="JSON list of {id, completed, duration}")
    add_catalog_arg(ingest_parser)
    ingest_parser.set_defaults(func=cmd_ingest)

    # Recommend command
    rec_parser = subparsers.add_parser("recommend", help="Generate recommendations")
    rec_parser.add_argument("--limit", type=int, default=DEFAULT_RECOMMENDATION_COUNT,
                            help="Number of recommendations")
    rec_parser.add_argument("--min-rating", type=float, default=0, help="Minimum declared rating")
    rec_parser.add_argument("--diversity", type=float, default=DEFAULT_DIVERSITY_FACTOR,
                            help="Diversity factor (0 disables the diversity filter)")
    rec_parser.add_argument("--include-watched", action="store_true", help="Keep already watched items")
    add_catalog_arg(rec_parser)
    add_output_args(rec_parser)
    rec_parser.set_defaults(func=cmd_recommend)

    # Similar command
    similar_parser = subparsers.add_parser("similar", help="Find items similar to an item")
    similar_parser.add_argument("item_id", help="Catalog item id")
    similar_parser.add_argument("--limit", type=int, default=DEFAULT_SIMILAR_COUNT, help="Number of similar items")
    add_catalog_arg(similar_parser)
    add_output_args(similar_parser)
    similar_parser.set_defaults(func=cmd_similar)

    # Trending command
    trending_parser = subparsers.add_parser("trending", help="Recommendations from recent viewing")
    trending_parser.add_argument("--limit", type=int, default=DEFAULT_TRENDING_COUNT, help="Number of items")
    trending_parser.add_argument("--days", type=float, default=DEFAULT_TRENDING_WINDOW_DAYS,
                                 help="Trailing window in days")
    add_catalog_arg(trending_parser)
    add_output_args(trending_parser)
    trending_parser.set_defaults(func=cmd_trending)

    # Genre command
    genre_parser = subparsers.add_parser("genre", help="Recommendations within a genre")
    genre_parser.add_argument("genre", help="Genre name, e.g. 'Action'")
    genre_parser.add_argument("--limit", type=int, default=DEFAULT_GENRE_COUNT, help="Number of items")
    add_catalog_arg(genre_parser)
    add_output_args(genre_parser)
    genre_parser.set_defaults(func=cmd_genre)

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Show viewing statistics")
    stats_parser.set_defaults(func=cmd_stats)

    # Profile command
    profile_parser = subparsers.add_parser("profile", help="Show preference weights")
    profile_parser.add_argument("--category", default="genres",
                                choices=["genres", "actors", "directors", "themes", "sources", "decades"],
                                help="Preference category")
    profile_parser.add_argument("--limit", type=int, default=10, help="Number of entries")
    profile_parser.set_defaults(func=cmd_profile)

    # Export command
    export_parser = subparsers.add_parser("export", help="Export state to JSON")
    export_parser.add_argument("file", help="Output JSON file path")
    export_parser.set_defaults(func=cmd_export)

    # Import command
    import_parser = subparsers.add_parser("import", help="Import state from JSON")
    import_parser.add_argument("file", help="Input JSON file path")
    import_parser.set_defaults(func=cmd_import)

    # Reset command
    reset_parser = subparsers.add_parser("reset", help="Clear all history and preferences")
    reset_parser.set_defaults(func=cmd_reset)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == "__main__":
    main()
