#!/usr/bin/env python3
"""
Admin command line for the TopBestGames storage layer.

Examples:
  topgames init-db                 # create tables, seed an empty database
  topgames stats --days 30         # visit / signup counters per day
  topgames activity --limit 20     # latest audit-trail entries
  topgames pending                 # reviews waiting for moderation
"""
import argparse
import sys

from colorama import init, Fore, Style

from . import setup_logging
from .config import Config, create_storage

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)


def cmd_init_db(storage, args) -> int:
    seeded = storage.seed_initial_data()
    if seeded:
        print(f"{Fore.GREEN}Seed data written")
    else:
        print(f"{Fore.YELLOW}Store already populated; nothing to seed")
    print(f"Users: {len(storage.get_all_users())}  Games: {len(storage.get_all_games())}")
    return 0


def cmd_stats(storage, args) -> int:
    rows = storage.get_analytics(args.days)
    if not rows:
        print(f"{Fore.YELLOW}No analytics in the last {args.days} days")
        return 0
    print(f"{Style.BRIGHT}{'date':<12}{'visits':>8}{'new':>6}{'active':>8}")
    for row in rows:
        print(f"{row.date.isoformat():<12}{row.total_visits:>8}{row.new_users:>6}{row.active_users:>8}")
    return 0


def cmd_activity(storage, args) -> int:
    for log in storage.get_recent_activity_logs(args.limit):
        who = f"user {log.user_id}" if log.user_id else "system"
        print(f"{Fore.CYAN}{log.created_at:%Y-%m-%d %H:%M}{Style.RESET_ALL} "
              f"{log.action} ({who}) {log.details or ''}")
    return 0


def cmd_pending(storage, args) -> int:
    pending = storage.get_pending_reviews()
    print(f"{Style.BRIGHT}{len(pending)} review(s) pending")
    for review in pending:
        game = storage.get_game(review.game_id)
        title = game.title if game else f"game {review.game_id}"
        print(f"  #{review.id} {title}: {review.rating}/5 by user {review.user_id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='topgames',
        description='TopBestGames storage administration',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        '--storage',
        choices=('memory', 'database'),
        help='Override TOPGAMES_STORAGE'
    )
    parser.add_argument(
        '--database-url',
        help='Override DATABASE_URL'
    )
    parser.add_argument(
        '--log-level',
        default=None,
        help='Log level (default: TOPGAMES_LOG_LEVEL or WARNING)'
    )
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('init-db', help='Create tables and seed an empty store').set_defaults(
        func=cmd_init_db)

    stats = sub.add_parser('stats', help='Show daily analytics')
    stats.add_argument('--days', type=int, default=7, help='How many days back (default: 7)')
    stats.set_defaults(func=cmd_stats)

    activity = sub.add_parser('activity', help='Show recent activity log entries')
    activity.add_argument('--limit', type=int, default=10, help='Entries to show (default: 10)')
    activity.set_defaults(func=cmd_activity)

    sub.add_parser('pending', help='List reviews awaiting moderation').set_defaults(
        func=cmd_pending)
    return parser


def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    config = Config.from_env()
    if args.storage:
        config.storage = args.storage
    if args.database_url:
        config.database_url = args.database_url
    # init-db decides itself whether to seed
    config.seed = False
    setup_logging(args.log_level or config.log_level)

    try:
        storage = create_storage(config)
    except ValueError as exc:
        print(f"{Fore.RED}Error: {exc}")
        return 2
    return args.func(storage, args)


if __name__ == '__main__':
    sys.exit(main())
