"""
Bootstrap data for a fresh deployment.

Loads the team pool and issues API tokens for users. Run it once against a
new database, then again whenever a user needs a token:

    lmslocal-seed --teams
    lmslocal-seed --user "Olivia" --email olivia@example.com --admin
"""

import logging
import secrets
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .storage import get_database, DatabaseInterface

logger = logging.getLogger(__name__)

# Premier League 2025/26
DEFAULT_TEAMS: List[Tuple[str, str]] = [
    ('ARS', 'Arsenal'),
    ('AVL', 'Aston Villa'),
    ('BOU', 'Bournemouth'),
    ('BRE', 'Brentford'),
    ('BHA', 'Brighton & Hove Albion'),
    ('BUR', 'Burnley'),
    ('CHE', 'Chelsea'),
    ('CRY', 'Crystal Palace'),
    ('EVE', 'Everton'),
    ('FUL', 'Fulham'),
    ('LEE', 'Leeds United'),
    ('LIV', 'Liverpool'),
    ('MCI', 'Manchester City'),
    ('MUN', 'Manchester United'),
    ('NEW', 'Newcastle United'),
    ('NFO', 'Nottingham Forest'),
    ('SUN', 'Sunderland'),
    ('TOT', 'Tottenham Hotspur'),
    ('WHU', 'West Ham United'),
    ('WOL', 'Wolverhampton Wanderers'),
]


def seed_teams(
    db: DatabaseInterface,
    teams: Sequence[Tuple[str, str]] = DEFAULT_TEAMS,
    force: bool = False
) -> int:
    """
    Load the team pool.

    An existing pool is left alone unless force is set, in which case the
    given teams are upserted (names updated, teams re-activated).

    Returns:
        Number of teams written
    """
    if db.get_active_teams() and not force:
        logger.info("Team pool already loaded, skipping")
        return 0

    count = db.save_teams([
        {'short_name': code, 'name': name, 'is_active': True}
        for code, name in teams
    ])
    logger.info(f"Saved {count} teams")
    return count


def create_user(
    db: DatabaseInterface,
    display_name: str,
    email: Optional[str] = None,
    is_admin: bool = False
) -> Dict[str, Any]:
    """Create a user with a fresh bearer token and return the user row."""
    display_name = display_name.strip()
    if not display_name:
        raise ValueError("display_name is required")

    user_id = db.create_user(display_name, email, secrets.token_urlsafe(32), is_admin)
    logger.info(f"Created user {user_id} '{display_name}'")
    return db.get_user(user_id)


def main(argv: Optional[List[str]] = None, db: Optional[DatabaseInterface] = None) -> int:
    """Command line entry point."""
    import argparse

    parser = argparse.ArgumentParser(description='Seed an LMSLocal database')
    parser.add_argument('--teams', action='store_true',
                        help='Load the default team pool if it is empty')
    parser.add_argument('--force-teams', action='store_true',
                        help='Upsert the default team pool even if teams exist')
    parser.add_argument('--user', metavar='NAME',
                        help='Create a user and print its API token')
    parser.add_argument('--email', help='Email address for --user')
    parser.add_argument('--admin', action='store_true',
                        help='Make the --user an admin')

    args = parser.parse_args(argv)
    if not (args.teams or args.force_teams or args.user):
        parser.error('nothing to do: pass --teams, --force-teams or --user')

    db = db or get_database()

    if args.teams or args.force_teams:
        count = seed_teams(db, force=args.force_teams)
        if count:
            print(f"[+] Loaded {count} teams")
        else:
            print("[*] Team pool already loaded")

    if args.user:
        user = create_user(db, args.user, args.email, args.admin)
        role = 'admin' if user['is_admin'] else 'user'
        print(f"[+] Created {role} {user['display_name']} (id {user['id']})")
        print(f"[+] API token: {user['api_token']}")

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
