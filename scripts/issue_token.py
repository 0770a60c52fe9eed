"""Print a bearer token without going through the HTTP API.

Usage:
  python scripts/issue_token.py --ref <refstr>
  python scripts/issue_token.py --admin --password '...'

NOTE: Uses the same JWT_SECRET / ADMIN_PASSWORD as the API.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from refskills.auth import issue_admin_token, issue_normal_token
from refskills.config import load_config
from refskills.db import connect, init_db


def main() -> None:
    ap = argparse.ArgumentParser()
    group = ap.add_mutually_exclusive_group(required=True)
    group.add_argument("--ref", help="reference key (refstr) the token is scoped to")
    group.add_argument("--admin", action="store_true")
    ap.add_argument("--password", help="admin password (required with --admin)")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    if args.admin:
        if not args.password:
            ap.error("--password is required with --admin")
        print(issue_admin_token(cfg, args.password))
        return

    with connect(cfg.DB_DSN) as conn:
        print(issue_normal_token(conn, cfg, args.ref))


if __name__ == "__main__":
    main()
