import argparse
import sys

from sqlalchemy import select
from sqlalchemy.orm import Session

from finance_tracker.db import Base, engine, get_db
from finance_tracker.orm_models import User
from finance_tracker.services.categories import seed_default_categories
from finance_tracker.services.ledger import reconcile_balance


def _user_by_email(db: Session, email: str) -> User:
    u = db.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if u is None:
        print(f"ERROR: no user with email {email}", file=sys.stderr)
        sys.exit(2)
    return u


def cmd_create_tables(args):
    Base.metadata.create_all(bind=engine)
    print({"created": sorted(Base.metadata.tables)})


def cmd_seed_defaults(args):
    db: Session = next(get_db())
    try:
        u = _user_by_email(db, args.email)
        cats = seed_default_categories(db, u.id)
        print({"user_id": u.id, "defaults": len(cats)})
    finally:
        db.close()


def cmd_reconcile(args):
    """Compare each stored balance with the signed sum of its rows; repair unless --dry-run.

    Returns the number of drifted users; the process exits 1 when it is non-zero.
    """
    db: Session = next(get_db())
    drifted = 0
    try:
        if args.email:
            ids = [_user_by_email(db, args.email).id]
        else:
            ids = list(db.execute(select(User.id).order_by(User.id)).scalars())
        for uid in ids:
            stored, computed = reconcile_balance(db, uid, dry_run=args.dry_run)
            if stored != computed:
                drifted += 1
                print({
                    "user_id": uid,
                    "stored": str(stored),
                    "computed": str(computed),
                    "repaired": not args.dry_run,
                })
    finally:
        db.close()
    print({"checked": len(ids), "drifted": drifted, "dry_run": args.dry_run})
    return drifted


def main(argv=None):
    p = argparse.ArgumentParser(prog="finance-tracker")
    sub = p.add_subparsers(dest="cmd")

    sub.add_parser("create-tables", help="Create tables directly (dev; prod uses alembic)").set_defaults(
        fn=cmd_create_tables
    )

    s = sub.add_parser("seed-defaults", help="Insert missing default categories for a user")
    s.add_argument("--email", required=True)
    s.set_defaults(fn=cmd_seed_defaults)

    r = sub.add_parser("reconcile", help="Report and repair total_balance drift (exit 1 if any found)")
    r.add_argument("--email", help="Only this user (default: all users)")
    r.add_argument("--dry-run", action="store_true", help="Report drift without writing")
    r.set_defaults(fn=cmd_reconcile)

    args = p.parse_args(argv)
    if not getattr(args, "cmd", None):
        p.print_help()
        sys.exit(1)
    if args.fn(args):
        sys.exit(1)


if __name__ == "__main__":
    main()
