#!/usr/bin/env python
"""Idempotent seed script for permissions, roles and their preset grants.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts after seeding
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --validate    # exit 2 when the catalog is inconsistent
"""
from __future__ import annotations
import argparse
import json
import logging
import sys
import textwrap

from sqlalchemy import inspect

from ndtravel import create_app, get_db
from ndtravel.models.authz import Base
from ndtravel.seeding import build_role_permission_map, seed_all, validate_catalog


def print_role_summary(mapping):
    if not mapping:
        print('[INFO] No roles present.')
        return
    name_w = max(len(name) for name in mapping)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 6)")
    print('-' * (name_w + 40))
    for name, perms in mapping.items():
        print(f"{name.ljust(name_w)} | {str(len(perms)).rjust(5)} | {', '.join(perms[:6])}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description='Seed RBAC permissions & roles',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n"""),
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--no-admin', action='store_true', help='Do not create the initial Super Admin user')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export role->permissions JSON (to FILE or stdout)')
    p.add_argument('--validate', action='store_true', help='Validate permission modules & grant references; exits 2 on problems')
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
    app = create_app()
    with app.app_context():
        session = get_db()
        engine = session.get_bind()
        if not inspect(engine).has_table('permissions'):
            # bootstrap fallback; prefer `alembic upgrade head`
            Base.metadata.create_all(engine)
        try:
            counts = seed_all(session, with_admin=not args.no_admin)
            mapping = build_role_permission_map(session)
            if args.validate:
                problems = validate_catalog(session)
                if problems:
                    print('\n[VALIDATION] FAIL:')
                    for problem in problems:
                        print(' -', problem)
                    session.rollback()
                    return 2
                print('[VALIDATION] OK: permission modules & grant references valid.')
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) would create {counts['permissions']} permissions, "
                      f"{counts['roles']} roles, {counts['grants']} grants")
            else:
                session.commit()
                print(f"[DONE] created {counts['permissions']} permissions, {counts['roles']} roles, {counts['grants']} grants")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(mapping)
            if args.export_json is not None:
                payload = {'roles': mapping, 'meta': {'dry_run': args.dry_run}}
                if args.export_json == '-':
                    print(json.dumps(payload, indent=2, sort_keys=True))
                else:
                    with open(args.export_json, 'w', encoding='utf-8') as f:
                        json.dump(payload, f, indent=2, sort_keys=True)
                    print(f'[INFO] Exported JSON to {args.export_json}')
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
