"""Apply, revert or inspect the versioned SQL migrations.

	python scripts/apply_migrations.py upgrade [--target 0003]
	python scripts/apply_migrations.py downgrade --target 0002
	python scripts/apply_migrations.py status
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from app.infra import postgres  # noqa: E402
from app.infra.migrations import MigrationError, MigrationRunner, discover  # noqa: E402
from app.obs import logging as obs_logging  # noqa: E402
from app.settings import settings  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
	parser = argparse.ArgumentParser(description="Manage ASU Connect database migrations")
	parser.add_argument("command", choices=("upgrade", "downgrade", "status"))
	parser.add_argument("--target", help="Version to stop at (downgrade keeps this version applied)")
	parser.add_argument("--dir", default=settings.migrations_dir, help="Migrations directory")
	args = parser.parse_args(argv)
	if args.command == "downgrade" and args.target is None:
		parser.error("downgrade requires --target (use 0000 to revert everything)")
	return args


async def run(args: argparse.Namespace) -> int:
	migrations = discover(args.dir)
	pool = await postgres.init_pool()
	try:
		async with pool.acquire() as conn:
			runner = MigrationRunner(conn, migrations)
			if args.command == "upgrade":
				applied = await runner.upgrade(args.target)
				print(f"applied: {', '.join(applied) if applied else 'nothing to do'}")
			elif args.command == "downgrade":
				reverted = await runner.downgrade(args.target)
				print(f"reverted: {', '.join(reverted) if reverted else 'nothing to do'}")
			else:
				for state in await runner.status():
					mark = "x" if state.applied else " "
					suffix = "  (checksum drift)" if state.drift else ""
					when = state.applied_at.isoformat() if state.applied_at else "-"
					print(f"[{mark}] {state.version} {state.name:<32} {when}{suffix}")
	finally:
		await postgres.close_pool()
	return 0


def main(argv: list[str] | None = None) -> int:
	args = _parse_args(argv)
	obs_logging.configure_logging()
	if sys.platform == "win32":
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	try:
		return asyncio.run(run(args))
	except MigrationError as exc:
		print(f"migration error: {exc}", file=sys.stderr)
		return 1


if __name__ == "__main__":
	raise SystemExit(main())
