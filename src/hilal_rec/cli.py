import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from .config import BACKENDS, STORE_BACKEND, SERVER_HOST, SERVER_PORT
from .database import init_db, import_snapshot
from .engine import make_store, recommend, sections_payload, taste_profile_for
from .models import REASON_BECAUSE_YOU_WATCHED
from .store import StoreError

logger = logging.getLogger(__name__)


def _validate_user_id(user_id: str) -> str:
    """Strip whitespace; reject ids that could break a store filter."""
    cleaned = user_id.strip()
    if not cleaned or any(ch in cleaned for ch in ",()&=?# "):
        raise ValueError(f"Invalid user id: {user_id!r}")
    return cleaned


def _read_user_ids(path: Path) -> list[str]:
    user_ids = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            user_ids.append(_validate_user_id(line))
        except ValueError as exc:
            logger.warning(f"Skipping {exc}")
    return list(dict.fromkeys(user_ids))


def _print_sections(sections) -> None:
    if not sections:
        print("No recommendations.")
        return

    for section in sections:
        if section.reason == REASON_BECAUSE_YOU_WATCHED:
            title = f"Because you watched \"{section.source.title_en or section.source.slug}\""
        else:
            title = section.reason.replace("_", " ").title()
        print(f"\n{title} ({len(section.items)})")
        for i, item in enumerate(section.items, 1):
            genres = ", ".join(item.genre[:3])
            print(f"  {i:2}. {item.title_en or item.slug or item.id}  [{genres}]  "
                  f"views={item.total_views} rating={item.rating:g}{' trending' if item.is_trending else ''}")


async def _recommend_one(backend: str, user_id: str):
    async with make_store(backend) as store:
        return await recommend(store, user_id)


async def _recommend_many(backend: str, user_ids: list[str], output) -> tuple[int, int]:
    ok = failed = 0
    async with make_store(backend) as store:
        for user_id in tqdm(user_ids, desc="Recommending", unit="user"):
            try:
                sections = await recommend(store, user_id)
            except StoreError as exc:
                logger.error(f"Failed for {user_id}: {exc}")
                failed += 1
                continue
            record = {"user_id": user_id, **sections_payload(sections)}
            output.write(json.dumps(record, ensure_ascii=False) + "\n")
            ok += 1
    return ok, failed


async def _profile(backend: str, user_id: str):
    async with make_store(backend) as store:
        return await taste_profile_for(store, user_id)


def cmd_recommend(args: argparse.Namespace) -> int:
    """Run the pipeline for one user id and print the sections."""
    user_id = _validate_user_id(args.user_id)
    sections = asyncio.run(_recommend_one(args.backend, user_id))

    if args.json:
        print(json.dumps(sections_payload(sections), ensure_ascii=False, indent=2))
    else:
        _print_sections(sections)
    return 0


def cmd_recommend_batch(args: argparse.Namespace) -> int:
    """Run the pipeline for every user id in a file, writing JSON lines."""
    user_ids = _read_user_ids(Path(args.file))
    if not user_ids:
        logger.error(f"No user ids found in {args.file}")
        return 1

    if args.output:
        with open(args.output, "w", encoding="utf-8") as out:
            ok, failed = asyncio.run(_recommend_many(args.backend, user_ids, out))
    else:
        ok, failed = asyncio.run(_recommend_many(args.backend, user_ids, sys.stdout))

    logger.info(f"Batch complete: {ok} users written, {failed} failed")
    return 0 if failed == 0 else 1


def cmd_profile(args: argparse.Namespace) -> int:
    """Show the taste profile derived from a user's interactions."""
    user_id = _validate_user_id(args.user_id)
    interactions, profile = asyncio.run(_profile(args.backend, user_id))

    print(f"\nTaste profile for {user_id}")
    print(f"  Interacted series: {len(interactions)} ({profile.n_items} in catalog)")
    if interactions.is_empty:
        print("  No history: popular series will be shown.")
        return 0

    print("  Top genres:")
    for genre, count in profile.top_genres(args.top):
        print(f"    {genre}: {count}")
    print("  Top tags:")
    for tag, count in profile.top_tags(args.top):
        print(f"    {tag}: {count}")
    return 0


def cmd_init_db(args: argparse.Namespace) -> int:
    init_db()
    logger.info("Snapshot schema ready")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Import a JSON snapshot into the local database."""
    path = Path(args.file)
    try:
        snapshot = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error(f"Could not read snapshot {path}: {exc}")
        return 1

    if not isinstance(snapshot, dict):
        logger.error(f"Snapshot {path} must be a JSON object of table arrays")
        return 1

    init_db()
    counts = import_snapshot(snapshot)
    for table, count in counts.items():
        print(f"  {table}: {count}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("hilal_rec.server:app", host=args.host, port=args.port, log_level="debug" if args.verbose else "info")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hilal series recommendations")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument("--host", default=SERVER_HOST, help=f"Bind address (default: {SERVER_HOST})")
    serve_parser.add_argument("--port", type=int, default=SERVER_PORT, help=f"Port (default: {SERVER_PORT})")
    serve_parser.set_defaults(func=cmd_serve)

    rec_parser = subparsers.add_parser("recommend", help="Recommend series for a user id")
    rec_parser.add_argument("user_id", help="User id in the data store")
    rec_parser.add_argument("--backend", choices=BACKENDS, default=STORE_BACKEND, help="Data store backend")
    rec_parser.add_argument("--json", action="store_true", help="Print the HTTP response body instead of a table")
    rec_parser.set_defaults(func=cmd_recommend)

    batch_parser = subparsers.add_parser("recommend-batch", help="Recommend for every user id in a file")
    batch_parser.add_argument("file", help="File with user ids (one per line)")
    batch_parser.add_argument("--backend", choices=BACKENDS, default=STORE_BACKEND, help="Data store backend")
    batch_parser.add_argument("--output", "-o", help="Write JSON lines here instead of stdout")
    batch_parser.set_defaults(func=cmd_recommend_batch)

    profile_parser = subparsers.add_parser("profile", help="Show a user's taste profile")
    profile_parser.add_argument("user_id", help="User id in the data store")
    profile_parser.add_argument("--backend", choices=BACKENDS, default=STORE_BACKEND, help="Data store backend")
    profile_parser.add_argument("--top", type=int, default=10, help="Genres/tags to show")
    profile_parser.set_defaults(func=cmd_profile)

    init_parser = subparsers.add_parser("init-db", help="Create the local snapshot schema")
    init_parser.set_defaults(func=cmd_init_db)

    import_parser = subparsers.add_parser("import", help="Import a JSON snapshot into the local database")
    import_parser.add_argument("file", help="Snapshot JSON path")
    import_parser.set_defaults(func=cmd_import)

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        return args.func(args)
    except ValueError as exc:
        logger.error(str(exc))
        return 2
    except StoreError as exc:
        logger.error(f"Data store error: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
