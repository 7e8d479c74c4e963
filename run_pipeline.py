"""Freshness gate entry point.

Usage:
    python run_pipeline.py [--dry-run]

Loads config.yaml, polls every configured source feed, runs FreshnessEngine,
writes output/freshness_results.csv and reports success/failure to stdout and
the pipeline log. ``--dry-run`` skips the content scan.
"""

import sys
import os
from dotenv import load_dotenv

load_dotenv()  # must precede freshgate imports so env vars are available at module load

from freshgate.core.config import build_source_policies, load_config  # noqa: E402
from freshgate.core.logger import logger  # noqa: E402
from freshgate.pipeline.engine import FreshnessEngine  # noqa: E402
from freshgate.providers.feeds import FeedparserProvider  # noqa: E402
from freshgate.providers.http import RequestsFetcher  # noqa: E402


def main(argv=None) -> int:
    """Run the pipeline. Returns 0 on success, 1 on failure."""
    argv = sys.argv[1:] if argv is None else argv
    dry_run = "--dry-run" in argv

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        logger.error(f"run_pipeline: failed to load config: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    scan_cfg = config.get("content_scan") or {}
    fetcher = None
    if scan_cfg.get("enabled", True) and not dry_run:
        fetcher = RequestsFetcher(
            connect_timeout=float(scan_cfg.get("connect_timeout_seconds", 5)),
            max_bytes=int(scan_cfg.get("max_bytes", 2_000_000)),
            retries=int(scan_cfg.get("retries", 1)),
        )

    try:
        engine = FreshnessEngine.from_config(config, fetcher=fetcher)
        policies = build_source_policies(config, engine.router.policy)
    except ValueError as exc:
        logger.error(f"run_pipeline: invalid configuration: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    feeds = {sid: p.feed_url for sid, p in policies.items() if p.feed_url}
    if not feeds:
        logger.error("run_pipeline: no sources with a feed_url configured")
        print("ERROR: no sources with a feed_url configured", file=sys.stderr)
        return 1

    keywords = (config.get("pipeline") or {}).get("keywords")
    try:
        results = engine.run_feeds(FeedparserProvider(keywords=keywords), feeds)
        csv_path = engine.write_csv(results)
        if (config.get("cache") or {}).get("maintenance_on_run", False):
            engine.run_maintenance()
    except Exception as exc:
        logger.error(f"run_pipeline: FreshnessEngine raised: {exc}", exc_info=True)
        print(f"ERROR: pipeline failed — {exc}", file=sys.stderr)
        return 1
    finally:
        engine.metrics.flush()

    included = sum(1 for r in results if r.included)
    print(f"SUCCESS: {included}/{len(results)} items included, results in {csv_path}")
    logger.info(f"run_pipeline: completed — {included}/{len(results)} included → {os.path.abspath(csv_path)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
