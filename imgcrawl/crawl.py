"""CLI entrypoint for image crawl sessions."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import signal
import sys
import threading
from typing import Any

if __package__ in {None, ""}:
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from tqdm import tqdm

from imgcrawl import (
    CrawlSettings,
    Crawler,
    CrawlStatus,
    Fetcher,
    ImageType,
    InvalidSeedUrl,
    InvalidSettings,
    export_selected,
    write_manifest,
)
from imgcrawl.config import load_payload


JOIN_POLL_SECONDS = 0.5


def request_stop(crawler: Crawler) -> None:
    """Stop the crawl from a signal handler.

    Handlers run on the main thread, which may be holding a crawler lock at
    that moment, so `stop()` runs on a short-lived thread of its own.
    """

    threading.Thread(target=crawler.stop, name="imgcrawl-stop", daemon=True).start()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Crawl a website and collect the images it references.",
    )

    parser.add_argument("--seed", type=str, default=None, help="Seed URL to start crawling from.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to JSON/YAML settings file (may contain a 'seed' key).",
    )
    parser.add_argument(
        "--output_dir",
        type=Path,
        default=Path("crawled_images"),
        help="Root output directory for the manifest, archive, and logs.",
    )

    parser.add_argument("--max_depth", type=int, default=None)
    parser.add_argument("--max_pages", type=int, default=None)
    parser.add_argument(
        "--include_external_domains",
        dest="include_external_domains",
        action="store_true",
        default=None,
        help="Follow links to other hosts (default comes from config).",
    )
    parser.add_argument(
        "--no_include_external_domains",
        dest="include_external_domains",
        action="store_false",
        help="Stay on the seed host.",
    )
    parser.add_argument("--delay_ms", type=int, default=None, help="Delay between page requests.")
    parser.add_argument(
        "--include_svg",
        dest="include_svg_images",
        action="store_true",
        default=None,
        help="Keep SVG images (default comes from config).",
    )
    parser.add_argument(
        "--no_include_svg",
        dest="include_svg_images",
        action="store_false",
        help="Drop SVG images.",
    )
    parser.add_argument("--max_image_retries", type=int, default=None)
    parser.add_argument("--max_download_workers", type=int, default=None)

    parser.add_argument(
        "--download",
        action="store_true",
        help="Download selected images into the output directory after crawling.",
    )
    parser.add_argument(
        "--retry_failed",
        action="store_true",
        help="Retry failed image downloads once within the retry budget.",
    )
    parser.add_argument(
        "--type",
        dest="image_type",
        choices=[image_type.value for image_type in ImageType],
        default=None,
        help="Only select images of this type for download.",
    )

    parser.add_argument(
        "--print_stats_json",
        action="store_true",
        help="Print the final snapshot as JSON after the run.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> tuple[str, CrawlSettings]:
    payload: dict[str, Any] = {}
    if args.config is not None:
        payload = load_payload(args.config)

    config_seed = payload.pop("seed", None)
    seed = args.seed or config_seed
    if not seed:
        raise InvalidSettings("No seed provided. Use --seed or a 'seed' key in --config.")

    overrides = {
        "max_depth": args.max_depth,
        "max_pages": args.max_pages,
        "include_external_domains": args.include_external_domains,
        "delay_between_requests_ms": args.delay_ms,
        "include_svg_images": args.include_svg_images,
        "max_image_retries": args.max_image_retries,
        "max_download_workers": args.max_download_workers,
    }
    for key, value in overrides.items():
        if value is not None:
            payload[key] = value

    return str(seed), CrawlSettings.from_dict(payload)


def setup_logging(output_dir: Path, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "crawl.log"

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # Connection pool chatter is not useful at INFO.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def print_summary(result: dict[str, Any], *, print_stats_json: bool) -> None:
    snapshot = result.get("snapshot", {})
    paths = result.get("paths", {})

    print("\n=== Crawl Complete ===")
    print(f"status: {snapshot.get('status')}")
    print(f"seed: {snapshot.get('seed_url')}")
    print(f"manifest: {paths.get('manifest')}")
    if paths.get("export"):
        print(f"export: {paths.get('export')}")

    print("\n--- Core Stats ---")
    for key in [
        "pages_visited",
        "images_found",
        "max_depth_reached",
        "queue_length",
    ]:
        if key in snapshot:
            print(f"{key}: {snapshot[key]}")
    for key, value in sorted(result.get("image_types", {}).items()):
        print(f"type.{key}: {value}")
    if "downloaded" in result:
        print(f"downloaded: {result['downloaded']}")
        print(f"download_failed: {result['download_failed']}")

    if print_stats_json:
        print("\n--- Full Stats JSON ---")
        print(json.dumps(result, indent=2, sort_keys=True))


def run_export(
    crawler: Crawler,
    settings: CrawlSettings,
    output_dir: Path,
    *,
    image_type: str | None,
    retry: bool,
) -> dict[str, Any]:
    registry = crawler.registry
    if registry is None:
        return {}

    if image_type is not None:
        wanted = {record.key for record in registry.filter_by_type(image_type)}
        for record in registry.records():
            registry.set_selected(record.url, record.key in wanted)

    selected = registry.selected()
    if not selected:
        logging.warning("No images selected for download")
        return {"downloaded": 0, "download_failed": 0}

    progress = tqdm(total=len(selected), desc="Downloading images", unit="image")
    try:
        with Fetcher(settings) as fetcher:
            path, outcome = export_selected(
                registry,
                fetcher,
                output_dir,
                max_workers=settings.max_download_workers,
                retry=retry,
                on_result=lambda record, result: progress.update(1),
            )
    finally:
        progress.close()

    return {
        "export": None if path is None else str(path),
        "downloaded": len(outcome.succeeded),
        "download_failed": len(outcome.failed),
    }


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.output_dir, verbose=args.verbose)

    try:
        seed, settings = build_settings(args)
    except (InvalidSettings, OSError, ValueError) as exc:
        logging.error("Failed to build settings: %s", exc)
        return 2

    logging.info(
        "Starting crawl: seed=%s, max_depth=%d, max_pages=%d, output_dir=%s",
        seed,
        settings.max_depth,
        settings.max_pages,
        args.output_dir,
    )

    crawler = Crawler()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: request_stop(crawler))
    try:
        crawler.start(seed, settings)
        while not crawler.join(timeout=JOIN_POLL_SECONDS):
            pass
    except InvalidSeedUrl as exc:
        logging.error("%s", exc)
        return 2
    except Exception:
        logging.exception("Crawl execution failed")
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)
    snapshot = crawler.snapshot()

    result: dict[str, Any] = {
        "snapshot": snapshot.to_json(),
        "paths": {"manifest": str(write_manifest(crawler.images(), args.output_dir))},
        "image_types": crawler.registry.type_counts() if crawler.registry is not None else {},
    }

    if args.download and snapshot.status != CrawlStatus.FAILED:
        try:
            export_result = run_export(
                crawler,
                settings,
                args.output_dir,
                image_type=args.image_type,
                retry=args.retry_failed,
            )
        except KeyboardInterrupt:
            logging.error("Interrupted by user")
            return 130
        result["paths"]["export"] = export_result.pop("export", None)
        result.update(export_result)

    print_summary(result, print_stats_json=args.print_stats_json)

    if snapshot.status == CrawlStatus.FAILED:
        return 1
    if snapshot.status == CrawlStatus.STOPPED:
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
