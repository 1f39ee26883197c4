from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .batch import ImageTask, process_batch
from .cache import ImageCache
from .datauri import build_data_uri, parse_data_uri
from .providers import MODEL_PREFIX_TO_PROVIDER, PROVIDER_IMAGE_LIMITS, PROXY_PROVIDERS, resolve_limit
from .report import build_report, format_bytes, save_report_json
from .results import EncodedImage
from .settings import CompressSettings


EXT_TO_MIME = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}

MIME_TO_EXT = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/avif": ".avif",
}


def iter_images(paths: Sequence[Path], recursive: bool = True) -> Iterable[Path]:
    """Yield supported image files from a mixture of files and directories."""
    for p in paths:
        p = Path(p)

        if p.is_file():
            if p.suffix.lower() in EXT_TO_MIME:
                yield p
            continue

        if p.is_dir():
            pattern = "**/*" if recursive else "*"
            for f in sorted(p.glob(pattern)):
                if f.is_file() and f.suffix.lower() in EXT_TO_MIME:
                    yield f


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="imgfit",
        description="Fit images under AI provider size limits",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    comp = sub.add_parser("compress", help="Compress image files for a provider")
    comp.add_argument("inputs", nargs="+", help="Files and/or folders to process")
    comp.add_argument("--out", required=True, help="Output directory")
    comp.add_argument("--provider", default="default", help="Destination provider ID (default: default)")
    comp.add_argument("--model", default=None, help="Model ID, used to resolve proxy providers")
    comp.add_argument("--suffix", default="_fit", help="Filename suffix (default: _fit)")
    comp.add_argument("--no-recursive", action="store_true", help="Do not scan folders recursively")
    comp.add_argument("--workers", type=int, default=None, help="Concurrent images (default: auto)")

    # Overrides for the search knobs
    comp.add_argument("--max-size", type=int, default=None, help="Byte ceiling, overrides the provider table")
    comp.add_argument("--target-multiplier", type=float, default=0.7, help="Fraction of the ceiling to aim for")
    comp.add_argument("--max-dimension", type=int, default=2048, help="Longest side before compressing")
    comp.add_argument("--max-attempts", type=int, default=10, help="Progressive attempts before fallback")
    comp.add_argument("--fallback-dimension", type=int, default=1024, help="Bounding box of the fallback encode")

    lim = sub.add_parser("limit", help="Print the byte ceiling for a provider")
    lim.add_argument("provider")
    lim.add_argument("--model", default=None)

    sub.add_parser("providers", help="List known providers and their limits")

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "compress":
        return _cmd_compress(args)

    if args.command == "limit":
        limit = resolve_limit(args.provider, args.model)
        print(f"{limit} ({format_bytes(limit)})")
        return 0

    if args.command == "providers":
        for name, limit in PROVIDER_IMAGE_LIMITS.items():
            print(f"  {name:<26} {format_bytes(limit)}")
        print("\nProxies (resolved by model prefix):", ", ".join(sorted(PROXY_PROVIDERS)))
        for prefix, provider in MODEL_PREFIX_TO_PROVIDER.items():
            print(f"  {prefix}* -> {provider}")
        return 0

    parser.print_help()
    return 2


def _cmd_compress(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    limits = None
    if args.max_size is not None:
        # Same ceiling whatever the provider resolves to
        limits = {args.provider: args.max_size, "default": args.max_size}

    settings = CompressSettings(
        target_multiplier=float(args.target_multiplier),
        max_dimension=int(args.max_dimension),
        max_attempts=int(args.max_attempts),
        fallback_dimension=int(args.fallback_dimension),
        provider_limits=limits,
    )

    files = list(iter_images([Path(p) for p in args.inputs], recursive=not bool(args.no_recursive)))
    if not files:
        print("No supported images found.")
        return 1

    tasks = [
        ImageTask(part=_file_part(f), destination_id=args.provider, model_id=args.model)
        for f in files
    ]
    cache = ImageCache(capacity=settings.cache_capacity)

    results, summary = process_batch(tasks, settings, cache=cache, max_workers=args.workers)

    out_dir.mkdir(parents=True, exist_ok=True)
    for f, r in zip(files, results):
        if not r.was_compressed:
            continue
        image = parse_data_uri(r.url)
        ext = MIME_TO_EXT.get(image.mime, f.suffix.lower())
        (out_dir / f"{f.stem}{args.suffix}{ext}").write_bytes(image.data)

    print("\n=== Summary ===")
    print("Images     :", summary.total)
    print("Compressed :", summary.compressed)
    print("Skipped    :", summary.skipped)
    print("Failed     :", summary.failed)
    print(f"Saved      : {format_bytes(summary.saved_bytes)} ({summary.saved_percent:.1f}%)")

    report = build_report(results, summary, args.provider, args.model, names=[f.name for f in files])
    json_path = out_dir / "report.json"
    save_report_json(report, json_path)
    print("\nReport written:", json_path)

    return 1 if summary.failed else 0


def _file_part(path: Path) -> dict:
    mime = EXT_TO_MIME[path.suffix.lower()]
    return {
        "type": "file",
        "filename": path.name,
        "mime": mime,
        "url": build_data_uri(EncodedImage(data=path.read_bytes(), mime=mime)),
    }
