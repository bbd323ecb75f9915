import argparse, asyncio, json, logging, os, sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "src"))

from pageschema.config import get_user_agent, load_config, validate_config
from pageschema.errors import PageSchemaError
from pageschema.pipeline import GenerationOptions, SchemaGenerator
from pageschema.validator import SchemaValidator


def read_urls_file(path: str) -> list:
    with open(path, "r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.lstrip().startswith("#")]


def print_result(result, verbose: bool = False):
    if not result.success:
        print(f"  FAIL  {result.url}: {result.error}")
        return
    source = " (cached)" if result.from_cache else ""
    print(f"  OK    {result.url} -> {result.detected_type} ({result.confidence:.2f}){source}")
    if verbose and result.validation:
        for line in SchemaValidator.get_summary(result.validation).splitlines():
            print(f"          {line}")
        for suggestion in result.suggestions:
            print(f"          - {suggestion}")


async def run(args, config) -> list:
    generator = SchemaGenerator(config)
    options = GenerationOptions(
        concurrency=args.concurrency or config.generation.concurrency,
        target_types=args.target_type or [],
        use_cache=not args.no_cache,
        timeout=args.timeout,
    )
    if args.verbose:
        options.progress_callback = lambda url, done, total: print(f"  [{done}/{total}] {url}")

    if args.sitemap:
        return await generator.generate_from_sitemap(args.sitemap, options, pattern=args.filter)

    urls = list(args.urls)
    if args.urls_file:
        urls.extend(read_urls_file(args.urls_file))
    if len(urls) == 1:
        return [await generator.generate_from_url(urls[0], options)]
    return await generator.generate_from_urls(urls, options)


if __name__ == "__main__":
    p = argparse.ArgumentParser(
        description="Generate schema.org JSON-LD for web pages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s https://example.com/product/42
  %(prog)s https://example.com/a https://example.com/b --concurrency 5
  %(prog)s --urls-file urls.txt --output schemas.json
  %(prog)s --sitemap https://example.com/sitemap.xml --filter "*/blog/*"
        """
    )

    p.add_argument("urls", nargs="*", help="Page URLs to generate schemas for")
    p.add_argument("--urls-file", type=str, help="File with one URL per line")
    p.add_argument("--sitemap", type=str, help="Sitemap (or sitemap index) URL to process")
    p.add_argument("--filter", type=str, default=None,
                   help="Wildcard pattern for sitemap URLs (* and ? supported)")

    p.add_argument("--concurrency", type=int, default=None,
                   help="Pages processed at once (default: 3)")
    p.add_argument("--target-type", action="append",
                   help="Expected schema type; may be given more than once")
    p.add_argument("--no-cache", action="store_true", help="Bypass the result cache")
    p.add_argument("--timeout", type=float, default=None,
                   help="Overall batch deadline in seconds; unprocessed URLs are reported as cancelled")
    p.add_argument("--user-agent", choices=["default", "chrome", "firefox", "safari", "mobile", "random"],
                   default=None, help="User agent type to use")

    p.add_argument("--config", type=str, default=None,
                   help="Path to a JSON config file (default: .pageschemarc.json in cwd or home)")
    p.add_argument("--output", "-o", type=str, default=None, help="Write results as JSON to this file")
    p.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = p.parse_args()

    if not args.urls and not args.urls_file and not args.sitemap:
        p.error("give at least one URL, --urls-file or --sitemap")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)
    if args.user_agent:
        config.http.user_agent = get_user_agent(args.user_agent)
    problems = validate_config(config)
    if problems:
        for problem in problems:
            print(f"Config error: {problem}", file=sys.stderr)
        sys.exit(2)

    try:
        results = asyncio.run(run(args, config))
    except (ValueError, PageSchemaError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    print(f"Processed {len(results)} URL(s):")
    for result in results:
        print_result(result, args.verbose)
    succeeded = sum(1 for r in results if r.success)
    print(f"\n{succeeded}/{len(results)} succeeded")

    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            json.dump([r.to_dict() for r in results], fh, indent=2)
        print(f"Results written to {args.output}")

    sys.exit(0 if succeeded == len(results) else 1)
