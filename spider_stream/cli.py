# === FILE: spider_stream/cli.py ===
#!/usr/bin/env python3
"""
Command line entry point of spider_stream.

Usage:
  spider-stream [OPTIONS] [SITES]...

Sites are taken from the arguments; without arguments they are read from
stdin, one per line, and crawled as they arrive. Every discovery is printed
to stdout as soon as it is emitted, diagnostics go to stderr.

Output options:
  --json              One JSON object per line instead of "[type] - [code-N] - output"
  --output, -o PATH   Also write the lines to PATH
  --max-duration SEC  Cancel the crawl after SEC seconds

Example:
  spider-stream https://example.com --depth 2 --sitemap --robots --json
  cat sites.txt | spider-stream --concurrent 10 -o out.txt
"""
import asyncio
import os
import sys
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence, TextIO

import click

from spider_stream import __version__
from spider_stream.config import load_config
from spider_stream.engine import Crawler
from spider_stream.errors import ConfigurationError
from spider_stream.logger import init_logging, logger

CONTEXT_SETTINGS = dict(help_option_names=["--help", "-h"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def _flag(value: bool) -> Optional[bool]:
    # unset flags must not override the config file
    return True if value else None


def _many(values: Sequence[str]) -> Optional[List[str]]:
    return list(values) if values else None


async def _stream_lines(stream: TextIO) -> AsyncIterator[str]:
    """Lines of *stream* as they arrive.

    Pipes and terminals are watched by the event loop, so a cancelled read
    leaves no thread blocked in ``readline()``. Regular files and in-memory
    streams are read in a worker thread.
    """
    try:
        fd = stream.fileno()
    except (AttributeError, OSError, ValueError):
        fd = None

    if fd is not None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        pipe = os.fdopen(os.dup(fd), 'rb', buffering=0)
        try:
            transport, _ = await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), pipe)
        except (OSError, ValueError, NotImplementedError):
            # not a pipe, socket or character device
            pipe.close()
        else:
            encoding = getattr(stream, 'encoding', None) or 'utf-8'
            try:
                while True:
                    line = await reader.readline()
                    if not line:
                        return
                    yield line.decode(encoding, errors='replace')
            finally:
                transport.close()
                # the descriptor is shared with the parent shell
                os.set_blocking(fd, True)

    while True:
        line = await asyncio.to_thread(stream.readline)
        if not line:
            return
        yield line


async def _site_lines(sites: Sequence[str], stream: Optional[TextIO]) -> AsyncIterator[str]:
    for site in sites:
        yield site
    if stream is None:
        return
    async for line in _stream_lines(stream):
        line = line.strip()
        if line:
            yield line


async def run_crawl(
    crawler: Crawler,
    sites: Sequence[str],
    stream: Optional[TextIO],
    as_json: bool,
    output: Optional[TextIO],
    max_duration: Optional[float],
) -> List[Exception]:
    """Crawl, print every discovery and return the errors that were reported."""
    session = crawler.stream_crawl(_site_lines(sites, stream))
    timer = None
    if max_duration:
        timer = asyncio.get_running_loop().call_later(max_duration, session.cancel)

    async def print_reports() -> None:
        async for report in session.reports:
            line = report.to_json() if as_json else str(report)
            click.echo(line)
            if output is not None:
                output.write(line + "\n")

    async def log_errors() -> List[Exception]:
        errors = []
        async for error in session.errors:
            logger.error("%s", error)
            errors.append(error)
        return errors

    try:
        _, errors = await asyncio.gather(print_reports(), log_errors())
        await session.wait()
    finally:
        if timer is not None:
            timer.cancel()
    return errors


@click.command(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='spider-stream, version %(version)s')
@click.argument('sites', nargs=-1)
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='YAML or JSON configuration file; options given here win over it.'
)
@click.option('--scope', '-s', multiple=True, help='Allow-list regex, repeatable.')
@click.option('--whitelist-domain', '-w', default=None, help='Only crawl this domain.')
@click.option('--blacklist', '-b', 'disallowed', multiple=True, help='Deny-list regex, repeatable.')
@click.option('--no-default-blacklist', is_flag=True, help='Do not block images, fonts, media and css.')
@click.option('--depth', '-d', 'max_depth', type=int, default=None, help='Max recursion depth, 0 for unlimited.')
@click.option('--concurrent', '-t', type=int, default=None, help='Max parallel requests.')
@click.option('--delay', '-k', type=float, default=None, help='Delay between requests (seconds).')
@click.option('--random-delay', '-K', type=float, default=None, help='Extra random delay bound (seconds).')
@click.option('--proxy', '-p', default=None, help='Proxy URL.')
@click.option('--timeout', '-m', type=int, default=None, help='Request timeout (seconds).')
@click.option('--no-redirect', is_flag=True, help='Refuse redirects that leave the current host.')
@click.option('--verify-ssl', is_flag=True, help='Verify TLS certificates.')
@click.option('--header', '-H', 'headers', multiple=True, help='Extra header "Name: value", repeatable.')
@click.option('--cookie', default=None, help='Cookie header value.')
@click.option(
    '--burp', 'burp_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Raw HTTP request to import headers and cookies from.'
)
@click.option('--user-agent', '-u', default=None, help='"web", "mobi" or a literal User-Agent.')
@click.option('--sitemap', is_flag=True, help='Probe well-known sitemap locations.')
@click.option('--robots', is_flag=True, help='Seed from robots.txt.')
@click.option('--other-source', '-a', 'other_sources', is_flag=True, help='Seed from web archives.')
@click.option('--include-subs', is_flag=True, help='Include subdomains when querying archives.')
@click.option('--no-derive', is_flag=True, help='Do not look for subdomains and buckets in bodies.')
@click.option('--filter-length', '-L', default=None, help='Drop pages with these body lengths, e.g. "23,24".')
@click.option('--json', 'as_json', is_flag=True, help='Print JSON lines.')
@click.option(
    '--output', '-o', 'output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Also write the output lines to this file.'
)
@click.option('--max-duration', type=float, default=None, help='Cancel the crawl after this many seconds.')
@click.option(
    '--log-level', 'log_level',
    default='WARNING', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Logging level'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Also write logs to this file'
)
def cli(
    sites, config_path, scope, whitelist_domain, disallowed, no_default_blacklist, max_depth,
    concurrent, delay, random_delay, proxy, timeout, no_redirect, verify_ssl, headers, cookie,
    burp_file, user_agent, sitemap, robots, other_sources, include_subs, no_derive, filter_length,
    as_json, output, max_duration, log_level, log_file,
):
    """Crawl SITES and stream every discovered URL, form, script, subdomain and bucket."""
    init_logging(level=log_level, log_file=str(log_file) if log_file else None)
    try:
        cfg = load_config(
            config_path,
            scope=_many(scope),
            whitelist_domain=whitelist_domain,
            disallowed=_many(disallowed),
            default_disallowed=False if no_default_blacklist else None,
            max_depth=max_depth,
            concurrent=concurrent,
            delay=delay,
            random_delay=random_delay,
            proxy=proxy,
            timeout=timeout,
            no_redirect=_flag(no_redirect),
            verify_ssl=_flag(verify_ssl),
            headers=_many(headers),
            cookie=cookie,
            burp_file=burp_file,
            user_agent=user_agent,
            sitemap=_flag(sitemap),
            robots=_flag(robots),
            other_sources=_flag(other_sources),
            include_subs=_flag(include_subs),
            derive=False if no_derive else None,
            filter_length=filter_length,
        )
    except (OSError, ValueError, TypeError) as e:
        print_error(f'Failed to load configuration: {e}')

    stream = None if sites else click.get_text_stream('stdin')
    out = open(output, 'w', encoding='utf-8') if output else None
    try:
        errors = asyncio.run(run_crawl(Crawler(cfg), sites, stream, as_json, out, max_duration))
    finally:
        if out is not None:
            out.close()

    fatal = [e for e in errors if isinstance(e, ConfigurationError)]
    if fatal:
        print_error(f'Crawl aborted: {fatal[0]}')


if __name__ == "__main__":
    cli()
