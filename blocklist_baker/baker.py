"""
Blocklist Baker
Consolidates remote blocklist sources into a single deduplicated hosts file
Reads source URLs from a file or from the bundled category lists

Features:
- Smart domain extraction for hosts, plain-domain, URL and AdBlock Plus lines
- Deduplication across every source of the run
- Category-based source selection (ads, trackers, malware, phishing, smart-tv, nsfw)
- Optional sorted output and JSON run statistics
"""

import os
import requests
from urllib.parse import urlparse
import time
import sys
import re
from datetime import datetime
from enum import Enum
import argparse
import logging
import platform
import json
from tqdm import tqdm

from . import __version__

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# Default output file, relative to the working directory
DEFAULT_OUTPUT_FILE = "blocklist.txt"

# Directory holding the bundled category lists
LISTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "lists")

# Hosts-file redirect marker at the start of a line
HOSTS_PREFIX_PATTERN = re.compile(r'^(?:0\.0\.0\.0|127\.0\.0\.1)\s+')
WHITESPACE_PATTERN = re.compile(r'\s')
# AdBlock Plus rule with optional $options after the separator
ADBLOCK_PATTERN = re.compile(r'^\|\|(.+?)\^(?:\$.*)?$')
# Rule markers that must not survive into a bare domain
MARKER_PATTERN = re.compile(r'[\^|$]')


class Category(Enum):
    ADS = 'ads'
    TRACKERS = 'trackers'
    MALWARE = 'malware'
    PHISHING = 'phishing'
    SMART_TV = 'smart-tv'
    NSFW = 'nsfw'


CATEGORY_FILES = {
    Category.ADS: 'ads.txt',
    Category.TRACKERS: 'trackers.txt',
    Category.MALWARE: 'malware.txt',
    Category.PHISHING: 'phishing.txt',
    Category.SMART_TV: 'smart-tv.txt',
    Category.NSFW: 'nsfw.txt',
}


class BakerError(Exception):
    """Base class for errors that end a run."""


class ConfigurationError(BakerError):
    """The list of sources could not be loaded."""


class OutputError(BakerError):
    """The blocklist or report could not be written."""


class FetchError(BakerError):
    """A single source could not be downloaded.

    Never fatal: the run logs it and moves on to the next source.
    """

    def __init__(self, url, cause):
        self.url = url
        self.cause = cause
        super().__init__(f"Error fetching {url}: {cause}")


def _parse_source_lines(lines):
    """Return the URLs in an iterable of lines, skipping blanks and comments."""
    urls = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        urls.append(line)
    return urls


def load_sources(path):
    """Load source URLs from a plain-text file, one URL per line."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return _parse_source_lines(f)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read sources from {path}: {e}") from e


def load_category_sources(categories, lists_dir=LISTS_DIR):
    """Load source URLs from the bundled list of each selected category.

    A missing or unreadable bundled list is logged and contributes no URLs.
    """
    urls = []
    for category in categories:
        path = os.path.join(lists_dir, CATEGORY_FILES[category])
        try:
            with open(path, 'r', encoding='utf-8') as f:
                category_urls = _parse_source_lines(f)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Bundled list for category '{category.value}' unavailable: {e}")
            continue
        logger.debug(f"Category {category.value}: {len(category_urls)} sources")
        urls.extend(category_urls)
    return urls


def fetch(url):
    """Download a source and return its body as text.

    Performs a single GET with the library defaults. Transport errors and
    non-2xx responses are raised as FetchError.
    """
    try:
        with requests.get(url) as response:
            if not 200 <= response.status_code < 300:
                raise FetchError(url, f"HTTP {response.status_code}")
            return response.text
    except requests.exceptions.RequestException as e:
        raise FetchError(url, e) from e


def _url_host(line):
    """Return the host of an absolute URL, or None if the line is not one."""
    try:
        parsed = urlparse(line)
    except ValueError:
        return None
    if not (parsed.scheme and parsed.netloc):
        return None
    return parsed.hostname or ''


def extract_domain(line):
    """Extract a domain from a hosts, plain-domain, URL or AdBlock Plus line."""
    line = line.strip()
    # Comments, AdBlock Plus comments and exception (allow) rules
    if not line or line.startswith('#') or line.startswith('!') or line.startswith('@@'):
        return None

    # Format: https://host/path
    domain = _url_host(line)
    if domain is None:
        # Format: ||domain.com^ or ||domain.com^$options
        adblock_match = ADBLOCK_PATTERN.match(line)
        if adblock_match:
            domain = adblock_match.group(1)
        else:
            # Formats: ||domain.com, 0.0.0.0 domain.com, 127.0.0.1 domain.com
            domain = line
            if domain.startswith('||'):
                domain = domain[2:]
            domain = HOSTS_PREFIX_PATTERN.sub('', domain, count=1)
            if domain.endswith('^'):
                domain = domain[:-1]
        domain = domain.strip()

    # Paths and multi-field lines are not bare domains
    if '/' in domain or WHITESPACE_PATTERN.search(domain):
        return None

    # Leftover rule markers, e.g. ||a.example^^ or |a.example|
    if MARKER_PATTERN.search(domain):
        return None

    # IPv6 literals and host:port tokens carry a colon
    if '.' not in domain or ':' in domain:
        return None

    return domain


def write_blocklist(path, domains, sort_output=False):
    """Write domains as hosts-file lines and return how many were written."""
    entries = sorted(domains) if sort_output else domains
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, 'w', encoding='utf-8', newline='\n') as f:
            for domain in entries:
                f.write(f"0.0.0.0 {domain}\n")
    except OSError as e:
        raise OutputError(f"Failed to write blocklist {path}: {e}") from e
    return len(domains)


class BlocklistBaker:
    def __init__(self, input_file=None, categories=(), output_file=DEFAULT_OUTPUT_FILE,
                 sort_output=False, report_file=None, quiet=False, lists_dir=LISTS_DIR):
        self.input_file = input_file
        self.categories = list(categories)
        self.output_file = output_file
        self.sort_output = sort_output
        self.report_file = report_file
        self.quiet = quiet
        self.lists_dir = lists_dir
        self.domains = set()
        self.source_counts = {}
        self.failed_sources = []

        # Statistics
        self.stats = {
            'total_sources': 0,
            'successful': 0,
            'failed': 0,
            'total_domains': 0,
            'unique_domains': 0,
            'duplicate_domains': 0,
            'system_info': self._get_system_info(),
            'start_time': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        }

    def _get_system_info(self):
        """Get system information for diagnostics."""
        return {
            'platform': platform.platform(),
            'python': platform.python_version(),
        }

    def resolve_sources(self):
        """Return the unique source URLs for this run, in order of appearance."""
        if self.input_file is not None:
            logger.info(f"Loading sources from {self.input_file}")
            urls = load_sources(self.input_file)
        else:
            names = ', '.join(category.value for category in self.categories) or 'none'
            logger.info(f"Loading bundled sources for categories: {names}")
            urls = load_category_sources(self.categories, self.lists_dir)

        unique_urls = list(dict.fromkeys(urls))
        if len(unique_urls) < len(urls):
            logger.debug(f"Skipping {len(urls) - len(unique_urls)} repeated sources")

        self.stats['total_sources'] = len(unique_urls)
        logger.info(f"Loaded {len(unique_urls)} sources")
        return unique_urls

    def process_source(self, url):
        """Fetch one source and add its domains to the set. Returns the domain count."""
        logger.debug(f"Fetching: {url}")
        try:
            content = fetch(url)
        except FetchError as e:
            logger.error(str(e))
            self.stats['failed'] += 1
            self.failed_sources.append({'url': url, 'error': str(e.cause)})
            return 0

        count = 0
        for line in content.splitlines():
            domain = extract_domain(line)
            if domain is not None:
                self.domains.add(domain)
                count += 1

        logger.info(f"  {url}: {count} domains")
        self.source_counts[url] = count
        self.stats['successful'] += 1
        self.stats['total_domains'] += count
        return count

    def write_report(self):
        """Save the run statistics as JSON."""
        report = dict(self.stats)
        report['output_file'] = os.path.abspath(self.output_file)
        report['sources'] = self.source_counts
        report['failed_sources'] = self.failed_sources

        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.report_file)), exist_ok=True)
            with open(self.report_file, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, default=str)
        except OSError as e:
            raise OutputError(f"Failed to write report {self.report_file}: {e}") from e

        logger.info(f"JSON statistics saved to: {os.path.abspath(self.report_file)}")

    def run(self):
        """Run the fetch, extract, deduplicate and write pipeline."""
        start_time = time.time()

        urls = self.resolve_sources()

        for url in tqdm(urls, desc="Fetching sources", disable=self.quiet):
            self.process_source(url)

        unique_count = write_blocklist(self.output_file, self.domains, self.sort_output)
        self.stats['unique_domains'] = unique_count
        self.stats['duplicate_domains'] = self.stats['total_domains'] - unique_count
        logger.info(f"Blocklist saved to: {os.path.abspath(self.output_file)}")

        elapsed_time = time.time() - start_time
        self.stats['elapsed_time'] = f"{elapsed_time:.2f} seconds"

        if self.report_file:
            self.write_report()

        logger.info(f"Processing complete in {elapsed_time:.2f} seconds")
        logger.info(f"Total Sources:     {self.stats['total_sources']}")
        logger.info(f"Successful:        {self.stats['successful']}")
        logger.info(f"Failed:            {self.stats['failed']}")
        logger.info(f"Total Domains:     {self.stats['total_domains']}")
        logger.info(f"Unique Domains:    {self.stats['unique_domains']}")
        logger.info(f"Duplicate Domains: {self.stats['duplicate_domains']}")

        return self.stats


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Consolidate remote blocklists into a single hosts-format blocklist",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("-i", "--input",
                        help="File of source URLs, one per line (disables category selection)")

    categories = parser.add_argument_group("bundled categories")
    for category in Category:
        categories.add_argument(f"--{category.value}", action="store_true",
                                help=f"Include the bundled {category.value} sources")

    parser.add_argument("-o", "--output", default=DEFAULT_OUTPUT_FILE,
                        help="Output blocklist file")
    parser.add_argument("--sort", action="store_true",
                        help="Write domains in sorted order")
    parser.add_argument("--report",
                        help="Write run statistics as JSON to this file")
    parser.add_argument("--log-file",
                        help="Also write log messages to this file")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Suppress all output except errors")
    parser.add_argument("--version", action="version", version=f"Blocklist Baker v{__version__}",
                        help="Show program's version number and exit")

    args = parser.parse_args(argv)

    args.categories = [category for category in Category
                       if getattr(args, category.name.lower())]
    if args.input and args.categories:
        parser.error("--input cannot be combined with category flags")

    return args


def setup_logging(verbose=False, quiet=False, log_file=None):
    """Configure logging handlers and the package log level."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, handlers=handlers)

    # Set logging level based on arguments
    package_logger = logging.getLogger(__package__)
    if verbose:
        package_logger.setLevel(logging.DEBUG)
    elif quiet:
        package_logger.setLevel(logging.ERROR)
    else:
        package_logger.setLevel(logging.INFO)


def main(argv=None):
    """Main function."""
    args = parse_arguments(argv)
    setup_logging(args.verbose, args.quiet, args.log_file)

    # Print banner
    if not args.quiet:
        print("\n" + "="*60)
        print(" "*20 + f"BLOCKLIST BAKER v{__version__}")
        print("="*60 + "\n")

    baker = BlocklistBaker(
        input_file=args.input,
        categories=args.categories,
        output_file=args.output,
        sort_output=args.sort,
        report_file=args.report,
        quiet=args.quiet,
    )

    try:
        stats = baker.run()
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 1
    except BakerError as e:
        logger.error(str(e))
        return 1

    print(f"Wrote {stats['unique_domains']} unique domains to {args.output}")

    # Print summary box if not quiet
    if not args.quiet:
        print("\n" + "="*60)
        print(" "*25 + "SUMMARY")
        print("="*60)
        print(f"Sources processed:      {stats['total_sources']}")
        print(f"Successfully fetched:   {stats['successful']}")
        print(f"Failed:                 {stats['failed']}")
        print(f"Unique domains:         {stats['unique_domains']:,}")
        print(f"Total runtime:          {stats.get('elapsed_time', 'N/A')}")
        print("="*60 + "\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
