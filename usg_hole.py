#!/usr/bin/env python3
"""
USG-Hole v2.0

Turns a dnsmasq gateway into a DNS blackhole by downloading remote
blacklists and rewriting the resolver configuration.

Features:
- Sequential downloads with retries and per-source failure reporting
- Sorted, deduplicated merge of all lists
- IPv4 (0.0.0.0) and IPv6 (::1) null-route rules
- Atomic configuration writes
- Timestamped backups with "@last" pointers and retention
"""

import os
import re
import sys
import glob
import time
import shutil
import logging
import argparse
import filecmp
import ipaddress
import tempfile
import contextlib
import subprocess
from datetime import datetime
from typing import Callable, Dict, IO, Iterator, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from tqdm import tqdm
from urllib3.util.retry import Retry

__version__ = "2.0.0"

logger = logging.getLogger("usg_hole")

# ============================================================================
# CONSTANTS
# ============================================================================

WORKSPACE = "/etc/usg-hole"
DNSMASQ_DIR = "/etc/dnsmasq.d"
IPV4_FILE = os.path.join(DNSMASQ_DIR, "01-usg-hole-blacklist-ipv4.conf")
IPV6_FILE = os.path.join(DNSMASQ_DIR, "02-usg-hole-blacklist-ipv6.conf")
BACKUP_PREFIX = "usg-hole-blacklist"
POINTER_PREFIX = "@last-"
RELOAD_COMMAND = ["/etc/init.d/dnsmasq", "force-reload"]

DEFAULT_BLACKLISTS = [
    "https://raw.githubusercontent.com/StevenBlack/hosts/master/alternates/fakenews-gambling/hosts",
    "https://mirror1.malwaredomains.com/files/justdomains",
    "http://sysctl.org/cameleon/hosts",
    "https://zeustracker.abuse.ch/blocklist.php?download=domainblocklist",
    "https://s3.amazonaws.com/lists.disconnect.me/simple_tracking.txt",
    "https://s3.amazonaws.com/lists.disconnect.me/simple_ad.txt",
    "https://hosts-file.net/ad_servers.txt",
]

IPV4 = "ipv4"
IPV6 = "ipv6"
NULL_SENTINELS = frozenset(["0.0.0.0", "127.0.0.1"])
NULL_TARGETS = {IPV4: "0.0.0.0", IPV6: "::1"}

DEFAULT_TIMEOUT = 30
RELOAD_TIMEOUT = 60
DEFAULT_RETENTION = 1

MAX_RETRIES = 3
RETRY_BACKOFF = 0.5
RETRY_STATUS_CODES = [429, 500, 502, 503, 504]

MAX_DOMAIN_LENGTH = 253
LOG_FORMAT = '[%(asctime)s]: %(levelname)s: %(message)s'
LOG_DATEFMT = '%Y-%m-%dT%H:%M:%S%z'
TIMESTAMP_FORMAT = '%Y%m%d%H%M'

DOMAIN_PATTERN = re.compile(
    r'^(?:[a-zA-Z0-9_](?:[a-zA-Z0-9_-]{0,61}[a-zA-Z0-9_])?\.)+[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$'
)
LOOPBACK_NAMES = frozenset(['localhost', 'localhost.localdomain', 'local', 'broadcasthost',
                            'ip6-localhost', 'ip6-loopback'])


# ============================================================================
# EXCEPTIONS
# ============================================================================

class UsgHoleError(Exception):
    """Base class for all errors raised by usg-hole."""


class MissingDependencyError(UsgHoleError):
    """A required external tool is absent."""


class MissingPathError(UsgHoleError):
    """An expected file or directory is absent."""


class FetchError(UsgHoleError):
    """A blacklist could not be retrieved."""


class MalformedEntryError(UsgHoleError):
    """A blacklist line does not yield a usable domain."""


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class Blacklist:
    """Represents a single blacklist source."""
    url: str
    name: str = ''

    def __post_init__(self):
        if not self.name:
            self.name = urlparse(self.url).netloc or self.url


@dataclass
class FailedSource:
    """Represents a failed blacklist download."""
    url: str
    name: str
    error: str


@dataclass
class FetchResult:
    """Combined content of every successfully downloaded blacklist."""
    content: bytes = b''
    successful: int = 0
    failed: List[FailedSource] = field(default_factory=list)


@dataclass(frozen=True)
class ResolverRule:
    """A dnsmasq rule answering queries for a domain with a null address."""
    domain: str
    target: str

    def __str__(self) -> str:
        return f"address=/{self.domain}/{self.target}/"


@dataclass
class Generation:
    """One complete set of IPv4/IPv6 rules produced by a single run."""
    ipv4_rules: List[ResolverRule] = field(default_factory=list)
    ipv6_rules: List[ResolverRule] = field(default_factory=list)
    skipped: int = 0

    def rules(self, family: str) -> List[ResolverRule]:
        return self.ipv4_rules if family == IPV4 else self.ipv6_rules


@dataclass
class Config:
    """Configuration for the blackhole updater."""
    sources_file: Optional[str] = None
    workspace: str = WORKSPACE
    ipv4_file: str = IPV4_FILE
    ipv6_file: str = IPV6_FILE
    dnsmasq_dir: str = DNSMASQ_DIR
    backup_prefix: str = BACKUP_PREFIX
    retention: int = DEFAULT_RETENTION
    timeout: int = DEFAULT_TIMEOUT
    reload_command: List[str] = field(default_factory=lambda: list(RELOAD_COMMAND))
    reload: bool = True
    dry_run: bool = False
    quiet: bool = False
    verbose: bool = False
    log_file: Optional[str] = None

    def __post_init__(self):
        self.retention = max(1, self.retention)
        if self.timeout <= 0:
            self.timeout = DEFAULT_TIMEOUT

    @property
    def live_files(self) -> Dict[str, str]:
        return {IPV4: self.ipv4_file, IPV6: self.ipv6_file}


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def setup_logging(verbose: bool = False, quiet: bool = False,
                  log_file: Optional[str] = None) -> None:
    """Configure single-line, timestamped, leveled log output."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    formatter = logging.Formatter(LOG_FORMAT, LOG_DATEFMT)
    for handler in handlers:
        handler.setFormatter(formatter)

    logger.handlers = handlers
    logger.propagate = False
    if verbose:
        logger.setLevel(logging.DEBUG)
    elif quiet:
        logger.setLevel(logging.ERROR)
    else:
        logger.setLevel(logging.INFO)


@contextlib.contextmanager
def atomic_write(path: str, encoding: str = 'utf-8') -> Iterator[IO[str]]:
    """Write to a temp file next to ``path`` and move it into place on success.

    Readers of ``path`` never observe a half-written file.
    """
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{os.path.basename(path)}.",
                                    suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding=encoding) as f:
            os.fchmod(f.fileno(), 0o644)
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def validate_domain(domain: str) -> bool:
    """Validate a domain name."""
    if not domain or len(domain) > MAX_DOMAIN_LENGTH:
        return False
    if domain.lower() in LOOPBACK_NAMES or domain.lower().endswith('.local'):
        return False
    try:
        ipaddress.ip_address(domain)
        return False
    except ValueError:
        pass
    return bool(DOMAIN_PATTERN.match(domain))


def load_sources(sources_file: Optional[str]) -> List[Blacklist]:
    """Load blacklist sources from file, or fall back to the built-in list."""
    if sources_file is None:
        return [Blacklist(url=url) for url in DEFAULT_BLACKLISTS]

    if not os.path.isfile(sources_file):
        raise MissingPathError(f"Missing file {sources_file}.")

    logger.info(f"Loading sources from {sources_file}")
    sources: List[Blacklist] = []
    with open(sources_file, 'r', encoding='utf-8') as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue

            url, _, name = (p.strip() for p in line.partition('|'))
            result = urlparse(url)
            if result.scheme not in ('http', 'https') or not result.netloc:
                logger.warning(f"Invalid URL in line {line_num}: {url}")
                continue

            sources.append(Blacklist(url=url, name=name))

    if not sources:
        raise UsgHoleError(f"No valid blacklist sources found in {sources_file}.")

    logger.info(f"Loaded {len(sources)} blacklist sources")
    return sources


# ============================================================================
# FETCHER
# ============================================================================

class HTTPClient:
    """HTTP client with retry logic."""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a session with retry logic."""
        session = requests.Session()
        retry = Retry(
            total=MAX_RETRIES,
            backoff_factor=RETRY_BACKOFF,
            status_forcelist=RETRY_STATUS_CODES,
            allowed_methods=["GET"]
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def download(self, url: str) -> bytes:
        """Download a document, raising on any non-2xx response."""
        headers = {'User-Agent': f'USG-Hole/{__version__}'}
        response = self.session.get(url, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        return response.content


class BlacklistFetcher:
    """Downloads every source one after another and concatenates the results."""

    def __init__(self, sources: Sequence[Blacklist], http_client: HTTPClient,
                 quiet: bool = False):
        self.sources = list(sources)
        self.http_client = http_client
        self.quiet = quiet

    def fetch(self) -> FetchResult:
        """Fetch all sources, keeping going when one of them fails.

        Raises FetchError when there is nothing to fetch or when every
        source failed, so an outage never empties the live configuration.
        """
        if not self.sources:
            raise FetchError("No blacklist sources configured.")

        logger.info(f"Downloading {len(self.sources)} blacklists...")
        result = FetchResult()
        chunks: List[bytes] = []

        for blacklist in tqdm(self.sources, desc="Downloading", disable=self.quiet):
            try:
                content = self.http_client.download(blacklist.url)
            except requests.RequestException as e:
                logger.error(f"Error downloading {blacklist.name}: {e}")
                result.failed.append(FailedSource(url=blacklist.url, name=blacklist.name,
                                                  error=str(e)))
                continue

            if content and not content.endswith(b'\n'):
                content += b'\n'
            chunks.append(content)
            result.successful += 1
            logger.debug(f"  {blacklist.name}: {len(content):,} bytes")

        if result.successful == 0:
            raise FetchError(f"All {len(self.sources)} blacklist downloads failed.")

        result.content = b''.join(chunks)
        return result


# ============================================================================
# MERGER / NORMALIZER
# ============================================================================

def normalize(content: bytes) -> List[str]:
    """Sort the combined lines and drop exact duplicates."""
    text = content.decode('utf-8', errors='ignore')
    lines = (line[:-1] if line.endswith('\r') else line for line in text.split('\n'))
    return sorted({line for line in lines if line})


# ============================================================================
# RULE TRANSFORMER
# ============================================================================

def parse_entry(line: str) -> Optional[str]:
    """Extract the domain from a hosts-style or bare-domain line.

    Returns None for blank and comment lines. Raises MalformedEntryError
    when the line does not name a usable domain.
    """
    if '#' in line:
        line = line[:line.index('#')]
    fields = line.split()
    if not fields:
        return None

    if fields[0] in NULL_SENTINELS:
        if len(fields) < 2:
            raise MalformedEntryError(f"Missing domain after {fields[0]}")
        domain = fields[1]
    else:
        domain = fields[0]

    if not validate_domain(domain):
        raise MalformedEntryError(f"Invalid domain {domain!r}")
    return domain


def build_rules(document: Sequence[str]) -> Generation:
    """Turn a normalized document into IPv4 and IPv6 null-route rules."""
    generation = Generation()

    for line in document:
        try:
            domain = parse_entry(line)
        except MalformedEntryError as e:
            logger.warning(f"Skipping malformed entry {line.strip()!r}: {e}")
            generation.skipped += 1
            continue

        if domain is None:
            continue

        generation.ipv4_rules.append(ResolverRule(domain, NULL_TARGETS[IPV4]))
        generation.ipv6_rules.append(ResolverRule(domain, NULL_TARGETS[IPV6]))

    return generation


def render(rules: Sequence[ResolverRule]) -> str:
    """Render rules as dnsmasq configuration text."""
    if not rules:
        return ''
    return '\n'.join(str(rule) for rule in rules) + '\n'


def write_generation(generation: Generation, live_files: Dict[str, str]) -> None:
    """Replace both live configuration files atomically."""
    for family, path in live_files.items():
        directory = os.path.dirname(os.path.abspath(path))
        if not os.path.isdir(directory):
            raise MissingPathError(f"Missing directory {directory}.")

        rules = generation.rules(family)
        with atomic_write(path) as f:
            f.write(render(rules))
        logger.info(f"Wrote {len(rules):,} {family} rules to {path}")


# ============================================================================
# BACKUP ROTATOR
# ============================================================================

class BackupRotator:
    """Keeps timestamped copies of the live configuration and "@last" pointers.

    Each family has at most one pointer, ``<workspace>/@last-<family>``,
    always referencing the newest backup. Older backups beyond
    ``retention`` are deleted after every rotation.
    """

    def __init__(self, workspace: str, prefix: str = BACKUP_PREFIX,
                 retention: int = DEFAULT_RETENTION,
                 clock: Callable[[], datetime] = datetime.now):
        self.workspace = os.path.abspath(workspace)
        self.prefix = prefix
        self.retention = max(1, retention)
        self.clock = clock

    def pointer_path(self, family: str) -> str:
        return os.path.join(self.workspace, f"{POINTER_PREFIX}{family}")

    def _backup_pattern(self, family: str) -> re.Pattern:
        return re.compile(rf'^{re.escape(self.prefix)}-{family}-(\d{{12}})(?:-(\d+))?\.conf$')

    def _new_backup_path(self, family: str, timestamp: str) -> str:
        """Timestamped backup path, suffixed -2, -3, ... when already taken."""
        base = os.path.join(self.workspace, f"{self.prefix}-{family}-{timestamp}")
        path = f"{base}.conf"
        counter = 1
        while os.path.lexists(path):
            counter += 1
            path = f"{base}-{counter}.conf"
        return path

    def latest(self, family: str) -> Optional[str]:
        """Resolve the "@last" pointer of a family."""
        pointer = self.pointer_path(family)
        if not os.path.islink(pointer):
            return None
        return os.path.join(self.workspace, os.readlink(pointer))

    def backups(self, family: str) -> List[str]:
        """All backups of a family, oldest first."""
        pattern = self._backup_pattern(family)
        found: List[Tuple[Tuple[str, int], str]] = []
        for name in os.listdir(self.workspace):
            match = pattern.match(name)
            if match:
                key = (match.group(1), int(match.group(2) or 1))
                found.append((key, os.path.join(self.workspace, name)))
        return [path for _, path in sorted(found)]

    def _check_preconditions(self, live_files: Dict[str, str]) -> None:
        if not os.path.isdir(self.workspace):
            raise MissingPathError(f"Missing directory {self.workspace}.")
        for path in live_files.values():
            if not os.path.isfile(path):
                raise MissingPathError(f"Missing file {path}.")

    def rotate(self, live_files: Dict[str, str]) -> Dict[str, str]:
        """Back up each live file and move its pointer to the new copy."""
        logger.info("Taking a backup of the configurations")
        self._check_preconditions(live_files)
        timestamp = self.clock().strftime(TIMESTAMP_FORMAT)

        created: Dict[str, str] = {}
        for family, live_path in live_files.items():
            pointer = self.pointer_path(family)
            if os.path.lexists(pointer):
                os.unlink(pointer)

            backup_path = self._new_backup_path(family, timestamp)
            shutil.copy2(live_path, backup_path)
            os.symlink(backup_path, pointer)
            created[family] = backup_path
            logger.debug(f"  {family}: {backup_path}")

            self.prune(family)

        return created

    def prune(self, family: str) -> List[str]:
        """Delete the oldest backups beyond the retention count."""
        current = self.latest(family)
        removed: List[str] = []
        backups = [path for path in self.backups(family) if path != current]
        excess = len(backups) - (self.retention - (1 if current else 0))
        for path in backups[:max(0, excess)]:
            os.unlink(path)
            removed.append(path)
            logger.debug(f"  Pruned {path}")
        return removed

    def restore(self, live_files: Dict[str, str]) -> None:
        """Copy each family's newest backup back over its live file."""
        for family, live_path in live_files.items():
            backup = self.latest(family)
            if backup is None or not os.path.isfile(backup):
                raise MissingPathError(f"Missing backup {self.pointer_path(family)}.")

            with open(backup, 'r', encoding='utf-8') as src, atomic_write(live_path) as dst:
                shutil.copyfileobj(src, dst)
            logger.info(f"Restored {live_path} from {backup}")


# ============================================================================
# INSTALL / RELOAD / UNINSTALL
# ============================================================================

class Installer:
    """Deploys the running script into the workspace."""

    def __init__(self, workspace: str, script_path: Optional[str] = None):
        self.workspace = workspace
        self.script_path = os.path.abspath(script_path or __file__)

    @property
    def installed_path(self) -> str:
        return os.path.join(self.workspace, os.path.basename(self.script_path))

    def install(self) -> bool:
        """Create the workspace and copy the script when it changed.

        Returns True when a new copy was installed.
        """
        if not os.path.isdir(self.workspace):
            logger.info(f"Missing directory {self.workspace}. Creating it now.")
            os.makedirs(self.workspace, exist_ok=True)

        target = self.installed_path
        if os.path.isfile(target) and filecmp.cmp(self.script_path, target, shallow=False):
            return False

        logger.info(f"Installing script in {target}.")
        shutil.copy2(self.script_path, target)
        return True


def check_dependencies(commands: Sequence[str]) -> None:
    """Fail when any required executable is missing."""
    missing = [cmd for cmd in commands if not _is_executable(cmd)]
    if missing:
        raise MissingDependencyError(f"Missing a dependency or two: {', '.join(missing)}")


def _is_executable(command: str) -> bool:
    if os.path.isabs(command):
        return os.path.isfile(command) and os.access(command, os.X_OK)
    return shutil.which(command) is not None


def reload_resolver(command: Sequence[str], timeout: int = RELOAD_TIMEOUT) -> bool:
    """Ask the resolver to reload its configuration.

    Failures are reported but never abort the run.
    """
    logger.info("Reloading configuration")
    try:
        completed = subprocess.run(list(command), capture_output=True, text=True,
                                   timeout=timeout, check=False)
    except subprocess.TimeoutExpired:
        logger.error(f"Reload timed out after {timeout}s: {' '.join(command)}")
        return False
    except OSError as e:
        logger.error(f"Reload failed: {e}")
        return False

    if completed.returncode != 0:
        output = (completed.stderr or completed.stdout or '').strip()
        logger.error(f"Reload exited with status {completed.returncode}: {output}")
        return False
    return True


def uninstall(config: Config) -> List[str]:
    """Remove the generated configuration files and the workspace."""
    removed: List[str] = []
    targets = set(glob.glob(os.path.join(config.dnsmasq_dir, '*usg-hole*')))
    targets.update(p for p in config.live_files.values() if os.path.isfile(p))
    for path in sorted(targets):
        if config.dry_run:
            logger.info(f"[DRY RUN] Would remove {path}")
            continue
        os.unlink(path)
        removed.append(path)
        logger.info(f"Removed {path}")

    if os.path.isdir(config.workspace):
        if config.dry_run:
            logger.info(f"[DRY RUN] Would remove {config.workspace}")
        else:
            shutil.rmtree(config.workspace)
            removed.append(config.workspace)
            logger.info(f"Removed {config.workspace}")

    return removed


# ============================================================================
# UPDATER
# ============================================================================

class Updater:
    """Main orchestrator: install, download, transform, reload, backup."""

    def __init__(self, config: Config, http_client: Optional[HTTPClient] = None,
                 installer: Optional[Installer] = None,
                 rotator: Optional[BackupRotator] = None,
                 reloader: Callable[[Sequence[str]], bool] = reload_resolver):
        self.config = config
        self.http_client = http_client or HTTPClient(timeout=config.timeout)
        self.installer = installer or Installer(config.workspace)
        self.rotator = rotator or BackupRotator(config.workspace, config.backup_prefix,
                                                config.retention)
        self.reloader = reloader
        self.failed_sources: List[FailedSource] = []

        self.stats: Dict[str, object] = {
            'total_sources': 0,
            'successful': 0,
            'failed': 0,
            'unique_lines': 0,
            'rules': 0,
            'skipped': 0,
            'reloaded': False,
            'backups': {},
            'start_time': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        }

    def run(self) -> Dict[str, object]:
        """Run the full update pipeline."""
        start_time = time.time()
        sources = load_sources(self.config.sources_file)
        self.stats['total_sources'] = len(sources)

        if self.config.reload and not self.config.dry_run:
            check_dependencies(self.config.reload_command[:1])

        if self.config.dry_run:
            logger.info("[DRY RUN] Would install into workspace")
        else:
            self.installer.install()

        fetcher = BlacklistFetcher(sources, self.http_client, quiet=self.config.quiet)
        result = fetcher.fetch()
        self.failed_sources = result.failed
        self.stats['successful'] = result.successful
        self.stats['failed'] = len(result.failed)

        document = normalize(result.content)
        self.stats['unique_lines'] = len(document)

        generation = build_rules(document)
        self.stats['rules'] = len(generation.ipv4_rules)
        self.stats['skipped'] = generation.skipped

        if self.config.dry_run:
            logger.info(f"[DRY RUN] Would write {len(generation.ipv4_rules):,} rules per family")
        else:
            write_generation(generation, self.config.live_files)
            if self.config.reload:
                self.stats['reloaded'] = self.reloader(self.config.reload_command)
            self.stats['backups'] = self.rotator.rotate(self.config.live_files)

        self.stats['elapsed_time'] = f"{time.time() - start_time:.2f} seconds"
        logger.info("Done")
        return self.stats


# ============================================================================
# CLI
# ============================================================================

def parse_arguments(argv: Optional[Sequence[str]] = None) -> Tuple[Config, str]:
    """Parse command line arguments into a Config and the requested action."""
    parser = argparse.ArgumentParser(
        description="USG-Hole DNS blackhole updater",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("-s", "--sources", default=None,
                        help="Blacklist sources file (built-in list when omitted)")
    parser.add_argument("-w", "--workspace", default=WORKSPACE,
                        help="Workspace directory")
    parser.add_argument("--dnsmasq-dir", default=DNSMASQ_DIR,
                        help="dnsmasq configuration directory cleaned by --uninstall")
    parser.add_argument("--ipv4-file", default=IPV4_FILE,
                        help="Live IPv4 dnsmasq configuration")
    parser.add_argument("--ipv6-file", default=IPV6_FILE,
                        help="Live IPv6 dnsmasq configuration")
    parser.add_argument("--retention", type=int, default=DEFAULT_RETENTION,
                        help="Backups kept per address family")
    parser.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT,
                        help="HTTP timeout in seconds")
    parser.add_argument("--no-reload", action="store_true",
                        help="Do not reload dnsmasq")
    parser.add_argument("--dry-run", action="store_true",
                        help="Dry run mode")
    parser.add_argument("--log-file", default=None,
                        help="Also log to this file")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Quiet mode")
    parser.add_argument("--version", action="version", version=f"USG-Hole v{__version__}")

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument("--uninstall", action="store_const", dest="action",
                         const="uninstall", help="Remove generated files and the workspace")
    actions.add_argument("--restore", action="store_const", dest="action",
                         const="restore", help="Restore the live files from the last backup")
    parser.set_defaults(action="update")

    args = parser.parse_args(argv)

    config = Config(
        sources_file=args.sources,
        workspace=args.workspace,
        dnsmasq_dir=args.dnsmasq_dir,
        ipv4_file=args.ipv4_file,
        ipv6_file=args.ipv6_file,
        retention=args.retention,
        timeout=args.timeout,
        reload=not args.no_reload,
        dry_run=args.dry_run,
        quiet=args.quiet,
        verbose=args.verbose,
        log_file=args.log_file
    )
    return config, args.action


def print_summary(stats: Dict[str, object], failed: Sequence[FailedSource]) -> None:
    print("\n" + "=" * 60)
    print(" " * 25 + "SUMMARY")
    print("=" * 60)
    print(f"Sources:            {stats['total_sources']}")
    print(f"Successful:         {stats['successful']}")
    print(f"Failed:             {stats['failed']}")
    for source in failed:
        print(f"  - {source.name}: {source.error}")
    print(f"Unique lines:       {stats['unique_lines']:,}")
    print(f"Rules per family:   {stats['rules']:,}")
    print(f"Skipped entries:    {stats['skipped']:,}")
    print(f"Started:            {stats['start_time']}")
    print(f"Runtime:            {stats.get('elapsed_time', 'N/A')}")
    print("=" * 60 + "\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function."""
    config, action = parse_arguments(argv)
    setup_logging(config.verbose, config.quiet, config.log_file)

    try:
        if action == "uninstall":
            uninstall(config)
            logger.info("Done")
            return 0

        if action == "restore":
            if config.dry_run:
                logger.info("[DRY RUN] Would restore the last backup")
                return 0
            rotator = BackupRotator(config.workspace, config.backup_prefix, config.retention)
            rotator.restore(config.live_files)
            if config.reload:
                reload_resolver(config.reload_command)
            logger.info("Done")
            return 0

        updater = Updater(config)
        stats = updater.run()
        if not config.quiet:
            print_summary(stats, updater.failed_sources)
        return 0

    except UsgHoleError as e:
        logger.critical(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 1
    except Exception as e:
        logger.error(f"An error occurred: {e}")
        if config.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
