#!/usr/bin/env python3

import os
import sys
import subprocess
import gettext
import locale
from dataclasses import dataclass
from enum import Enum

import yaml

# -------------------------
# Set up locale and translation
# -------------------------

try:
    locale.setlocale(locale.LC_ALL, '')
    localedir = '/usr/share/locale'
    gettext.bindtextdomain('pkgview', localedir)
    gettext.textdomain('pkgview')
    _ = gettext.gettext
    ngettext = gettext.ngettext
except Exception:
    print("Warning: Could not set up locale. Using fallback translations.", file=sys.stderr)
    _ = lambda s: s
    ngettext = lambda s, p, n: s if n == 1 else p

NO_PACKAGE_SELECTED = "No package selected"
NO_DETAILS_AVAILABLE = "No details available"
DETAILS_FAILED = "Failed to fetch package details"

# -------------------------
# Errors
# -------------------------

class ExecutionError(Exception):
    """An external command could not be launched or did not finish in time."""

    def __init__(self, cmd_list, reason):
        self.cmd_list = list(cmd_list)
        self.reason = reason
        super().__init__(_("Failed to execute {}: {}").format(" ".join(self.cmd_list), reason))


class ConfigError(Exception):
    pass

# -------------------------
# Application Metadata/About Info
# -------------------------
class AboutInfo:
    """
    Centralized metadata for the package browser.
    """
    @staticmethod
    def get_program_name():
        return _("pkgview: a terminal browser for installed packages")

    @staticmethod
    def get_version():
        return "0.3.0"

    @staticmethod
    def get_version_text():
        return "{} {}".format(AboutInfo.get_program_name(), AboutInfo.get_version())

# -------------------------
# Core Command Runner
# -------------------------

def decode_output(data):
    """Decode captured process output, replacing invalid sequences."""
    if not data:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")


class CommandRunner:
    """
    Runs external commands synchronously and captures their output.
    Exit codes are reported but never interpreted here.
    """
    def __init__(self, timeout=None):
        """
        :param timeout: Seconds before a command is abandoned, or None to wait forever
        """
        self.timeout = timeout or None

    def run_sync(self, cmd_list):
        """
        Runs a command synchronously and returns the completed process.

        :raises ExecutionError: when the program cannot be started or times out
        """
        final = list(cmd_list)
        try:
            return subprocess.run(
                final,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise ExecutionError(final, _("timed out after {} seconds").format(self.timeout))
        except OSError as e:
            raise ExecutionError(final, e.strerror or str(e)) from e

# -------------------------
# Backend Contract
# -------------------------

class BackendKind(Enum):
    PKG = "pkg"
    APT = "apt"
    PIP = "pip"

    def next(self):
        """Return the following backend in toggle order (pkg -> apt -> pip -> pkg)."""
        members = list(BackendKind)
        return members[(members.index(self) + 1) % len(members)]

    @classmethod
    def from_name(cls, name):
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            choices = ", ".join(k.value for k in cls)
            raise ValueError(_("Unknown package manager '{}' (expected one of: {})").format(name, choices))


COMMANDS = {
    BackendKind.PKG: {"list": ["pkg", "list-installed"], "show": ["pkg", "show"]},
    BackendKind.APT: {"list": ["apt", "list", "--installed"], "show": ["apt", "show"]},
    BackendKind.PIP: {"list": ["pip", "list"], "show": ["pip", "show"]},
}


class PackageManager:
    """
    Invokes the listing and detail commands of each backend through an
    injected CommandRunner.
    """
    def __init__(self, runner, log_callback=None):
        """
        :param runner: Object with a run_sync(cmd_list) method
        :param log_callback: Function receiving one diagnostic line; defaults to stderr
        """
        self.runner = runner
        self.log_callback = log_callback

    def log(self, msg):
        if self.log_callback is not None:
            self.log_callback(msg)
        else:
            print(msg, file=sys.stderr)

    @staticmethod
    def list_command(kind):
        return list(COMMANDS[kind]["list"])

    @staticmethod
    def show_command(kind, package_name):
        return COMMANDS[kind]["show"] + [package_name]

    def list_installed(self, kind):
        """Return the raw listing text. Launch failures propagate as ExecutionError."""
        res = self.runner.run_sync(self.list_command(kind))
        return decode_output(res.stdout)

    def read_details(self, kind, package_name):
        """Return the raw detail text. Launch failures propagate as ExecutionError."""
        res = self.runner.run_sync(self.show_command(kind, package_name))
        return decode_output(res.stdout)

    def show_details(self, kind, package_name):
        """Return the raw detail text, or the fallback text when the command cannot run."""
        try:
            return self.read_details(kind, package_name)
        except ExecutionError as e:
            self.log(str(e))
            return _(DETAILS_FAILED)

# -------------------------
# Output Parser
# -------------------------

@dataclass(frozen=True)
class Package:
    name: str
    version: str

    def display_row(self):
        return f"{self.name} {self.version}"


class ListingParser:
    """
    Turns listing output into Package records. Lines that do not have the
    backend's shape are dropped without error.
    """

    @staticmethod
    def parse_pkg_line(line):
        parts = line.split('/')
        if len(parts) < 2:
            return None
        return Package(parts[0], parts[1])

    @staticmethod
    def parse_apt_line(line):
        # name/suite[,now] version arch [status]
        parts = line.split('/')
        if len(parts) < 2:
            return None
        tokens = parts[1].split()
        if not tokens:
            return None
        version = next((t for t in tokens if t[0].isdigit()), tokens[0])
        return Package(parts[0], version)

    @staticmethod
    def parse_pip_line(line):
        if "Package" in line or "---" in line:
            return None
        fields = line.split()
        if len(fields) < 2:
            return None
        return Package(fields[0], fields[1])

    @staticmethod
    def parse(kind, raw_text):
        """
        Parse raw listing text for the given backend.

        :param kind: BackendKind that produced the text
        :param raw_text: Decoded standard output of the listing command
        :return: List of Package in output order
        """
        parse_line = PARSERS[kind]
        packages = []
        for line in (raw_text or "").split("\n"):
            if line.endswith("\r"):
                line = line[:-1]
            pkg = parse_line(line)
            if pkg is not None:
                packages.append(pkg)
        return packages


PARSERS = {
    BackendKind.PKG: ListingParser.parse_pkg_line,
    BackendKind.APT: ListingParser.parse_apt_line,
    BackendKind.PIP: ListingParser.parse_pip_line,
}

# -------------------------
# Package Catalog
# -------------------------

class PackageCatalog:
    """
    Ordered packages of the active backend plus the selected row.
    selected_index is None exactly when items is empty.
    """
    def __init__(self, package_manager, kind, items, load_error=None):
        self.package_manager = package_manager
        self.active_backend = kind
        self.items = list(items)
        self.selected_index = 0 if self.items else None
        self.load_error = load_error

    @classmethod
    def load(cls, package_manager, kind):
        raw = package_manager.list_installed(kind)
        return cls(package_manager, kind, ListingParser.parse(kind, raw))

    def _replace_with(self, other):
        self.active_backend = other.active_backend
        self.items = other.items
        self.selected_index = other.selected_index
        self.load_error = other.load_error

    def toggle_backend(self):
        """Reload from the next backend, replacing items and selection."""
        next_kind = self.active_backend.next()
        try:
            fresh = PackageCatalog.load(self.package_manager, next_kind)
        except ExecutionError as e:
            fresh = PackageCatalog(self.package_manager, next_kind, [], load_error=str(e))
        self._replace_with(fresh)

    def select_next(self):
        if not self.items:
            return
        self.selected_index = (self.selected_index + 1) % len(self.items)

    def select_previous(self):
        if not self.items:
            return
        self.selected_index = (self.selected_index - 1) % len(self.items)

    def select_first(self):
        if self.items:
            self.selected_index = 0

    def select_last(self):
        if self.items:
            self.selected_index = len(self.items) - 1

    def selected_package(self):
        if self.selected_index is None:
            return None
        return self.items[self.selected_index]

    def title(self):
        return _("Installed Packages ({})").format(self.active_backend.value)

    def display_rows(self):
        return [pkg.display_row() for pkg in self.items]

# -------------------------
# Detail Lookup
# -------------------------

class DetailLookup:
    """
    Fetches detail text for the selected package. Successful lookups are
    memoized per (backend, name) when caching is enabled.
    """
    def __init__(self, package_manager, cache=True):
        self.package_manager = package_manager
        self.cache_enabled = cache
        self._cache = {}

    def clear(self):
        self._cache.clear()

    def fetch_details(self, catalog):
        pkg = catalog.selected_package()
        if pkg is None:
            return _(NO_PACKAGE_SELECTED)

        key = (catalog.active_backend, pkg.name)
        if self.cache_enabled and key in self._cache:
            return self._cache[key]

        try:
            text = self.package_manager.read_details(catalog.active_backend, pkg.name)
        except ExecutionError as e:
            self.package_manager.log(str(e))
            return _(DETAILS_FAILED)
        if not text:
            text = _(NO_DETAILS_AVAILABLE)
        if self.cache_enabled:
            self._cache[key] = text
        return text

# -------------------------
# Configuration
# -------------------------

class Settings:
    DEFAULTS = {
        "default_backend": "pkg",
        "command_timeout": 30,
        "cache_details": True,
        "list_height_percent": 70,
    }

    def __init__(self, default_backend=BackendKind.PKG, command_timeout=30,
                 cache_details=True, list_height_percent=70):
        self.default_backend = default_backend
        self.command_timeout = command_timeout
        self.cache_details = cache_details
        self.list_height_percent = list_height_percent

    @staticmethod
    def default_path():
        env_path = os.environ.get("PKGVIEW_CONFIG")
        if env_path:
            return env_path
        base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
        return os.path.join(base, "pkgview", "config.yaml")

    @classmethod
    def from_dict(cls, data):
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(_("Configuration must be a mapping"))

        unknown = sorted(set(data) - set(cls.DEFAULTS), key=str)
        if unknown:
            raise ConfigError(_("Unknown configuration keys: {}").format(", ".join(str(k) for k in unknown)))

        merged = dict(cls.DEFAULTS)
        merged.update(data)

        try:
            backend = BackendKind.from_name(merged["default_backend"])
        except ValueError as e:
            raise ConfigError(str(e))

        timeout = merged["command_timeout"]
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0:
                raise ConfigError(_("command_timeout must be a non-negative number"))
            timeout = timeout or None

        cache = merged["cache_details"]
        if not isinstance(cache, bool):
            raise ConfigError(_("cache_details must be true or false"))

        percent = merged["list_height_percent"]
        if isinstance(percent, bool) or not isinstance(percent, int):
            raise ConfigError(_("list_height_percent must be an integer"))
        percent = max(20, min(90, percent))

        return cls(backend, timeout, cache, percent)

    @classmethod
    def load(cls, path=None):
        """
        Load settings from a YAML file. A missing file yields the defaults.

        :raises ConfigError: on unreadable YAML or invalid values
        """
        path = path or cls.default_path()
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return cls.from_dict({})
        except yaml.YAMLError as e:
            raise ConfigError(_("Invalid configuration file {}: {}").format(path, e))
        except OSError as e:
            raise ConfigError(_("Could not read configuration file {}: {}").format(path, e))
        return cls.from_dict(data)

# -------------------------
# Browser Session - interaction state machine
# -------------------------

class Action(Enum):
    QUIT = "quit"
    MOVE_DOWN = "move-down"
    MOVE_UP = "move-up"
    JUMP_FIRST = "jump-first"
    JUMP_LAST = "jump-last"
    CYCLE_BACKEND = "cycle-backend"
    NONE = "none"


class SessionState(Enum):
    RUNNING = "running"
    EXITED = "exited"


@dataclass(frozen=True)
class ScreenModel:
    title: str
    rows: list
    selected_index: object
    details: str
    status: str


class BrowserSession:
    """
    Owns the catalog and applies one Action per input event.
    """
    def __init__(self, catalog, detail_lookup):
        self.catalog = catalog
        self.detail_lookup = detail_lookup
        self.state = SessionState.RUNNING

    @classmethod
    def start(cls, package_manager, settings):
        """Load the default backend. Raises ExecutionError if its listing cannot run."""
        catalog = PackageCatalog.load(package_manager, settings.default_backend)
        return cls(catalog, DetailLookup(package_manager, cache=settings.cache_details))

    @property
    def running(self):
        return self.state is SessionState.RUNNING

    def dispatch(self, action):
        """Apply a single transition. Returns False once the session has exited."""
        if not self.running:
            return False

        if action is Action.QUIT:
            self.state = SessionState.EXITED
        elif action is Action.MOVE_DOWN:
            self.catalog.select_next()
        elif action is Action.MOVE_UP:
            self.catalog.select_previous()
        elif action is Action.JUMP_FIRST:
            self.catalog.select_first()
        elif action is Action.JUMP_LAST:
            self.catalog.select_last()
        elif action is Action.CYCLE_BACKEND:
            self.catalog.toggle_backend()
        return self.running

    def details(self):
        return self.detail_lookup.fetch_details(self.catalog)

    def status(self):
        if self.catalog.load_error:
            return self.catalog.load_error
        count = len(self.catalog.items)
        return ngettext("{} package", "{} packages", count).format(count)

    def screen(self):
        return ScreenModel(
            title=self.catalog.title(),
            rows=self.catalog.display_rows(),
            selected_index=self.catalog.selected_index,
            details=self.details(),
            status=self.status(),
        )
