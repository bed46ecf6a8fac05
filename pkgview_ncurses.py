#!/usr/bin/env python3
"""
pkgview_ncurses.py: curses-based TUI using pkgview_core.py

Draws the installed package list and the details of the highlighted entry,
and feeds one key press at a time into the browser session.
"""

import curses
import curses.ascii
import argparse
import textwrap
import traceback
import os
import sys

# Import core backend
try:
    from pkgview_core import (
        Action,
        AboutInfo,
        BrowserSession,
        BackendKind,
        CommandRunner,
        ConfigError,
        ExecutionError,
        PackageManager,
        Settings,
        _,
    )
except ImportError as e:
    print("FATAL: Could not import pkgview_core.py. Error: {}".format(e), file=sys.stderr)
    sys.exit(1)

HIGHLIGHT_SYMBOL = ">> "

KEY_ACTIONS = {
    ord('q'): Action.QUIT,
    curses.ascii.ESC: Action.QUIT,
    curses.KEY_DOWN: Action.MOVE_DOWN,
    ord('j'): Action.MOVE_DOWN,
    curses.KEY_UP: Action.MOVE_UP,
    ord('k'): Action.MOVE_UP,
    curses.KEY_HOME: Action.JUMP_FIRST,
    ord('g'): Action.JUMP_FIRST,
    curses.KEY_END: Action.JUMP_LAST,
    ord('G'): Action.JUMP_LAST,
    curses.ascii.TAB: Action.CYCLE_BACKEND,
}


def translate_key(ch):
    """Map a curses key code to an Action; unknown keys map to Action.NONE."""
    return KEY_ACTIONS.get(ch, Action.NONE)


def visible_window(selected_index, scroll_offset, visible_count):
    """Return the scroll offset that keeps selected_index inside the visible rows."""
    if selected_index is None or visible_count <= 0:
        return 0
    if selected_index < scroll_offset:
        return selected_index
    if selected_index >= scroll_offset + visible_count:
        return selected_index - visible_count + 1
    return scroll_offset


def strip_nul(text):
    """curses addstr rejects embedded NUL characters."""
    return text.replace("\x00", "")


def wrap_details(text, width):
    lines = []
    for raw in strip_nul(text).splitlines() or [""]:
        wrapped = textwrap.wrap(raw.strip(), width) if width > 0 else []
        lines.extend(wrapped or [""])
    return lines

# --- Main Application Class ---
class PkgViewTUI:
    def __init__(self, stdscr, session, list_height_percent=70):
        self.stdscr = stdscr
        self.session = session
        self.list_height_percent = list_height_percent

        self.status_message = ""
        self.results_scroll_offset = 0

        self.list_win = None
        self.details_win = None

        curses.curs_set(0)
        self.stdscr.keypad(True)

        # Diagnostics go to the status line while curses owns the terminal
        self.session.catalog.package_manager.log_callback = self.set_status

    def set_status(self, msg):
        self.status_message = str(msg)

    # ---------------- UI Drawing ----------------
    def draw(self):
        self.stdscr.erase()
        h, w = self.stdscr.getmaxyx()

        if h < 10 or w < 30:
            try:
                self.stdscr.addstr(0, 0, _("Terminal too small!")[:w - 1])
            except curses.error: pass
            self.stdscr.refresh()
            return

        screen = self.session.screen()

        footer_h = 2
        content_h = h - footer_h
        list_h = max(3, int(content_h * self.list_height_percent / 100))
        details_h = max(3, content_h - list_h)

        # 1. Package list
        try:
            if self.list_win is None:
                self.list_win = curses.newwin(list_h, w, 0, 0)
            else:
                self.list_win.resize(list_h, w)
                self.list_win.mvwin(0, 0)

            self.list_win.erase()
            self.list_win.border()
            self.list_win.addstr(0, 2, strip_nul(" {} ".format(screen.title))[:w - 4])

            visible_count = max(0, list_h - 2)
            self.results_scroll_offset = visible_window(
                screen.selected_index, self.results_scroll_offset, visible_count)

            if not screen.rows and self.session.catalog.load_error:
                self.list_win.addstr(1, 1, strip_nul(self.session.catalog.load_error)[:w - 2], curses.A_BOLD)

            for idx in range(visible_count):
                row_idx = idx + self.results_scroll_offset
                if row_idx >= len(screen.rows):
                    break
                if row_idx == screen.selected_index:
                    line = HIGHLIGHT_SYMBOL + screen.rows[row_idx]
                    attr = curses.A_REVERSE
                else:
                    line = " " * len(HIGHLIGHT_SYMBOL) + screen.rows[row_idx]
                    attr = curses.A_NORMAL
                self.list_win.addstr(1 + idx, 1, strip_nul(line)[:w - 2], attr)
        except curses.error: pass

        # 2. Details
        try:
            if self.details_win is None:
                self.details_win = curses.newwin(details_h, w, list_h, 0)
            else:
                self.details_win.resize(details_h, w)
                self.details_win.mvwin(list_h, 0)

            self.details_win.erase()
            self.details_win.border()
            self.details_win.addstr(0, 2, " {} ".format(_("Package Details")))

            lines = wrap_details(screen.details, w - 2)
            for i, ln in enumerate(lines[:max(0, details_h - 2)]):
                self.details_win.addstr(1 + i, 1, ln[:w - 2])
        except curses.error: pass

        # 3. Status + footer (on stdscr)
        try:
            status = strip_nul(self.status_message or screen.status)
            self.stdscr.addstr(h - 2, 0, status[:w - 1])
            footer = _("Keys: j/k or arrows=move | g/G=first/last | Tab=switch manager | q=quit")
            self.stdscr.addstr(h - 1, 0, footer.ljust(w - 1)[:w - 1], curses.A_DIM)
        except curses.error: pass

        try:
            self.stdscr.noutrefresh()
            self.list_win.noutrefresh()
            self.details_win.noutrefresh()
            curses.doupdate()
        except curses.error: pass

    # ---------------- Main Loop ----------------
    def run(self):
        while self.session.running:
            self.draw()
            ch = self.stdscr.getch()
            if ch == curses.KEY_RESIZE:
                continue
            action = translate_key(ch)
            self.status_message = ""
            if action is Action.CYCLE_BACKEND:
                self.results_scroll_offset = 0
            self.session.dispatch(action)

        curses.curs_set(1)


def main(stdscr, session, settings):
    app = PkgViewTUI(stdscr, session, settings.list_height_percent)
    app.run()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="pkgview", description=AboutInfo.get_program_name())
    parser.add_argument("--backend", choices=[k.value for k in BackendKind],
                        help=_("package manager to show first"))
    parser.add_argument("--config", help=_("path to the YAML configuration file"))
    parser.add_argument("--timeout", type=float,
                        help=_("seconds before a package manager command is abandoned (0 disables)"))
    parser.add_argument("--no-cache", action="store_true", help=_("re-run the detail command on every redraw"))
    parser.add_argument("--version", action="version", version=AboutInfo.get_version_text())
    return parser.parse_args(argv)


def build_settings(args):
    settings = Settings.load(args.config)
    if args.backend:
        settings.default_backend = BackendKind.from_name(args.backend)
    if args.timeout is not None:
        if args.timeout < 0:
            raise ConfigError(_("--timeout must not be negative"))
        settings.command_timeout = args.timeout or None
    if args.no_cache:
        settings.cache_details = False
    return settings


def run(argv=None):
    args = parse_args(argv)
    try:
        settings = build_settings(args)
    except ConfigError as e:
        print(_("Configuration error: {}").format(e), file=sys.stderr)
        return 1

    package_manager = PackageManager(CommandRunner(timeout=settings.command_timeout))
    try:
        session = BrowserSession.start(package_manager, settings)
    except ExecutionError as e:
        print(_("Could not list installed packages: {}").format(e), file=sys.stderr)
        return 1

    os.environ.setdefault("ESCDELAY", "25")
    try:
        curses.wrapper(main, session, settings)
    except Exception as e:
        traceback.print_exc()
        print(_("An error occurred inside curses: {}").format(e), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
