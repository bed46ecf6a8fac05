"""
Tests for BrowserSession: the key-driven state machine.
"""

import pytest

from pkgview_core import (
    Action,
    BackendKind,
    BrowserSession,
    ExecutionError,
    PackageManager,
    SessionState,
    Settings,
)


@pytest.fixture
def session(package_manager) -> BrowserSession:
    return BrowserSession.start(package_manager, Settings())


class TestStart:
    def test_default_backend_is_pkg(self, session):
        assert session.state is SessionState.RUNNING
        assert session.catalog.active_backend is BackendKind.PKG
        assert session.catalog.selected_index == 0

    def test_configured_backend(self, package_manager):
        s = BrowserSession.start(package_manager, Settings(default_backend=BackendKind.PIP))
        assert s.catalog.active_backend is BackendKind.PIP

    def test_listing_failure_is_not_an_empty_catalog(self, make_runner):
        with pytest.raises(ExecutionError):
            BrowserSession.start(PackageManager(make_runner(failing={"pkg"})), Settings())

    def test_cache_setting_forwarded(self, package_manager):
        s = BrowserSession.start(package_manager, Settings(cache_details=False))
        assert s.detail_lookup.cache_enabled is False


class TestDispatch:
    @pytest.mark.parametrize("action, expected", [
        (Action.MOVE_DOWN, 1),
        (Action.MOVE_UP, 2),
        (Action.JUMP_FIRST, 0),
        (Action.JUMP_LAST, 2),
        (Action.NONE, 0),
    ])
    def test_navigation(self, session, action, expected):
        assert session.dispatch(action) is True
        assert session.catalog.selected_index == expected

    def test_quit(self, session):
        assert session.dispatch(Action.QUIT) is False
        assert session.state is SessionState.EXITED
        assert not session.running

    def test_events_after_exit_ignored(self, session):
        session.dispatch(Action.QUIT)
        session.dispatch(Action.MOVE_DOWN)
        assert session.catalog.selected_index == 0
        assert session.state is SessionState.EXITED

    def test_cycle_backend(self, session):
        session.dispatch(Action.CYCLE_BACKEND)
        assert session.catalog.active_backend is BackendKind.APT
        session.dispatch(Action.CYCLE_BACKEND)
        session.dispatch(Action.CYCLE_BACKEND)
        assert session.catalog.active_backend is BackendKind.PKG


class TestScreen:
    def test_screen_model(self, session):
        screen = session.screen()
        assert screen.title == "Installed Packages (pkg)"
        assert screen.rows == ["htop stable", "vim 2:8.2", "bash 5.2.15"]
        assert screen.selected_index == 0
        assert screen.details == "Package: htop\nVersion: 3.2.2\n"
        assert screen.status == "3 packages"

    def test_status_shows_load_error(self, make_runner):
        runner = make_runner({("pkg", "list-installed"): "htop/stable\n"}, failing={"apt"})
        s = BrowserSession.start(PackageManager(runner), Settings())
        s.dispatch(Action.CYCLE_BACKEND)
        screen = s.screen()
        assert screen.rows == []
        assert screen.details == "No package selected"
        assert "apt list --installed" in screen.status
