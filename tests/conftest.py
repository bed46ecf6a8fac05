"""
Shared test fixtures: a fake command runner standing in for subprocess.
"""

import subprocess

import pytest

from pkgview_core import CommandRunner, ExecutionError, PackageManager


class FakeRunner:
    """Returns canned stdout per argv and records every invocation."""

    def __init__(self, outputs=None, failing=()):
        self.outputs = dict(outputs or {})
        self.failing = set(failing)
        self.calls = []

    def run_sync(self, cmd_list):
        key = tuple(cmd_list)
        self.calls.append(key)
        if key in self.failing or key[0] in self.failing:
            raise ExecutionError(cmd_list, "No such file or directory")
        out = self.outputs.get(key, b"")
        if isinstance(out, str):
            out = out.encode("utf-8")
        return subprocess.CompletedProcess(list(cmd_list), 0, stdout=out, stderr=b"")


PKG_LISTING = "htop/stable\nvim/2:8.2\nbash/5.2.15\n"
APT_LISTING = (
    "Listing... Done\n"
    "vim/stable 2:8.2.0 amd64 [installed]\n"
    "curl/jammy-updates,now 7.81.0-1ubuntu1.15 amd64 [installed,automatic]\n"
)
PIP_LISTING = "Package    Version\n---------- -------\nrequests 2.31.0\npytest   8.0.0\n"


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner({
        ("pkg", "list-installed"): PKG_LISTING,
        ("apt", "list", "--installed"): APT_LISTING,
        ("pip", "list"): PIP_LISTING,
        ("pkg", "show", "htop"): "Package: htop\nVersion: 3.2.2\n",
        ("pip", "show", "requests"): "Name: requests\nVersion: 2.31.0\n",
    })


@pytest.fixture
def package_manager(fake_runner) -> PackageManager:
    return PackageManager(fake_runner)


@pytest.fixture
def make_runner():
    return FakeRunner


@pytest.fixture
def runner():
    return CommandRunner(timeout=5)
