import logging
from datetime import datetime, timedelta

import pytest
import requests

import usg_hole


class FakeHTTPClient:
    """Serves canned bodies per URL; an exception value is raised instead."""

    def __init__(self, responses):
        self.responses = dict(responses)
        self.requested = []

    def download(self, url):
        self.requested.append(url)
        body = self.responses.get(url, requests.ConnectionError(f"no route to {url}"))
        if isinstance(body, Exception):
            raise body
        return body


class FrozenClock:
    def __init__(self, now=datetime(2026, 10, 17, 12, 0)):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, minutes=1):
        self.now += timedelta(minutes=minutes)


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    for handler in usg_hole.logger.handlers:
        handler.close()
    usg_hole.logger.handlers = []
    usg_hole.logger.propagate = True
    usg_hole.logger.setLevel(logging.NOTSET)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def workspace(tmp_path):
    path = tmp_path / "usg-hole"
    path.mkdir()
    return path


@pytest.fixture
def dnsmasq_dir(tmp_path):
    path = tmp_path / "dnsmasq.d"
    path.mkdir()
    return path


@pytest.fixture
def live_files(dnsmasq_dir):
    return {
        usg_hole.IPV4: str(dnsmasq_dir / "01-usg-hole-blacklist-ipv4.conf"),
        usg_hole.IPV6: str(dnsmasq_dir / "02-usg-hole-blacklist-ipv6.conf"),
    }


@pytest.fixture
def config(tmp_path, workspace, live_files, dnsmasq_dir):
    return usg_hole.Config(
        workspace=str(workspace),
        dnsmasq_dir=str(dnsmasq_dir),
        ipv4_file=live_files[usg_hole.IPV4],
        ipv6_file=live_files[usg_hole.IPV6],
        reload=False,
        quiet=True,
    )


@pytest.fixture
def sources_file(tmp_path):
    path = tmp_path / "blacklists.conf"
    path.write_text(
        "# test sources\n"
        "https://lists.example.org/hosts|example-hosts\n"
        "https://lists.example.org/domains\n"
    )
    return path
