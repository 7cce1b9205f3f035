"""Shared fixtures: an in-memory Redfish service standing in for the transport."""

import json

import pytest

from redfishgrabber.config import CrawlConfig
from redfishgrabber.errors import FetchError
from redfishgrabber.path_filter import normalize_path
from redfishgrabber.session import FetchResponse

BASE = "https://bmc.test"

SYSTEM_LOGS = "/redfish/v1/Systems/1/LogServices"
MANAGER_LOGS = "/redfish/v1/Managers/1/LogServices"
ACCOUNTS = "/redfish/v1/AccountService/Accounts"


def ref(path):
    return {"@odata.id": path}


def redfish_graph():
    """A small but realistic service: systems, managers, logs and accounts."""
    return {
        "/redfish/v1": {
            "@odata.id": "/redfish/v1",
            "Systems": ref("/redfish/v1/Systems"),
            "Managers": ref("/redfish/v1/Managers"),
            "AccountService": ref("/redfish/v1/AccountService"),
        },
        "/redfish/v1/Systems": {
            "@odata.id": "/redfish/v1/Systems",
            "Members": [ref("/redfish/v1/Systems/1")],
        },
        "/redfish/v1/Systems/1": {
            "@odata.id": "/redfish/v1/Systems/1",
            "PowerState": "On",
            "LogServices": ref(SYSTEM_LOGS),
            "Links": {"ManagedBy": [ref("/redfish/v1/Managers/1")]},
        },
        SYSTEM_LOGS: {"@odata.id": SYSTEM_LOGS, "Members": [ref(f"{SYSTEM_LOGS}/Log1")]},
        f"{SYSTEM_LOGS}/Log1": {
            "@odata.id": f"{SYSTEM_LOGS}/Log1",
            "Entries": ref(f"{SYSTEM_LOGS}/Log1/Entries"),
        },
        f"{SYSTEM_LOGS}/Log1/Entries": {
            "@odata.id": f"{SYSTEM_LOGS}/Log1/Entries",
            "Members": [ref(f"{SYSTEM_LOGS}/Log1/Entries/1"), ref(f"{SYSTEM_LOGS}/Log1/Entries/2")],
        },
        f"{SYSTEM_LOGS}/Log1/Entries/1": {
            "@odata.id": f"{SYSTEM_LOGS}/Log1/Entries/1",
            "Message": "Power on",
        },
        f"{SYSTEM_LOGS}/Log1/Entries/2": {
            "@odata.id": f"{SYSTEM_LOGS}/Log1/Entries/2",
            "Message": "Fan failure",
            "Links": {"OriginOfCondition": ref("/redfish/v1/Chassis/1")},
        },
        "/redfish/v1/Managers": {
            "@odata.id": "/redfish/v1/Managers",
            "Members": [ref("/redfish/v1/Managers/1")],
        },
        "/redfish/v1/Managers/1": {
            "@odata.id": "/redfish/v1/Managers/1",
            "LogServices": ref(MANAGER_LOGS),
            "Links": {"ManagerForServers": [ref("/redfish/v1/Systems/1")]},
        },
        MANAGER_LOGS: {"@odata.id": MANAGER_LOGS, "Members": [ref(f"{MANAGER_LOGS}/SEL")]},
        f"{MANAGER_LOGS}/SEL": {
            "@odata.id": f"{MANAGER_LOGS}/SEL",
            "Entries": ref(f"{MANAGER_LOGS}/SEL/Entries"),
        },
        f"{MANAGER_LOGS}/SEL/Entries": {
            "@odata.id": f"{MANAGER_LOGS}/SEL/Entries",
            "Members": [ref(f"{MANAGER_LOGS}/SEL/Entries/1")],
        },
        f"{MANAGER_LOGS}/SEL/Entries/1": {
            "@odata.id": f"{MANAGER_LOGS}/SEL/Entries/1",
            "Message": "Manager reset",
        },
        "/redfish/v1/AccountService": {
            "@odata.id": "/redfish/v1/AccountService",
            "Accounts": ref(ACCOUNTS),
        },
        ACCOUNTS: {
            "@odata.id": ACCOUNTS,
            "Members": [ref(f"{ACCOUNTS}/1"), ref(f"{ACCOUNTS}/2"), ref(f"{ACCOUNTS}/3")],
        },
        f"{ACCOUNTS}/1": {"@odata.id": f"{ACCOUNTS}/1", "UserName": "admin"},
        f"{ACCOUNTS}/2": {"@odata.id": f"{ACCOUNTS}/2", "UserName": "operator"},
        f"{ACCOUNTS}/3": {"@odata.id": f"{ACCOUNTS}/3", "UserName": "readonly"},
    }


class FakeSession:
    """Answers fetch() from a dict of normalized path -> document.

    A value may be a dict (served as JSON), raw bytes (served as-is) or an
    exception instance (raised, KeyboardInterrupt included). Unknown paths
    answer 404.
    """

    def __init__(self, graph, allow=None, failing_writes=()):
        self.base_uri = BASE
        self.graph = graph
        self.allow = allow or {}
        self.failing_writes = set(failing_writes)
        self.calls = []
        self.requested = []  # (method, path) exactly as passed in

    def fetch(self, path, method="GET", body=None):
        key = normalize_path(path, BASE)
        self.requested.append((method, path))
        self.calls.append((method, key, body))

        if method != "GET":
            if key in self.failing_writes:
                raise FetchError(f"HTTP 400 for {method} {key}", status=400)
            return FetchResponse(204 if method == "DELETE" else 200, {}, b"")

        if key not in self.graph:
            raise FetchError(f"HTTP 404 for GET {key}", status=404)
        value = self.graph[key]
        if isinstance(value, BaseException):
            raise value
        body_bytes = value if isinstance(value, bytes) else json.dumps(value).encode()
        headers = {"Allow": self.allow[key]} if key in self.allow else {}
        return FetchResponse(200, headers, body_bytes)

    @property
    def fetched(self):
        return [key for method, key, _ in self.calls if method == "GET"]

    def logout(self):
        pass

    def close(self):
        pass


@pytest.fixture
def graph():
    return redfish_graph()


@pytest.fixture
def fake_session(graph):
    return FakeSession(graph)


@pytest.fixture
def config():
    return CrawlConfig(base_uri=BASE)


def chassis_graph():
    """An enclosure chassis that lists its sibling under Links.Contains."""
    return {
        "/redfish/v1": {"@odata.id": "/redfish/v1", "Chassis": ref("/redfish/v1/Chassis")},
        "/redfish/v1/Chassis": {
            "@odata.id": "/redfish/v1/Chassis",
            "Members": [ref("/redfish/v1/Chassis/1"), ref("/redfish/v1/Chassis/2")],
        },
        "/redfish/v1/Chassis/1": {
            "@odata.id": "/redfish/v1/Chassis/1",
            "ChassisType": "Enclosure",
            "Power": ref("/redfish/v1/Chassis/1/Power"),
            "Links": {"Contains": [ref("/redfish/v1/Chassis/2")]},
        },
        "/redfish/v1/Chassis/1/Power": {"@odata.id": "/redfish/v1/Chassis/1/Power"},
        "/redfish/v1/Chassis/2": {
            "@odata.id": "/redfish/v1/Chassis/2",
            "ChassisType": "Blade",
            "Power": ref("/redfish/v1/Chassis/2/Power"),
            "Links": {"ContainedBy": ref("/redfish/v1/Chassis/1")},
        },
        "/redfish/v1/Chassis/2/Power": {"@odata.id": "/redfish/v1/Chassis/2/Power"},
    }
