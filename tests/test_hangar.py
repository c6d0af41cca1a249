import asyncio

import pytest

from mup.api import HangarClient, HttpTransport
from mup.api.hangar import HANGAR_BASE_URL
from mup.exceptions import NotFoundError
from mup.models import Loader

SHA256 = "a" * 64


def _version(name, created, channel="Release", external=False, deps=None):
    download = {
        "fileInfo": None if external else {"name": f"LuckPerms-{name}.jar", "sizeBytes": 10, "sha256Hash": SHA256},
        "externalUrl": "https://example.com/lp.jar" if external else None,
        "downloadUrl": None if external else f"https://hangarcdn.papermc.io/LuckPerms/{name}.jar",
    }
    return {
        "name": name,
        "createdAt": created,
        "channel": {"name": channel},
        "downloads": {"PAPER": download},
        "pluginDependencies": {"PAPER": deps or []},
        "platformDependencies": {"PAPER": ["1.20", "1.20.1"], "VELOCITY": ["3.2"]},
    }


@pytest.fixture
def served(monkeypatch):
    payloads = {}
    calls = []
    client = HangarClient(HttpTransport("hangar"))

    async def get_json(url, params=None):
        calls.append((url, params))
        key = (url, params.get("offset")) if params and "offset" in params else url
        if key not in payloads:
            raise NotFoundError(f"not found: {url}", context={"url": url})
        return payloads[key]

    monkeypatch.setattr(client.transport, "get_json", get_json)
    payloads[f"{HANGAR_BASE_URL}/projects/luckperms"] = {"name": "LuckPerms"}
    return client, payloads, calls


def _page(results, count, offset="0"):
    return (f"{HANGAR_BASE_URL}/projects/LuckPerms/versions", offset), {
        "pagination": {"count": count, "limit": 25, "offset": int(offset)},
        "result": results,
    }


def test_list_versions_keeps_release_channel_with_hosted_download(served):
    client, payloads, calls = served
    key, page = _page(
        [
            _version("5.4.102", "2023-08-01T00:00:00Z"),
            _version("5.4.103-SNAPSHOT", "2023-09-01T00:00:00Z", channel="Snapshot"),
            _version("5.4.101", "2023-07-01T00:00:00Z", external=True),
            _version("5.4.100", "2023-06-01T00:00:00Z"),
        ],
        count=4,
    )
    payloads[key] = page

    summaries = asyncio.run(client.list_versions("luckperms", Loader.PAPER, "1.20.1"))

    assert [s.version_id for s in summaries] == ["5.4.102", "5.4.100"]
    assert summaries[0].loaders == [Loader.PAPER]
    assert summaries[0].game_versions == ["1.20", "1.20.1"]
    params = calls[-1][1]
    assert params["platform"] == "PAPER"
    assert params["platformVersion"] == "1.20.1"


def test_list_versions_follows_pagination(served):
    client, payloads, calls = served
    first = [_version(f"1.{i}", f"2023-01-{i + 1:02d}T00:00:00Z") for i in range(25)]
    key, page = _page(first, count=26)
    payloads[key] = page
    key, page = _page([_version("2.0", "2023-03-01T00:00:00Z")], count=26, offset="25")
    payloads[key] = page

    summaries = asyncio.run(client.list_versions("luckperms", Loader.PAPER))

    assert len(summaries) == 26
    assert summaries[0].version_id == "2.0"
    assert [p["offset"] for _, p in calls if p] == ["0", "25"]


def test_version_metadata_uses_sha256_and_plugin_dependencies(served):
    client, payloads, _ = served
    payloads[f"{HANGAR_BASE_URL}/projects/LuckPerms/versions/5.4.102"] = _version(
        "5.4.102",
        "2023-08-01T00:00:00Z",
        deps=[
            {"name": "Vault", "required": True, "externalUrl": None},
            {"name": "PlaceholderAPI", "required": False, "externalUrl": None},
            {"name": "ProtocolLib", "required": True, "externalUrl": "https://github.com/dmulloy2/ProtocolLib"},
        ],
    )

    metadata = asyncio.run(client.get_version_metadata("luckperms", "5.4.102"))

    assert metadata.project_id == "LuckPerms"
    assert metadata.filename == "LuckPerms-5.4.102.jar"
    assert metadata.content_hash == "sha256:" + SHA256
    assert metadata.url == "https://hangarcdn.papermc.io/LuckPerms/5.4.102.jar"
    assert [(d.project_id, d.required) for d in metadata.dependencies] == [
        ("Vault", True),
        ("PlaceholderAPI", False),
    ]


def test_externally_hosted_version_is_not_found(served):
    client, payloads, _ = served
    payloads[f"{HANGAR_BASE_URL}/projects/LuckPerms/versions/5.4.101"] = _version(
        "5.4.101", "2023-07-01T00:00:00Z", external=True
    )

    with pytest.raises(NotFoundError):
        asyncio.run(client.get_version_metadata("luckperms", "5.4.101"))


def test_project_name_is_resolved_once(served):
    client, payloads, calls = served
    payloads[f"{HANGAR_BASE_URL}/projects/LuckPerms/versions/5.4.102"] = _version(
        "5.4.102", "2023-08-01T00:00:00Z"
    )

    async def run():
        await client.get_version_metadata("luckperms", "5.4.102")
        await client.get_version_metadata("luckperms", "5.4.102")

    asyncio.run(run())

    assert [url for url, _ in calls].count(f"{HANGAR_BASE_URL}/projects/luckperms") == 1
