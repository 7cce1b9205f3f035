import os

import yaml

from redfishgrabber.snapshot_store import FileStore, MemoryStore, load_snapshot, path_to_filepath


def test_memory_store_basics():
    store = MemoryStore()
    store.put("/redfish/v1/Systems", {"Name": "Systems"})
    store.put("/redfish/v1", {"Name": "Root"})

    assert len(store) == 2
    assert "/redfish/v1" in store
    assert store.paths() == ["/redfish/v1", "/redfish/v1/Systems"]
    assert store.get("/missing") is None


def test_path_to_filepath(tmp_path):
    out = str(tmp_path)
    assert path_to_filepath("/", out) == os.path.join(out, "index.json")
    assert path_to_filepath("/redfish/v1/Systems/1", out) == os.path.join(
        out, "redfish", "v1", "Systems", "1", "index.json"
    )
    # Characters Windows cannot store are replaced
    assert path_to_filepath("/redfish/v1/Oem:Dell/a|b", out) == os.path.join(
        out, "redfish", "v1", "Oem_Dell", "a_b", "index.json"
    )


def test_file_store_writes_snapshots_and_index(tmp_path):
    store = FileStore(str(tmp_path))
    store.put("/redfish/v1", {"Name": "Root", "SupportedHTTPMethods": ["GET"]})
    store.put("/redfish/v1/Systems/1", {"PowerState": "On"})

    assert store.saved_count == 2
    assert load_snapshot(path_to_filepath("/redfish/v1/Systems/1", str(tmp_path))) == {"PowerState": "On"}
    assert store.get("/redfish/v1")["Name"] == "Root"

    index = store.write_index()

    with open(index, encoding="utf-8") as f:
        assert yaml.safe_load(f) == ["/redfish/v1", "/redfish/v1/Systems/1"]


def test_load_missing_snapshot(tmp_path):
    assert load_snapshot(str(tmp_path / "nothing.json")) is None
