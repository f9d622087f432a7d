import json
from unittest.mock import MagicMock

from ocr_worker.preprocessing.manifest import ManifestStore
from ocr_worker.preprocessing.models import BuildResult, WorkItem


def _item(name: str) -> WorkItem:
    return WorkItem(
        filename=name,
        base_key=name.split(".")[0],
        crop_key=f"image-files/j1/crops/{name}",
        signed_url=f"https://signed/{name}",
    )


class TestManifestStore:
    def test_save_writes_json_to_manifest_key(self) -> None:
        storage = MagicMock()

        key = ManifestStore(storage).save("j1", [_item("1.png")])

        assert key == "tmp/j1/manifest.json"
        stored_key, payload, content_type = storage.put_bytes.call_args.args
        assert stored_key == key
        assert content_type == "application/json"
        assert json.loads(payload)[0]["signed_url"] == "https://signed/1.png"

    def test_load_restores_items_in_order(self) -> None:
        storage = MagicMock()
        items = [_item("1.png"), _item("2.png")]
        ManifestStore(storage).save("j1", items)
        storage.get_bytes.return_value = storage.put_bytes.call_args.args[1]

        assert ManifestStore(storage).load("j1") == items

    def test_delete(self) -> None:
        storage = MagicMock()

        ManifestStore(storage).delete("j1")

        storage.delete.assert_called_once_with("tmp/j1/manifest.json")


class TestBuildResultSummary:
    def test_summary_omits_items(self) -> None:
        result = BuildResult(total_images=1, raw_zip_key="k", items=[_item("1.png")])

        assert result.summary() == {
            "total_images": 1,
            "raw_zip_key": "k",
            "raw_zip_size_bytes": None,
            "thumbnail_key": None,
        }
