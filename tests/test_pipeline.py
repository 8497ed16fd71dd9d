import sqlite3

import pytest

from conftest import StubIngest, add_draft, make_folder
from draftpub import mover
from draftpub import store as store_module
from draftpub.errors import ConfigurationError, PublishInProgress
from draftpub.importer import run_import_procedures
from draftpub.pipeline import PipelineLock, PublishPipeline, publish_request
from draftpub.store import DraftStore


class SpyStore(DraftStore):
    def __init__(self, db_path):
        super().__init__(db_path)
        self.spu_calls = []
        self.sku_calls = []

    def process_import_spu(self, spus):
        self.spu_calls.append(list(spus))
        return super().process_import_spu(spus)

    def process_import_sku(self, spus):
        self.sku_calls.append(list(spus))
        return super().process_import_sku(spus)


@pytest.fixture
def spy_store(store, config):
    return SpyStore(config.db_path)


def _seed_ab(store, media_root):
    add_draft(store, "A", image_folder=make_folder(media_root, "run-1", "A", ["A-1-MAIN.jpg", "A-2.jpg"]), variants=[{"sku": "A-RED", "price": "10"}])
    add_draft(store, "B", image_folder=make_folder(media_root, "run-1", "B", ["b_1_main.jpg"]), variants=[{"sku": "B-BLUE", "price": "12"}])


def test_publish_two_spus(spy_store, config, media_root, stub_ingest):
    _seed_ab(spy_store, media_root)
    pipeline = PublishPipeline(config, store=spy_store, ingest=stub_ingest)

    status, body = publish_request(pipeline, {"spus": ["A", "B"]})

    assert status == 200
    assert body["ok"] is True
    assert body["spus"] == ["A", "B"]
    assert body["staged"] == {"spus": 2, "skus": 2}
    assert body["moved"] == [{"spu": "A", "moved": True}, {"spu": "B", "moved": True}]
    run_folder = media_root / "drafts" / "run-1"
    archive = media_root / "drafts" / "Draft Archive" / "run-1"
    assert body["archived"] == [{"runFolder": str(run_folder.resolve()), "archived": True, "archivePath": str(archive.resolve())}]

    assert spy_store.spu_calls == [["A", "B"]]
    assert spy_store.sku_calls == [["A", "B"]]
    assert stub_ingest.calls == [["A", "B"]]

    assert sorted(p.name for p in (config.live_image_root / "A").iterdir()) == ["A-1-MAIN.jpg", "A-2.jpg"]
    assert sorted(p.name for p in (config.live_image_root / "B").iterdir()) == ["B-1-MAIN.jpg"]
    assert not run_folder.exists()
    assert (archive / "A" / "A-1-MAIN.jpg").exists()

    assert [p.spu for p in spy_store.fetch_draft_products(status="published")] == ["A", "B"]
    assert spy_store.fetch_draft_products() == []
    assert len(spy_store.fetch_draft_variants(["A", "B"], status="published")) == 2
    assert [r["spu"] for r in spy_store.fetch_catalog_products()] == ["A", "B"]
    assert [(r["spu"], r["sku"]) for r in spy_store.fetch_catalog_variants()] == [("A", "A-RED"), ("B", "B-BLUE")]
    assert all(r["processed"] for r in spy_store.fetch_staging_spu())

    stages = [(s.stage, s.spu, s.ok) for s in spy_store.fetch_steps(body["runId"])]
    assert ("moved", "A", True) in stages
    assert [s for s, _, _ in stages] == ["staged"] * 2 + ["imported"] * 2 + ["moved"] * 2 + ["ingested"] * 2 + ["published"] * 2


def test_missing_main_image_blocks_the_run(store, config, media_root, stub_ingest):
    add_draft(store, "A", image_folder=make_folder(media_root, "run-1", "A", ["A-1-MAIN.jpg"]))
    add_draft(store, "C", image_folder=make_folder(media_root, "run-1", "C", ["C-1.jpg", "C-2.jpg"]))
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    status, body = publish_request(pipeline, {"spus": ["A", "C"]})

    assert status == 400
    assert body["issues"] == [
        {"spu": "C", "folder": str((media_root / "drafts" / "run-1" / "C").resolve()), "missingMain": True}
    ]
    assert store.fetch_staging_spu() == []
    assert store.fetch_staging_sku() == []
    assert store.fetch_catalog_products() == []
    assert stub_ingest.calls == []
    assert (media_root / "drafts" / "run-1" / "A" / "A-1-MAIN.jpg").exists()
    assert not (media_root / "drafts" / "Draft Archive").exists()
    assert not config.live_image_root.exists()
    assert [p.spu for p in store.fetch_draft_products()] == ["A", "C"]


def test_publish_all_without_drafts(store, config, media_root, stub_ingest):
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    status, body = publish_request(pipeline, {"publishAll": True})

    assert status == 400
    assert body == {"error": "No draft products found to publish."}
    assert store.fetch_staging_spu() == []
    assert stub_ingest.calls == []
    assert not (media_root / "drafts" / "Draft Archive").exists()
    assert not config.lock_path.exists()


def test_ingest_failure_after_moves(store, config, media_root):
    _seed_ab(store, media_root)
    ingest = StubIngest(ok=False, error="disk full")
    pipeline = PublishPipeline(config, store=store, ingest=ingest)

    status, body = publish_request(pipeline, {"spus": ["A", "B"]})

    assert status == 500
    assert "disk full" in body["error"]
    # files already live, drafts still pending
    assert (config.live_image_root / "A" / "A-1-MAIN.jpg").exists()
    assert [p.spu for p in store.fetch_draft_products()] == ["A", "B"]
    assert (media_root / "drafts" / "run-1").exists()
    assert [r["spu"] for r in store.fetch_catalog_products()] == ["A", "B"]


def test_partial_move_failure_still_publishes_everything(store, config, media_root, stub_ingest, monkeypatch):
    _seed_ab(store, media_root)
    real_move = mover.move_or_copy

    def flaky(src, dst):
        if dst.name == "B":
            raise OSError("device busy")
        real_move(src, dst)

    monkeypatch.setattr(mover, "move_or_copy", flaky)
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    response = pipeline.publish(["A", "B"])

    assert [(m.spu, m.moved, m.error) for m in response.moved] == [("A", True, None), ("B", False, "device busy")]
    assert stub_ingest.calls == [["A", "B"]]
    assert (media_root / "drafts" / "run-1" / "B").exists()
    assert [p.spu for p in store.fetch_draft_products(status="published")] == ["A", "B"]


def test_product_without_images_is_published(store, config, stub_ingest):
    add_draft(store, "N1", raw_row={"product_price": "5"})
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    response = pipeline.publish(publish_all=True)

    assert response.staged.skus == 1
    assert response.archived == []
    assert response.moved[0].error == "No folder."
    assert store.fetch_catalog_variants()[0]["sku"] == "N1"


def test_explicit_list_only_touches_requested(store, config, media_root, stub_ingest):
    _seed_ab(store, media_root)
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    response = pipeline.publish([" B ", "B", ""])

    assert response.spus == ["B"]
    assert [p.spu for p in store.fetch_draft_products()] == ["A"]
    assert (media_root / "drafts" / "run-1" / "A").exists()
    assert stub_ingest.calls == [["B"]]


def test_import_procedures_are_idempotent(store, config, media_root, stub_ingest):
    _seed_ab(store, media_root)
    PublishPipeline(config, store=store, ingest=stub_ingest).publish(["A", "B"])

    run_import_procedures(store, ["A", "B"])

    assert len(store.fetch_catalog_products()) == 2
    assert len(store.fetch_catalog_variants()) == 2


def test_overlapping_runs_are_refused(store, config, media_root, stub_ingest):
    _seed_ab(store, media_root)
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    with PipelineLock(config.lock_path):
        status, body = publish_request(pipeline, {"spus": ["A"]})
        with pytest.raises(PublishInProgress):
            pipeline.publish(["A"])

    assert status == 409
    assert "in progress" in body["error"]
    assert stub_ingest.calls == []
    assert pipeline.publish(["A"]).ok


def test_stale_lock_file_blocks_until_removed(store, config, stub_ingest):
    add_draft(store, "A")
    config.lock_path.write_text("12345 @ earlier")
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    with pytest.raises(PublishInProgress) as exc:
        pipeline.publish(["A"])

    assert str(config.lock_path) in exc.value.message
    config.lock_path.unlink()
    assert pipeline.publish(["A"]).ok


def test_missing_database_is_a_configuration_error(config, stub_ingest):
    pipeline = PublishPipeline(config, ingest=stub_ingest)

    with pytest.raises(ConfigurationError):
        pipeline.publish(["A"])
    status, _ = publish_request(pipeline, {"spus": ["A"]})
    assert status == 500


def _fail(*args, **kwargs):
    raise sqlite3.OperationalError("disk I/O error")


def _assert_nothing_moved(store, config, media_root):
    assert (media_root / "drafts" / "run-1" / "A" / "A-1-MAIN.jpg").exists()
    assert (media_root / "drafts" / "run-1" / "B" / "B-1-MAIN.jpg").exists()
    assert not config.live_image_root.exists()
    assert [p.spu for p in store.fetch_draft_products()] == ["A", "B"]
    assert not config.lock_path.exists()


def test_staging_write_failure_aborts_before_files_move(store, config, media_root, stub_ingest, monkeypatch):
    _seed_ab(store, media_root)
    monkeypatch.setattr(store, "insert_staging_sku", _fail)
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    status, body = publish_request(pipeline, {"spus": ["A", "B"]})

    assert (status, body) == (500, {"error": "disk I/O error"})
    _assert_nothing_moved(store, config, media_root)
    assert store.fetch_catalog_products() == []
    assert stub_ingest.calls == []


def test_import_failure_aborts_before_files_move(store, config, media_root, stub_ingest, monkeypatch):
    _seed_ab(store, media_root)
    monkeypatch.setattr(store, "process_import_sku", _fail)
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    status, body = publish_request(pipeline, {"spus": ["A", "B"]})

    assert (status, body) == (500, {"error": "disk I/O error"})
    _assert_nothing_moved(store, config, media_root)
    assert store.fetch_catalog_variants() == []
    assert stub_ingest.calls == []


def test_status_update_failure_leaves_drafts_pending(store, config, media_root, stub_ingest, monkeypatch):
    _seed_ab(store, media_root)
    monkeypatch.setattr(store, "mark_published", _fail)
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    status, body = publish_request(pipeline, {"spus": ["A", "B"]})

    assert (status, body) == (500, {"error": "disk I/O error"})
    assert (config.live_image_root / "A" / "A-1-MAIN.jpg").exists()
    assert stub_ingest.calls == [["A", "B"]]
    assert [p.spu for p in store.fetch_draft_products()] == ["A", "B"]
    assert not config.lock_path.exists()


def test_draft_query_failure(store, config, stub_ingest, monkeypatch):
    add_draft(store, "A")
    monkeypatch.setattr(store, "fetch_draft_products", _fail)
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    status, body = publish_request(pipeline, {"publishAll": True})

    assert (status, body) == (500, {"error": "disk I/O error"})
    assert store.fetch_staging_spu() == []
    assert not config.lock_path.exists()


def test_long_spu_lists_are_queried_in_chunks(store, config, media_root, stub_ingest, monkeypatch):
    monkeypatch.setattr(store_module, "IN_CHUNK", 2)
    spus = [f"P{i}" for i in range(5)]
    for spu in reversed(spus):
        add_draft(store, spu, image_folder=make_folder(media_root, "run-1", spu, [f"{spu}-1-MAIN.jpg"]),
                  variants=[{"sku": f"{spu}-B"}, {"sku": f"{spu}-A"}])
    pipeline = PublishPipeline(config, store=store, ingest=stub_ingest)

    response = pipeline.publish(spus)

    assert response.spus == spus
    assert response.staged.skus == 10
    assert [r["sku"] for r in store.fetch_staging_sku()] == [s for spu in spus for s in (f"{spu}-B", f"{spu}-A")]
    assert len(store.fetch_catalog_products()) == 5
    assert len(store.fetch_catalog_variants()) == 10
    assert store.fetch_draft_products() == []
    assert len(store.fetch_draft_variants(spus, status="published")) == 10
