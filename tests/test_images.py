import pytest

from conftest import make_folder
from draftpub.errors import ImageValidationFailed
from draftpub.images import (
    canonical_name,
    gate,
    has_tag,
    normalize_image_names,
    resolve_draft_folder,
    validate_folders,
    validate_image_folder,
)
from draftpub.models import DraftProduct


def test_resolve_draft_folder_stays_inside_root(media_root):
    inside = resolve_draft_folder("drafts/run-1/A1", media_root)
    assert inside == (media_root / "drafts" / "run-1" / "A1").resolve()
    assert resolve_draft_folder(str(media_root / "drafts" / "x"), media_root) == (media_root / "drafts" / "x").resolve()
    assert resolve_draft_folder("/drafts/run-1/A1", media_root) is None
    assert resolve_draft_folder("../outside", media_root) is None
    assert resolve_draft_folder("drafts/../../outside", media_root) is None
    assert resolve_draft_folder("/etc", media_root) is None
    assert resolve_draft_folder(".", media_root) is None


def test_has_tag_matches_whole_tokens():
    assert has_tag("A1-1-MAIN.jpg", "MAIN")
    assert has_tag("a1_1_main.jpg", "MAIN")
    assert not has_tag("A1-DOMAINS.jpg", "MAIN")


def test_canonical_name():
    assert canonical_name("a1_2_main.JPG", "A1") == "A1-2-MAIN.JPG"
    assert canonical_name("A1 3 env.png", "A1") == "A1-3-ENV.png"
    assert canonical_name("A1.webp", "A1") == "A1-1.webp"
    assert canonical_name("A1-1-MAIN.jpg", "A1") == "A1-1-MAIN.jpg"
    assert canonical_name("A12-1.jpg", "A1") is None
    assert canonical_name("IMG_0001.jpg", "A1") is None


def test_normalize_renames_without_overwriting(media_root):
    make_folder(media_root, "run-1", "A1", ["A1-1.jpg", "a1_1.jpg", "a1_2_main.jpg", "notes.txt"])
    folder = media_root / "drafts" / "run-1" / "A1"

    renamed = normalize_image_names(folder, "A1")

    assert renamed == 2
    names = sorted(p.name for p in folder.iterdir())
    assert names == ["A1-1-2.jpg", "A1-1.jpg", "A1-2-MAIN.jpg", "notes.txt"]


def test_normalize_does_not_pick_a_main_image(media_root):
    make_folder(media_root, "run-1", "C", ["C-1.jpg", "C-2.jpg"])
    folder = media_root / "drafts" / "run-1" / "C"

    normalize_image_names(folder, "C")
    check = validate_image_folder(folder, "C")

    assert check.count == 2
    assert check.mains == []


def test_validate_image_folder_reports_foreign_prefixes(media_root):
    make_folder(media_root, "run-1", "A1", ["A1-1-MAIN.jpg", "B2-1.jpg", "readme.md"])
    check = validate_image_folder(media_root / "drafts" / "run-1" / "A1", "A1")
    assert check.count == 2
    assert check.mains == ["A1-1-MAIN.jpg"]
    assert check.invalid_prefixes == ["B2-1.jpg"]


def test_validate_folders_collects_issues_and_run_folders(media_root, config):
    products = [
        DraftProduct(spu="A", image_folder=make_folder(media_root, "run-1", "A", ["A-1-MAIN.jpg"])),
        DraftProduct(spu="B", image_folder=make_folder(media_root, "run-1", "B", ["B-1-MAIN.jpg", "B-2-main.jpg"])),
        DraftProduct(spu="C", image_folder=make_folder(media_root, "run-2", "C", ["C-1.jpg", "C-2.jpg"])),
        DraftProduct(spu="D", image_folder=make_folder(media_root, "run-2", "D", ["D-1-MAIN.jpg", "X-9.jpg"])),
        DraftProduct(spu="E", image_folder="drafts/run-2/E"),
        DraftProduct(spu="F", image_folder="../../etc"),
        DraftProduct(spu="G", image_folder=make_folder(media_root, "run-3", "G", [])),
        DraftProduct(spu="H"),
    ]

    issues, run_folders = validate_folders(products, config)

    by_spu = {i.spu: i.model_dump(by_alias=True, exclude_none=True) for i in issues}
    assert list(by_spu) == ["B", "C", "D", "E", "F"]
    assert by_spu["B"]["multipleMain"] == ["B-1-MAIN.jpg", "B-2-MAIN.jpg"]
    assert by_spu["C"]["missingMain"] is True
    assert "invalidPrefixes" not in by_spu["C"]
    assert by_spu["D"]["invalidPrefixes"] == ["X-9.jpg"]
    assert by_spu["E"]["error"] == "Draft folder missing."
    assert by_spu["F"]["error"] == "Invalid draft folder path."

    drafts = (media_root / "drafts").resolve()
    assert run_folders[drafts / "run-1"] == ["A", "B"]
    assert run_folders[drafts / "run-2"] == ["C", "D", "E"]
    assert run_folders[drafts / "run-3"] == ["G"]


def test_shared_folder_is_an_issue(media_root, config):
    folder = make_folder(media_root, "run-1", "A", ["A-1-MAIN.jpg"])
    products = [DraftProduct(spu="A", image_folder=folder), DraftProduct(spu="A2", image_folder=folder)]

    issues, _ = validate_folders(products, config)

    assert [i.spu for i in issues] == ["A2"]
    assert issues[0].error == "Draft folder is shared with another SPU."


def test_gate_raises_with_issue_payload(media_root, config):
    products = [DraftProduct(spu="C", image_folder=make_folder(media_root, "run-1", "C", ["C-1.jpg", "C-2.jpg"]))]

    with pytest.raises(ImageValidationFailed) as exc:
        gate(products, config)

    assert exc.value.status_code == 400
    assert exc.value.issues == [
        {"spu": "C", "folder": str((media_root / "drafts" / "run-1" / "C").resolve()), "missingMain": True}
    ]


def test_gate_returns_run_folders_when_clean(media_root, config):
    products = [
        DraftProduct(spu="A", image_folder=make_folder(media_root, "run-1", "A", ["a_1_main.jpg", "a_2.jpg"])),
    ]
    run_folders = gate(products, config)
    assert list(run_folders.values()) == [["A"]]
    assert sorted(p.name for p in (media_root / "drafts" / "run-1" / "A").iterdir()) == ["A-1-MAIN.jpg", "A-2.jpg"]
