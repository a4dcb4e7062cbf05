"""Tests for [IMAGE:path] upload expansion and remote image download."""

from pathlib import Path

from conftest import REPO, FakeTracker
from kanbansync.services.images import ImageDownloader, ImageUploader


class TestUploader:
    def test_expand_uploads_and_substitutes(self, tracker: FakeTracker, tasks_root: Path) -> None:
        (tasks_root / "Todo").mkdir()
        (tasks_root / "Todo" / "shot.png").write_bytes(b"png-bytes")
        uploader = ImageUploader(tracker, REPO, tasks_root)

        text = uploader.expand("See [IMAGE:shot.png] please", tasks_root / "Todo")

        assert len(tracker.uploads) == 1
        repo_path = next(iter(tracker.uploads))
        assert repo_path.startswith("images/uploads/shot_")
        assert repo_path.endswith(".png")
        assert text == f"See ![shot](https://raw.githubusercontent.com/{REPO}/main/{repo_path}) please"

    def test_planned_matches_expand_without_upload(self, tracker: FakeTracker, tasks_root: Path) -> None:
        (tasks_root / "a.gif").write_bytes(b"gif")
        uploader = ImageUploader(tracker, REPO, tasks_root)
        planned = uploader.planned("[IMAGE:a.gif]", tasks_root)
        assert tracker.count("upload_file") == 0
        assert planned == uploader.expand("[IMAGE:a.gif]", tasks_root)

    def test_resolves_against_tasks_root(self, tracker: FakeTracker, tasks_root: Path) -> None:
        """Pulled images (Images/...) resolve from the tasks root."""
        (tasks_root / "Images").mkdir()
        (tasks_root / "Images" / "x.png").write_bytes(b"x")
        (tasks_root / "Done").mkdir()
        text = ImageUploader(tracker, REPO, tasks_root).expand("[IMAGE:Images/x.png]", tasks_root / "Done")
        assert text.startswith("![x](")

    def test_missing_file_keeps_token(self, tracker: FakeTracker, tasks_root: Path) -> None:
        text = ImageUploader(tracker, REPO, tasks_root).expand("[IMAGE:nope.png]", tasks_root)
        assert text == "[IMAGE:nope.png]"
        assert tracker.count("upload_file") == 0

    def test_failed_upload_keeps_token(self, tracker: FakeTracker, tasks_root: Path) -> None:
        (tasks_root / "a.png").write_bytes(b"a")
        tracker.fail.add("upload_file")
        text = ImageUploader(tracker, REPO, tasks_root).expand("[IMAGE:a.png]", tasks_root)
        assert text == "[IMAGE:a.png]"


class TestDownloader:
    def test_local_name_is_deterministic(self) -> None:
        a = ImageDownloader.local_name("https://example.com/img/photo.jpg?x=1")
        assert a == ImageDownloader.local_name("https://example.com/img/photo.jpg?x=1")
        assert a.startswith("photo_") and a.endswith(".jpg")
        assert ImageDownloader.local_name("https://github.com/user-attachments/assets/abc").startswith("github_image_")

    def test_localize_markdown_image(self, tracker: FakeTracker, tasks_root: Path) -> None:
        url = "https://example.com/a.png"
        tracker.downloads[url] = b"data"
        downloader = ImageDownloader(tracker, tasks_root)

        text = downloader.localize(f"Look ![diagram]({url}) here")

        name = ImageDownloader.local_name(url)
        assert text == f"Look diagram: [IMAGE:Images/{name}] here"
        assert (tasks_root / "Images" / name).read_bytes() == b"data"

    def test_localize_html_image(self, tracker: FakeTracker, tasks_root: Path) -> None:
        url = "https://example.com/b.webp"
        tracker.downloads[url] = b"data"
        text = ImageDownloader(tracker, tasks_root).localize(f'<img width="300" alt="Shot" src="{url}">')
        assert text == f"Shot: [IMAGE:Images/{ImageDownloader.local_name(url)}]"

    def test_existing_file_is_not_downloaded_again(self, tracker: FakeTracker, tasks_root: Path) -> None:
        url = "https://example.com/a.png"
        (tasks_root / "Images").mkdir()
        (tasks_root / "Images" / ImageDownloader.local_name(url)).write_bytes(b"old")
        ImageDownloader(tracker, tasks_root).localize(f"![a]({url})")
        assert tracker.count("download_file") == 0

    def test_failed_download_keeps_reference(self, tracker: FakeTracker, tasks_root: Path) -> None:
        text = ImageDownloader(tracker, tasks_root).localize("![a](https://example.com/missing.png)")
        assert text == "![a](https://example.com/missing.png)"

    def test_own_upload_maps_back_without_download(self, tracker: FakeTracker, tasks_root: Path) -> None:
        url = f"https://raw.githubusercontent.com/{REPO}/main/images/uploads/shot_1234abcd.png"
        text = ImageDownloader(tracker, tasks_root).localize(f"![shot]({url})")
        assert text == "shot: [IMAGE:Images/shot_1234abcd.png]"
        assert tracker.count("download_file") == 0
