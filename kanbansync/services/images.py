"""Image references in task text.

Local task files reference images as ``[IMAGE:path]``. On push the file is
uploaded into the repository and the token becomes a Markdown image; on pull
remote images are downloaded into ``<tasks root>/Images`` and turned back into
tokens. File names on both sides are deterministic so repeated runs produce
the same text.
"""

import hashlib
import logging
import re
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from kanbansync.adapters.base import TrackerAdapter, TrackerError
from kanbansync.store.task_store import IMAGES_DIR

LOG = logging.getLogger("kanbansync.services.images")

IMAGE_TOKEN_RE = re.compile(r"\[IMAGE:([^\]\n]+)\]")
MARKDOWN_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\((https?://[^\s)]+)\)")
HTML_IMAGE_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"'][^>]*>", re.IGNORECASE)
_HTML_ALT_RE = re.compile(r"alt=[\"']([^\"']*)[\"']", re.IGNORECASE)
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp")


def _short_hash(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()[:8]


class ImageUploader:
    """Expands ``[IMAGE:path]`` tokens into uploaded Markdown images."""

    def __init__(
        self,
        adapter: TrackerAdapter,
        repo: str,
        tasks_root: Path,
        branch: str = "main",
        upload_dir: str = "images/uploads",
    ) -> None:
        self._adapter = adapter
        self._repo = repo
        self._tasks_root = Path(tasks_root)
        self._branch = branch
        self._upload_dir = upload_dir.strip("/")

    def _resolve(self, ref: str, base_dir: Path) -> Path | None:
        """Locate the referenced file: absolute, next to the task file, or
        under the tasks root (where pulled images live)."""
        candidate = Path(ref.strip())
        if candidate.is_absolute():
            return candidate if candidate.is_file() else None
        for root in (Path(base_dir), self._tasks_root):
            path = root / candidate
            if path.is_file():
                return path
        return None

    def _repo_path(self, path: Path, content: bytes) -> str:
        name = f"{path.stem}_{_short_hash(content)}{path.suffix}"
        return str(PurePosixPath(self._upload_dir) / name)

    def _substitute(self, text: str, base_dir: Path, upload: bool) -> str:
        def _replace(match: re.Match) -> str:
            token = match.group(0)
            path = self._resolve(match.group(1), base_dir)
            if path is None:
                LOG.warning("Image %s not found; leaving token as is", match.group(1))
                return token
            try:
                content = path.read_bytes()
            except OSError as e:
                LOG.warning("Cannot read image %s: %s", path, e)
                return token
            repo_path = self._repo_path(path, content)
            try:
                if upload:
                    url = self._adapter.upload_file(
                        self._repo, repo_path, content, self._branch, f"Upload image {path.name}"
                    )
                else:
                    url = self._adapter.raw_file_url(self._repo, repo_path, self._branch)
            except (TrackerError, NotImplementedError) as e:
                LOG.warning("Image %s not uploaded: %s", path.name, e)
                return token
            return f"![{path.stem}]({url})"

        return IMAGE_TOKEN_RE.sub(_replace, text)

    def planned(self, text: str, base_dir: Path) -> str:
        """Text as expand() would produce it, without uploading anything."""
        if "[IMAGE:" not in text:
            return text
        return self._substitute(text, base_dir, upload=False)

    def expand(self, text: str, base_dir: Path) -> str:
        """Upload referenced images and substitute their URLs.

        A missing file or failed upload leaves the token verbatim.
        """
        if "[IMAGE:" not in text:
            return text
        return self._substitute(text, base_dir, upload=True)


class ImageDownloader:
    """Replaces remote images in issue text with local ``[IMAGE:...]`` tokens."""

    def __init__(
        self,
        adapter: TrackerAdapter,
        tasks_root: Path,
        timeout: int = 30,
        upload_dir: str = "images/uploads",
    ) -> None:
        self._adapter = adapter
        self._tasks_root = Path(tasks_root)
        self._timeout = timeout
        self._upload_dir = upload_dir.strip("/")

    @property
    def images_dir(self) -> Path:
        return self._tasks_root / IMAGES_DIR

    def _is_own_upload(self, url: str) -> bool:
        parsed = urlparse(url)
        return parsed.hostname == "raw.githubusercontent.com" and f"/{self._upload_dir}/" in parsed.path

    @staticmethod
    def local_name(url: str) -> str:
        """Deterministic file name for a remote image URL."""
        digest = _short_hash(url.encode("utf-8"))
        name = PurePosixPath(urlparse(url).path).name
        suffix = PurePosixPath(name).suffix
        if not name or suffix.lower() not in IMAGE_EXTENSIONS:
            return f"github_image_{digest}.png"
        return f"{PurePosixPath(name).stem}_{digest}{suffix}"

    def fetch(self, url: str) -> str | None:
        """Download url into the images folder; return the token path or
        None."""
        if self._is_own_upload(url):
            return f"{IMAGES_DIR}/{PurePosixPath(urlparse(url).path).name}"
        name = self.local_name(url)
        target = self.images_dir / name
        if target.exists():
            LOG.debug("Image %s already downloaded", name)
            return f"{IMAGES_DIR}/{name}"
        try:
            content = self._adapter.download_file(url, timeout=self._timeout)
        except TrackerError as e:
            LOG.warning("Failed to download image %s: %s", url, e)
            return None
        self.images_dir.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        LOG.info("Downloaded image %s", name)
        return f"{IMAGES_DIR}/{name}"

    def localize(self, text: str) -> str:
        """Swap Markdown and HTML images for ``alt: [IMAGE:Images/<file>]``.

        Images that cannot be downloaded keep their original reference.
        """
        if not text:
            return ""

        def _markdown(match: re.Match) -> str:
            ref = self.fetch(match.group(2))
            if ref is None:
                return match.group(0)
            alt = match.group(1)
            return f"{alt}: [IMAGE:{ref}]" if alt else f"[IMAGE:{ref}]"

        def _html(match: re.Match) -> str:
            ref = self.fetch(match.group(1))
            if ref is None:
                return match.group(0)
            alt_match = _HTML_ALT_RE.search(match.group(0))
            alt = alt_match.group(1) if alt_match else "Image"
            return f"{alt}: [IMAGE:{ref}]" if alt else f"[IMAGE:{ref}]"

        text = MARKDOWN_IMAGE_RE.sub(_markdown, text)
        return HTML_IMAGE_RE.sub(_html, text)
