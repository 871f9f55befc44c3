"""Git repository source: tracked files of a local checkout or a remote clone.

Security requirements:
- shell=False always (no command injection).
- URL scheme whitelist: https://, http://, git@ only.
- Temp dirs created with mode=0o700; removed when listing ends, plus atexit.
- GIT_TOKEN injected into URL in-memory; never logged, never in error output.
"""

from __future__ import annotations

import atexit
import fnmatch
import os
import re
import shutil
import subprocess
import tempfile
import urllib.parse
from collections.abc import Iterator, Sequence
from pathlib import Path, PurePosixPath

import structlog

from devbrain.db.models import SourceType
from devbrain.errors import FetchError
from devbrain.sources.base import SourceFetcher, SourceFile
from devbrain.sources.local import SUPPORTED_EXTENSIONS

log = structlog.get_logger()

# URL schemes that are allowed for remote git repositories.
_ALLOWED_SCHEMES = {"https", "http"}
_GIT_SSH_PREFIX = "git@"

_CRED_RE = re.compile(r"(https?://)([^@/]+@)", re.IGNORECASE)


def sanitise_url(url: str) -> str:
    """Remove embedded credentials from a URL for safe logging / error messages."""
    return _CRED_RE.sub(r"\1***@", url)


def is_remote(location: str) -> bool:
    return "://" in location or location.startswith(_GIT_SSH_PREFIX)


def validate_url(url: str) -> None:
    """Raise FetchError if *url* uses a disallowed scheme."""
    if url.startswith(_GIT_SSH_PREFIX):
        return
    scheme = urllib.parse.urlparse(url).scheme
    if scheme not in _ALLOWED_SCHEMES:
        raise FetchError(
            f"Unsupported URL scheme '{scheme}'. Allowed: https://, http://, git@"
        )


def inject_token(url: str) -> str:
    """Inject GIT_TOKEN into an HTTPS/HTTP URL for private repo auth.

    The modified URL is only used for the git clone call.
    """
    token = os.environ.get("GIT_TOKEN", "")
    if not token or not url.startswith(("https://", "http://")):
        return url
    parsed = urllib.parse.urlparse(url)
    return parsed._replace(netloc=f"{token}@{parsed.netloc}").geturl()


class GitRepositorySource(SourceFetcher):
    """Index the files tracked by a git repository.

    Accepts a local checkout (directory containing ``.git``) or a remote URL
    (``https://``, ``http://``, ``git@``). Remote repositories are shallow
    cloned into a private temp dir that lives as long as the ``list_files()``
    iterator, so each file must be read before advancing.

    The blob sha from the index is reported as ``remote_hash``. Document keys
    are ``<url>/blob/HEAD/<path>`` for remotes and the absolute file path for
    local checkouts.
    """

    source_type = SourceType.REPOSITORY

    def __init__(self, location: str, exclude: Sequence[str] = ()) -> None:
        self.location = location
        self.exclude = list(exclude)
        self.remote = is_remote(location)
        if self.remote:
            validate_url(location)

    @property
    def name(self) -> str:
        return sanitise_url(self.location)

    def list_files(self) -> Iterator[SourceFile]:
        if not self.remote:
            repo_path = Path(self.location).expanduser().resolve()
            if not repo_path.is_dir():
                raise FetchError(f"Repository path does not exist: {self.location}")
            if not (repo_path / ".git").exists():
                raise FetchError(f"Not a git repository: {self.location}")
            yield from self._files(repo_path, repo_path.as_posix())
            return

        tmpdir = tempfile.mkdtemp(prefix="devbrain-")
        os.chmod(tmpdir, 0o700)
        atexit.register(_cleanup_dir, tmpdir)
        try:
            _clone(inject_token(self.location), tmpdir, self.location)
            yield from self._files(Path(tmpdir), _browse_base(self.location))
        finally:
            _cleanup_dir(tmpdir)

    def _files(self, repo_path: Path, url_base: str) -> Iterator[SourceFile]:
        for blob_sha, relative in _ls_files(repo_path):
            if not self._wanted(relative):
                continue
            file_path = repo_path / relative
            yield SourceFile(
                path=relative,
                source_url=f"{url_base}/{relative}",
                remote_hash=blob_sha,
                loader=lambda p=file_path: p.read_text(encoding="utf-8"),
            )

    def _wanted(self, relative: str) -> bool:
        pure = PurePosixPath(relative)
        if pure.suffix.lower() not in SUPPORTED_EXTENSIONS:
            return False
        return not any(
            fnmatch.fnmatch(part, pat) for part in pure.parts for pat in self.exclude
        )


# ------------------------------------------------------------------
# git plumbing
# ------------------------------------------------------------------


def _browse_base(url: str) -> str:
    base = url.rstrip("/")
    if base.endswith(".git"):
        base = base[: -len(".git")]
    return f"{base}/blob/HEAD"


def _clone(clone_url: str, tmpdir: str, original_url: str) -> None:
    """Run a shallow git clone (shell=False).

    *original_url* (without credentials) is used in error messages.
    """
    try:
        subprocess.run(
            ["git", "clone", "--depth", "1", "--", clone_url, tmpdir],
            shell=False,
            check=True,
            capture_output=True,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        stderr_safe = sanitise_url(getattr(exc, "stderr", "") or "")
        raise FetchError(
            f"git clone failed for {sanitise_url(original_url)}: {stderr_safe}"
        ) from None
    log.info("Cloned repository", url=sanitise_url(original_url))


def _ls_files(repo_path: Path) -> list[tuple[str, str]]:
    """Return (blob sha, path) for every tracked file, sorted by path."""
    try:
        result = subprocess.run(
            ["git", "ls-files", "-s", "-z"],
            cwd=repo_path,
            shell=False,
            check=True,
            capture_output=True,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise FetchError(f"git ls-files failed in {repo_path}: {exc}") from exc

    entries: list[tuple[str, str]] = []
    for record in result.stdout.split("\0"):
        if not record:
            continue
        # "<mode> <sha> <stage>\t<path>"
        info, _, path = record.partition("\t")
        fields = info.split()
        if len(fields) != 3 or fields[0] == "160000":  # submodule
            continue
        entries.append((fields[1], path))
    return sorted(entries, key=lambda e: e[1])


def _cleanup_dir(path: str) -> None:
    shutil.rmtree(path, ignore_errors=True)
