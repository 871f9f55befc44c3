from pathlib import Path

from devbrain.sources.base import SourceFetcher, SourceFile
from devbrain.sources.git import GitRepositorySource, is_remote
from devbrain.sources.local import SUPPORTED_EXTENSIONS, LocalDirectorySource


def fetcher_for(location: str, exclude=(), recursive: bool = True) -> SourceFetcher:
    """Pick the fetcher for a CLI ``--source`` value.

    URLs and local directories containing ``.git`` are git sources; anything
    else is read straight from the filesystem.
    """
    if is_remote(location) or (Path(location).expanduser() / ".git").exists():
        return GitRepositorySource(location, exclude=exclude)
    return LocalDirectorySource(location, exclude=exclude, recursive=recursive)


__all__ = [
    "GitRepositorySource",
    "LocalDirectorySource",
    "SUPPORTED_EXTENSIONS",
    "SourceFetcher",
    "SourceFile",
    "fetcher_for",
]
