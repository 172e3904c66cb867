"""
Publisher - выкладка сгенерированной документации в pages-ветку

The destination branch is cloned into a scratch directory, synced with the
output directory (mirror or merge), committed and pushed in one go. The
remote branch only moves when the single push succeeds, so a failure at any
point leaves the previously published state untouched.
"""

import hashlib
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from core.exceptions import PublishAuthError, PublishError
from core.logging_config import mask_secrets
from .runner import CommandRunner, CommandResult


logger = logging.getLogger(__name__)


GIT_DIR = ".git"
NOJEKYLL = ".nojekyll"
CNAME = "CNAME"

AUTH_MARKERS = (
    "authentication",
    "permission",
    "could not read username",
    "403",
    "401",
    "invalid username or password",
)


def _relative_files(root: Path, skip: Iterable[str] = (GIT_DIR,)) -> List[Path]:
    """All files under root as sorted relative paths, skipping top-level names"""
    skip = set(skip)
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root)
        if rel_dir == Path('.'):
            dirnames[:] = [d for d in dirnames if d not in skip]
            filenames = [f for f in filenames if f not in skip]
        dirnames.sort()
        for name in filenames:
            files.append(rel_dir / name)
    return sorted(files, key=lambda p: p.as_posix())


def tree_digest(root: Path) -> str:
    """SHA-256 over relative paths and contents of every file under root"""
    digest = hashlib.sha256()
    for rel in _relative_files(Path(root), skip=()):
        digest.update(rel.as_posix().encode('utf-8'))
        digest.update(b"\0")
        with open(Path(root) / rel, 'rb') as f:
            for chunk in iter(lambda: f.read(65536), b""):
                digest.update(chunk)
        digest.update(b"\0")
    return digest.hexdigest()


def sync_tree(
    source: Path,
    dest: Path,
    keep_files: bool = False,
    exclude: Iterable[str] = ()
) -> List[Path]:
    """Make dest reflect source

    Args:
        source: generated output directory
        dest: working tree of the pages branch
        keep_files: False - mirror (extras in dest are removed),
            True - merge (extras in dest are kept)
        exclude: top-level names in source that are not published

    Returns:
        Relative paths removed from dest
    """
    source = Path(source)
    dest = Path(dest)
    exclude = set(exclude)
    dest.mkdir(parents=True, exist_ok=True)

    removed: List[Path] = []
    if not keep_files:
        wanted = set(_relative_files(source, skip=exclude | {GIT_DIR}))
        for rel in _relative_files(dest):
            if rel not in wanted:
                (dest / rel).unlink()
                removed.append(rel)
        # Пустые директории после удаления
        for dirpath, dirnames, filenames in os.walk(dest, topdown=False):
            path = Path(dirpath)
            if path == dest or GIT_DIR in path.relative_to(dest).parts:
                continue
            if not any(path.iterdir()):
                path.rmdir()

    for rel in _relative_files(source, skip=exclude | {GIT_DIR}):
        target = dest / rel
        # A file replacing a directory (or the reverse) drops what was there
        if target.is_dir():
            removed.extend(rel / sub for sub in _relative_files(target))
            shutil.rmtree(target)
        for parent in reversed(rel.parents[:-1]):
            if (dest / parent).is_file():
                (dest / parent).unlink()
                removed.append(parent)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source / rel, target)

    return removed


@dataclass
class PublishResult:
    """Результат публикации"""
    published: bool
    message: str
    commit: Optional[str] = None
    removed: List[str] = field(default_factory=list)


class Publisher:
    """Публикация директории в ветку репозитория"""

    def __init__(
        self,
        runner: CommandRunner,
        repository: str,
        token: Optional[str],
        branch: str = "gh-pages",
        server_url: str = "https://github.com",
        keep_files: bool = False,
        enable_jekyll: bool = False,
        cname: Optional[str] = None,
        exclude_assets: Iterable[str] = (".github",),
        force_orphan: bool = False,
        allow_empty_commit: bool = False,
        user_name: str = "github-actions[bot]",
        user_email: str = "41898282+github-actions[bot]@users.noreply.github.com",
        push_timeout: int = 300
    ):
        self.runner = runner
        self.repository = repository
        self.token = token
        self.branch = branch
        self.server_url = server_url
        self.keep_files = keep_files
        self.enable_jekyll = enable_jekyll
        self.cname = cname
        self.exclude_assets = list(exclude_assets)
        self.force_orphan = force_orphan
        self.allow_empty_commit = allow_empty_commit
        self.user_name = user_name
        self.user_email = user_email
        self.push_timeout = push_timeout

    def _url(self, credential: str = "") -> str:
        scheme, _, host = self.server_url.rpartition("://")
        host = host.rstrip('/')
        return f"{scheme or 'https'}://{credential}{host}/{self.repository}.git"

    @property
    def remote_url(self) -> str:
        """Push URL with the token embedded"""
        return self._url(f"x-access-token:{self.token}@")

    @property
    def public_url(self) -> str:
        return self._url()

    def _git(self, *args, cwd: Path, **kwargs) -> CommandResult:
        return self.runner.run(['git', *args], cwd=cwd, **kwargs)

    def _fail(self, action: str, result: CommandResult) -> PublishError:
        stderr = mask_secrets(result.stderr.strip())
        lowered = stderr.lower()
        if any(marker in lowered for marker in AUTH_MARKERS):
            return PublishAuthError(f"{action}: authentication failed: {stderr}")
        return PublishError(f"{action} failed: {stderr}")

    def publish(self, output_dir: Path, commit_message: str) -> PublishResult:
        """Опубликовать output_dir

        Raises:
            PublishAuthError: If the credential is missing or rejected
            PublishError: On any other git failure
        """
        output_dir = Path(output_dir)
        if not self.token:
            raise PublishAuthError("No publish credential: set PUBLISH_TOKEN")
        if not self.repository:
            raise PublishError("No destination repository configured")
        if not output_dir.is_dir():
            raise PublishError(f"Output directory does not exist: {output_dir}")

        with tempfile.TemporaryDirectory(prefix="docdeploy-publish-") as scratch:
            work = Path(scratch) / "site"
            self._prepare_worktree(work)

            removed = sync_tree(
                output_dir,
                work,
                keep_files=self.keep_files and not self.force_orphan,
                exclude=self.exclude_assets
            )
            regenerated = set()
            if not self.enable_jekyll:
                (work / NOJEKYLL).touch()
                regenerated.add(Path(NOJEKYLL))
            if self.cname:
                (work / CNAME).write_text(self.cname + "\n", encoding='utf-8')
                regenerated.add(Path(CNAME))
            removed = [p for p in removed if p not in regenerated]

            return self._commit_and_push(work, commit_message, removed)

    def _prepare_worktree(self, work: Path):
        """Clone the pages branch, or start an orphan one if it does not exist"""
        if not self.force_orphan:
            result = self._git(
                'clone', '--depth=1', '--single-branch', '--branch', self.branch,
                self.remote_url, str(work),
                cwd=work.parent, mutating=False
            )
            if result.success:
                return
            stderr = result.stderr.lower()
            if "not found in upstream" not in stderr and "remote branch" not in stderr:
                raise self._fail(f"Cloning {self.branch}", result)
            logger.info(f"Branch {self.branch} does not exist yet, creating it")
            shutil.rmtree(work, ignore_errors=True)

        work.mkdir(parents=True)
        for args in (
            ('init',),
            ('checkout', '--orphan', self.branch),
            ('remote', 'add', 'origin', self.remote_url),
        ):
            result = self._git(*args, cwd=work, mutating=False)
            if not result.success:
                raise self._fail(f"git {args[0]}", result)

    def _commit_and_push(self, work: Path, commit_message: str, removed: List[Path]) -> PublishResult:
        for args in (
            ('config', 'user.name', self.user_name),
            ('config', 'user.email', self.user_email),
            ('add', '--all'),
        ):
            result = self._git(*args, cwd=work, mutating=False)
            if not result.success:
                raise self._fail(f"git {args[0]}", result)

        status = self._git('status', '--porcelain', cwd=work, mutating=False)
        if not status.success:
            raise self._fail("git status", status)
        has_changes = bool(status.stdout.strip())
        if not has_changes and not self.allow_empty_commit and not self.force_orphan:
            logger.info("Published content unchanged, nothing to push")
            return PublishResult(published=False, message="No changes to publish")

        commit_args = ['commit', '-m', commit_message]
        if not has_changes:
            commit_args.insert(1, '--allow-empty')
        result = self._git(*commit_args, cwd=work, mutating=False)
        if not result.success:
            raise self._fail("git commit", result)

        head = self._git('rev-parse', 'HEAD', cwd=work, mutating=False)
        commit = head.stdout.strip() or None

        push_args = ['push', 'origin', f'HEAD:refs/heads/{self.branch}']
        if self.force_orphan:
            push_args.insert(1, '--force')
        result = self._git(*push_args, cwd=work, timeout=self.push_timeout)
        if not result.success:
            raise self._fail(f"Pushing to {self.branch}", result)

        if result.skipped:
            return PublishResult(
                published=False,
                message=f"[DRY RUN] Would push {commit_message!r} to {self.branch}",
                commit=commit,
                removed=[p.as_posix() for p in removed]
            )

        logger.info(f"Published {commit} to {self.repository}@{self.branch}")
        return PublishResult(
            published=True,
            message=f"Pushed to {self.branch}",
            commit=commit,
            removed=[p.as_posix() for p in removed]
        )
