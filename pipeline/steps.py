"""
Deploy steps: fetch -> toolchain -> generate -> publish
"""

import logging
from typing import List

from core.exceptions import (
    CommandError,
    FetchError,
    GenerationError,
    PublishAuthError,
    PublishError,
    ToolchainError,
)
from core.logging_config import mask_secrets
from .publisher import Publisher, tree_digest
from .step import PipelineContext, Step, StepResult


logger = logging.getLogger(__name__)


class FetchSourceStep(Step):
    """Checkout of the triggering commit into the workspace

    The commit is fetched by URL, so an existing origin remote is never
    rewritten. A checkout docdeploy did not create is only forced when it
    has no local changes.
    """

    name = "fetch"
    description = "Fetch source"

    MARKER = "docdeploy-workspace"

    def _fetch_commands(self, ctx: PipelineContext, url: str) -> List[List[str]]:
        depth = ctx.config.fetch_depth
        fetch = ['git', 'fetch', '--no-tags', url, ctx.event.sha]
        if depth > 0:
            fetch.insert(3, f'--depth={depth}')
        return [
            fetch,
            ['git', 'checkout', '--force', '--detach', ctx.event.sha],
        ]

    def plan(self, ctx: PipelineContext) -> List[List[str]]:
        return [
            ['git', 'init', '-q'],
            *self._fetch_commands(ctx, ctx.event.repository_url),
        ]

    def _existing_head(self, ctx: PipelineContext) -> str:
        if not (ctx.source_dir / '.git').exists():
            return ""
        result = ctx.runner.run(['git', 'rev-parse', 'HEAD'], cwd=ctx.source_dir, mutating=False)
        return result.stdout.strip() if result.success else ""

    def _ensure_clean(self, ctx: PipelineContext):
        """Refuse to overwrite local changes in a checkout we did not create"""
        if (ctx.source_dir / '.git' / self.MARKER).exists():
            return
        result = ctx.runner.run(
            ['git', 'status', '--porcelain', '--untracked-files=no'],
            cwd=ctx.source_dir,
            mutating=False
        )
        if not result.success:
            raise FetchError(f"Cannot inspect existing checkout in {ctx.source_dir}: {result.stderr.strip()}")
        if result.stdout.strip():
            raise FetchError(
                f"Workspace {ctx.source_dir} has uncommitted changes, "
                f"refusing to check out {ctx.event.sha[:12]} over them"
            )

    def run(self, ctx: PipelineContext) -> StepResult:
        src = ctx.source_dir
        sha = ctx.event.sha

        if ctx.config.use_local_checkout:
            head = self._existing_head(ctx)
            if head and (not sha or head == sha):
                if not sha:
                    logger.warning(f"No commit sha in event, deploying local HEAD {head}")
                return StepResult(
                    name=self.name,
                    message=f"Using existing checkout at {head[:12]}",
                    details={"commit": head}
                )

        if not sha:
            raise FetchError("Push event has no commit sha and no local checkout is usable")
        if not ctx.event.repository:
            raise FetchError("Push event has no repository")

        existing = (src / '.git').exists()
        if existing:
            self._ensure_clean(ctx)

        src.mkdir(parents=True, exist_ok=True)
        runner = ctx.runner
        url = ctx.event.authenticated_url(ctx.config.publish_token)
        commands = []
        try:
            if not existing:
                commands.append(['git', 'init', '-q'])
                runner.check(commands[-1], cwd=src)
                if (src / '.git').is_dir():
                    (src / '.git' / self.MARKER).touch()

            for args in self._fetch_commands(ctx, url):
                commands.append(args)
                runner.check(args, cwd=src)
        except CommandError as e:
            raise FetchError(f"Checkout of {ctx.event.repository}@{sha[:12]} failed: {e}") from e

        return StepResult(
            name=self.name,
            message=f"Checked out {ctx.event.repository}@{sha[:12]}",
            commands=[[mask_secrets(a) for a in args] for args in commands],
            details={"commit": sha}
        )


class InstallToolchainStep(Step):
    """rustup toolchain install + override"""

    name = "toolchain"
    description = "Install toolchain"

    def plan(self, ctx: PipelineContext) -> List[List[str]]:
        config = ctx.config
        commands = [[
            'rustup', 'toolchain', 'install', config.toolchain,
            '--profile', config.toolchain_profile,
        ]]
        if config.toolchain_override:
            commands.append(['rustup', 'override', 'set', config.toolchain])
        return commands

    def run(self, ctx: PipelineContext) -> StepResult:
        commands = self.plan(ctx)
        try:
            for args in commands:
                ctx.runner.check(args, cwd=ctx.source_dir)
        except CommandError as e:
            raise ToolchainError(f"Installing toolchain {ctx.config.toolchain} failed: {e}") from e

        details = {"toolchain": ctx.config.toolchain, "profile": ctx.config.toolchain_profile}
        version = ctx.runner.run(
            ['rustup', 'run', ctx.config.toolchain, 'rustc', '--version'],
            cwd=ctx.source_dir,
            mutating=False
        )
        if version.success:
            details["version"] = version.stdout.strip()

        return StepResult(
            name=self.name,
            message=f"Toolchain {ctx.config.toolchain} ({ctx.config.toolchain_profile}) ready",
            commands=commands,
            details=details
        )


class GenerateDocsStep(Step):
    """cargo doc --no-deps into target/doc"""

    name = "generate"
    description = "Generate docs"

    def plan(self, ctx: PipelineContext) -> List[List[str]]:
        config = ctx.config
        args = ['cargo']
        if not config.toolchain_override:
            args.append(f'+{config.toolchain}')
        args.append('doc')
        if config.doc_no_deps:
            args.append('--no-deps')
        args.extend(config.doc_args)
        return [args]

    def run(self, ctx: PipelineContext) -> StepResult:
        commands = self.plan(ctx)
        try:
            for args in commands:
                ctx.runner.check(args, cwd=ctx.source_dir)
        except CommandError as e:
            raise GenerationError(f"Documentation build failed: {e}") from e

        output = ctx.output_dir
        if ctx.runner.dry_run:
            return StepResult(
                name=self.name,
                message=f"[DRY RUN] Would generate docs into {ctx.config.publish_dir}",
                commands=commands
            )

        if not output.is_dir():
            raise GenerationError(f"Documentation output missing: {output}")
        files = [p for p in output.rglob('*') if p.is_file()]
        if not files:
            raise GenerationError(f"Documentation output is empty: {output}")

        digest = tree_digest(output)
        logger.info(f"Generated {len(files)} files, digest {digest[:16]}")
        return StepResult(
            name=self.name,
            message=f"Generated {len(files)} files in {ctx.config.publish_dir}",
            commands=commands,
            details={"files": len(files), "digest": digest}
        )


class PublishStep(Step):
    """Upload of the output directory to the pages branch"""

    name = "publish"
    description = "Publish"

    def _publisher(self, ctx: PipelineContext) -> Publisher:
        config = ctx.config
        return Publisher(
            runner=ctx.runner,
            repository=config.external_repository or ctx.event.repository,
            token=config.publish_token,
            branch=config.publish_branch,
            server_url=ctx.event.server_url or config.server_url,
            keep_files=config.keep_files,
            enable_jekyll=config.enable_jekyll,
            cname=config.cname,
            exclude_assets=config.exclude_assets,
            force_orphan=config.force_orphan,
            allow_empty_commit=config.allow_empty_commit,
            user_name=config.user_name,
            user_email=config.user_email,
            push_timeout=config.push_timeout
        )

    def commit_message(self, ctx: PipelineContext) -> str:
        if ctx.config.commit_message:
            return f"{ctx.config.commit_message} {ctx.event.sha}".strip()
        return f"deploy: {ctx.event.sha}".strip()

    def plan(self, ctx: PipelineContext) -> List[List[str]]:
        publisher = self._publisher(ctx)
        push = ['git', 'push', 'origin', f'HEAD:refs/heads/{publisher.branch}']
        if publisher.force_orphan:
            push.insert(2, '--force')
        mode = "mirror" if not ctx.config.keep_files else "merge"
        return [
            ['git', 'clone', '--depth=1', '--branch', publisher.branch, publisher.public_url],
            ['sync', str(ctx.output_dir), f'({mode})'],
            ['git', 'commit', '-m', self.commit_message(ctx)],
            push,
        ]

    def run(self, ctx: PipelineContext) -> StepResult:
        publisher = self._publisher(ctx)
        if not publisher.token:
            raise PublishAuthError("No publish credential: set PUBLISH_TOKEN")

        if ctx.runner.dry_run and not ctx.output_dir.is_dir():
            return StepResult(
                name=self.name,
                message=f"[DRY RUN] Would publish {ctx.config.publish_dir} to {publisher.branch}"
            )

        try:
            result = publisher.publish(ctx.output_dir, self.commit_message(ctx))
        except CommandError as e:
            raise PublishError(str(e)) from e

        return StepResult(
            name=self.name,
            message=result.message,
            details={
                "published": result.published,
                "commit": result.commit,
                "removed": result.removed,
                "keep_files": ctx.config.keep_files,
            }
        )


def default_steps() -> List[Step]:
    """Порядок шагов фиксирован"""
    return [
        FetchSourceStep(),
        InstallToolchainStep(),
        GenerateDocsStep(),
        PublishStep(),
    ]
