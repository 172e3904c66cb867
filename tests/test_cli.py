"""
CLI tests via click's CliRunner
"""

import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from cli.main import cli


@pytest.fixture
def clean_env():
    """No GITHUB_* or DOCDEPLOY_* leakage from the host"""
    with patch.dict(os.environ, {}, clear=True):
        yield


def invoke(args, env=None):
    with patch.dict(os.environ, env or {}):
        return CliRunner().invoke(cli, args, obj={})


class TestRunCommand:

    def test_other_branch_exits_zero(self, clean_env, tmp_path):
        result = invoke(['run', '--ref', 'feature', '--sha', 'abc', '-r', 'octo/crate',
                         '--workspace', str(tmp_path)])
        assert result.exit_code == 0
        assert "does not trigger" in result.output
        assert "SKIPPED" in result.output

    def test_dry_run_exits_zero(self, clean_env, tmp_path):
        result = invoke(
            ['run', '--ref', 'main', '--sha', 'abc', '-r', 'octo/crate',
             '--workspace', str(tmp_path), '--dry-run'],
            env={'PUBLISH_TOKEN': 'tok-cli-1'}
        )
        assert result.exit_code == 0, result.output
        assert "DRY RUN" in result.output
        assert "PUBLISHED" in result.output

    def test_missing_token_exits_one(self, clean_env, tmp_path):
        result = invoke(['run', '--ref', 'main', '--sha', 'abc', '-r', 'octo/crate',
                         '--workspace', str(tmp_path), '--dry-run'])
        assert result.exit_code == 1
        assert "publish failed" in result.output

    def test_ref_from_environment(self, clean_env, tmp_path):
        result = invoke(['run', '--workspace', str(tmp_path)],
                        env={'GITHUB_REF': 'refs/tags/v1.0', 'GITHUB_SHA': 'abc'})
        assert result.exit_code == 0
        assert "refs/tags/v1.0" in result.output


class TestPlanCommand:

    def test_plan_on_main(self, clean_env):
        result = invoke(['plan', '--ref', 'main', '--sha', 'abc', '-r', 'octo/crate'])
        assert result.exit_code == 0
        assert "rustup toolchain install stable --profile minimal" in result.output
        assert "cargo doc --no-deps" in result.output

    def test_plan_other_branch(self, clean_env):
        result = invoke(['plan', '--ref', 'dev'])
        assert result.exit_code == 0
        assert "does not trigger" in result.output


class TestCheckCommand:

    def test_all_good(self, clean_env):
        with patch('core.config.shutil.which', return_value='/usr/bin/tool'):
            result = invoke(['check'], env={'PUBLISH_TOKEN': 'tok-cli-2'})
        assert result.exit_code == 0
        assert "All checks passed" in result.output

    def test_missing_token(self, clean_env):
        with patch('core.config.shutil.which', return_value='/usr/bin/tool'):
            result = invoke(['check'])
        assert result.exit_code == 1
        assert "PUBLISH_TOKEN" in result.output


class TestConfigErrors:

    def test_invalid_yaml_exits_one(self, clean_env, tmp_path):
        deploy = tmp_path / "deploy.yaml"
        deploy.write_text("branches: [main\n")
        result = invoke(['-f', str(deploy), 'plan', '--ref', 'main'])
        assert result.exit_code == 1
        assert "Error loading config" in result.output
