"""Tests for shell quoting and repository URL normalization."""

from __future__ import annotations

import shlex

import pytest

from hostbridge.provisioning.shell import shell_quote
from hostbridge.provisioning.urls import normalize_repo_url


class TestShellQuote:
    @pytest.mark.parametrize(
        "value",
        [
            "plain",
            "Jane Doe",
            "O'Brien",
            "''",
            "$(rm -rf ~)",
            "a;b|c&d",
            "back`tick`",
            "",
        ],
    )
    def test_shell_reads_back_the_original(self, value: str) -> None:
        assert shlex.split(f"echo {shell_quote(value)}") == ["echo", value]

    def test_embedded_quote_form(self) -> None:
        assert shell_quote("it's") == "'it'\\''s'"

    def test_non_string_values(self) -> None:
        assert shell_quote(42) == "'42'"


class TestNormalizeRepoUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://github.com/user/repo", "git@github.com:user/repo.git"),
            ("https://github.com/user/repo.git", "git@github.com:user/repo.git"),
            ("https://github.com/user/repo/", "git@github.com:user/repo.git"),
            ("http://github.com/user/repo", "git@github.com:user/repo.git"),
            ("https://gitlab.example.com/team/app", "git@gitlab.example.com:team/app.git"),
            ("git@github.com:user/repo", "git@github.com:user/repo.git"),
            ("git@github.com:user/repo.git", "git@github.com:user/repo.git"),
            ("ssh://git@github.com/user/repo.git/", "ssh://git@github.com/user/repo.git"),
            ("/srv/mirrors/repo.git", "/srv/mirrors/repo.git"),
        ],
    )
    def test_forms(self, url: str, expected: str) -> None:
        assert normalize_repo_url(url) == expected

    def test_idempotent(self) -> None:
        once = normalize_repo_url("https://github.com/user/repo")
        assert normalize_repo_url(once) == once
