"""Unit tests for ipt CLI commands."""

import json

import pytest
import typer
from unittest.mock import Mock, patch
from typer.testing import CliRunner

from ipt import __version__
from ipt.cli import app
from ipt.commands import handle_error
from ipt.core.exceptions import FirewallError, UtilityError
from ipt.services.parser import parse_rules
from ipt.services.version import UtilityCapabilities


runner = CliRunner()


def make_service():
    """Create a mocked (ctx, iptables) pair."""
    mock_ctx = Mock()
    mock_ctx.console = Mock()
    mock_iptables = Mock()
    mock_iptables.binary = "iptables"
    return mock_ctx, mock_iptables


class TestRootApp:
    """Tests for the root application."""

    def test_version_option(self):
        """--version should print the package version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        """No arguments should show help."""
        result = runner.invoke(app, [])
        assert "rule" in result.output
        assert "policy" in result.output


class TestHandleError:
    """Tests for handle_error."""

    def test_exits_with_error_code(self):
        """handle_error should exit with the exception's code."""
        with pytest.raises(typer.Exit) as exc:
            handle_error(FirewallError("Table not supported: foo", hint="Valid tables: filter"))
        assert exc.value.exit_code == 15


class TestRuleCommands:
    """Tests for 'ipt rule ...'."""

    @patch("ipt.commands.rules.get_service")
    def test_append(self, mock_get_service):
        """append should pass table, chain and rule text."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["rule", "append", "-t", "nat", "POSTROUTING", "--", "-o eth0 -j MASQUERADE"])

        assert result.exit_code == 0
        mock_iptables.append.assert_called_once_with("nat", "POSTROUTING", "-o eth0 -j MASQUERADE")
        mock_ctx.console.success.assert_called_once()

    @patch("ipt.commands.rules.get_service")
    def test_append_unique(self, mock_get_service):
        """--unique should call append_unique."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["rule", "append", "--unique", "INPUT", "--", "-j DROP"])

        assert result.exit_code == 0
        mock_iptables.append_unique.assert_called_once_with("filter", "INPUT", "-j DROP")
        mock_iptables.append.assert_not_called()

    @patch("ipt.commands.rules.get_service")
    def test_append_move(self, mock_get_service):
        """--move should call append_replace."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["rule", "append", "--move", "INPUT", "--", "-j DROP"])

        assert result.exit_code == 0
        mock_iptables.append_replace.assert_called_once_with("filter", "INPUT", "-j DROP")

    @patch("ipt.commands.rules.get_service")
    def test_append_dry_run_option(self, mock_get_service):
        """--dry-run and --ipv6 should reach get_service."""
        mock_get_service.return_value = make_service()

        runner.invoke(app, ["rule", "append", "-n", "-6", "INPUT", "--", "-j DROP"])

        kwargs = mock_get_service.call_args.kwargs
        assert kwargs["dry_run"] is True
        assert kwargs["ipv6"] is True

    @patch("ipt.commands.rules.get_service")
    def test_append_unique_exists(self, mock_get_service):
        """Duplicate rule should exit with the firewall error code."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.append_unique.side_effect = FirewallError("Rule already exists in filter/INPUT")
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["rule", "append", "-u", "INPUT", "--", "-j DROP"])

        assert result.exit_code == 15

    @patch("ipt.commands.rules.get_service")
    def test_insert_position(self, mock_get_service):
        """insert should pass the position."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["rule", "insert", "-p", "3", "INPUT", "--", "-j ACCEPT"])

        assert result.exit_code == 0
        mock_iptables.insert.assert_called_once_with("filter", "INPUT", "-j ACCEPT", 3)

    @patch("ipt.commands.rules.get_service")
    def test_insert_position_zero_rejected(self, mock_get_service):
        """Position 0 should be rejected by the CLI."""
        mock_get_service.return_value = make_service()
        result = runner.invoke(app, ["rule", "insert", "-p", "0", "INPUT", "--", "-j ACCEPT"])
        assert result.exit_code != 0
        mock_get_service.assert_not_called()

    @patch("ipt.commands.rules.get_service")
    def test_replace(self, mock_get_service):
        """replace should pass the position argument."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["rule", "replace", "INPUT", "2", "--", "-j DROP"])

        assert result.exit_code == 0
        mock_iptables.replace.assert_called_once_with("filter", "INPUT", "-j DROP", 2)

    @patch("ipt.commands.rules.get_service")
    def test_delete_all(self, mock_get_service):
        """delete-all should call delete_all."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.delete_all.return_value = 3
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["rule", "delete-all", "INPUT", "--", "-j DROP"])

        assert result.exit_code == 0
        mock_iptables.delete_all.assert_called_once_with("filter", "INPUT", "-j DROP")
        assert "3" in mock_ctx.console.success.call_args.args[0]

    @patch("ipt.commands.rules.get_service")
    def test_delete_failure(self, mock_get_service):
        """iptables failure should exit with the utility error code."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.delete.side_effect = UtilityError(
            "Command failed: iptables -t filter -D INPUT -j DROP",
            return_code=1,
            stderr="iptables: Bad rule (does a matching rule exist in that chain?).",
        )
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["rule", "delete", "INPUT", "--", "-j DROP"])

        assert result.exit_code == 11

    @pytest.mark.parametrize("found,code", [(True, 0), (False, 1)])
    @patch("ipt.commands.rules.get_service")
    def test_exists(self, mock_get_service, found, code):
        """exists should exit 0 when found and 1 otherwise."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.exists.return_value = found
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["rule", "exists", "INPUT", "--", "-j DROP"])

        assert result.exit_code == code


class TestChainCommands:
    """Tests for 'ipt chain ...'."""

    @patch("ipt.commands.chains.get_service")
    def test_new(self, mock_get_service):
        """new should create the chain."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["chain", "new", "-t", "nat", "MYCHAIN"])

        assert result.exit_code == 0
        mock_iptables.new_chain.assert_called_once_with("nat", "MYCHAIN")

    @patch("ipt.commands.chains.get_service")
    def test_rename(self, mock_get_service):
        """rename should pass both names."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["chain", "rename", "OLD", "NEW"])

        assert result.exit_code == 0
        mock_iptables.rename_chain.assert_called_once_with("filter", "OLD", "NEW")

    @patch("ipt.commands.chains.get_service")
    def test_delete_and_flush(self, mock_get_service):
        """delete and flush should call their verbs."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        runner.invoke(app, ["chain", "flush", "FOO"])
        runner.invoke(app, ["chain", "delete", "FOO"])

        mock_iptables.flush_chain.assert_called_once_with("filter", "FOO")
        mock_iptables.delete_chain.assert_called_once_with("filter", "FOO")

    @pytest.mark.parametrize("found,code", [(True, 0), (False, 1)])
    @patch("ipt.commands.chains.get_service")
    def test_exists(self, mock_get_service, found, code):
        """exists should exit 0 when found and 1 otherwise."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.exists_chain.return_value = found
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["chain", "exists", "FOO"])

        assert result.exit_code == code

    @patch("ipt.commands.chains.get_service")
    def test_list(self, mock_get_service):
        """list should mark built-in and user chains."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.chain_names.return_value = ["INPUT", "LOGGING"]
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["chain", "list"])

        assert result.exit_code == 0
        rows = mock_ctx.console.table.call_args.args[2]
        assert rows == [["INPUT", "built-in"], ["LOGGING", "user"]]

    @patch("ipt.commands.chains.get_service")
    def test_chains_alias(self, mock_get_service):
        """'ipt chains' should list like 'ipt chain list'."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.chain_names.return_value = ["PREROUTING"]
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["chains", "-t", "nat"])

        assert result.exit_code == 0
        mock_iptables.chain_names.assert_called_once_with("nat")


class TestPolicyCommands:
    """Tests for 'ipt policy ...'."""

    @patch("ipt.commands.policy.get_service")
    def test_get(self, mock_get_service):
        """get should print the policy."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.get_policy.return_value = "DROP"
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["policy", "get", "INPUT"])

        assert result.exit_code == 0
        mock_ctx.console.print.assert_called_once_with("DROP")

    @patch("ipt.commands.policy.get_service")
    def test_set_normalizes_case(self, mock_get_service):
        """set should upper-case the policy."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["policy", "set", "FORWARD", "drop"])

        assert result.exit_code == 0
        mock_iptables.set_policy.assert_called_once_with("filter", "FORWARD", "DROP")

    @patch("ipt.commands.policy.get_service")
    def test_set_invalid_policy(self, mock_get_service):
        """Unknown policy should fail before touching iptables."""
        result = runner.invoke(app, ["policy", "set", "INPUT", "REJECT"])

        assert result.exit_code == 1
        mock_get_service.assert_not_called()

    @patch("ipt.commands.policy.get_service")
    def test_set_user_chain(self, mock_get_service):
        """User chain should exit with the firewall error code."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.set_policy.side_effect = FirewallError(
            "Chain FOO is not a default chain in table filter"
        )
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["policy", "set", "FOO", "ACCEPT"])

        assert result.exit_code == 15


class TestListCommand:
    """Tests for 'ipt list'."""

    DUMP = "-P INPUT DROP\n-A INPUT ! -i eth0 -p tcp --dport 22 -j ACCEPT\n"

    @patch("ipt.cli.get_service")
    def test_table(self, mock_get_service):
        """list should render a table of records."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.list.return_value = parse_rules("filter", self.DUMP)
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        mock_iptables.list.assert_called_once_with("filter")
        rows = mock_ctx.console.table.call_args.args[2]
        assert rows[1][:9] == ["2", "Append", "INPUT", "! eth0", "", "tcp", "", "22", "ACCEPT"]

    @patch("ipt.cli.get_service")
    def test_chain(self, mock_get_service):
        """A chain argument should use list_chain."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.list_chain.return_value = []
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        runner.invoke(app, ["list", "-t", "nat", "PREROUTING"])

        mock_iptables.list_chain.assert_called_once_with("nat", "PREROUTING")

    @patch("ipt.cli.get_service")
    def test_raw(self, mock_get_service):
        """--raw should print dump lines."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.list.return_value = parse_rules("filter", self.DUMP)
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["list", "--raw"])

        assert result.exit_code == 0
        assert result.output.splitlines() == self.DUMP.splitlines()

    @patch("ipt.cli.get_service")
    def test_json(self, mock_get_service):
        """--json should print records as JSON."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.list.return_value = parse_rules("filter", self.DUMP)
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["list", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data[0]["archive"] == "Policy"
        assert data[1]["input_interface"] == {"negate": True, "value": "eth0"}
        assert data[1]["destination_port"] == "22"

    @patch("ipt.cli.get_service")
    def test_unknown_table(self, mock_get_service):
        """Unknown table should exit with the firewall error code."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.list.side_effect = FirewallError("Table not supported: bogus")
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["list", "-t", "bogus"])

        assert result.exit_code == 15


class TestFlushTableCommand:
    """Tests for 'ipt flush-table'."""

    @patch("ipt.cli.get_service")
    def test_flush_with_yes(self, mock_get_service):
        """--yes should skip the prompt."""
        mock_ctx, mock_iptables = make_service()
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["flush-table", "-t", "nat", "--yes"])

        assert result.exit_code == 0
        mock_iptables.flush_table.assert_called_once_with("nat")

    @patch("ipt.cli.get_service")
    def test_flush_declined(self, mock_get_service):
        """Declining the prompt should abort."""
        result = runner.invoke(app, ["flush-table"], input="n\n")

        assert result.exit_code != 0
        mock_get_service.assert_not_called()


class TestVersionCommand:
    """Tests for 'ipt version'."""

    @patch("ipt.cli.get_service")
    def test_summary(self, mock_get_service):
        """version should summarize detected capabilities."""
        mock_ctx, mock_iptables = make_service()
        mock_iptables.version = (1, 4, 15)
        mock_iptables.capabilities = UtilityCapabilities(has_check=True, has_wait=False)
        mock_iptables.caller.lock_path = "/var/run/xtables_old.lock"
        mock_get_service.return_value = (mock_ctx, mock_iptables)

        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        title, items = mock_ctx.console.summary.call_args.args
        assert items["Version"] == "1.4.15"
        assert items["Wait (--wait)"] is False
        assert items["Lock file"] == "/var/run/xtables_old.lock"


class TestConfigCommands:
    """Tests for 'ipt config ...'."""

    def test_init_and_show(self, tmp_path):
        """init should write a file that show can read."""
        path = tmp_path / "config.yaml"

        result = runner.invoke(app, ["config", "init", "--config", str(path)])
        assert result.exit_code == 0
        assert path.exists()

        result = runner.invoke(app, ["config", "show", "--config", str(path), "--no-color"])
        assert result.exit_code == 0
        assert "xtables_old.lock" in result.output

    def test_init_refuses_overwrite(self, tmp_path):
        """init should not overwrite without --force."""
        path = tmp_path / "config.yaml"
        path.write_text("old")

        result = runner.invoke(app, ["config", "init", "--config", str(path)])

        assert result.exit_code == 2
        assert path.read_text() == "old"
