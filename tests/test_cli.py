"""
Test suite for the infragraph command line.

Runs the CLI in-process against the simulated provider with state and cloud
inventory isolated under a temp directory.

System role: Verification of the outer surface
"""

import json

import pytest

from infragraph.cli import EXIT_FAILED, EXIT_OK, main


@pytest.fixture
def workspace(cli_env, vpc_document):
    """Write the reference VPC as infragraph.json in the CLI working directory."""
    (cli_env / "infragraph.json").write_text(json.dumps(vpc_document), encoding="utf-8")
    return cli_env


class TestCliValidateAndPlan:
    """Test suite for read-only commands."""

    def test_validate(self, workspace, capsys) -> None:
        exit_code = main(["validate"])

        assert exit_code == EXIT_OK
        assert "Configuration is valid: 8 resource(s)." in capsys.readouterr().out

    def test_plan_lists_creates(self, workspace, capsys) -> None:
        """
        Test plan on an empty state previews every create.

        Arrange: Reference VPC, no state
        Act: plan
        Assert: Summary counts 8 creates, no state file written
        """
        # Act
        exit_code = main(["plan"])

        # Assert
        out = capsys.readouterr().out
        assert exit_code == EXIT_OK
        assert "+ vpc.main" in out
        assert "Plan: 8 to create, 0 to update, 0 to replace, 0 to delete." in out
        assert not (workspace / "state.json").exists()

    def test_plan_with_var_override(self, workspace, capsys) -> None:
        exit_code = main([
            "plan",
            "--var", 'public_subnet_cidrs=["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"]',
            "--var", 'availability_zones=["ap-southeast-2a", "ap-southeast-2b", "ap-southeast-2c"]',
        ])

        out = capsys.readouterr().out
        assert exit_code == EXIT_OK
        assert "+ subnet.public[2]" in out
        assert "Plan: 9 to create" in out

    def test_missing_config_fails(self, cli_env, capsys) -> None:
        exit_code = main(["validate", "--config", "absent.json"])

        assert exit_code == EXIT_FAILED
        assert "Error:" in capsys.readouterr().err

    def test_undefined_variable_fails(self, workspace, vpc_document, capsys) -> None:
        vpc_document["variables"][0].pop("default")
        (workspace / "broken.json").write_text(json.dumps(vpc_document), encoding="utf-8")

        exit_code = main(["plan", "-c", "broken.json"])

        assert exit_code == EXIT_FAILED
        assert "vpc_cidr" in capsys.readouterr().err

    def test_malformed_var_fails(self, workspace, capsys) -> None:
        assert main(["plan", "--var", "no-equals-sign"]) == EXIT_FAILED


class TestCliLifecycle:
    """Test suite for apply, inspection and destroy."""

    def test_apply_output_destroy(self, workspace, capsys) -> None:
        """
        Test a full lifecycle through the CLI.

        Arrange: Reference VPC configuration
        Act: apply, output, state list, show, plan, destroy
        Assert: Each command reports the expected state
        """
        # Act / Assert: apply
        assert main(["apply"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "Apply complete! Resources: 8 added, 0 changed, 0 replaced, 0 destroyed." in out
        assert "vpc_id = vpc-" in out

        # output
        assert main(["output", "vpc_id"]) == EXIT_OK
        vpc_id = capsys.readouterr().out.strip()
        assert vpc_id.startswith("vpc-")

        assert main(["output", "public_subnet_ids", "--json"]) == EXIT_OK
        assert len(json.loads(capsys.readouterr().out)) == 2

        # state list
        assert main(["state", "list"]) == EXIT_OK
        listed = capsys.readouterr().out.split()
        assert "route_table_association.public[1]" in listed
        assert len(listed) == 8

        # show
        assert main(["show"]) == EXIT_OK
        assert f"id = {vpc_id}" in capsys.readouterr().out

        # plan after apply
        assert main(["plan"]) == EXIT_OK
        assert "No changes." in capsys.readouterr().out

        # destroy
        assert main(["destroy"]) == EXIT_OK
        assert "Destroy complete! Resources: 8 destroyed." in capsys.readouterr().out

        assert main(["show"]) == EXIT_OK
        assert "The state is empty." in capsys.readouterr().out

    def test_unknown_output_fails(self, workspace, capsys) -> None:
        main(["apply"])
        capsys.readouterr()

        assert main(["output", "nope"]) == EXIT_FAILED
        assert "not found" in capsys.readouterr().err

    def test_failed_resource_exits_nonzero(self, workspace, vpc_document, capsys) -> None:
        vpc_document["resources"][1] = {
            "type": "subnet",
            "name": "public",
            "attributes": {"vpc_id": {"ref": "vpc.main"}, "cidr_block": "192.168.0.0/24"},
        }
        vpc_document["resources"].pop()
        vpc_document["outputs"].pop()
        (workspace / "infragraph.json").write_text(json.dumps(vpc_document), encoding="utf-8")

        exit_code = main(["apply"])

        assert exit_code == EXIT_FAILED
        assert "subnet.public" in capsys.readouterr().err
        assert (workspace / "state.json").exists()
