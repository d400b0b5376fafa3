"""Tests for the description loader."""

import pytest

from terranova.configs import Loader
from terranova.values import NUMBER, STRING, ListType

MAIN = """
variable:
  region:
    type: string
    default: us-east-1
  zones:
    type: list(string)
resource:
  null_resource:
    web:
      triggers:
        region: ${var.region}
      provisioner:
        - local-exec:
            command: echo hello
output:
  web_id:
    value: ${null_resource.web.id}
    description: Id of the web resource
provider:
  "null": {}
terraform:
  required_version: ">= 1.0"
"""


@pytest.fixture
def work_dir(tmp_path):
    (tmp_path / "modules").mkdir()
    return tmp_path


def load(work_dir, text, name="main.tf.yaml"):
    (work_dir / name).write_text(text)
    return Loader(work_dir / "modules").load_config(work_dir)


def summaries(diags):
    return [d.summary for d in diags]


class TestLoader:
    """Tests for loading valid descriptions."""

    def test_load_blocks(self, work_dir):
        """Test every block type of one file."""
        config, diags = load(work_dir, MAIN)

        assert not diags.has_errors()
        module = config.module

        region = module.variables["region"]
        assert region.type == STRING
        assert region.default == "us-east-1"
        assert region.required is False
        assert module.variables["zones"].type == ListType(STRING)
        assert module.variables["zones"].required is True

        web = module.resources["null_resource.web"]
        assert web.provider == "null"
        assert web.config == {"triggers": {"region": "${var.region}"}}
        assert [(p.name, p.config) for p in web.provisioners] == [("local-exec", {"command": "echo hello"})]

        assert module.outputs["web_id"].value == "${null_resource.web.id}"
        assert module.outputs["web_id"].description == "Id of the web resource"
        assert module.providers == {"null": {}}

    def test_multiple_documents(self, work_dir):
        """Test that documents separated by --- are merged."""
        text = "variable:\n  a: {}\n---\nvariable:\n  b:\n    default: 1\n"
        config, diags = load(work_dir, text)

        assert not diags.has_errors()
        assert sorted(config.module.variables) == ["a", "b"]

    def test_json_file(self, work_dir):
        """Test loading the JSON form."""
        config, diags = load(work_dir, '{"variable": {"size": {"type": "number"}}}', name="main.tf.json")

        assert not diags.has_errors()
        assert config.module.variables["size"].type == NUMBER

    def test_files_merged(self, work_dir):
        """Test that all description files of a directory are loaded."""
        (work_dir / "vars.tf.yml").write_text("variable:\n  a: {}\n")
        (work_dir / "notes.txt").write_text("variable: ignored")
        config, diags = load(work_dir, "output:\n  out:\n    value: ${var.a}\n")

        assert not diags.has_errors()
        assert list(config.module.variables) == ["a"]
        assert list(config.module.outputs) == ["out"]

    def test_provisioner_mapping_form(self, work_dir):
        """Test provisioners given as a mapping."""
        text = "resource:\n  null_resource:\n    a:\n      provisioner:\n        local-exec:\n          command: x\n"
        config, diags = load(work_dir, text)

        assert not diags.has_errors()
        assert config.module.resources["null_resource.a"].provisioners[0].name == "local-exec"

    def test_empty_resource(self, work_dir):
        """Test a resource without arguments."""
        config, diags = load(work_dir, "resource:\n  null_resource:\n    a:\n")

        assert not diags.has_errors()
        assert config.module.resources["null_resource.a"].config == {}

    def test_child_module(self, work_dir):
        """Test loading an installed child module."""
        child = work_dir / "modules" / "net"
        child.mkdir()
        (child / "main.tf.yaml").write_text("variable:\n  cidr: {}\n")

        config, diags = load(work_dir, "module:\n  net:\n    source: ./net\n    cidr: 10.0.0.0/16\n")

        assert not diags.has_errors()
        call = config.module.module_calls["net"]
        assert call.source == "./net"
        assert call.arguments == {"cidr": "10.0.0.0/16"}
        assert "cidr" in config.children["net"].module.variables


class TestLoaderErrors:
    """Tests for problems reported as diagnostics."""

    def test_invalid_yaml(self, work_dir):
        """Test that a syntax error names the file and line."""
        config, diags = load(work_dir, "variable:\n  a: [unclosed\n")

        assert config is None
        assert summaries(diags) == ["Invalid YAML"]
        assert diags[0].subject.startswith("main.tf.yaml:")

    def test_no_files(self, work_dir):
        """Test a directory without description files."""
        config, diags = Loader(work_dir / "modules").load_config(work_dir)

        assert config is None
        assert summaries(diags) == ["No configuration files"]

    def test_not_a_mapping(self, work_dir):
        """Test a document that is not a mapping."""
        config, diags = load(work_dir, "- a\n- b\n")

        assert config is None
        assert summaries(diags) == ["Document must be a mapping of blocks"]

    def test_unsupported_block(self, work_dir):
        """Test an unknown top-level block."""
        _, diags = load(work_dir, "data:\n  x: {}\n")
        assert summaries(diags) == ["Unsupported block type 'data'"]

    @pytest.mark.parametrize(
        "text,summary",
        [
            ("variable:\n  a: {}\n---\nvariable:\n  a: {}\n", "Duplicate variable declaration"),
            (
                "resource:\n  null_resource:\n    a: {}\n---\nresource:\n  null_resource:\n    a: {}\n",
                "Duplicate resource declaration",
            ),
            ("output:\n  o:\n    value: 1\n---\noutput:\n  o:\n    value: 2\n", "Duplicate output declaration"),
            ("provider:\n  \"null\": {}\n---\nprovider:\n  \"null\": {}\n", "Duplicate provider configuration"),
            ("output:\n  o:\n    description: x\n", "Missing required argument 'value'"),
            ("variable:\n  a:\n    type: strng\n", "Invalid type constraint"),
            ("variable:\n  a:\n    type: number\n    default: abc\n", "Invalid default value for variable"),
            ("variable:\n  a:\n    sensitive: true\n", "Unsupported argument 'sensitive'"),
            ("module:\n  net:\n    cidr: x\n", "Missing required argument 'source'"),
            ("resource:\n  null_resource:\n    a: 3\n", "Resource block must be a mapping"),
            ("resource:\n  null_resource:\n    a:\n      provisioner: 3\n", "Provisioner block must be a list"),
            ("resource:\n  null:\n    web: {}\n", "Resource type must be a string"),
            ("resource:\n  5:\n    web: {}\n", "Resource type must be a string"),
            ("resource:\n  null_resource:\n    5: {}\n", "Resource name must be a string"),
            ("resource:\n  null_resource:\n    a:\n      triggers:\n        1: a\n", "Argument names must be strings"),
            ("provider:\n  \"null\":\n    tags:\n      - {2: x}\n", "Argument names must be strings"),
            ("output:\n  o:\n    value: {1: a}\n", "Output keys must be strings"),
        ],
    )
    def test_invalid_declarations(self, work_dir, text, summary):
        """Test declaration errors."""
        config, diags = load(work_dir, text)

        assert config is None
        assert summary in summaries(diags)

    def test_module_not_installed(self, work_dir):
        """Test a module call without an installed module."""
        _, diags = load(work_dir, "module:\n  net:\n    source: ./net\n")

        assert summaries(diags) == ["Module not installed"]
        assert diags[0].subject == "module.net"

    def test_all_problems_reported(self, work_dir):
        """Test that one load reports every problem."""
        _, diags = load(work_dir, "data: {}\noutput:\n  o: {}\n")
        assert len(diags.errors()) == 2
