"""Tests for compose-aware YAML helpers."""

import pytest
import yaml

from cortex.utils.yaml_utils import (
    OVERRIDE_TAG,
    RESET_TAG,
    ComposeLoader,
    TaggedValue,
    dump_yaml_with_header,
    load_compose_services,
    load_yaml_file,
)


class TestLoadYamlFile:
    """Test loading YAML mappings."""

    def test_loads_mapping(self, tmp_path):
        path = tmp_path / "a.yml"
        path.write_text("key: value\n")
        assert load_yaml_file(path) == {"key": "value"}

    def test_empty_document(self, tmp_path):
        path = tmp_path / "a.yml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "missing.yml")

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "a.yml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="Expected a mapping"):
            load_yaml_file(path)

    def test_base_file_with_merge_tags_loads(self, tmp_path):
        path = tmp_path / "a.yml"
        path.write_text("services:\n  app:\n    ports: !reset []\n")
        assert load_yaml_file(path)["services"]["app"]["ports"] == TaggedValue(
            RESET_TAG, []
        )

    def test_colon_scalars_stay_strings(self, tmp_path):
        path = tmp_path / "a.yml"
        path.write_text("ports:\n  - 2222:22\n  - 1:30\nplain: 80\nhex: 0x10\nneg: -3\n")

        data = load_yaml_file(path)

        assert data["ports"] == ["2222:22", "1:30"]
        assert data["plain"] == 80
        assert data["hex"] == 16
        assert data["neg"] == -3


class TestLoadComposeServices:
    """Test extraction of the services map."""

    def test_skips_non_mapping_services(self, tmp_path):
        path = tmp_path / "docker-compose.yml"
        path.write_text("services:\n  app:\n    image: x\n  broken: 42\n")
        assert load_compose_services(path) == {"app": {"image": "x"}}

    def test_unparsable_file(self, tmp_path):
        path = tmp_path / "docker-compose.yml"
        path.write_text("services: [oops\n")
        assert load_compose_services(path) == {}

    def test_no_services_key(self, tmp_path):
        path = tmp_path / "docker-compose.yml"
        path.write_text("volumes:\n  data: {}\n")
        assert load_compose_services(path) == {}


class TestDumpYamlWithHeader:
    """Test writing YAML with merge tags."""

    def test_header_and_tags(self, tmp_path):
        path = tmp_path / "out" / "override.yml"
        data = {
            "services": {
                "app": {
                    "ports": TaggedValue(OVERRIDE_TAG, ["1080:80"]),
                    "container_name": "ns-app",
                },
                "db": {"ports": TaggedValue(RESET_TAG, [])},
            }
        }

        dump_yaml_with_header(data, path, "# header\n\n")

        content = path.read_text()
        assert content.startswith("# header\n")
        assert "ports: !override" in content
        assert "ports: !reset []" in content
        # Key order of the input is preserved
        assert content.index("ports: !override") < content.index("container_name")

        with open(path) as f:
            assert yaml.load(f, Loader=ComposeLoader) == data
