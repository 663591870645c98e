"""
Tests for StandardizeConfig and the YAML loaders.
"""
import pytest

from standardize.config import (
    StandardizeConfig,
    load_standardize_config,
    load_yaml_config,
    validate_scale,
)
from standardize.exceptions import ConfigError


class TestStandardizeConfig:
    """Tests for the settings dataclass."""

    def test_defaults(self):
        config = StandardizeConfig()
        assert config.scale == 1.0
        assert config.family == 'gaussian'
        assert config.n_jobs == 1

    @pytest.mark.parametrize("kwargs,match", [
        ({'scale': 0}, "scale"),
        ({'scale': -0.5}, "scale"),
        ({'scale': 'big'}, "scale"),
        ({'family': ''}, "family"),
        ({'n_jobs': 0}, "n_jobs"),
    ])
    def test_invalid_values(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            StandardizeConfig(**kwargs)

    def test_dict_roundtrip(self):
        config = StandardizeConfig(scale=0.5, family='binomial', n_jobs=2)
        assert StandardizeConfig.from_dict(config.to_dict()) == config

    def test_unknown_keys(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            StandardizeConfig.from_dict({'scale': 1.0, 'center': True})

    def test_validate_scale(self):
        assert validate_scale(2) == 2.0
        with pytest.raises(ValueError):
            validate_scale(float('inf'))


class TestYamlLoading:
    """Tests for YAML config files."""

    def test_top_level_settings(self, tmp_path):
        path = tmp_path / 'std.yaml'
        path.write_text("scale: 0.5\nfamily: poisson\n")
        config = load_standardize_config(path)
        assert config == StandardizeConfig(scale=0.5, family='poisson')

    def test_nested_section(self, tmp_path):
        path = tmp_path / 'project.yaml'
        path.write_text("standardize:\n  scale: 2\n  n_jobs: 4\nother: 1\n")
        config = load_standardize_config(path)
        assert config.scale == 2.0
        assert config.n_jobs == 4

    @pytest.mark.parametrize("loader", [load_yaml_config, load_standardize_config])
    def test_missing_file(self, tmp_path, loader):
        with pytest.raises(ConfigError, match="not found"):
            loader(tmp_path / 'nope.yaml')

    def test_directory_is_not_a_settings_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_yaml_config(tmp_path)

    def test_section_ignores_other_top_level_keys(self, tmp_path):
        path = tmp_path / 'project.yaml'
        path.write_text("scale: 3\nstandardize:\n  family: binomial\n")
        assert load_standardize_config(path) == StandardizeConfig(family='binomial')

    def test_empty_section_gives_defaults(self, tmp_path):
        path = tmp_path / 'project.yaml'
        path.write_text("standardize:\nother: 1\n")
        assert load_standardize_config(path) == StandardizeConfig()

    def test_section_must_be_mapping(self, tmp_path):
        path = tmp_path / 'project.yaml'
        path.write_text("standardize: [0.5]\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_standardize_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text("scale: [1, 2\n")
        with pytest.raises(ConfigError, match="Failed to parse"):
            load_standardize_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_yaml_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / 'neg.yaml'
        path.write_text("scale: -1\n")
        with pytest.raises(ConfigError, match="Invalid standardize configuration"):
            load_standardize_config(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text("")
        assert load_yaml_config(path) == {}
        assert load_standardize_config(path) == StandardizeConfig()
