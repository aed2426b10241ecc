"""Unit tests for manifest-based plugin discovery and PluginSetting validation."""

from pathlib import Path
from textwrap import dedent

import pytest

from cuebridge.src.services.events.bus import PlatformEventBus
from cuebridge.src.services.plugins.loader import PluginLoadError, PluginLoader
from cuebridge.src.services.plugins.manager import PluginManager
from cuebridge.src.services.plugins.plugin import PluginSetting
from cuebridge.src.services.plugins.storage import StorageService


PLUGIN_SOURCE = '''
from cuebridge.src.services.plugins.plugin import Plugin


class EchoPlugin(Plugin):
    description = "Echoes chat back"

    def on_load(self, context):
        self.prefix = context.settings.get("prefix")


def make_plugin():
    plugin = EchoPlugin()
    plugin.name = "factory-made"
    return plugin
'''


def make_plugin_dir(root: Path, plugin_id: str, manifest: str, source: str = PLUGIN_SOURCE) -> Path:
    plugin_dir = root / plugin_id
    plugin_dir.mkdir(parents=True)
    (plugin_dir / "manifest.toml").write_text(dedent(manifest), encoding="utf-8")
    (plugin_dir / "plugin.py").write_text(source, encoding="utf-8")
    return plugin_dir


@pytest.fixture
def plugins_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "plugins"
    directory.mkdir()
    return directory


@pytest.fixture
def echo_manifest() -> str:
    return '''
    [plugin]
    id = "echo"
    name = "Echo"
    version = "1.2.3"
    entry = "plugin:EchoPlugin"

    [capabilities]
    requires = ["action-registry"]

    [settings.prefix]
    type = "string"
    default = ">>"
    '''


# =============================================================================
# Manifest parsing
# =============================================================================


class TestManifest:
    def test_load_manifest(self, plugins_dir, echo_manifest):
        plugin_dir = make_plugin_dir(plugins_dir, "echo", echo_manifest)

        manifest = PluginLoader(plugins_dir).load_manifest(plugin_dir)

        assert manifest.id == "echo"
        assert manifest.version == "1.2.3"
        assert manifest.requires == ["action-registry"]
        assert manifest.default_settings() == {"prefix": ">>"}
        assert manifest.source_dir == str(plugin_dir)

    def test_missing_plugin_section(self, plugins_dir):
        plugin_dir = make_plugin_dir(plugins_dir, "bad", '[other]\nid = "bad"\n')

        with pytest.raises(PluginLoadError, match=r"Missing \[plugin\]"):
            PluginLoader(plugins_dir).load_manifest(plugin_dir)

    def test_invalid_id_and_version(self, plugins_dir):
        plugin_dir = make_plugin_dir(
            plugins_dir, "bad", '[plugin]\nid = "Bad_Id"\nversion = "one"\nentry = "plugin:EchoPlugin"\n'
        )

        with pytest.raises(PluginLoadError) as exc_info:
            PluginLoader(plugins_dir).load_manifest(plugin_dir)

        assert "kebab-case" in str(exc_info.value)
        assert "semantic versioning" in str(exc_info.value)

    def test_toml_error(self, plugins_dir):
        plugin_dir = make_plugin_dir(plugins_dir, "bad", "[plugin\n")

        with pytest.raises(PluginLoadError, match="TOML parse error"):
            PluginLoader(plugins_dir).load_manifest(plugin_dir)


# =============================================================================
# Import and instantiation
# =============================================================================


class TestLoadPlugin:
    def test_load_class_entry(self, plugins_dir, echo_manifest):
        plugin_dir = make_plugin_dir(plugins_dir, "echo", echo_manifest)

        found = PluginLoader(plugins_dir).load_plugin(plugin_dir)

        assert found.plugin.name == "echo"
        assert found.plugin.version == "1.2.3"
        assert found.manifest.id == "echo"

    def test_load_factory_entry(self, plugins_dir):
        manifest = '[plugin]\nid = "factory"\nversion = "1.0.0"\nentry = "plugin:make_plugin"\n'
        plugin_dir = make_plugin_dir(plugins_dir, "factory", manifest)

        found = PluginLoader(plugins_dir).load_plugin(plugin_dir)

        assert found.plugin.name == "factory-made"

    def test_entry_must_produce_plugin(self, plugins_dir):
        manifest = '[plugin]\nid = "wrong"\nversion = "1.0.0"\nentry = "plugin:VALUE"\n'
        plugin_dir = make_plugin_dir(plugins_dir, "wrong", manifest, source="VALUE = 42\n")

        with pytest.raises(PluginLoadError, match="did not produce a Plugin"):
            PluginLoader(plugins_dir).load_plugin(plugin_dir)

    def test_missing_attribute(self, plugins_dir):
        manifest = '[plugin]\nid = "missing"\nversion = "1.0.0"\nentry = "plugin:Nope"\n'
        plugin_dir = make_plugin_dir(plugins_dir, "missing", manifest)

        with pytest.raises(PluginLoadError, match="not found"):
            PluginLoader(plugins_dir).load_plugin(plugin_dir)

    def test_import_error_is_wrapped(self, plugins_dir):
        manifest = '[plugin]\nid = "crash"\nversion = "1.0.0"\nentry = "plugin:Thing"\n'
        plugin_dir = make_plugin_dir(plugins_dir, "crash", manifest, source="raise ImportError('no deps')\n")

        with pytest.raises(PluginLoadError, match="no deps"):
            PluginLoader(plugins_dir).load_plugin(plugin_dir)

    def test_load_all_skips_invalid(self, plugins_dir, echo_manifest):
        make_plugin_dir(plugins_dir, "echo", echo_manifest)
        make_plugin_dir(plugins_dir, "zz-broken", "[plugin\n")
        (plugins_dir / "not-a-plugin").mkdir()

        found = PluginLoader(plugins_dir).load_all()

        assert [f.manifest.id for f in found] == ["echo"]

    def test_load_all_raises_when_not_skipping(self, plugins_dir):
        make_plugin_dir(plugins_dir, "broken", "[plugin\n")

        with pytest.raises(PluginLoadError):
            PluginLoader(plugins_dir).load_all(skip_invalid=False)


class TestManagerDirectoryLoading:
    @pytest.mark.asyncio
    async def test_settings_reach_context(self, plugins_dir):
        manifest = '[plugin]\nid = "echo"\nversion = "1.0.0"\nentry = "plugin:EchoPlugin"\n\n[settings.prefix]\ntype = "string"\ndefault = "!"\n'
        make_plugin_dir(plugins_dir, "echo", manifest)
        manager = PluginManager(PlatformEventBus(), storage=StorageService(":memory:"))

        assert manager.load_from_directory(plugins_dir) == ["echo"]
        await manager.load_all()

        assert manager.get_plugin("echo").prefix == "!"

    def test_missing_requirement_is_skipped(self, plugins_dir, echo_manifest):
        make_plugin_dir(plugins_dir, "echo", echo_manifest)
        manager = PluginManager(PlatformEventBus(), storage=StorageService(":memory:"))

        assert manager.load_from_directory(plugins_dir) == []


# =============================================================================
# PluginSetting
# =============================================================================


class TestPluginSetting:
    def test_valid_integer_setting(self):
        setting = PluginSetting(name="Retries", type="integer", default=3, min_value=1, max_value=10)

        assert setting.validate() == []

    def test_invalid_type(self):
        errors = PluginSetting(name="X", type="date", default="today").validate()

        assert "Invalid setting type" in errors[0]

    def test_default_out_of_range(self):
        errors = PluginSetting(name="X", type="integer", default=20, max_value=10).validate()

        assert "above maximum" in errors[0]

    def test_bool_is_not_integer(self):
        ok, message = PluginSetting(name="X", type="integer", default=1).validate_value(True)

        assert ok is False
        assert "integer" in message

    def test_options_only_for_strings(self):
        errors = PluginSetting(name="X", type="integer", default=1, options=["1"]).validate()

        assert any("Options can only" in e for e in errors)
