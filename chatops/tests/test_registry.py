"""Tests for the command registry."""

import os
import shutil
import tempfile
import unittest

from support import write_files

from chatops.config import ProcessorOptions
from chatops.errors import CommandLoadError
from chatops.registry import CommandRegistry


class TestCommandRegistry(unittest.TestCase):
    """Test cases for CommandRegistry."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.commands_dir = os.path.join(self.temp_dir, "commands")
        options = ProcessorOptions(
            commands_dir=self.commands_dir,
            templates_dir=os.path.join(self.temp_dir, "templates"),
        )
        self.registry = CommandRegistry("ops", options)

    def tearDown(self):
        """Clean up test fixtures."""
        self.registry.shutdown()
        shutil.rmtree(self.temp_dir)

    def _path(self, relative):
        return os.path.join(self.commands_dir, relative)

    def test_add_command_with_config(self):
        """Register a command and load its sibling descriptor."""
        write_files(
            self.commands_dir,
            {
                "deploy.tmpl": "Deploying {{ params.p0 }}",
                "deploy.yml": "Description: Deploy a service\nAliases: [dp]\n",
            },
        )
        command = self.registry.add_command("deploy", self._path("deploy.tmpl"))

        self.assertEqual(command.name, "deploy")
        self.assertEqual(command.group, "ops")
        self.assertEqual(command.description, "Deploy a service")
        self.assertEqual(self.registry.commands(), [command])
        self.assertIs(self.registry.get("dp"), command)

    def test_add_command_without_config(self):
        """Default the descriptor values when there is no descriptor."""
        write_files(self.commands_dir, {"ping.tmpl": "pong"})
        command = self.registry.add_command("ping", self._path("ping.tmpl"))

        self.assertIsNone(command.config)
        self.assertEqual(command.description, "")
        self.assertEqual(command.aliases, [])
        self.assertEqual(command.fields, [])
        self.assertEqual(len(command.params), 10)

    def test_bad_config_is_not_fatal(self):
        """Register the command without config if the descriptor is broken."""
        write_files(
            self.commands_dir,
            {"ping.tmpl": "pong", "ping.yml": "Description: [unclosed\n"},
        )
        with self.assertLogs("chatops.registry", level="ERROR"):
            command = self.registry.add_command("ping", self._path("ping.tmpl"))

        self.assertIsNone(command.config)
        self.assertEqual(len(self.registry.commands()), 1)

    def test_bad_template_fails_fast(self):
        """Raise and skip a command whose template does not compile."""
        write_files(self.commands_dir, {"bad.tmpl": "{{ params.p0 "})
        with self.assertRaises(CommandLoadError):
            self.registry.add_command("bad", self._path("bad.tmpl"))

        self.assertEqual(self.registry.commands(), [])
        self.assertIsNone(self.registry.get("bad"))

    def test_missing_template_fails(self):
        """Raise for a command file that does not exist."""
        with self.assertRaises(CommandLoadError):
            self.registry.add_command("ghost", self._path("ghost.tmpl"))

    def test_load_scans_recursively_and_skips_failures(self):
        """Register every valid command file, in path order."""
        write_files(
            self.commands_dir,
            {
                "b_status.tmpl": "ok",
                "a_broken.tmpl": "{% if %}",
                "nested/c_logs.tmpl": "logs",
                "notes.txt": "not a command",
            },
        )
        count = self.registry.load()

        self.assertEqual(count, 2)
        self.assertEqual([c.name for c in self.registry.commands()], ["b_status", "c_logs"])

    def test_load_skips_duplicate_names(self):
        """Keep the first file in path order when names collide."""
        write_files(
            self.commands_dir,
            {"a/status.tmpl": "first", "b/status.tmpl": "second", "ping.tmpl": "pong"},
        )
        with self.assertLogs("chatops.registry", level="ERROR") as logs:
            count = self.registry.load()

        self.assertEqual(count, 2)
        self.assertEqual(sorted(c.name for c in self.registry.commands()), ["ping", "status"])
        self.assertEqual(self.registry.get("status").path, self._path("a/status.tmpl"))
        self.assertIn("already registered", logs.output[0])

    def test_load_with_empty_extension(self):
        """Refuse to scan when the command extension is empty."""
        write_files(self.commands_dir, {"ping.tmpl": "pong", "ping.yml": "Description: x\n"})
        self.registry.options.command_ext = ""

        with self.assertLogs("chatops.registry", level="ERROR"):
            self.assertEqual(self.registry.load(), 0)
        self.assertEqual(self.registry.commands(), [])

    def test_load_ignores_bare_extension_file(self):
        """Skip a file named only by the extension."""
        write_files(self.commands_dir, {".tmpl": "x", "ping.tmpl": "pong"})
        self.assertEqual(self.registry.load(), 1)
        self.assertEqual(self.registry.list_commands(), ["ping"])

    def test_invalid_params_drop_descriptor(self):
        """Register without descriptor when it declares a bad param name."""
        write_files(
            self.commands_dir,
            {"deploy.tmpl": "x", "deploy.yml": "Description: d\nParams: [env-name]\n"},
        )
        with self.assertLogs("chatops.registry", level="ERROR") as logs:
            command = self.registry.add_command("deploy", self._path("deploy.tmpl"))

        self.assertIsNone(command.config)
        self.assertEqual(len(command.params), 10)
        self.assertIn("env-name", logs.output[0])

    def test_load_missing_directory(self):
        """Register nothing when the commands directory is missing."""
        self.assertEqual(self.registry.load(), 0)

    def test_insertion_order(self):
        """Keep commands in the order they were added."""
        write_files(self.commands_dir, {"z.tmpl": "z", "a.tmpl": "a"})
        self.registry.add_command("z", self._path("z.tmpl"))
        self.registry.add_command("a", self._path("a.tmpl"))

        self.assertEqual([c.name for c in self.registry.commands()], ["z", "a"])
        self.assertEqual(self.registry.list_commands(), ["a", "z"])

    def test_help_text(self):
        """List commands with the group and description."""
        write_files(
            self.commands_dir,
            {"ping.tmpl": "pong", "ping.yml": "Description: Check the bot\n"},
        )
        self.registry.add_command("ping", self._path("ping.tmpl"))

        help_text = self.registry.get_help_text()
        self.assertIn("**ops Commands:**", help_text)
        self.assertIn("`ops ping` - Check the bot", help_text)


if __name__ == "__main__":
    unittest.main()
