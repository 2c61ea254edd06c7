"""Fake collaborators and command-tree helpers shared by the tests."""

import os
import shutil
import tempfile
import threading
import unittest

from chatops.config import ProcessorOptions
from chatops.registry import CommandRegistry


class FakeUser:
    def __init__(self, user_id="u1"):
        self.user_id = user_id

    def id(self):
        return self.user_id


class FakeChannel:
    def __init__(self, channel_id="chan-1"):
        self.channel_id = channel_id

    def id(self):
        return self.channel_id


class FakeMessage:
    def __init__(self, message_id="m-1"):
        self.message_id = message_id

    def id(self):
        return self.message_id


class FakeBot:
    """Records posts; channels listed in `failing` raise on post."""

    def __init__(self, name="fake", failing=()):
        self._name = name
        self.failing = set(failing)
        self.posts = []
        self._lock = threading.Lock()

    def name(self):
        return self._name

    def post(self, channel_id, text, attachments, reply_to=None):
        with self._lock:
            self.posts.append((channel_id, text, list(attachments), reply_to))
        if channel_id in self.failing:
            raise RuntimeError(f"channel {channel_id} is down")


def write_files(root, files):
    """Write a {relative path: content} mapping under root."""
    for relative, content in files.items():
        path = os.path.join(root, relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)


class CommandTestCase(unittest.TestCase):
    """Base class writing a command tree into a temp directory."""

    group = "ops"

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.commands_dir = os.path.join(self.temp_dir, "commands")
        self.templates_dir = os.path.join(self.temp_dir, "templates")
        os.makedirs(self.commands_dir)
        os.makedirs(self.templates_dir)
        self.options = ProcessorOptions(
            commands_dir=self.commands_dir,
            templates_dir=self.templates_dir,
            error="Command failed, ask #ops",
        )
        self.registry = CommandRegistry(self.group, self.options)
        self.bot = FakeBot()
        self.user = FakeUser("u1")

    def tearDown(self):
        """Clean up test fixtures."""
        self.registry.shutdown()
        shutil.rmtree(self.temp_dir)

    def add(self, name, source, config=None, templates=None):
        files = {f"{name}.tmpl": source}
        if config is not None:
            files[f"{name}.yml"] = config
        write_files(self.commands_dir, files)
        write_files(self.templates_dir, templates or {})
        return self.registry.add_command(name, os.path.join(self.commands_dir, f"{name}.tmpl"))
