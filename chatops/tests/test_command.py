"""Tests for command execution."""

import re
import unittest
from concurrent.futures import ThreadPoolExecutor

from support import CommandTestCase, FakeUser

from chatops.command import default_params
from chatops.errors import CommandExecutionError
from chatops.models import AttachmentType


class TestDefaultParams(unittest.TestCase):
    """Tests for the positional parameter scheme."""

    def test_ten_growing_patterns(self):
        """Build 10 patterns, each one token longer than the previous."""
        patterns = default_params()

        self.assertEqual(len(patterns), 10)
        self.assertEqual(patterns[0], r"(?P<p0>\S+)")
        self.assertEqual(patterns[1], r"(?P<p0>\S+)\s+(?P<p1>\S+)")
        for shorter, longer in zip(patterns, patterns[1:]):
            self.assertGreater(len(longer), len(shorter))

    def test_groups_in_order(self):
        """Capture p0..pN in order."""
        patterns = default_params()
        for i, pattern in enumerate(patterns):
            self.assertEqual(list(re.compile(pattern).groupindex), [f"p{n}" for n in range(i + 1)])

        match = re.fullmatch(patterns[2], "web  prod 3")
        self.assertEqual(match.groupdict(), {"p0": "web", "p1": "prod", "p2": "3"})


class TestCommand(CommandTestCase):
    """Test cases for Command."""

    def test_configured_params(self):
        """Return declared params instead of the positional scheme."""
        command = self.add("deploy", "x", config="Params: [service, env]\n")
        self.assertEqual(command.params, ["service", "env"])

    def test_name_with_group(self):
        """Qualify the name with the group."""
        command = self.add("ping", "pong")
        self.assertEqual(command.name_with_group("/"), "ops/ping")
        self.assertEqual(command.name_with_group("_"), "ops_ping")

    def test_literal_template(self):
        """Return literal text stripped, with default flags."""
        command = self.add("hello", "\n   Hello, world!  \n\n")
        context, text, attachments = command.execute(self.bot, self.user, {})

        self.assertEqual(text, "Hello, world!")
        self.assertEqual(attachments, [])
        self.assertEqual(context.deferred_posts, [])
        self.assertFalse(context.visible)
        self.assertFalse(context.error)
        self.assertEqual(self.bot.posts, [])

    def test_template_data(self):
        """Expose params, bot, user and name to the template."""
        command = self.add(
            "whoami", "{{ name }} {{ params.p0 }} {{ bot.name() }} {{ user.id() }}{{ params.p1 }}"
        )
        _, text, _ = command.execute(self.bot, self.user, {"p0": "prod"})
        self.assertEqual(text, "ops/whoami prod fake u1")

    def test_add_attachment(self):
        """Collect attachments in call order."""
        command = self.add(
            "logs",
            '{{ addAttachment("first", "caption", "one", "text") }}'
            '{{ addAttachment("second", "", params.p0, "file") }}done',
        )
        _, text, attachments = command.execute(self.bot, self.user, {"p0": "two"})

        self.assertEqual(text, "done")
        self.assertEqual([a.title for a in attachments], ["first", "second"])
        self.assertEqual(attachments[0].type, AttachmentType.TEXT)
        self.assertEqual(attachments[0].text, "caption")
        self.assertEqual(attachments[1].data, b"two")

    def test_create_attachment_is_pure(self):
        """Build an attachment without collecting it."""
        command = self.add(
            "make", '{% set a = createAttachment("t", "", "d", "image") %}{{ a.title }}'
        )
        _, text, attachments = command.execute(self.bot, self.user, {})

        self.assertEqual(text, "t")
        self.assertEqual(attachments, [])

    def test_set_invisible_overrides_config(self):
        """Report invisible even if the descriptor says visible."""
        command = self.add(
            "quiet", "{{ setInvisible() }}shh", config="Response:\n  Visible: true\n"
        )
        context, text, _ = command.execute(self.bot, self.user, {})

        self.assertEqual(text, "shh")
        self.assertFalse(context.visible)
        self.assertTrue(context.suppressed)

    def test_visible_from_config(self):
        """Take visibility from the descriptor by default."""
        command = self.add("loud", "hey", config="Response:\n  Visible: true\n  Original: true\n")
        context, _, _ = command.execute(self.bot, self.user, {})

        self.assertTrue(context.visible)
        self.assertTrue(context.original)
        self.assertFalse(context.duration)
        self.assertFalse(context.suppressed)

    def test_set_error(self):
        """Mark the response as an error."""
        command = self.add("warn", "{{ setError() }}careful")
        context, text, _ = command.execute(self.bot, self.user, {})

        self.assertEqual(text, "careful")
        self.assertTrue(context.error)

    def test_failure_returns_generic_message(self):
        """Hide the internal error behind the configured message."""
        command = self.add("broken", '{{ runTemplate("missing.tmpl") }}')

        with self.assertLogs("chatops.command", level="ERROR") as logs:
            with self.assertRaises(CommandExecutionError) as ctx:
                command.execute(self.bot, self.user, {})

        self.assertEqual(str(ctx.exception), "Command failed, ask #ops")
        self.assertIsNotNone(ctx.exception.__cause__)
        self.assertIn("missing.tmpl", logs.output[0])

    def test_failed_render_does_not_leak_attachments(self):
        """Drop attachments of a failed render."""
        command = self.add(
            "flaky",
            '{{ addAttachment("a", "", "x", "file") }}'
            '{% if params.p0 == "fail" %}{{ runTemplate("missing.tmpl") }}{% endif %}ok',
        )
        with self.assertLogs("chatops.command", level="ERROR"):
            with self.assertRaises(CommandExecutionError):
                command.execute(self.bot, self.user, {"p0": "fail"})

        _, text, attachments = command.execute(self.bot, self.user, {"p0": "pass"})
        self.assertEqual(text, "ok")
        self.assertEqual(len(attachments), 1)

    def test_concurrent_executions_are_isolated(self):
        """Never mix attachments of concurrent executions."""
        command = self.add(
            "echo",
            '{{ addAttachment("a", "", params.p0, "text") }}'
            '{{ runTemplate("part.tmpl", {"v": params.p0}) }}{{ params.p0 }}',
            templates={"part.tmpl": '{{ addAttachment("b", "", v, "text") }}'},
        )

        def run(i):
            _, text, attachments = command.execute(self.bot, FakeUser(f"u{i}"), {"p0": str(i)})
            return i, text, attachments

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(run, range(200)))

        for i, text, attachments in results:
            self.assertEqual(text, str(i))
            self.assertEqual([a.data for a in attachments], [str(i).encode()] * 2)

    def test_metrics(self):
        """Count requests, errors and time per command."""
        command = self.add(
            "count", '{% if params.p0 %}{{ runTemplate("missing.tmpl") }}{% endif %}ok'
        )
        command.execute(self.bot, self.user, {})
        with self.assertLogs("chatops.command", level="ERROR"):
            with self.assertRaises(CommandExecutionError):
                command.execute(self.bot, self.user, {"p0": "fail"})

        labels = {"group": "ops", "command": "count", "bot": "fake", "user_id": "u1"}
        meter = self.registry.meter
        self.assertEqual(meter.counter("requests", "", labels, "default", "processor").value, 2)
        self.assertEqual(meter.counter("errors", "", labels, "default", "processor").value, 1)
        names = {c["name"] for c in meter.snapshot()}
        self.assertIn("default_processor_time", names)


class TestUngroupedCommand(CommandTestCase):
    """Test cases for commands of an ungrouped registry."""

    group = ""

    def test_name_and_labels(self):
        """Use the bare name and omit the group label."""
        command = self.add("ping", "{{ name }}")
        _, text, _ = command.execute(self.bot, self.user, {})

        self.assertEqual(text, "ping")
        labels = {"command": "ping", "bot": "fake", "user_id": "u1"}
        counter = self.registry.meter.counter("requests", "", labels, "default", "processor")
        self.assertEqual(counter.value, 1)


if __name__ == "__main__":
    unittest.main()
